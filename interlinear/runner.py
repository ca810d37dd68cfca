"""High-level orchestration of one page translation session."""

from __future__ import annotations

import asyncio
import pathlib
import time
from dataclasses import dataclass, field
from typing import Any, List, Sequence

from .discovery import DEFAULT_DEBOUNCE, DEFAULT_SELECTORS, DiscoveryLoop
from .dispatcher import BoundedDispatcher
from .errors import InterlinearError, OverwriteRefusedError
from .pages import BasePage, HtmlPage
from .policy import ErrorPolicy
from .providers import DEFAULT_TIMEOUT, TranslationEndpoint, build_endpoint
from .segmenter import MAX_SEGMENT_LENGTH
from .translator import (
    DEFAULT_CACHE_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    PipelineCoordinator,
    SegmentTranslator,
)

DEFAULT_MAX_CONCURRENT = 20


@dataclass
class PipelineOptions:
    """Tunables shared by every component of a session."""

    source_language: str = "en"
    target_language: str = "zh-CN"
    endpoint_name: str = "google"
    endpoint_url: str | None = None
    selectors: Sequence[str] = DEFAULT_SELECTORS
    max_segment_length: int = MAX_SEGMENT_LENGTH
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    max_retries: int = DEFAULT_MAX_RETRIES
    request_timeout: float = DEFAULT_TIMEOUT
    retry_delay: float = DEFAULT_RETRY_DELAY
    request_interval: float = 0.0
    cache_size: int = DEFAULT_CACHE_SIZE
    debounce: float = DEFAULT_DEBOUNCE
    scan_interval: float | None = None
    min_length: int = 1
    reset_on_error: bool = False
    endpoint_debug: bool = False

    @classmethod
    def from_settings(cls, settings: Any) -> "PipelineOptions":
        """Build options from a validated ``InterlinearConfig``."""

        return cls(
            source_language=settings.INTERLINEAR_SOURCE_LANGUAGE,
            target_language=settings.INTERLINEAR_TARGET_LANGUAGE,
            endpoint_name=settings.INTERLINEAR_ENDPOINT,
            endpoint_url=settings.INTERLINEAR_ENDPOINT_URL,
            selectors=[settings.INTERLINEAR_SELECTORS],
            max_segment_length=settings.INTERLINEAR_MAX_SEGMENT_LENGTH,
            max_concurrent=settings.INTERLINEAR_MAX_CONCURRENT,
            max_retries=settings.INTERLINEAR_MAX_RETRIES,
            request_timeout=settings.INTERLINEAR_REQUEST_TIMEOUT,
            retry_delay=settings.INTERLINEAR_RETRY_DELAY,
            request_interval=settings.INTERLINEAR_REQUEST_INTERVAL,
            cache_size=settings.INTERLINEAR_CACHE_SIZE,
            debounce=settings.INTERLINEAR_DEBOUNCE_SECONDS,
            scan_interval=settings.INTERLINEAR_SCAN_INTERVAL,
            min_length=settings.INTERLINEAR_MIN_TEXT_LENGTH,
            reset_on_error=settings.INTERLINEAR_RESET_ON_ERROR,
            endpoint_debug=settings.INTERLINEAR_DEBUG_ENDPOINT,
        )


@dataclass
class TranslationSession:
    """Pipeline components owned by one page session."""

    endpoint: TranslationEndpoint
    dispatcher: BoundedDispatcher
    translator: SegmentTranslator
    coordinator: PipelineCoordinator
    error_policy: ErrorPolicy

    async def close(self) -> None:
        await self.endpoint.close()


def build_session(
    options: PipelineOptions,
    *,
    endpoint: TranslationEndpoint | None = None,
    error_policy: ErrorPolicy | None = None,
    verbose: bool = False,
) -> TranslationSession:
    """Wire endpoint, dispatcher, translator and coordinator together."""

    policy = error_policy or ErrorPolicy()
    endpoint = endpoint or build_endpoint(
        options.endpoint_name,
        url=options.endpoint_url,
        debug=options.endpoint_debug,
    )
    dispatcher = BoundedDispatcher(
        options.max_concurrent, min_interval=options.request_interval
    )
    translator = SegmentTranslator(
        endpoint,
        source_language=options.source_language,
        target_language=options.target_language,
        timeout=options.request_timeout,
        max_retries=options.max_retries,
        retry_delay=options.retry_delay,
        error_policy=policy,
        verbose=verbose,
    )
    coordinator = PipelineCoordinator(
        translator,
        dispatcher,
        max_segment_length=options.max_segment_length,
        error_policy=policy,
        cache_size=options.cache_size,
        verbose=verbose,
    )
    return TranslationSession(
        endpoint=endpoint,
        dispatcher=dispatcher,
        translator=translator,
        coordinator=coordinator,
        error_policy=policy,
    )


async def translate_text(
    text: str,
    options: PipelineOptions,
    *,
    endpoint: TranslationEndpoint | None = None,
    verbose: bool = False,
) -> str:
    """Translate a single text unit outside of any page."""

    session = build_session(options, endpoint=endpoint, verbose=verbose)
    try:
        return await session.coordinator.translate_unit(text)
    finally:
        await session.close()


@dataclass
class TranslationSummary:
    """Report returned after processing a page."""

    input_path: pathlib.Path
    output_path: pathlib.Path
    discovered_elements: int
    rendered_elements: int
    failed_elements: int
    scans: int
    segments_translated: int
    segments_failed: int
    endpoint_name: str
    source_language: str
    target_language: str
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)


class PageTranslationRunner:
    """Loads a saved page, runs discovery until idle and writes the result."""

    def __init__(
        self,
        *,
        input_path: pathlib.Path,
        output_path: pathlib.Path,
        options: PipelineOptions,
        verbose: bool = False,
        endpoint: TranslationEndpoint | None = None,
    ) -> None:
        self.input_path = input_path
        self.output_path = output_path
        self.options = options
        self.verbose = verbose
        self.endpoint = endpoint
        self.error_policy = ErrorPolicy()

    def run(self) -> TranslationSummary:
        return asyncio.run(self.run_async())

    async def run_async(self) -> TranslationSummary:
        start_time = time.time()

        page = HtmlPage.from_file(self.input_path)
        session = build_session(
            self.options,
            endpoint=self.endpoint,
            error_policy=self.error_policy,
            verbose=self.verbose,
        )
        loop = await self.translate_page(page, session)

        page.save(self.output_path)
        if self.verbose:
            print(f"Wrote translated page to {self.output_path}.")

        coordinator = session.coordinator
        return TranslationSummary(
            input_path=self.input_path,
            output_path=self.output_path,
            discovered_elements=loop.discovered,
            rendered_elements=loop.rendered,
            failed_elements=loop.failed,
            scans=loop.scans,
            segments_translated=coordinator.segments_translated,
            segments_failed=coordinator.segments_failed,
            endpoint_name=getattr(session.endpoint, "name", self.options.endpoint_name),
            source_language=self.options.source_language,
            target_language=self.options.target_language,
            elapsed_seconds=time.time() - start_time,
            error_messages=[record.message for record in self.error_policy.records],
        )

    async def translate_page(
        self,
        page: BasePage,
        session: TranslationSession,
    ) -> DiscoveryLoop:
        """Run the discovery loop over ``page`` until there is nothing left to do."""

        loop = DiscoveryLoop(
            page,
            session.coordinator,
            selectors=self.options.selectors,
            debounce=self.options.debounce,
            scan_interval=self.options.scan_interval,
            min_length=self.options.min_length,
            reset_on_error=self.options.reset_on_error,
            error_policy=self.error_policy,
            verbose=self.verbose,
        )
        try:
            loop.start()
            await loop.wait_idle()
        finally:
            await loop.stop()
            await session.close()
        return loop


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .html page."
        )
    if not input_path.is_file():
        raise InterlinearError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input page. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )
