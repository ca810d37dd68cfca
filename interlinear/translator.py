"""Segment translation with retry, and per-unit orchestration."""

from __future__ import annotations

import asyncio
import json
from collections import OrderedDict
from typing import List, Optional

from .dispatcher import BoundedDispatcher
from .errors import (
    SEGMENT_FAILED_TEXT,
    EndpointTimeoutError,
    ErrorCategory,
    ResponseParseError,
    ResponseShapeError,
    SegmentTranslationError,
)
from .policy import ErrorPolicy
from .providers import DEFAULT_TIMEOUT, TranslationEndpoint
from .segmenter import MAX_SEGMENT_LENGTH, Segmenter
from .structures import Operation, TranslationOutcome

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_CACHE_SIZE = 1000


def parse_translation(payload: str) -> str:
    """Extract the translated text from a raw ``translate_a/single`` payload.

    The payload is a JSON array whose first element lists entries of the
    form ``[translated, original, ...]``; translated fragments are joined in
    response order.
    """

    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise ResponseParseError(f"Response is not valid JSON: {exc}") from exc

    if not isinstance(data, list) or not data or not isinstance(data[0], list):
        raise ResponseShapeError("Response has no translation entries.")

    parts: List[str] = []
    for entry in data[0]:
        if not isinstance(entry, list) or not entry:
            raise ResponseShapeError("Response entry is not a non-empty list.")
        fragment = entry[0]
        if fragment is None:
            continue
        if not isinstance(fragment, str):
            raise ResponseShapeError("Response entry does not start with text.")
        parts.append(fragment)
    return "".join(parts)


def _preview(text: str, limit: int = 60) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[:limit] + "..."


class SegmentTranslator:
    """Translates one segment per call, retrying transient failures."""

    def __init__(
        self,
        endpoint: TranslationEndpoint,
        *,
        source_language: str,
        target_language: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        error_policy: Optional[ErrorPolicy] = None,
        verbose: bool = False,
    ) -> None:
        self.endpoint = endpoint
        self.source_language = source_language
        self.target_language = target_language
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_delay = max(0.0, retry_delay)
        self.error_policy = error_policy or ErrorPolicy()
        self.verbose = verbose

    async def translate(
        self,
        segment: str,
        max_retries: int | None = None,
    ) -> TranslationOutcome:
        """Translate ``segment``; never raises for endpoint failures.

        Once ``max_retries`` extra attempts are spent, the outcome carries the
        fallback text of the last failure kind.
        """

        if not segment.strip():
            return TranslationOutcome(text=segment)

        retries_left = self.max_retries if max_retries is None else max(0, max_retries)
        attempt = 0
        while True:
            attempt += 1
            try:
                payload = await self._request(segment)
                translated = parse_translation(payload)
            except SegmentTranslationError as exc:
                if retries_left > 0:
                    retries_left -= 1
                    if self.verbose:
                        print(
                            f"Could not translate segment '{_preview(segment)}' "
                            f"(attempt {attempt}, {exc.kind.value}: {exc}). "
                            f"Retrying ({retries_left} left)..."
                        )
                    await asyncio.sleep(self.retry_delay)
                    continue

                self.error_policy.handle_error(
                    ErrorCategory.TRANSLATION,
                    f"Segment '{_preview(segment)}' failed after {attempt} attempts "
                    f"({exc.kind.value}).",
                    details=str(exc),
                )
                return TranslationOutcome.failed(exc.kind)
            return TranslationOutcome(text=translated)

    async def _request(self, segment: str) -> str:
        try:
            return await asyncio.wait_for(
                self.endpoint.fetch(
                    segment,
                    source_language=self.source_language,
                    target_language=self.target_language,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise EndpointTimeoutError(
                f"No response within {self.timeout:g}s."
            ) from exc


class PipelineCoordinator:
    """Segments a text unit, dispatches its segments and reassembles them."""

    def __init__(
        self,
        translator: SegmentTranslator,
        dispatcher: BoundedDispatcher,
        *,
        max_segment_length: int = MAX_SEGMENT_LENGTH,
        error_policy: Optional[ErrorPolicy] = None,
        use_cache: bool = True,
        cache_size: int = DEFAULT_CACHE_SIZE,
        verbose: bool = False,
    ) -> None:
        self.translator = translator
        self.dispatcher = dispatcher
        self.segmenter = Segmenter(max_segment_length)
        self.error_policy = error_policy or translator.error_policy
        self.use_cache = use_cache and cache_size > 0
        self.cache_size = cache_size
        self.verbose = verbose
        self._cache: "OrderedDict[str, str]" = OrderedDict()
        self.units_translated = 0
        self.segments_translated = 0
        self.segments_failed = 0

    async def translate_unit(self, text: str) -> str:
        """Translate one unit; segment results are joined in index order."""

        if not text or not text.strip():
            return text
        if self.use_cache and text in self._cache:
            self._cache.move_to_end(text)
            return self._cache[text]

        segments = self.segmenter.segment(text)
        if self.verbose and len(segments) > 1:
            print(f"Split text ({len(text)} chars) into {len(segments)} segments.")

        futures = [
            self.dispatcher.submit(self._operation(segment.text))
            for segment in segments
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)

        parts: List[str] = []
        complete = True
        for segment, result in zip(segments, results):
            if isinstance(result, BaseException):
                complete = False
                self.segments_failed += 1
                self.error_policy.handle_error(
                    ErrorCategory.REASSEMBLY,
                    f"Segment {segment.order} raised unexpectedly: {result!r}",
                )
                parts.append(SEGMENT_FAILED_TEXT.format(index=segment.order))
                continue
            if result.ok:
                self.segments_translated += 1
            else:
                complete = False
                self.segments_failed += 1
            parts.append(result.text)

        translated = "".join(parts)
        self.units_translated += 1
        if self.use_cache and complete:
            self._remember(text, translated)
        return translated

    def _remember(self, text: str, translated: str) -> None:
        self._cache[text] = translated
        self._cache.move_to_end(text)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    def _operation(self, segment: str) -> Operation:
        async def run() -> TranslationOutcome:
            return await self.translator.translate(segment)

        return run
