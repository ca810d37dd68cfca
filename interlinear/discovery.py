"""Incremental discovery of translatable elements on a changing page."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Callable, List, Optional, Sequence, Set

from .errors import ELEMENT_ERROR_TEXT, ErrorCategory
from .pages import BasePage
from .policy import ErrorPolicy
from .structures import PageMutation, ProcessingState, TextUnit
from .translator import PipelineCoordinator

PLACEHOLDER_TEXT = "Translating..."
DEFAULT_DEBOUNCE = 0.5
DEFAULT_SELECTORS = (".titleline > a:first-child", ".commtext")


class DiscoveryLoop:
    """Finds untouched elements, marks them and feeds them to the pipeline.

    Scans run on start, after a debounced burst of node-adding mutations and,
    when ``scan_interval`` is set, on a fixed timer. Marking happens inside
    the synchronous ``scan`` before any task is scheduled, which is what keeps
    overlapping scans from processing the same element twice.
    """

    def __init__(
        self,
        page: BasePage,
        coordinator: PipelineCoordinator,
        *,
        selectors: Sequence[str] = DEFAULT_SELECTORS,
        debounce: float = DEFAULT_DEBOUNCE,
        scan_interval: float | None = None,
        min_length: int = 1,
        reset_on_error: bool = False,
        error_policy: Optional[ErrorPolicy] = None,
        verbose: bool = False,
    ) -> None:
        self.page = page
        self.coordinator = coordinator
        self.selectors = list(selectors)
        self.debounce = max(0.0, debounce)
        self.scan_interval = scan_interval if scan_interval and scan_interval > 0 else None
        self.min_length = max(1, min_length)
        self.reset_on_error = reset_on_error
        self.error_policy = error_policy or coordinator.error_policy
        self.verbose = verbose

        self.scans = 0
        self.discovered = 0
        self.rendered = 0
        self.failed = 0

        self._inflight: Set["asyncio.Task[None]"] = set()
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._interval_task: Optional["asyncio.Task[None]"] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        """Subscribe to page changes and run the initial scan."""

        if self._unsubscribe is None:
            self._unsubscribe = self.page.subscribe(self.notify)
        self._safe_scan()
        if self.scan_interval is not None and self._interval_task is None:
            self._interval_task = asyncio.ensure_future(self._run_interval())

    async def stop(self) -> None:
        """Stop observing the page; in-flight element tasks keep running."""

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._interval_task is not None:
            self._interval_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._interval_task
            self._interval_task = None

    def notify(self, mutations: Sequence[PageMutation]) -> None:
        """Change callback; only node additions (re)arm the debounce timer."""

        if not any(mutation.adds_content for mutation in mutations):
            return
        loop = asyncio.get_running_loop()
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = loop.call_later(self.debounce, self._on_debounce)

    def scan(self) -> List["asyncio.Task[None]"]:
        """Mark new elements and schedule their translation.

        Must not await: the whole pass runs without yielding to the loop.
        """

        self.scans += 1
        tasks: List["asyncio.Task[None]"] = []
        for element in self.page.select(self.selectors):
            if self.page.get_state(element) is not ProcessingState.UNTOUCHED:
                continue
            if self.page.is_excluded(element):
                continue
            self.page.set_state(element, ProcessingState.ATTEMPTED)

            unit = TextUnit(element=element, text=self.page.text_of(element).strip())
            if len(unit.text) < self.min_length:
                continue

            placeholder = self.page.insert_output(element, PLACEHOLDER_TEXT)
            task = asyncio.ensure_future(self._translate_element(unit, placeholder))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            tasks.append(task)

        self.discovered += len(tasks)
        if tasks and self.verbose:
            print(f"Found {len(tasks)} new items to translate.")
        return tasks

    async def wait_idle(self) -> None:
        """Wait until no scan is pending and no element is being translated."""

        while self._inflight or self._debounce_handle is not None:
            if self._inflight:
                await asyncio.gather(*list(self._inflight), return_exceptions=True)
            else:
                await asyncio.sleep(self.debounce)

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        self._safe_scan()

    def _safe_scan(self) -> List["asyncio.Task[None]"]:
        try:
            return self.scan()
        except Exception as exc:
            self.error_policy.handle_error(
                ErrorCategory.DISCOVERY,
                f"Page scan failed: {exc}",
                details=repr(exc),
            )
            return []

    async def _run_interval(self) -> None:
        while True:
            await asyncio.sleep(self.scan_interval)
            self._safe_scan()

    async def _translate_element(self, unit: TextUnit, placeholder: object) -> None:
        try:
            translated = await self.coordinator.translate_unit(unit.text)
        except Exception as exc:
            self.failed += 1
            self.error_policy.handle_error(
                ErrorCategory.RENDERING,
                f"Could not translate element '{unit.text[:60]}': {exc}",
                details=repr(exc),
            )
            if self.reset_on_error:
                self.page.remove_output(placeholder)
                self.page.set_state(unit.element, ProcessingState.UNTOUCHED)
            else:
                self.page.set_output(placeholder, ELEMENT_ERROR_TEXT)
            return

        self.page.set_output(placeholder, translated)
        self.page.set_state(unit.element, ProcessingState.RENDERED)
        self.rendered += 1
