"""Shared fakes for the Interlinear test suite."""

from __future__ import annotations

import asyncio
import json
from typing import Callable, Dict, Iterable, List, Optional

import pytest

from interlinear.dispatcher import BoundedDispatcher
from interlinear.policy import ErrorPolicy
from interlinear.providers import TranslationEndpoint
from interlinear.translator import PipelineCoordinator, SegmentTranslator


def _google_payload(*fragments: str) -> str:
    """Build a translate_a/single style payload from translated fragments."""

    return json.dumps([[[fragment, "source", None, None] for fragment in fragments], None, "en"])


class _ScriptedEndpoint(TranslationEndpoint):
    """Fake endpoint.

    ``script`` items are consumed one per call: strings are returned as the
    raw payload, exception classes or instances are raised. Once the script is
    exhausted the endpoint answers with ``translate(text)``. Texts listed in
    ``hang`` never answer; texts in ``delays`` answer after that many seconds.
    """

    name = "scripted"

    def __init__(
        self,
        script: Optional[Iterable[object]] = None,
        *,
        translate: Optional[Callable[[str], str]] = None,
        delay: float = 0.0,
        delays: Optional[Dict[str, float]] = None,
        hang: Iterable[str] = (),
    ) -> None:
        self.script: List[object] = list(script or [])
        self.translate = translate or (lambda text: text.upper())
        self.delay = delay
        self.delays = dict(delays or {})
        self.hang = set(hang)
        self.calls: List[str] = []
        self.completed: List[str] = []
        self.active = 0
        self.peak = 0
        self.closed = False

    async def fetch(self, text, *, source_language, target_language, timeout=15.0):
        self.calls.append(text)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if text in self.hang:
                await asyncio.sleep(3600)
            delay = self.delays.get(text, self.delay)
            if delay:
                await asyncio.sleep(delay)
            if self.script:
                item = self.script.pop(0)
                if isinstance(item, type) and issubclass(item, BaseException):
                    raise item("scripted failure")
                if isinstance(item, BaseException):
                    raise item
                return item
            self.completed.append(text)
            return _google_payload(self.translate(text))
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True

    def calls_for(self, text: str) -> int:
        return sum(1 for call in self.calls if call == text)


def _make_translator(endpoint, *, policy=None, **kwargs) -> SegmentTranslator:
    kwargs.setdefault("retry_delay", 0.0)
    kwargs.setdefault("timeout", 1.0)
    return SegmentTranslator(
        endpoint,
        source_language="en",
        target_language="zh-CN",
        error_policy=policy or ErrorPolicy(quiet=True),
        **kwargs,
    )


def _make_coordinator(endpoint, *, max_concurrent=4, max_segment_length=4000, **kwargs):
    translator = _make_translator(endpoint, **kwargs)
    return PipelineCoordinator(
        translator,
        BoundedDispatcher(max_concurrent),
        max_segment_length=max_segment_length,
    )


@pytest.fixture
def quiet_policy():
    return ErrorPolicy(quiet=True)


@pytest.fixture
def google_payload():
    return _google_payload


@pytest.fixture
def scripted_endpoint():
    """Factory for scripted fake endpoints."""

    return _ScriptedEndpoint


@pytest.fixture
def make_translator():
    return _make_translator


@pytest.fixture
def make_coordinator():
    return _make_coordinator
