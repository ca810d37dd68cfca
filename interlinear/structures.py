"""Core data structures for the Interlinear page translator."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import FailureKind


Operation = Callable[[], Awaitable[Any]]


class ProcessingState(Enum):
    """Lifecycle of a text-bearing element on the page."""

    UNTOUCHED = "untouched"
    ATTEMPTED = "attempted"
    RENDERED = "rendered"


@dataclass(frozen=True)
class TextUnit:
    """Text captured from one page element at discovery time."""

    element: Any
    text: str
    captured_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class TextSegment:
    """A contiguous slice of a TextUnit, tagged with its position."""

    text: str
    order: int


@dataclass(frozen=True)
class TranslationOutcome:
    """Result of translating one segment.

    ``text`` is always displayable: the translation on success, or the fixed
    fallback message of ``failure`` once retries are exhausted.
    """

    text: str
    failure: Optional[FailureKind] = None

    @classmethod
    def failed(cls, kind: FailureKind) -> "TranslationOutcome":
        return cls(text=kind.fallback_text, failure=kind)

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class PageMutation:
    """A change notification emitted by a page."""

    added_nodes: int = 0
    removed_nodes: int = 0
    attribute: Optional[str] = None

    @property
    def adds_content(self) -> bool:
        return self.added_nodes > 0
