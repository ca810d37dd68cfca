"""Error definitions for the Interlinear translator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


SEGMENT_FAILED_TEXT = "[Segment {index} failed to translate]"
ELEMENT_ERROR_TEXT = "[Translation error]"


class FailureKind(Enum):
    """Retryable failure classes of a single translation request."""

    INVALID_RESPONSE = "invalid-response"
    PARSE_ERROR = "parse-error"
    NETWORK_ERROR = "network-error"
    TIMEOUT = "timeout"

    @property
    def fallback_text(self) -> str:
        return FALLBACK_TEXT[self]


FALLBACK_TEXT = {
    FailureKind.INVALID_RESPONSE: "[Translation failed: invalid response]",
    FailureKind.PARSE_ERROR: "[Translation failed: parse error]",
    FailureKind.NETWORK_ERROR: "[Translation failed: network error]",
    FailureKind.TIMEOUT: "[Translation failed: request timed out]",
}


class ErrorCategory(Enum):
    """Categorises handled errors for reporting."""

    ARGUMENT = auto()
    FILE_IO = auto()
    TRANSLATION = auto()
    REASSEMBLY = auto()
    RENDERING = auto()
    DISCOVERY = auto()


class InterlinearError(Exception):
    """Base exception for all custom errors."""


class UnsupportedFileTypeError(InterlinearError):
    """Raised when a given file extension is not supported."""


class OverwriteRefusedError(InterlinearError):
    """Raised when attempting to overwrite an output without consent."""


class EndpointConfigurationError(InterlinearError):
    """Raised when the translation endpoint or settings are misconfigured."""


class SegmentTranslationError(InterlinearError):
    """A retryable failure while translating one segment."""

    kind: FailureKind = FailureKind.NETWORK_ERROR


class ResponseShapeError(SegmentTranslationError):
    """Payload parsed but did not have the expected nested structure."""

    kind = FailureKind.INVALID_RESPONSE


class ResponseParseError(SegmentTranslationError):
    """Payload was not valid JSON."""

    kind = FailureKind.PARSE_ERROR


class EndpointNetworkError(SegmentTranslationError):
    """Transport-level failure talking to the endpoint."""

    kind = FailureKind.NETWORK_ERROR


class EndpointTimeoutError(SegmentTranslationError):
    """No response within the request timeout."""

    kind = FailureKind.TIMEOUT


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None
