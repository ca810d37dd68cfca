"""Translation endpoint abstractions."""

from __future__ import annotations

import asyncio
import json
import sys
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from .errors import (
    EndpointConfigurationError,
    EndpointNetworkError,
    EndpointTimeoutError,
    ResponseParseError,
)

DEFAULT_TIMEOUT = 15.0


class TranslationEndpoint(ABC):
    """Abstract "send GET, get text-or-error-or-timeout back" capability."""

    name = "abstract"

    @abstractmethod
    async def fetch(
        self,
        text: str,
        *,
        source_language: str,
        target_language: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> str:
        """Return the raw response payload for one source fragment.

        Raises ``EndpointNetworkError`` or ``EndpointTimeoutError``, or
        ``ResponseParseError`` when the body cannot be decoded.
        """

    async def close(self) -> None:
        """Release any transport resources."""


class EchoEndpoint(TranslationEndpoint):
    """An endpoint that echoes the original text in the expected payload shape."""

    name = "echo"

    async def fetch(
        self,
        text: str,
        *,
        source_language: str,
        target_language: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> str:
        return json.dumps([[[text, text, None, None]], None, source_language])


class GoogleTranslateEndpoint(TranslationEndpoint):
    """Endpoint backed by the public ``translate_a/single`` web API."""

    name = "google"
    DEFAULT_URL = "https://translate.googleapis.com/translate_a/single"

    def __init__(
        self,
        *,
        url: str | None = None,
        debug: bool = False,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.url = url or self.DEFAULT_URL
        self.debug = debug
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def fetch(
        self,
        text: str,
        *,
        source_language: str,
        target_language: str,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> str:
        params = {
            "client": "gtx",
            "sl": source_language,
            "tl": target_language,
            "dt": "t",
            "q": text,
        }
        self._log_debug("endpoint.request.params", params)

        session = self._get_session()
        try:
            async with session.get(
                self.url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                status = response.status
                try:
                    body = await response.text()
                except UnicodeDecodeError as exc:
                    raise ResponseParseError(
                        f"Response body could not be decoded: {exc}"
                    ) from exc
        except asyncio.TimeoutError as exc:
            raise EndpointTimeoutError(
                f"Translation endpoint did not answer within {timeout:g}s."
            ) from exc
        except aiohttp.ClientError as exc:
            raise EndpointNetworkError(
                f"Translation endpoint unreachable: {exc}"
            ) from exc

        self._log_debug("endpoint.response.raw", body)
        if status >= 400:
            raise EndpointNetworkError(
                f"Translation endpoint answered with HTTP {status}."
            )
        return body

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    def _log_debug(self, label: str, payload: Any) -> None:
        """Emit structured debug information when enabled."""

        if not self.debug:
            return
        if isinstance(payload, (dict, list)):
            message = json.dumps(payload, ensure_ascii=False, indent=2)
        else:
            message = str(payload)
        print(f"[interlinear][endpoint-debug] {label}:\n{message}", file=sys.stderr)


def build_endpoint(
    name: str | None,
    *,
    url: str | None = None,
    debug: bool = False,
) -> TranslationEndpoint:
    """Factory to create endpoints by name."""

    normalized = (name or "google").strip().lower()
    if normalized in {"google", "gtx", "default"}:
        return GoogleTranslateEndpoint(url=url, debug=debug)
    if normalized in {"echo", "noop", "mock"}:
        return EchoEndpoint()
    raise EndpointConfigurationError(
        f"Unknown translation endpoint '{name}'."
    )
