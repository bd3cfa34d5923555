"""Shared plumbing for REST calendar providers built on httpx."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

import httpx

from ..errors import ProviderConflictError, ProviderError
from ..retry import TRANSIENT_HTTP_CODES, retry_async
from .base import CalendarProvider

logger = logging.getLogger(__name__)

TokenSource = str | Callable[[], Awaitable[str]]

_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


def parse_provider_datetime(value: str, default_tz: str | ZoneInfo = "UTC") -> datetime:
    """Parse a provider timestamp into UTC.

    Handles ``Z`` suffixes and seven-digit fractions; naive values are taken
    to be in ``default_tz``.
    """
    try:
        text = _LONG_FRACTION.sub(r"\1", value.strip())
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except (AttributeError, TypeError, ValueError) as e:
        raise ProviderError(f"unexpected timestamp from provider: {value!r}") from e
    if parsed.tzinfo is None:
        zone = default_tz if isinstance(default_tz, ZoneInfo) else ZoneInfo(default_tz)
        parsed = parsed.replace(tzinfo=zone)
    return parsed.astimezone(timezone.utc)


def utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class HttpCalendarProvider(CalendarProvider):
    """Base for providers talking JSON over HTTP.

    Translates HTTP failures into the provider error taxonomy: 409 and
    ``conflict_markers`` in an error body become ``ProviderConflictError``,
    429/5xx and network errors are transient and retried.
    """

    name = "http"
    conflict_markers: tuple[str, ...] = ()

    def __init__(
        self,
        base_url: str,
        token: TokenSource,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    @property
    def client(self) -> httpx.AsyncClient:
        """The HTTP client, created on first use (and again after ``aclose``)."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the client this provider created. A client passed in stays open."""
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    async def _auth_headers(self) -> dict[str, str]:
        token = self._token if isinstance(self._token, str) else await self._token()
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def extra_headers(self) -> dict[str, str]:
        return {}

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = await self._auth_headers()
        headers.update(self.extra_headers())
        # Paging links come back as absolute URLs
        url = path if path.startswith(("https://", "http://")) else f"{self.base_url}{path}"
        response = await self.client.request(method, url, headers=headers, **kwargs)
        self._raise_for_status(response, f"{method} {path}")
        return response

    async def request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        """Send a request with retries and return the decoded JSON body ({} when empty)."""
        try:
            response = await retry_async(
                self._send,
                method,
                path,
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                label=f"{self.name}.{method.lower()}",
                **kwargs,
            )
        except httpx.TransportError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise ProviderError(f"{self.name} unreachable: {e}", transient=True) from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned a non-JSON body for {method} {path}") from e

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = _error_detail(response)
        if status == 409 or any(m in detail.lower() for m in self.conflict_markers):
            raise ProviderConflictError(f"{self.name} rejected {action}: {detail}")
        raise ProviderError(
            f"{self.name} {action} failed (HTTP {status}): {detail}",
            transient=status in TRANSIENT_HTTP_CODES,
            status=status,
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or error)
    if error:
        return str(error)
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return str(body)[:200]
