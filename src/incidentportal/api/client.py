"""Async client for the portal backend REST API."""

import logging
from typing import Any, Self

import httpx
from tenacity import (
    RetryError,
    retry,
    retry_if_result,
    stop_after_attempt,
    wait_exponential_jitter,
)

from incidentportal.core.config import Settings, get_settings
from incidentportal.errors import PermissionDeniedError, RemoteError, TransportError

logger = logging.getLogger(__name__)

# Rate limiting configuration
MAX_RETRIES = 5
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 30


def _is_rate_limited(response: httpx.Response) -> bool:
    """Check if response indicates rate limiting (429)."""
    return response.status_code == 429


def _log_retry(retry_state) -> None:
    """Log retry attempts."""
    if retry_state.attempt_number > 1:
        logger.warning("Retry attempt %d after rate limiting", retry_state.attempt_number)


class PortalClient:
    """Client for the incident portal backend.

    All requests go through ``request``, which turns transport failures into
    ``TransportError``, 401/403 into ``PermissionDeniedError`` and any other
    non-success status into ``RemoteError``. HTTP 429 is retried with backoff.

    Usage::

        async with PortalClient() as client:
            reports = await client.get_json("/api/reportes")
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the client. Call ``__aenter__`` to open the connection pool.

        Args:
            base_url: Backend base URL (defaults to settings)
            token: Bearer token (defaults to settings, empty means none)
            settings: Settings override
        """
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.base_url).rstrip("/")
        self.token = token if token is not None else self.settings.auth_token
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        """Create the underlying HTTP client."""
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            follow_redirects=True,
            timeout=self.settings.request_timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the underlying HTTP client."""
        if self.client:
            await self.client.aclose()
            self.client = None

    @retry(
        retry=retry_if_result(_is_rate_limited),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential_jitter(initial=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        before_sleep=_log_retry,
        reraise=True,
    )
    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send one HTTP request; retried by tenacity while the answer is 429."""
        if not self.client:
            raise RuntimeError("Client must be used as async context manager")

        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if response.status_code == 429:
            logger.warning("Rate limited (429) on %s %s", method, url)

        return response

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Make an HTTP request and map failures onto the portal error taxonomy.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            url: Path relative to the base URL, or an absolute URL
            **kwargs: Additional arguments passed to httpx

        Returns:
            The successful response

        Raises:
            TransportError: Network failure or timeout
            PermissionDeniedError: Server answered 401 or 403
            RemoteError: Any other non-success status
        """
        try:
            response = await self._send(method, url, **kwargs)
        except RetryError as e:
            logger.error("Giving up on %s %s after max retries", method, url)
            raise RemoteError(f"{method} {url} rate limited", 429) from e

        if response.status_code in (401, 403):
            raise PermissionDeniedError(f"{method} {url} not permitted ({response.status_code})")
        if response.is_error:
            status = response.status_code
            raise RemoteError(f"{method} {url} returned {status}", status)
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(
                f"Invalid JSON from {response.request.url}", response.status_code
            ) from e

    async def get_json(self, url: str, params: dict | None = None) -> Any:
        """GET a JSON document."""
        response = await self.request("GET", url, params=params)
        return self._decode(response)

    async def post_json(self, url: str, payload: dict) -> Any:
        """POST a JSON body and return the decoded answer (None if empty)."""
        response = await self.request("POST", url, json=payload)
        return self._decode(response)

    async def send_json(self, method: str, url: str, payload: dict) -> Any:
        """PUT or PATCH a JSON body and return the decoded answer (None if empty)."""
        response = await self.request(method, url, json=payload)
        return self._decode(response)

    async def delete(self, url: str) -> None:
        """DELETE a resource."""
        await self.request("DELETE", url)

    async def get_bytes(self, url: str) -> tuple[bytes, str]:
        """GET binary content.

        Returns:
            Tuple of (content, content type)
        """
        response = await self.request("GET", url, headers={"Accept": "*/*"})
        content_type = response.headers.get("content-type", "application/octet-stream")
        return response.content, content_type.split(";")[0].strip()
