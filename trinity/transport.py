"""
Async HTTP transport shared by the provider clients.

Handles retries with exponential backoff, Retry-After, error parsing into
typed exceptions and masked request/response logging, using httpx.
"""

import asyncio
import random
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from trinity.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    TrinityError,
    UnauthorizedError,
    ValidationError,
)
from trinity.logging import log_http_request, log_http_response


@dataclass
class RetryConfig:
    """Configuration for automatic retry behavior."""

    max_retries: int = 3
    backoff_factor: float = 2.0
    retry_on: list[int] = field(default_factory=lambda: [429, 500, 502, 503])
    respect_retry_after: bool = True
    max_backoff: float = 60.0  # seconds
    jitter: float = 0.1  # 0.1 = ±10%


class AsyncHTTPTransport:
    """
    Async HTTP transport with retry logic for one provider base URL.

    Handles:
    - Exponential backoff with jitter for retries
    - Retry-After header respect for rate limiting
    - Error response parsing into typed exceptions
    """

    def __init__(
        self,
        base_url: str,
        headers: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize async HTTP transport.

        Args:
            base_url: Base URL for API requests (e.g., "https://api.neynar.com/v2/farcaster")
            headers: Headers sent with every request (auth keys, accept)
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
            client: Preconfigured httpx client (tests pass one with a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

        default_headers = {"Content-Type": "application/json", "accept": "application/json"}
        default_headers.update(headers or {})
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=default_headers,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncHTTPTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Make a request with automatic retry.

        Args:
            method: HTTP method
            path: API path relative to the base URL
            params: Query parameters
            body: JSON request body
            headers: Extra headers for this request only
            timeout: Per-request timeout override in seconds

        Returns:
            Parsed JSON response (empty dict for empty bodies)

        Raises:
            TrinityError: On API errors or after max retries
        """
        last_error: Exception | None = None
        request_timeout = timeout if timeout is not None else self.timeout

        for attempt in range(self.retry_config.max_retries + 1):
            log_http_request(method, f"{self.base_url}{path}", headers, body)
            started = time.monotonic()
            try:
                response = await self._client.request(
                    method,
                    path,
                    params=params,
                    json=body,
                    headers=headers,
                    timeout=request_timeout,
                )
            except httpx.RequestError as e:
                # Network errors are retryable
                if attempt >= self.retry_config.max_retries:
                    raise ServerError("CONNECTION_ERROR", str(e)) from e
                last_error = e
                await asyncio.sleep(self._get_backoff_time(attempt, None))
                continue

            elapsed_ms = (time.monotonic() - started) * 1000
            if response.status_code < 400:
                data = response.json() if response.content else {}
                log_http_response(
                    response.status_code,
                    str(response.url),
                    data if isinstance(data, dict) else None,
                    elapsed_ms,
                )
                return data

            log_http_response(response.status_code, str(response.url), None, elapsed_ms)
            error = self._parse_error_response(response)
            if not self._should_retry(response.status_code, attempt):
                raise error

            last_error = error
            retry_after = response.headers.get("Retry-After")
            await asyncio.sleep(self._get_backoff_time(attempt, retry_after))

        if isinstance(last_error, TrinityError):
            raise last_error
        raise ServerError("MAX_RETRIES_EXCEEDED", str(last_error))

    def _should_retry(self, status_code: int, attempt: int) -> bool:
        if attempt >= self.retry_config.max_retries:
            return False
        return status_code in self.retry_config.retry_on

    def _get_backoff_time(self, attempt: int, retry_after: str | None) -> float:
        """
        Calculate backoff time for retry.

        Uses exponential backoff with jitter, respecting the Retry-After header
        if present.

        Args:
            attempt: Current attempt number (0-indexed)
            retry_after: Value of Retry-After header (if present)

        Returns:
            Time to wait in seconds
        """
        if retry_after and self.retry_config.respect_retry_after:
            try:
                return min(float(retry_after), self.retry_config.max_backoff)
            except ValueError:
                pass

        base_wait = self.retry_config.backoff_factor ** attempt
        jitter_range = base_wait * self.retry_config.jitter
        wait_time = base_wait + random.uniform(-jitter_range, jitter_range)
        return min(wait_time, self.retry_config.max_backoff)

    def _parse_error_response(self, response: httpx.Response) -> TrinityError:
        """
        Parse an error response into a typed exception.

        Understands both ``{"error": {"code", "message"}}`` and the flat
        ``{"code", "message"}`` bodies providers return.
        """
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        error = data.get("error") if isinstance(data.get("error"), dict) else data
        code = str(error.get("code", "UNKNOWN_ERROR"))
        message = str(error.get("message") or response.text or f"HTTP {response.status_code}")
        request_id = response.headers.get("x-request-id")

        status_code = response.status_code
        if status_code == 400:
            return BadRequestError(code, message, request_id)
        if status_code == 401:
            return UnauthorizedError(code, message, request_id)
        if status_code == 402:
            return ServerError(code, f"Payment required by upstream: {message}", request_id)
        if status_code == 403:
            return ForbiddenError(code, message, request_id)
        if status_code == 404:
            return NotFoundError(code, message, request_id)
        if status_code == 409:
            return ConflictError(code, message, request_id)
        if status_code == 429:
            try:
                retry_after = int(response.headers.get("Retry-After", "60"))
            except ValueError:
                retry_after = 60
            return RateLimitedError(code, message, retry_after, request_id)
        if status_code >= 500:
            return ServerError(code, message, request_id)
        return ValidationError(code, message, request_id)


__all__ = ["AsyncHTTPTransport", "RetryConfig"]
