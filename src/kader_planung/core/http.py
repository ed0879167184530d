"""
Async HTTP plumbing for the Portal64 player database.

BaseApiClient owns pacing, retries and error translation so that callers
(the processing engine in particular) only ever see one of three outcomes:
a decoded JSON body, NotFoundError, or ExternalAPIError.

Retry rules:
    429             wait (Retry-After, capped) and try again
    404             NotFoundError, never retried
    other 4xx       ExternalAPIError, never retried
    5xx / network   exponential backoff (1s, 2s, 4s, ...) until max_retries
"""

import asyncio
import logging
import time
from typing import Any

import httpx

logger = logging.getLogger(__name__)

MAX_RATE_LIMIT_WAIT = 30.0


class ExternalAPIError(Exception):
    """A Portal64 request failed for good."""

    def __init__(self, message: str, status_code: int | None = None, path: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.path = path


class NotFoundError(ExternalAPIError):
    """The requested club or player does not exist upstream."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message, status_code=404, path=path)


class RateLimitError(ExternalAPIError):
    """Still throttled after the last retry."""

    def __init__(self, message: str, retry_after: float, path: str = ""):
        super().__init__(message, status_code=429, path=path)
        self.retry_after = retry_after


class RateLimiter:
    """
    Spaces requests evenly so at most ``requests_per_minute`` leave per minute.

    Each caller reserves the next free slot under the lock and sleeps
    outside of it, so concurrent workers queue up without blocking
    each other's wake-ups.
    """

    def __init__(self, requests_per_minute: int = 600):
        self.interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            await asyncio.sleep(delay)


class BaseApiClient:
    """
    Async JSON client with pacing and retries.

    Works as an async context manager, or lazily: the underlying
    httpx.AsyncClient is created on first use and dropped by close().
    A custom ``transport`` (e.g. httpx.MockTransport) may be injected.
    """

    BASE_URL: str = ""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        requests_per_minute: int = 600,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.headers = {"Accept": "application/json", **(headers or {})}
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.rate_limiter = RateLimiter(requests_per_minute)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        await self.close()
        self._client = self._open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _open(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = self._open()
        return self._client

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None and not client.is_closed:
            await client.aclose()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET ``path`` and return the decoded JSON body.

        Raises:
            NotFoundError: on 404
            RateLimitError: when still throttled on the last attempt
            ExternalAPIError: on any other failure
        """
        failure: ExternalAPIError | None = None

        for attempt in range(1, self.max_retries + 1):
            final = attempt == self.max_retries
            await self.rate_limiter.acquire()

            try:
                response = await self.client.get(path, params=params)
            except httpx.RequestError as e:
                failure = ExternalAPIError(f"GET {path} failed: {e}", path=path)
                if not final:
                    await self._backoff(path, attempt, f"{type(e).__name__}: {e}")
                continue

            status = response.status_code

            if status == 429:
                retry_after = self._retry_after(response)
                if final:
                    raise RateLimitError(
                        f"GET {path} still rate limited after {attempt} attempts",
                        retry_after=retry_after,
                        path=path,
                    )
                logger.warning(
                    "Rate limited on %s, waiting %.0fs (attempt %d/%d)",
                    path, retry_after, attempt, self.max_retries,
                )
                await asyncio.sleep(retry_after)
                continue

            if status == 404:
                raise NotFoundError(f"Not found: {path}", path=path)

            if status >= 500:
                failure = ExternalAPIError(
                    f"GET {path} returned HTTP {status}", status_code=status, path=path
                )
                if not final:
                    await self._backoff(path, attempt, f"HTTP {status}")
                continue

            if status >= 400:
                raise ExternalAPIError(
                    f"GET {path} returned HTTP {status}: {response.text[:200]}",
                    status_code=status,
                    path=path,
                )

            return self._decode(response, path)

        raise failure or ExternalAPIError(f"GET {path} failed", path=path)

    async def _backoff(self, path: str, attempt: int, reason: str) -> None:
        delay = 2 ** (attempt - 1)
        logger.warning(
            "%s on %s, retrying in %ds (attempt %d/%d)",
            reason, path, delay, attempt, self.max_retries,
        )
        await asyncio.sleep(delay)

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        try:
            wait = float(response.headers.get("retry-after", MAX_RATE_LIMIT_WAIT))
        except ValueError:
            wait = MAX_RATE_LIMIT_WAIT
        return min(max(wait, 0.0), MAX_RATE_LIMIT_WAIT)

    @staticmethod
    def _decode(response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ExternalAPIError(
                f"GET {path} returned a non-JSON body: {e}",
                status_code=response.status_code,
                path=path,
            ) from e
