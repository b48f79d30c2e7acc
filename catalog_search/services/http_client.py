"""Async HTTP client shared by the IGDB token and search requests.

Every request goes through one rate limiter and one retry loop. Server
errors and dropped connections are retried with exponential backoff, a
429 honours the Retry-After header, and any other 4xx is raised at once.
"""

import asyncio
import time
from typing import Any

import httpx
import structlog

log = structlog.stdlib.get_logger()

USER_AGENT = "game-catalog-search/0.1"

RETRYABLE_ERRORS = (httpx.HTTPStatusError, httpx.RequestError, httpx.TimeoutException)


def _retry_after(response: httpx.Response) -> float | None:
    """Seconds requested by a Retry-After header, if it holds a number."""
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class HttpClientService:
    """Rate-limited httpx.AsyncClient with retries."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        rate_limit_delay: float = 0.25,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client service.

        Args:
            timeout: Request timeout in seconds
            max_retries: Retries after the first attempt
            base_delay: First backoff delay in seconds, doubled per retry
            max_delay: Upper bound for a single backoff delay
            rate_limit_delay: Minimum gap between two requests in seconds
            transport: Optional transport, e.g. httpx.MockTransport in tests
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_delay = rate_limit_delay
        self._last_request_time: float = 0.0

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            transport=transport,
        )

        log.info(
            "HTTP client service initialized",
            timeout=timeout,
            max_retries=max_retries,
            rate_limit_delay=rate_limit_delay,
        )

    async def post(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        content: str | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """POST a raw body or url-encoded form fields.

        Args:
            url: The URL to request
            headers: Headers added to the client defaults
            content: Raw request body, e.g. an Apicalypse query
            data: Form fields

        Returns:
            The successful response

        Raises:
            httpx.HTTPStatusError: On a non-retryable status, or once retries run out
            httpx.RequestError: If the connection keeps failing
        """
        return await self._send("POST", url, headers, content=content, data=data)

    async def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None,
        **options: Any,
    ) -> httpx.Response:
        await self._enforce_rate_limit()

        request_headers = self._client.headers.copy()
        request_headers.update(headers or {})
        # httpx rejects content and data passed together, even as None
        options = {name: value for name, value in options.items() if value is not None}
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            log.debug("Sending HTTP request", method=method, url=url, attempt=attempt + 1, max_attempts=attempts)
            try:
                response = await self._client.request(method, url, headers=request_headers, **options)
                response.raise_for_status()
            except RETRYABLE_ERRORS as e:
                log.warning(
                    "HTTP request failed",
                    method=method,
                    url=url,
                    attempt=attempt + 1,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                delay = self._retry_delay(e, attempt)
                if delay is None:
                    raise
                await asyncio.sleep(delay)
                continue

            log.debug(
                "HTTP request succeeded",
                method=method,
                url=url,
                status_code=response.status_code,
                content_length=len(response.content),
            )
            return response

        raise RuntimeError("Retry loop exited without a response")

    def _retry_delay(self, error: Exception, attempt: int) -> float | None:
        """How long to wait before the next attempt, or None to give up."""
        last_attempt = attempt >= self.max_retries

        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            if status_code == 429:
                requested = _retry_after(error.response)
                if requested is not None and not last_attempt:
                    log.info("Rate limited, waiting", delay=requested)
                    return requested
            elif 400 <= status_code < 500:
                log.error("Client error, not retrying", status_code=status_code)
                return None

        if last_attempt:
            log.error("HTTP request failed after all retries", total_attempts=attempt + 1)
            return None

        delay = min(self.base_delay * 2 ** attempt, self.max_delay)
        log.info("Retrying after delay", delay=delay)
        return delay

    async def _enforce_rate_limit(self) -> None:
        """Sleep until rate_limit_delay has passed since the previous request."""
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self.rate_limit_delay:
            wait = self.rate_limit_delay - elapsed
            log.debug("Rate limiting: sleeping", sleep_time=wait)
            await asyncio.sleep(wait)
        self._last_request_time = time.monotonic()

    async def close(self) -> None:
        await self._client.aclose()
        log.info("HTTP client closed")

    async def __aenter__(self) -> "HttpClientService":
        return self

    async def __aexit__(self, exc_type: type[Exception] | None, exc_val: Exception | None, exc_tb: Any) -> None:
        await self.close()
