"""
Shared outbound HTTP client for the fetch adapters.

Wraps a single ``aiohttp.ClientSession`` with per-request timeouts and an
explicit bounded retry loop with exponential backoff.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

import aiohttp

USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/15.0 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/92.0.4515.107 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:90.0) Gecko/20100101 Firefox/90.0',
    'Mozilla/5.0 (iPhone; CPU iPhone OS 14_6 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/14.0 Mobile/15E148 Safari/604.1',
]

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENTS[0],
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

FEED_ACCEPT = "application/rss+xml,application/atom+xml,application/xml;q=0.9,text/xml;q=0.8,*/*;q=0.7"


class HTTPStatusError(Exception):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status: int, url: str):
        super().__init__(f"HTTP {status} for {url}")
        self.status = status
        self.url = url


class FetchError(Exception):
    """Network-level failure (connection refused, DNS, timeout) after retries."""

    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    ``max_attempts`` counts the first try, so ``max_attempts=3`` means at most
    two retries. The delay before retry ``n`` (0-based) is ``base_delay * factor**n``.
    """
    max_attempts: int = 1
    base_delay: float = 1.0
    factor: float = 2.0
    retry_statuses: FrozenSet[int] = field(default_factory=lambda: frozenset({500, 502, 503, 504}))
    retry_network_errors: bool = True

    def delay_for(self, retry_index: int) -> float:
        return self.base_delay * (self.factor ** retry_index)

    @classmethod
    def none(cls) -> "RetryPolicy":
        return cls(max_attempts=1)

    @classmethod
    def rate_limited(cls, retries: int = 3, base_delay: float = 1.0) -> "RetryPolicy":
        """Retry only on HTTP 429."""
        return cls(
            max_attempts=retries + 1,
            base_delay=base_delay,
            retry_statuses=frozenset({429}),
            retry_network_errors=False,
        )


@dataclass
class HttpResponse:
    status: int
    url: str
    text: str
    headers: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.text)


def user_agent_for(index: int) -> str:
    return USER_AGENTS[index % len(USER_AGENTS)]


class HttpClient:
    """
    Thin async HTTP client used by every adapter.

    The session is created lazily so the client can be built outside a
    running event loop (e.g. at application start-up).
    """

    def __init__(
        self,
        timeout: float = 15.0,
        headers: Optional[Dict[str, str]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.timeout = timeout
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self._sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(__name__)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self.headers,
            )
        return self._session

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        timeout: float,
    ) -> HttpResponse:
        """Single attempt. Raises HTTPStatusError on >= 400."""
        session = await self._get_session()
        async with session.request(
            method,
            url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=timeout),
        ) as resp:
            text = await resp.text(errors='replace')
            if resp.status >= 400:
                raise HTTPStatusError(resp.status, url)
            return HttpResponse(
                status=resp.status,
                url=str(resp.url),
                text=text,
                headers={k: v for k, v in resp.headers.items()},
            )

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        retry: Optional[RetryPolicy] = None,
    ) -> HttpResponse:
        """
        Perform a request with the given retry policy.

        Raises:
            HTTPStatusError: final non-2xx status (after any retries)
            FetchError: network failure or timeout (after any retries)
        """
        policy = retry or RetryPolicy.none()
        request_headers = {**self.headers, **(headers or {})}
        effective_timeout = timeout if timeout is not None else self.timeout

        last_error: Optional[Exception] = None
        for attempt in range(max(1, policy.max_attempts)):
            try:
                return await self._send(method, url, request_headers, effective_timeout)
            except HTTPStatusError as e:
                if e.status not in policy.retry_statuses:
                    raise
                last_error = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                reason = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e) or type(e).__name__
                wrapped = FetchError(f"Request to {url} failed: {reason}", url)
                if not policy.retry_network_errors:
                    raise wrapped from e
                wrapped.__cause__ = e
                last_error = wrapped

            if attempt < policy.max_attempts - 1:
                delay = policy.delay_for(attempt)
                self.logger.debug(
                    f"Retrying {url} in {delay:.1f}s (attempt {attempt + 2}/{policy.max_attempts}): {last_error}"
                )
                await self._sleep(delay)

        raise last_error

    async def get_text(self, url: str, **kwargs) -> str:
        response = await self.request(url, **kwargs)
        return response.text

    async def get_json(self, url: str, **kwargs) -> Any:
        response = await self.request(url, **kwargs)
        return response.json()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
