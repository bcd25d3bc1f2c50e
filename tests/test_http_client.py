import asyncio
from unittest.mock import call

import aiohttp
import pytest

from bookmarkr_news.services.http_client import (
    FetchError,
    HTTPStatusError,
    RetryPolicy,
    USER_AGENTS,
    user_agent_for,
)

from conftest import FakeHttpClient, FakeRoute

URL = "https://example.com/feed"


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy(max_attempts=4, base_delay=1.0, factor=2.0)
        assert [policy.delay_for(i) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_rate_limited_only_retries_429(self):
        policy = RetryPolicy.rate_limited(retries=3)
        assert policy.max_attempts == 4
        assert policy.retry_statuses == frozenset({429})
        assert policy.retry_network_errors is False


class TestHttpClientRequest:
    def test_success_first_try(self):
        http = FakeHttpClient()
        http.add(URL, body="ok")

        assert asyncio.run(http.get_text(URL)) == "ok"
        assert len(http.calls) == 1
        http.sleep.assert_not_awaited()

    def test_retries_then_succeeds(self):
        http = FakeHttpClient()
        http.add_sequence(URL, FakeRoute(status=503), FakeRoute(status=502), FakeRoute(body="ok"))

        body = asyncio.run(http.get_text(URL, retry=RetryPolicy(max_attempts=3, base_delay=1.0)))

        assert body == "ok"
        assert len(http.calls) == 3
        assert http.sleep.await_args_list == [call(1.0), call(2.0)]

    def test_retry_ceiling_is_respected(self):
        http = FakeHttpClient()
        http.add(URL, status=500)

        with pytest.raises(HTTPStatusError) as excinfo:
            asyncio.run(http.get_text(URL, retry=RetryPolicy(max_attempts=3)))

        assert excinfo.value.status == 500
        assert len(http.calls) == 3
        assert http.sleep.await_count == 2

    def test_client_errors_are_not_retried(self):
        http = FakeHttpClient()
        http.add(URL, status=404)

        with pytest.raises(HTTPStatusError):
            asyncio.run(http.get_text(URL, retry=RetryPolicy(max_attempts=3)))
        assert len(http.calls) == 1

    def test_rate_limit_backoff(self):
        http = FakeHttpClient()
        http.add_sequence(URL, FakeRoute(status=429), FakeRoute(status=429), FakeRoute(body="{}"))

        payload = asyncio.run(http.get_json(URL, retry=RetryPolicy.rate_limited(retries=3, base_delay=0.5)))

        assert payload == {}
        assert http.sleep.await_args_list == [call(0.5), call(1.0)]

    def test_network_errors_wrapped(self):
        http = FakeHttpClient()
        http.add(URL, error=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(FetchError) as excinfo:
            asyncio.run(http.get_text(URL, retry=RetryPolicy(max_attempts=2)))

        assert excinfo.value.url == URL
        assert len(http.calls) == 2

    def test_timeouts_wrapped_without_retry(self):
        http = FakeHttpClient()
        http.add(URL, error=asyncio.TimeoutError())

        with pytest.raises(FetchError, match="timed out"):
            asyncio.run(http.get_text(URL))
        assert len(http.calls) == 1

    def test_request_headers_merge_defaults(self):
        http = FakeHttpClient()
        http.add(URL, body="ok")

        asyncio.run(http.get_text(URL, headers={"Accept": "application/rss+xml"}))

        _, _, headers = http.calls[0]
        assert headers["Accept"] == "application/rss+xml"
        assert "User-Agent" in headers


def test_user_agent_rotation_wraps():
    assert user_agent_for(0) == USER_AGENTS[0]
    assert user_agent_for(len(USER_AGENTS)) == USER_AGENTS[0]
