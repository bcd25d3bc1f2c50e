"""Shared fixtures: a routed fake HTTP client, a settable clock, item builders."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Union
from unittest.mock import AsyncMock

import pytest

from bookmarkr_news.models.content import ContentItem, FetchStrategy, Source, SourceRef
from bookmarkr_news.services.content_utils import make_item_id
from bookmarkr_news.services.http_client import HttpClient, HttpResponse, HTTPStatusError

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@dataclass
class FakeRoute:
    body: str = ""
    status: int = 200
    error: Optional[Exception] = None


class FakeHttpClient(HttpClient):
    """
    HttpClient whose single-attempt ``_send`` answers from a route table.

    A route may be a list of FakeRoute objects; each call consumes one until
    the last, which then repeats. Unknown URLs answer 404.
    """

    def __init__(self, routes: Optional[Dict[str, Union[FakeRoute, List[FakeRoute]]]] = None):
        super().__init__(timeout=5.0, sleep=AsyncMock())
        self.routes: Dict[str, Union[FakeRoute, List[FakeRoute]]] = dict(routes or {})
        self.calls: List[tuple] = []

    @property
    def sleep(self) -> AsyncMock:
        return self._sleep

    def add(self, url: str, body: str = "", status: int = 200, error: Optional[Exception] = None) -> None:
        self.routes[url] = FakeRoute(body=body, status=status, error=error)

    def add_sequence(self, url: str, *routes: FakeRoute) -> None:
        self.routes[url] = list(routes)

    def urls_called(self) -> List[str]:
        return [url for _, url, _ in self.calls]

    async def _send(self, method, url, headers, timeout) -> HttpResponse:
        self.calls.append((method, url, dict(headers)))
        route = self.routes.get(url)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if route is None:
            raise HTTPStatusError(404, url)
        if route.error is not None:
            raise route.error
        if route.status >= 400:
            raise HTTPStatusError(route.status, url)
        return HttpResponse(status=route.status, url=url, text=route.body)


class Clock:
    """Settable clock for time-dependent components."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_item(
    title: str = "Test Article",
    url: str = "https://example.com/test",
    category: str = "technology",
    source_id: str = "example",
    source_name: str = "Example",
    published_at: Optional[datetime] = None,
    description: str = "A description of the test article.",
    tags: Optional[List[str]] = None,
    content: Optional[str] = None,
    item_id: Optional[str] = None,
) -> ContentItem:
    return ContentItem(
        id=item_id or make_item_id(source_id, url),
        title=title,
        description=description,
        url=url,
        published_at=published_at or NOW,
        source=SourceRef(id=source_id, name=source_name),
        category=category,
        content=content,
        image_url=None,
        tags=list(tags or []),
    )


def make_source(
    source_id: str = "example",
    kind: FetchStrategy = FetchStrategy.FEED,
    category: str = "technology",
    **kwargs,
) -> Source:
    defaults = {
        "name": source_id.title(),
        "website_url": f"https://{source_id}.example.com",
    }
    if kind == FetchStrategy.FEED:
        defaults["feed_url"] = f"https://{source_id}.example.com/feed"
    if kind == FetchStrategy.CRAWL:
        defaults["crawl_selector"] = "article"
    defaults.update(kwargs)
    return Source(id=source_id, category=category, kind=kind, **defaults)


@pytest.fixture
def fake_http():
    return FakeHttpClient()


@pytest.fixture
def clock():
    return Clock()
