import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from bookmarkr_news.models.content import FetchOutcome, FetchStrategy
from bookmarkr_news.pipeline.batch_orchestrator import BatchOrchestrator
from bookmarkr_news.pipeline.content_aggregator import MAIN_CATEGORIES, NewsAggregator
from bookmarkr_news.services.cache_service import AdaptiveTTL, CacheStore
from bookmarkr_news.services.news_api_adapter import GNEWS_BASE_URL, NewsApiAdapter
from bookmarkr_news.services.reliability_tracker import ReliabilityTracker
from bookmarkr_news.services.source_registry import SourceRegistry
from bookmarkr_news.utils.error_monitoring import ErrorHandler

from conftest import NOW, FakeHttpClient, make_item, make_source


class StubAdapter:
    """Answers from a per-source item table; listed sources fail."""

    def __init__(self, items_by_source=None, failing=()):
        self.items_by_source = items_by_source or {}
        self.failing = set(failing)
        self.calls = []

    async def fetch(self, source, category=None):
        self.calls.append((source.id, category))
        if source.id in self.failing:
            return FetchOutcome.failure(source.id, ConnectionError("connection reset"), "transient")
        return FetchOutcome.success(source.id, list(self.items_by_source.get(source.id, [])))


def _hours_ago(hours):
    return NOW - timedelta(hours=hours)


def _registry():
    return SourceRegistry([
        make_source("techfeed", FetchStrategy.FEED, "technology"),
        make_source("bizfeed", FetchStrategy.FEED, "business"),
        make_source("studio", FetchStrategy.CRAWL, "design"),
        make_source("hn", FetchStrategy.SOCIAL, "technology", params={"platform": "hackernews"}),
    ])


def _feed_items():
    return {
        "techfeed": [
            make_item("Chip makers race ahead", "https://tech.com/chips", source_id="techfeed",
                      published_at=_hours_ago(3)),
            make_item("Rust 2.0 announced", "https://tech.com/rust", source_id="techfeed",
                      published_at=_hours_ago(1)),
            make_item("Telescope spots new moon", "https://tech.com/moon", category="science",
                      source_id="techfeed", published_at=_hours_ago(2)),
        ],
        "bizfeed": [
            make_item("Markets slide", "https://biz.com/markets", category="business",
                      source_id="bizfeed", published_at=_hours_ago(4)),
        ],
    }


def _adapters(feed=None, crawl=None, social=None):
    return {
        FetchStrategy.FEED: feed or StubAdapter(_feed_items()),
        FetchStrategy.CRAWL: crawl or StubAdapter({"studio": [
            make_item("Poster series", "https://studio.com/poster", category="design",
                      source_id="studio", published_at=_hours_ago(5)),
        ]}),
        FetchStrategy.SOCIAL: social or StubAdapter({"hn": [
            make_item("Show HN: tiny database", "https://db.example.com", source_id="hn",
                      published_at=_hours_ago(0.5)),
            make_item("Rust 2.0 announced", "https://reddit.example.com/rust", source_id="hn",
                      published_at=_hours_ago(1)),
        ]}),
    }


def _aggregator(clock, adapters=None, registry=None):
    tracker = ReliabilityTracker(clock=clock)
    handler = ErrorHandler()
    return NewsAggregator(
        registry=registry or _registry(),
        adapters=adapters if adapters is not None else _adapters(),
        tracker=tracker,
        cache=CacheStore(AdaptiveTTL(hour_of=lambda now: now.hour), clock=clock),
        error_handler=handler,
        orchestrator=BatchOrchestrator(tracker, handler, sleep=AsyncMock()),
    )


class TestGlobalScope:
    def test_items_are_unique_and_newest_first(self, clock):
        items = asyncio.run(_aggregator(clock).get_all_news())

        assert [item.title for item in items] == [
            "Show HN: tiny database",
            "Rust 2.0 announced",
            "Telescope spots new moon",
            "Chip makers race ahead",
            "Markets slide",
            "Poster series",
        ]
        assert len({item.url for item in items}) == len(items)

    def test_feed_copy_wins_duplicate_title(self, clock):
        items = asyncio.run(_aggregator(clock).get_all_news())

        rust = [item for item in items if item.title == "Rust 2.0 announced"]
        assert len(rust) == 1
        assert rust[0].source.id == "techfeed"

    def test_trending_is_head_of_global_list(self, clock):
        aggregator = _aggregator(clock)

        trending = asyncio.run(aggregator.get_trending_news(limit=2))

        assert [item.title for item in trending] == ["Show HN: tiny database", "Rust 2.0 announced"]

    def test_concurrent_readers_share_one_refresh(self, clock):
        feed = StubAdapter(_feed_items())
        aggregator = _aggregator(clock, _adapters(feed=feed))

        async def read_twice():
            return await asyncio.gather(aggregator.get_all_news(), aggregator.get_all_news())

        first, second = asyncio.run(read_twice())

        assert first is second
        assert sorted(source_id for source_id, _ in feed.calls) == ["bizfeed", "techfeed"]

    def test_missing_adapter_fails_only_that_family(self, clock):
        adapters = _adapters()
        del adapters[FetchStrategy.CRAWL]
        aggregator = _aggregator(clock, adapters)

        items = asyncio.run(aggregator.get_all_news())

        assert "Poster series" not in [item.title for item in items]
        assert len(items) == 5
        assert aggregator.error_handler.get_error_statistics()["error_types"] == {"AggregationError": 1}


class TestCategoryScope:
    def test_filters_to_category_and_passes_scope(self, clock):
        feed = StubAdapter(_feed_items())
        aggregator = _aggregator(clock, _adapters(feed=feed))

        items = asyncio.run(aggregator.get_news_by_category("technology"))

        assert {item.category for item in items} == {"technology"}
        assert "Telescope spots new moon" not in [item.title for item in items]
        assert feed.calls == [("techfeed", "technology")]

    def test_fresh_cache_hit_returns_same_list_without_fetching(self, clock):
        feed = StubAdapter(_feed_items())
        aggregator = _aggregator(clock, _adapters(feed=feed))

        first = asyncio.run(aggregator.get_news_by_category("technology"))
        clock.advance(minutes=5)
        second = asyncio.run(aggregator.get_news_by_category("technology"))

        assert second is first
        assert len(feed.calls) == 1

    def test_expired_scope_is_refetched(self, clock):
        feed = StubAdapter(_feed_items())
        aggregator = _aggregator(clock, _adapters(feed=feed))

        asyncio.run(aggregator.get_news_by_category("technology"))
        clock.advance(minutes=16)
        asyncio.run(aggregator.get_news_by_category("technology"))

        assert len(feed.calls) == 2

    def test_top_story_per_main_category(self, clock):
        top = asyncio.run(_aggregator(clock).get_top_news_by_category())

        assert list(top) == MAIN_CATEGORIES
        assert top["technology"].title == "Show HN: tiny database"
        assert top["business"].title == "Markets slide"
        assert top["design"].title == "Poster series"
        assert top["ai"] is None


class TestTotalFailure:
    def _failing_adapters(self):
        return _adapters(
            feed=StubAdapter(failing={"techfeed", "bizfeed"}),
            crawl=StubAdapter(failing={"studio"}),
            social=StubAdapter(failing={"hn"}),
        )

    def test_nothing_cached_returns_empty(self, clock):
        aggregator = _aggregator(clock, self._failing_adapters())

        assert asyncio.run(aggregator.get_all_news()) == []
        assert aggregator.cache.get_entry(None) is None

    def test_serves_stale_items(self, clock):
        aggregator = _aggregator(clock)
        good = asyncio.run(aggregator.get_all_news())

        clock.advance(hours=1)
        aggregator.adapters = self._failing_adapters()
        result = asyncio.run(aggregator.get_all_news())

        assert result is good
        assert aggregator.cache.get_entry(None).last_updated == NOW

    def test_keyless_api_source_does_not_mask_failure(self, clock):
        registry = SourceRegistry([
            make_source("scifeed", FetchStrategy.FEED, "science"),
            make_source("gnews", FetchStrategy.API, "news", params={"provider": "gnews"}),
        ])
        http = FakeHttpClient()
        api = NewsApiAdapter(http, api_key=None)
        good = {"scifeed": [make_item("Good story", "https://sci.com/good", category="science",
                                      source_id="scifeed", published_at=_hours_ago(1))]}
        aggregator = _aggregator(clock, {
            FetchStrategy.FEED: StubAdapter(good),
            FetchStrategy.API: api,
        }, registry)

        first = asyncio.run(aggregator.get_news_by_category("science"))
        assert [item.title for item in first] == ["Good story"]

        clock.advance(hours=2)
        aggregator.adapters[FetchStrategy.FEED] = StubAdapter(failing={"scifeed"})
        result = asyncio.run(aggregator.get_news_by_category("science"))

        assert result is first
        assert aggregator.cache.get_entry("science").items == first
        assert http.calls == []

    def test_repeated_failures_exclude_sources(self, clock):
        aggregator = _aggregator(clock, self._failing_adapters())

        for _ in range(3):
            asyncio.run(aggregator.refresh())
            clock.advance(minutes=20)

        assert sorted(aggregator.tracker.excluded_sources()) == ["bizfeed", "hn", "studio", "techfeed"]
        states = {entry["id"]: entry for entry in aggregator.list_sources_with_state()}
        assert states["hn"]["excluded"] is True
        assert states["hn"]["reliability"]["consecutiveFailures"] == 3


class TestStatistics:
    def test_fetch_statistics(self, clock):
        aggregator = _aggregator(clock, _adapters(feed=StubAdapter(_feed_items(), failing={"bizfeed"})))
        asyncio.run(aggregator.get_all_news())

        stats = aggregator.get_fetch_statistics()

        feed = stats["families"]["feed"]
        assert feed["rounds"] == 1
        assert feed["attempted"] == 2
        assert feed["failed"] == 1
        assert feed["items"] == 3
        assert stats["total_errors"] == 1
        assert stats["errors"]["error_kinds"] == {"transient": 1}
        assert stats["excluded_sources"] == []
        assert stats["cache"]["scopes"]["__all__"]["items"] == 5

    def test_sources_with_state_filters(self, clock):
        aggregator = _aggregator(clock)

        listed = aggregator.list_sources_with_state(kind="feed")

        assert [entry["id"] for entry in listed] == ["techfeed", "bizfeed"]
        assert listed[0]["excluded"] is False
        assert listed[0]["reliability"]["consecutiveFailures"] == 0


class TestApiSearch:
    def test_search_queries_api_sources(self, clock):
        http = FakeHttpClient()
        http.add(
            f"{GNEWS_BASE_URL}/search?q=fusion&token=KEY&lang=en&max=10",
            body=json.dumps({"articles": [
                {"title": "Fusion milestone", "url": "https://lab.example.com/fusion",
                 "description": "Net energy gain.", "publishedAt": "2026-03-01T10:00:00Z",
                 "source": {"name": "Lab News"}},
            ]}),
        )
        registry = SourceRegistry([
            make_source("gnews", FetchStrategy.API, "news", params={"provider": "gnews", "max": 10}),
        ])
        adapters = {FetchStrategy.API: NewsApiAdapter(http, api_key="KEY")}
        aggregator = _aggregator(clock, adapters, registry)

        results = asyncio.run(aggregator.search_from_apis("fusion"))

        assert [item.title for item in results] == ["Fusion milestone"]

    @pytest.mark.parametrize("query", ["", "   "])
    def test_blank_query(self, clock, query):
        assert asyncio.run(_aggregator(clock).search_from_apis(query)) == []
