import json
from datetime import timedelta

import pytest

from bookmarkr_news.models.content import FetchStrategy
from bookmarkr_news.services.reliability_tracker import ReliabilityTracker
from bookmarkr_news.services.source_registry import SourceNotFoundError, SourceRegistry

from conftest import make_source


class TestSourceRegistry:
    def test_bundled_catalog_loads(self):
        registry = SourceRegistry.from_file()
        assert len(registry) > 40
        assert registry.categories() == ["technology", "business", "news", "science", "design", "ai"]
        assert "techcrunch" in registry

    def test_bundled_catalog_covers_every_strategy(self):
        registry = SourceRegistry.from_file()
        for kind in FetchStrategy:
            assert registry.list_sources(kind=kind), kind

    def test_filter_by_category_and_kind(self):
        registry = SourceRegistry.from_file()
        crawl_design = registry.list_sources(category="design", kind="crawl")
        assert {s.id for s in crawl_design} == {"awwwards", "dribbble", "behance"}
        assert all(s.category == "science" for s in registry.list_sources(category="science"))

    def test_get_unknown_source(self):
        registry = SourceRegistry([make_source("a")])
        with pytest.raises(SourceNotFoundError):
            registry.get_source("missing")

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            SourceRegistry([make_source("a"), make_source("a")])

    def test_regions(self):
        registry = SourceRegistry.from_file()
        assert {s.id for s in registry.by_region("us")} == {"npr", "axios"}
        assert "global" in registry.regions()

    def test_catalog_validation(self, tmp_path):
        path = tmp_path / "sources.json"
        path.write_text(json.dumps({"sources": [
            {"id": "broken", "name": "Broken", "category": "news", "kind": "feed",
             "website_url": "https://broken.example.com"},
        ]}))
        with pytest.raises(ValueError):
            SourceRegistry.from_file(str(path))


class TestReliabilityTracker:
    def test_three_failures_within_window_excludes(self, clock):
        tracker = ReliabilityTracker(clock=clock)
        source = make_source("flaky")

        for _ in range(2):
            tracker.mark_failing("flaky")
            clock.advance(hours=1)
        assert tracker.reliable_subset([source]) == [source]

        tracker.mark_failing("flaky")
        assert tracker.is_excluded("flaky")
        assert tracker.reliable_subset([source]) == []
        assert tracker.excluded_sources() == ["flaky"]

    def test_source_recovers_after_window(self, clock):
        tracker = ReliabilityTracker(clock=clock)
        for _ in range(3):
            tracker.mark_failing("flaky")
        assert tracker.is_excluded("flaky")

        clock.advance(hours=12, seconds=1)
        assert not tracker.is_excluded("flaky")
        assert tracker.reliable_subset([make_source("flaky")])

    def test_failure_after_window_restarts_count(self, clock):
        tracker = ReliabilityTracker(clock=clock)
        tracker.mark_failing("slow")
        tracker.mark_failing("slow")
        clock.advance(hours=13)

        state = tracker.mark_failing("slow")

        assert state.consecutive_failures == 1
        assert not tracker.is_excluded("slow")

    def test_success_resets_counter(self, clock):
        tracker = ReliabilityTracker(clock=clock)
        tracker.mark_failing("s")
        tracker.mark_failing("s")
        tracker.mark_succeeded("s")
        tracker.mark_failing("s")

        assert tracker.failure_count("s") == 1
        assert not tracker.is_excluded("s")

    def test_custom_threshold(self, clock):
        tracker = ReliabilityTracker(window=timedelta(hours=1), threshold=1, clock=clock)
        tracker.mark_failing("s")
        assert tracker.is_excluded("s")
        assert tracker.snapshot()["s"].consecutive_failures == 1
