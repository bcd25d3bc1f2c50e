import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional

from bookmarkr_news.config import ServiceConfig
from bookmarkr_news.models.content import ContentItem, FetchStrategy, Source
from bookmarkr_news.pipeline.batch_orchestrator import BatchOrchestrator, BatchReport
from bookmarkr_news.services.cache_service import AdaptiveTTL, CacheStore
from bookmarkr_news.services.crawl_adapter import CrawlAdapter
from bookmarkr_news.services.deduplication_service import DeduplicationService
from bookmarkr_news.services.feed_adapter import FeedAdapter
from bookmarkr_news.services.fetch_adapter import FetchAdapter
from bookmarkr_news.services.http_client import HttpClient
from bookmarkr_news.services.news_api_adapter import NewsApiAdapter
from bookmarkr_news.services.reliability_tracker import ReliabilityTracker
from bookmarkr_news.services.social_adapter import SocialAdapter
from bookmarkr_news.services.source_registry import SourceRegistry
from bookmarkr_news.utils.error_monitoring import ErrorHandler
from bookmarkr_news.utils.logging_config import PerformanceTracker, log_pipeline_metrics

# Merge order; earlier families win dedup ties between equally reliable sources
FAMILY_ORDER: List[FetchStrategy] = [
    FetchStrategy.FEED,
    FetchStrategy.CRAWL,
    FetchStrategy.API,
    FetchStrategy.SOCIAL,
]

MAIN_CATEGORIES = ["technology", "business", "news", "science", "design", "ai"]

SOCIAL_BATCH_SIZE = 3
API_BATCH_SIZE = 2


@dataclass
class BatchSettings:
    batch_size: int
    delay: float


class AggregationError(Exception):
    """Raised when an aggregation cycle cannot run for a fetch family"""
    pass


class NewsAggregator:
    """
    Owns the cache, source registry and reliability tracker, and runs the
    fetch → dedup → sort → cache cycle for the global scope and each category.

    Handlers receive this instance by injection; there is no module-level state.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        adapters: Dict[FetchStrategy, FetchAdapter],
        tracker: Optional[ReliabilityTracker] = None,
        cache: Optional[CacheStore] = None,
        dedup: Optional[DeduplicationService] = None,
        error_handler: Optional[ErrorHandler] = None,
        orchestrator: Optional[BatchOrchestrator] = None,
        config: Optional[ServiceConfig] = None,
        http: Optional[HttpClient] = None,
    ) -> None:
        self.registry = registry
        self.adapters = adapters
        self.config = config or ServiceConfig()
        self.tracker = tracker or ReliabilityTracker()
        self.cache = cache or CacheStore(AdaptiveTTL(
            base_minutes=self.config.cache_base_ttl_minutes,
            low_traffic_start=self.config.low_traffic_start_hour,
            low_traffic_end=self.config.low_traffic_end_hour,
        ))
        self.dedup = dedup or DeduplicationService()
        self.error_handler = error_handler or ErrorHandler()
        self.orchestrator = orchestrator or BatchOrchestrator(self.tracker, self.error_handler)
        self.http = http

        self._locks: Dict[str, asyncio.Lock] = {}
        self._fetch_stats: Deque[BatchReport] = deque(maxlen=500)
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: ServiceConfig, registry: Optional[SourceRegistry] = None) -> "NewsAggregator":
        """Wire the default adapters around one shared HTTP client."""
        http = HttpClient(timeout=config.request_timeout_seconds)
        error_handler = ErrorHandler()
        adapters: Dict[FetchStrategy, FetchAdapter] = {
            FetchStrategy.FEED: FeedAdapter(
                http, error_handler,
                timeout=config.request_timeout_seconds,
                max_retries=config.max_retries,
            ),
            FetchStrategy.CRAWL: CrawlAdapter(
                http, error_handler,
                timeout=config.request_timeout_seconds,
                max_retries=config.max_retries,
            ),
            FetchStrategy.SOCIAL: SocialAdapter(
                http, error_handler,
                timeout=config.social_timeout_seconds,
            ),
            FetchStrategy.API: NewsApiAdapter(
                http, config.gnews_api_key, error_handler,
                timeout=config.social_timeout_seconds,
            ),
        }
        return cls(
            registry=registry or SourceRegistry.from_file(),
            adapters=adapters,
            error_handler=error_handler,
            config=config,
            http=http,
        )

    async def close(self) -> None:
        if self.http is not None:
            await self.http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Read API

    async def get_all_news(self) -> List[ContentItem]:
        """Every item across all sources, newest first."""
        return await self._get_scope(None)

    async def get_news_by_category(self, category: str) -> List[ContentItem]:
        return await self._get_scope(category)

    async def get_trending_news(self, limit: int = 10) -> List[ContentItem]:
        """Top ``limit`` most recent items across sources."""
        items = await self.get_all_news()
        return items[:limit]

    async def get_top_news_by_category(self) -> Dict[str, Optional[ContentItem]]:
        """Newest item for each main category, fetched in parallel."""
        results = await asyncio.gather(
            *(self.get_news_by_category(category) for category in MAIN_CATEGORIES),
            return_exceptions=True,
        )
        top: Dict[str, Optional[ContentItem]] = {}
        for category, result in zip(MAIN_CATEGORIES, results):
            if isinstance(result, Exception):
                self.logger.error(f"Top story lookup for {category} failed: {result}")
                top[category] = None
            else:
                top[category] = result[0] if result else None
        return top

    async def search_from_apis(self, query: str) -> List[ContentItem]:
        """Free-text search across the configured news APIs."""
        adapter = self.adapters.get(FetchStrategy.API)
        if not isinstance(adapter, NewsApiAdapter) or not query.strip():
            return []

        sources = self.tracker.reliable_subset(self.registry.list_sources(kind=FetchStrategy.API))
        results = await asyncio.gather(
            *(adapter.search(source, query.strip()) for source in sources),
            return_exceptions=True,
        )
        items: List[ContentItem] = []
        for source, result in zip(sources, results):
            if isinstance(result, Exception):
                self.logger.warning(f"⚠️ Search on {source.id} failed: {result}")
                continue
            items.extend(result)
        unique: Dict[str, ContentItem] = {}
        for item in items:
            unique.setdefault(item.url, item)
        return list(unique.values())

    def list_sources_with_state(
        self,
        category: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        listed = []
        for source in self.registry.list_sources(category=category, kind=kind):
            entry = source.to_dict()
            entry["reliability"] = self.tracker.state(source.id).to_dict()
            entry["excluded"] = self.tracker.is_excluded(source.id)
            listed.append(entry)
        return listed

    # Aggregation cycle

    async def refresh(self, category: Optional[str] = None) -> List[ContentItem]:
        """Run a fetch cycle for the scope regardless of cache freshness."""
        async with self._lock_for(category):
            return await self._aggregate(category)

    def _lock_for(self, category: Optional[str]) -> asyncio.Lock:
        key = self.cache.scope_key(category)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def _get_scope(self, category: Optional[str]) -> List[ContentItem]:
        cached = self.cache.get_fresh(category)
        if cached is not None:
            return cached

        # One refresh per scope at a time; late arrivals reuse its result
        async with self._lock_for(category):
            if self.cache.is_fresh(category):
                return self.cache.get_fresh(category)
            return await self._aggregate(category)

    async def _aggregate(self, category: Optional[str]) -> List[ContentItem]:
        scope = self.cache.scope_key(category)

        with PerformanceTracker(f"aggregation cycle [{scope}]", self.logger) as perf:
            results = await asyncio.gather(
                *(self._fetch_family(kind, category) for kind in FAMILY_ORDER),
                return_exceptions=True,
            )

            merged: List[ContentItem] = []
            considered = 0
            succeeded = 0
            failed_families = 0
            for kind, result in zip(FAMILY_ORDER, results):
                if isinstance(result, Exception):
                    failed_families += 1
                    self._handle_family_failure(kind, result)
                    continue
                self._fetch_stats.append(result)
                considered += result.attempted + result.skipped
                succeeded += result.succeeded
                merged.extend(result.items)

            if failed_families == len(FAMILY_ORDER) or (considered and not succeeded):
                return self._fallback(category)

            if category is not None:
                merged = [item for item in merged if item.category == category]

            deduplicated = self.dedup.deduplicate(
                merged,
                priority=lambda item: self.tracker.failure_count(item.source.id),
            )
            items = sorted(
                deduplicated.values(),
                key=lambda item: item.published_at,
                reverse=True,
            )
            self.cache.put(category, items)

        log_pipeline_metrics(
            self.logger,
            f"aggregate[{scope}]",
            input_count=len(merged),
            output_count=len(items),
            duration_ms=perf.duration_ms,
            failed_families=failed_families,
            excluded_sources=len(self.tracker.excluded_sources()),
            **{f"dedup_{key}": value for key, value in self.dedup.get_statistics().items()},
        )
        return items

    async def _fetch_family(self, kind: FetchStrategy, category: Optional[str]) -> BatchReport:
        sources = self._sources_for(kind, category)
        if not sources:
            return BatchReport(family=kind.value)

        adapter = self.adapters.get(kind)
        if adapter is None:
            raise AggregationError(f"No adapter registered for {kind.value} sources")
        if not getattr(adapter, "enabled", True):
            # A disabled adapter is neither a success nor a failure for the scope
            self.logger.debug(f"{kind.value} adapter disabled; skipping {len(sources)} sources")
            return BatchReport(family=kind.value)

        settings = self._batch_settings(kind, category, len(sources))

        async def fetch_one(source: Source):
            return await adapter.fetch(source, category)

        return await self.orchestrator.run(
            sources,
            settings.batch_size,
            fetch_one,
            delay=settings.delay,
            family=kind.value,
        )

    def _sources_for(self, kind: FetchStrategy, category: Optional[str]) -> List[Source]:
        # API sources are queried with the scope category rather than filtered by it
        if kind == FetchStrategy.API:
            return self.registry.list_sources(kind=kind)
        return self.registry.list_sources(category=category, kind=kind)

    def _batch_settings(self, kind: FetchStrategy, category: Optional[str], count: int) -> BatchSettings:
        scoped = category is not None
        if kind == FetchStrategy.FEED:
            size = self.config.feed_category_batch_size if scoped else self.config.feed_batch_size
            return BatchSettings(size, self.config.feed_batch_delay_seconds)
        if kind == FetchStrategy.CRAWL:
            size = self.config.crawl_category_batch_size if scoped else self.config.crawl_batch_size
            return BatchSettings(size, self.config.crawl_batch_delay_seconds)
        if kind == FetchStrategy.SOCIAL:
            return BatchSettings(min(SOCIAL_BATCH_SIZE, count), 0.0)
        return BatchSettings(min(API_BATCH_SIZE, count), 0.0)

    def _handle_family_failure(self, kind: FetchStrategy, error: Exception) -> None:
        context = self.error_handler.handle_error(error, source_id=kind.value, operation="aggregate")
        self.logger.error(f"💥 {kind.value} family failed ({context.kind}): {type(error).__name__}: {error}")

    def _fallback(self, category: Optional[str]) -> List[ContentItem]:
        scope = self.cache.scope_key(category)
        stale = self.cache.get_stale(category)
        if stale is not None:
            self.logger.error(f"💥 All fetches failed for {scope}; serving {len(stale)} stale items")
            return stale
        self.logger.error(f"💥 All fetches failed for {scope}; nothing cached, returning empty list")
        return []

    def get_fetch_statistics(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {"families": {}, "total_errors": 0}
        for report in self._fetch_stats:
            family = stats["families"].setdefault(report.family, {
                "rounds": 0, "attempted": 0, "succeeded": 0, "failed": 0,
                "skipped": 0, "items": 0, "time_ms": 0.0,
            })
            family["rounds"] += 1
            family["attempted"] += report.attempted
            family["succeeded"] += report.succeeded
            family["failed"] += report.failed
            family["skipped"] += report.skipped
            family["items"] += len(report.items)
            family["time_ms"] += report.duration_ms
            stats["total_errors"] += report.failed

        stats["excluded_sources"] = self.tracker.excluded_sources()
        stats["errors"] = self.error_handler.get_error_statistics()
        stats["cache"] = self.cache.get_cache_statistics()
        stats["dedup"] = self.dedup.get_statistics()
        return stats
