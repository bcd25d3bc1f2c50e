"""
Common interface for the four fetch strategies.

Every adapter turns one Source into a FetchOutcome. Adapters implement
``_fetch_items`` and may raise freely there; ``fetch`` converts any error into
a failed outcome so a single bad source can never abort a batch.
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from bookmarkr_news.models.content import (
    ContentItem,
    FetchOutcome,
    FetchStrategy,
    Source,
)
from bookmarkr_news.services.content_utils import (
    fallback_image,
    make_item_id,
    origin_of,
    resolve_url,
    strip_html,
    truncate,
)
from bookmarkr_news.services.http_client import HttpClient
from bookmarkr_news.utils.date_extraction import utc_now
from bookmarkr_news.utils.error_monitoring import ErrorHandler

T = TypeVar("T")

MAX_DESCRIPTION_LENGTH = 500


class SourceConfigurationError(Exception):
    """Source entry is missing what its fetch strategy needs."""
    pass


class ResponseMemo(Generic[T]):
    """Small TTL memo used to keep quota-limited upstreams from being re-queried."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, T]] = {}

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FetchAdapter(ABC):
    """Strategy interface: ``fetch(source) -> FetchOutcome``."""

    strategy: FetchStrategy

    def __init__(self, http: HttpClient, error_handler: Optional[ErrorHandler] = None):
        self.http = http
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(self.__class__.__module__)

    @property
    def enabled(self) -> bool:
        return True

    async def fetch(self, source: Source, category: Optional[str] = None) -> FetchOutcome:
        """
        Fetch one source.

        Args:
            source: Registry entry to fetch
            category: Scope of the current aggregation (None for global)

        Returns:
            FetchOutcome with items, or with the classified error on failure
        """
        try:
            items = await self._fetch_items(source, category)
        except Exception as e:
            kind = self.error_handler.classify_kind(e)
            self.logger.warning(f"⚠️ {self.strategy.value} fetch failed for {source.id} [{kind.value}]: {e}")
            return FetchOutcome.failure(source.id, e, kind.value)

        self.logger.debug(f"Fetched {len(items)} items from {source.id}")
        return FetchOutcome.success(source.id, items)

    @abstractmethod
    async def _fetch_items(self, source: Source, category: Optional[str]) -> List[ContentItem]:
        ...

    def build_item(
        self,
        source: Source,
        title: str,
        url: str,
        description: Optional[str] = None,
        published_at: Optional[datetime] = None,
        image_url: Optional[str] = None,
        content: Optional[str] = None,
        category: Optional[str] = None,
        tags: Optional[List[str]] = None,
        base_url: Optional[str] = None,
        item_id: Optional[str] = None,
    ) -> ContentItem:
        """Normalise extracted fields into a ContentItem."""
        item_category = category or source.category
        clean_title = strip_html(title) or "Untitled"
        origin = origin_of(base_url or url) or origin_of(source.website_url)

        image = resolve_url(image_url, origin) if image_url else None
        if not image:
            image = fallback_image(item_category, clean_title)

        return ContentItem(
            id=item_id or make_item_id(source.id, url),
            title=clean_title,
            description=truncate(strip_html(description), MAX_DESCRIPTION_LENGTH),
            url=url,
            published_at=published_at or utc_now(),
            source=source.ref,
            category=item_category,
            content=content,
            image_url=image,
            tags=list(tags or []),
        )


def params_get(source: Source, key: str, default: Any = None) -> Any:
    return (source.params or {}).get(key, default)
