"""
Content models for the news aggregation and recommendation core.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class FetchStrategy(str, Enum):
    """How a source is fetched."""
    FEED = "feed"
    CRAWL = "crawl"
    SOCIAL = "social"
    API = "api"


@dataclass
class SourceRef:
    """Provenance attached to every content item."""
    id: str
    name: str
    icon_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "iconUrl": self.icon_url}


@dataclass
class ContentItem:
    """Canonical record flowing through the pipeline."""

    id: str
    title: str
    description: str
    url: str
    published_at: datetime
    source: SourceRef
    category: str
    content: Optional[str] = None
    image_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def __hash__(self):
        """Items collapse on URL."""
        return hash(self.url)

    def __eq__(self, other):
        if not isinstance(other, ContentItem):
            return False
        return self.url == other.url

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "url": self.url,
            "imageUrl": self.image_url,
            "publishedAt": self.published_at.isoformat(),
            "source": self.source.to_dict(),
            "category": self.category,
            "tags": list(self.tags),
        }


@dataclass
class ReliabilityState:
    consecutive_failures: int = 0
    last_failure_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consecutiveFailures": self.consecutive_failures,
            "lastFailureAt": self.last_failure_at.isoformat() if self.last_failure_at else None,
        }


@dataclass
class Source:
    """Registry entry for a configured content origin."""

    id: str
    name: str
    category: str
    kind: FetchStrategy
    website_url: str
    region: str = "global"
    icon_url: Optional[str] = None
    feed_url: Optional[str] = None
    crawl_selector: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def ref(self) -> SourceRef:
        return SourceRef(id=self.id, name=self.name, icon_url=self.icon_url)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "kind": self.kind.value,
            "region": self.region,
            "websiteUrl": self.website_url,
            "iconUrl": self.icon_url,
            "feedUrl": self.feed_url,
            "crawlSelector": self.crawl_selector,
            "params": dict(self.params),
        }


@dataclass
class FetchOutcome:
    """Result of fetching one source: either items or a recorded failure."""

    source_id: str
    items: List[ContentItem] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, source_id: str, items: List[ContentItem]) -> "FetchOutcome":
        return cls(source_id=source_id, items=items)

    @classmethod
    def failure(cls, source_id: str, error: Exception, error_kind: str) -> "FetchOutcome":
        return cls(
            source_id=source_id,
            error=f"{type(error).__name__}: {error}",
            error_kind=error_kind,
        )


@dataclass
class CacheEntry:
    items: List[ContentItem] = field(default_factory=list)
    last_updated: datetime = field(
        default_factory=lambda: datetime.fromtimestamp(0, tz=timezone.utc)
    )

    def age_seconds(self, now: datetime) -> float:
        return (now - self.last_updated).total_seconds()


@dataclass
class UserProfile:
    """Interest model derived from saved bookmarks. Never persisted."""

    terms: List[str] = field(default_factory=list)
    tags: Set[str] = field(default_factory=set)
    categories: Set[str] = field(default_factory=set)
    sources: Set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not self.terms and not self.tags and not self.categories


@dataclass
class Recommendation:
    id: str
    title: str
    description: str
    url: str
    image_url: Optional[str]
    source: str
    read_time: str
    category: str
    relevance_score: Optional[float] = None
    type: str = "article"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "thumbnailUrl": self.image_url,
            "imageUrl": self.image_url,
            "source": self.source,
            "readTime": self.read_time,
            "type": self.type,
            "relevanceScore": self.relevance_score,
            "category": self.category,
        }


# Shapes owned by the bookmark store; only read here.

@dataclass
class Tag:
    id: int
    name: str


@dataclass
class Bookmark:
    id: int
    title: str
    url: str
    description: Optional[str] = None
    domain: Optional[str] = None
    category: Optional[str] = None
    source_name: Optional[str] = None
    tags: List[Tag] = field(default_factory=list)
