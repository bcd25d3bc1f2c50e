"""
Static catalog of content sources, loaded once from data/sources.json.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Union

from bookmarkr_news.models.content import FetchStrategy, Source


class SourceNotFoundError(KeyError):
    """Unknown source id"""
    pass


DEFAULT_CATALOG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)),
    'data',
    'sources.json'
)


class SourceRegistry:
    """
    Read-only source catalog. Reliability state lives in the
    ReliabilityTracker, not here.
    """

    def __init__(self, sources: List[Source], categories: Optional[List[str]] = None):
        self.logger = logging.getLogger(__name__)
        self._sources: Dict[str, Source] = {}
        for source in sources:
            if source.id in self._sources:
                raise ValueError(f"Duplicate source id in catalog: {source.id}")
            self._sources[source.id] = source

        declared = categories or []
        seen = [s.category for s in sources if s.category not in declared]
        self._categories: List[str] = list(dict.fromkeys([*declared, *seen]))

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> "SourceRegistry":
        """Load the catalog JSON. Errors propagate: a broken catalog is a startup failure."""
        path = path or DEFAULT_CATALOG_PATH
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        sources = [cls._source_from_dict(entry) for entry in data.get('sources', [])]
        registry = cls(sources, data.get('categories'))
        registry.logger.info(
            f"Loaded {len(sources)} sources across {len(registry.categories())} categories from {path}"
        )
        return registry

    @staticmethod
    def _source_from_dict(entry: Dict[str, Any]) -> Source:
        try:
            kind = FetchStrategy(entry['kind'])
        except (KeyError, ValueError):
            raise ValueError(f"Source {entry.get('id')!r} has invalid kind {entry.get('kind')!r}")

        if kind == FetchStrategy.FEED and not entry.get('feed_url'):
            raise ValueError(f"Feed source {entry['id']!r} is missing feed_url")
        if kind == FetchStrategy.CRAWL and not entry.get('crawl_selector'):
            raise ValueError(f"Crawl source {entry['id']!r} is missing crawl_selector")

        return Source(
            id=entry['id'],
            name=entry['name'],
            category=entry['category'],
            kind=kind,
            website_url=entry['website_url'],
            region=entry.get('region', 'global'),
            icon_url=entry.get('icon_url'),
            feed_url=entry.get('feed_url'),
            crawl_selector=entry.get('crawl_selector'),
            params=dict(entry.get('params') or {}),
        )

    def list_sources(
        self,
        category: Optional[str] = None,
        kind: Optional[Union[FetchStrategy, str]] = None,
    ) -> List[Source]:
        """All sources, optionally filtered by category and/or fetch strategy."""
        if kind is not None and not isinstance(kind, FetchStrategy):
            kind = FetchStrategy(kind)
        return [
            s for s in self._sources.values()
            if (category is None or s.category == category)
            and (kind is None or s.kind == kind)
        ]

    def get_source(self, source_id: str) -> Source:
        try:
            return self._sources[source_id]
        except KeyError:
            raise SourceNotFoundError(source_id)

    def by_region(self, region: str) -> List[Source]:
        return [s for s in self._sources.values() if s.region == region]

    def categories(self) -> List[str]:
        return list(self._categories)

    def regions(self) -> List[str]:
        return sorted({s.region for s in self._sources.values()})

    def __len__(self) -> int:
        return len(self._sources)

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._sources
