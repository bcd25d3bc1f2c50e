"""
Read-only view of the bookmark store used for profile building.

The real store (CRUD, folders, persistence) lives elsewhere; this module only
defines the capability the recommendation engine needs plus an in-memory
implementation that can be seeded from a JSON file.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from bookmarkr_news.models.content import Bookmark, Tag


class Storage(Protocol):
    async def get_all_bookmarks(self) -> List[Bookmark]:
        ...

    async def get_bookmark_by_id(self, bookmark_id: int) -> Optional[Bookmark]:
        ...


class InMemoryStorage:
    """Dictionary-backed Storage."""

    def __init__(self, bookmarks: Optional[Iterable[Bookmark]] = None):
        self._bookmarks: Dict[int, Bookmark] = {b.id: b for b in bookmarks or []}
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryStorage":
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        records = data.get('bookmarks', []) if isinstance(data, dict) else data
        storage = cls(bookmark_from_dict(record) for record in records)
        storage.logger.info(f"Loaded {len(storage)} bookmarks from {path}")
        return storage

    def add(self, bookmark: Bookmark) -> None:
        self._bookmarks[bookmark.id] = bookmark

    async def get_all_bookmarks(self) -> List[Bookmark]:
        return list(self._bookmarks.values())

    async def get_bookmark_by_id(self, bookmark_id: int) -> Optional[Bookmark]:
        return self._bookmarks.get(bookmark_id)

    def __len__(self) -> int:
        return len(self._bookmarks)


def bookmark_from_dict(record: Dict[str, Any]) -> Bookmark:
    """Accepts both snake_case and the UI's camelCase keys."""
    tags = []
    for index, tag in enumerate(record.get('tags') or []):
        if isinstance(tag, str):
            tags.append(Tag(id=index + 1, name=tag))
        else:
            tags.append(Tag(id=tag.get('id', index + 1), name=tag['name']))

    source = record.get('source') or {}
    source_name = record.get('source_name') or record.get('sourceName') or (
        source.get('name') if isinstance(source, dict) else None
    )

    return Bookmark(
        id=int(record['id']),
        title=record.get('title', ''),
        url=record.get('url', ''),
        description=record.get('description'),
        domain=record.get('domain'),
        category=record.get('category'),
        source_name=source_name,
        tags=tags,
    )
