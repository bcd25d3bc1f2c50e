"""
Social platform adapter (Reddit listings and Hacker News top stories).
"""

import asyncio
import html
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bookmarkr_news.models.content import ContentItem, FetchStrategy, Source
from bookmarkr_news.services.content_utils import (
    collapse_whitespace,
    extract_page_metadata,
    first_large_image,
    generate_tags,
    resolve_url,
)
from bookmarkr_news.services.fetch_adapter import (
    FetchAdapter,
    ResponseMemo,
    SourceConfigurationError,
    params_get,
)
from bookmarkr_news.services.http_client import FetchError, HttpClient, HTTPStatusError
from bookmarkr_news.utils.error_monitoring import ErrorHandler

REDDIT_LISTING_URL = "https://www.reddit.com/r/{subreddit}/hot.json?limit={limit}"
HN_TOP_STORIES_URL = "https://hacker-news.firebaseio.com/v0/topstories.json"
HN_ITEM_URL = "https://hacker-news.firebaseio.com/v0/item/{id}.json"

SOCIAL_USER_AGENT = "BookmarkrNews/1.0 (news aggregation)"
MEMO_TTL_SECONDS = 30 * 60
DEFAULT_LIMIT = 15
DEFAULT_TAG_LIMIT = 3


@dataclass
class _Candidate:
    """Item under construction; tracks what still needs backfilling."""
    item: ContentItem
    needs_image: bool
    engagement_only: bool


class SocialAdapter(FetchAdapter):
    """
    Reads public platform endpoints and backfills images from the linked
    pages' Open-Graph tags when the platform gives none.
    """

    strategy = FetchStrategy.SOCIAL

    def __init__(
        self,
        http: HttpClient,
        error_handler: Optional[ErrorHandler] = None,
        timeout: float = 10.0,
        item_timeout: float = 5.0,
        backfill_concurrency: int = 5,
        memo: Optional[ResponseMemo] = None,
    ):
        super().__init__(http, error_handler)
        self.timeout = timeout
        self.item_timeout = item_timeout
        self.backfill_concurrency = backfill_concurrency
        self.memo: ResponseMemo[List[ContentItem]] = memo or ResponseMemo(MEMO_TTL_SECONDS)

    async def _fetch_items(self, source: Source, category: Optional[str]) -> List[ContentItem]:
        cached = self.memo.get(source.id)
        if cached is not None:
            self.logger.debug(f"Using memoised {source.id} response ({len(cached)} items)")
            return list(cached)

        platform = params_get(source, "platform", "reddit")
        if platform == "reddit":
            candidates = await self._fetch_reddit(source)
        elif platform == "hackernews":
            candidates = await self._fetch_hackernews(source)
        else:
            raise SourceConfigurationError(f"Unsupported social platform {platform!r} for {source.id}")

        await self._backfill(candidates)
        items = [c.item for c in candidates]
        self.memo.set(source.id, items)
        self.logger.info(f"Fetched {len(items)} posts from {source.name}")
        return list(items)

    async def _fetch_reddit(self, source: Source) -> List[_Candidate]:
        subreddit = params_get(source, "subreddit")
        if not subreddit:
            raise SourceConfigurationError(f"No subreddit configured for {source.id}")
        limit = params_get(source, "limit", DEFAULT_LIMIT)

        payload = await self.http.get_json(
            REDDIT_LISTING_URL.format(subreddit=subreddit, limit=limit),
            headers={"User-Agent": SOCIAL_USER_AGENT, "Accept": "application/json"},
            timeout=self.timeout,
        )
        children = ((payload or {}).get("data") or {}).get("children") or []

        candidates = []
        for child in children:
            post = child.get("data") or {}
            if post.get("stickied") or post.get("is_self") or post.get("over_18"):
                continue
            url = post.get("url")
            if not url or not post.get("title"):
                continue

            selftext = collapse_whitespace(post.get("selftext") or "")
            description = selftext or f"{post.get('ups', 0)} upvotes • {post.get('num_comments', 0)} comments"
            image = self._reddit_image(post)
            created = post.get("created_utc")

            item = self.build_item(
                source,
                title=post["title"],
                url=url,
                description=description,
                published_at=datetime.fromtimestamp(created, tz=timezone.utc) if created else None,
                image_url=image,
                tags=_unique([subreddit, *generate_tags(post["title"], limit=DEFAULT_TAG_LIMIT)])[:DEFAULT_TAG_LIMIT],
                item_id=f"{source.id}-{post.get('id')}" if post.get("id") else None,
            )
            candidates.append(_Candidate(item, needs_image=image is None, engagement_only=not selftext))
        return candidates

    @staticmethod
    def _reddit_image(post: Dict[str, Any]) -> Optional[str]:
        thumbnail = post.get("thumbnail") or ""
        if thumbnail.startswith("http"):
            return thumbnail
        try:
            preview = post["preview"]["images"][0]["source"]["url"]
        except (KeyError, IndexError, TypeError):
            return None
        return html.unescape(preview) if preview else None

    async def _fetch_hackernews(self, source: Source) -> List[_Candidate]:
        limit = params_get(source, "limit", DEFAULT_LIMIT)
        story_ids = await self.http.get_json(HN_TOP_STORIES_URL, timeout=self.item_timeout)
        if not isinstance(story_ids, list):
            return []

        results = await asyncio.gather(
            *(self.http.get_json(HN_ITEM_URL.format(id=story_id), timeout=self.item_timeout)
              for story_id in story_ids[:limit]),
            return_exceptions=True,
        )

        candidates = []
        for story in results:
            if isinstance(story, Exception):
                self.logger.debug(f"Skipping Hacker News story: {story}")
                continue
            if not story or not story.get("url") or not story.get("title"):
                continue

            created = story.get("time")
            item = self.build_item(
                source,
                title=story["title"],
                url=story["url"],
                description=f"{story.get('score', 0)} points • {story.get('descendants') or 0} comments",
                published_at=datetime.fromtimestamp(created, tz=timezone.utc) if created else None,
                category="technology",
                tags=_unique(["hackernews", *generate_tags(story["title"], limit=DEFAULT_TAG_LIMIT)])[:DEFAULT_TAG_LIMIT],
                item_id=f"{source.id}-{story.get('id')}" if story.get("id") else None,
            )
            candidates.append(_Candidate(item, needs_image=True, engagement_only=True))
        return candidates

    async def _backfill(self, candidates: List[_Candidate]) -> None:
        """Fetch linked pages for items lacking a platform image."""
        pending = [c for c in candidates if c.needs_image]
        if not pending:
            return

        semaphore = asyncio.Semaphore(self.backfill_concurrency)

        async def backfill_one(candidate: _Candidate) -> None:
            async with semaphore:
                try:
                    page = await self.http.get_text(
                        candidate.item.url,
                        headers={"User-Agent": SOCIAL_USER_AGENT},
                        timeout=self.item_timeout,
                    )
                except (HTTPStatusError, FetchError) as e:
                    self.logger.debug(f"Image backfill failed for {candidate.item.url}: {e}")
                    return

            meta = extract_page_metadata(page)
            image = meta["image"] or first_large_image(page)
            resolved = resolve_url(image, candidate.item.url) if image else None
            if resolved:
                candidate.item.image_url = resolved
            if candidate.engagement_only and meta["description"]:
                candidate.item.description = collapse_whitespace(meta["description"])

        await asyncio.gather(*(backfill_one(c) for c in pending))



def _unique(tags: List[str]) -> List[str]:
    return list(dict.fromkeys(tags))
