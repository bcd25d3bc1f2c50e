"""
Syndication feed (RSS/Atom) adapter.
"""

import itertools
from typing import Any, List, Optional

import feedparser

from bookmarkr_news.models.content import ContentItem, FetchStrategy, Source
from bookmarkr_news.services.content_utils import first_image_in_html, strip_html
from bookmarkr_news.services.fetch_adapter import FetchAdapter, SourceConfigurationError
from bookmarkr_news.services.http_client import (
    FEED_ACCEPT,
    FetchError,
    HttpClient,
    HTTPStatusError,
    RetryPolicy,
    user_agent_for,
)
from bookmarkr_news.utils.date_extraction import parse_published_date, utc_now
from bookmarkr_news.utils.error_monitoring import ErrorHandler


class FeedParseError(Exception):
    """Feed body could not be parsed as RSS/Atom"""
    pass


FALLBACK_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Referer": "https://www.google.com/",
    "DNT": "1",
}


class FeedAdapter(FetchAdapter):
    """
    Fetches a feed, falling back once to a raw fetch with a rotated
    user agent when the primary fetch or parse fails.
    """

    strategy = FetchStrategy.FEED

    def __init__(
        self,
        http: HttpClient,
        error_handler: Optional[ErrorHandler] = None,
        timeout: float = 15.0,
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
    ):
        super().__init__(http, error_handler)
        self.timeout = timeout
        self.retry_policy = RetryPolicy(max_attempts=max_retries + 1, base_delay=retry_base_delay)
        self._user_agents = itertools.count(1)

    async def _fetch_items(self, source: Source, category: Optional[str]) -> List[ContentItem]:
        if not source.feed_url:
            raise SourceConfigurationError(f"No feed URL configured for {source.id}")

        try:
            body = await self.http.get_text(
                source.feed_url,
                headers={"Accept": FEED_ACCEPT},
                timeout=self.timeout,
                retry=self.retry_policy,
            )
            entries = self._parse(body)
        except (HTTPStatusError, FetchError, FeedParseError) as primary_error:
            self.logger.info(f"Feed fetch failed for {source.name}, trying alternative fetch: {primary_error}")
            entries = await self._fallback_fetch(source, primary_error)

        fetched_at = utc_now()
        items = []
        for entry in entries:
            item = self._entry_to_item(entry, source, fetched_at)
            if item is not None:
                items.append(item)
        return items

    async def _fallback_fetch(self, source: Source, primary_error: Exception) -> List[Any]:
        headers = {**FALLBACK_HEADERS, "User-Agent": user_agent_for(next(self._user_agents))}
        try:
            body = await self.http.get_text(source.feed_url, headers=headers, timeout=self.timeout)
            return self._parse(body)
        except (HTTPStatusError, FetchError, FeedParseError) as fallback_error:
            self.logger.debug(f"Alternative fetch also failed for {source.name}: {fallback_error}")
            raise primary_error from fallback_error

    def _parse(self, body: str) -> List[Any]:
        parsed = feedparser.parse(body)
        if parsed.bozo and not parsed.entries:
            raise FeedParseError(f"Malformed feed: {parsed.get('bozo_exception')}")
        return list(parsed.entries)

    def _entry_to_item(self, entry: Any, source: Source, fetched_at) -> Optional[ContentItem]:
        link = (entry.get("link") or "").strip()
        if not link:
            return None

        summary = entry.get("summary") or entry.get("description") or ""
        encoded = self._encoded_content(entry)

        published = (
            parse_published_date(entry.get("published_parsed"))
            or parse_published_date(entry.get("updated_parsed"))
            or parse_published_date(entry.get("published"))
            or fetched_at
        )
        tags = [t.get("term") for t in entry.get("tags") or [] if t.get("term")][:5]

        return self.build_item(
            source,
            title=entry.get("title") or "Untitled",
            url=link,
            description=strip_html(summary) or strip_html(encoded),
            published_at=published,
            image_url=self._extract_image(entry, encoded, summary),
            content=encoded or summary or None,
            tags=tags,
            base_url=source.website_url,
        )

    @staticmethod
    def _encoded_content(entry: Any) -> str:
        """Longest HTML body from ``content:encoded`` / Atom content."""
        values = [c.get("value", "") for c in entry.get("content") or [] if c.get("value")]
        return max(values, key=len) if values else ""

    @staticmethod
    def _extract_image(entry: Any, encoded: str, summary: str) -> Optional[str]:
        for media in entry.get("media_content") or []:
            if media.get("url"):
                return media["url"]
        for thumb in entry.get("media_thumbnail") or []:
            if thumb.get("url"):
                return thumb["url"]
        for enclosure in entry.get("enclosures") or []:
            href = enclosure.get("href") or enclosure.get("url")
            enclosure_type = enclosure.get("type") or ""
            if href and (not enclosure_type or enclosure_type.startswith("image/")):
                return href
        return first_image_in_html(encoded) or first_image_in_html(summary)
