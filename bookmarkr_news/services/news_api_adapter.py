"""
Keyed third-party news API adapter (GNews).
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from bookmarkr_news.models.content import ContentItem, FetchStrategy, Source, SourceRef
from bookmarkr_news.services.content_utils import categorize_text, generate_tags
from bookmarkr_news.services.fetch_adapter import FetchAdapter, ResponseMemo, params_get
from bookmarkr_news.services.http_client import (
    FetchError,
    HttpClient,
    HTTPStatusError,
    RetryPolicy,
)
from bookmarkr_news.utils.date_extraction import get_best_date
from bookmarkr_news.utils.error_monitoring import ErrorHandler

GNEWS_BASE_URL = "https://gnews.io/api/v4"
API_USER_AGENT = "BookmarkrNews/1.0 (news aggregation)"
MEMO_TTL_SECONDS = 60 * 60
DEFAULT_MAX_RESULTS = 10
MAX_TAGS = 5


class NewsApiAdapter(FetchAdapter):
    """
    GNews client. Without an API key every call yields an empty list; the
    free tier is quota-limited, so responses are memoised for an hour.
    """

    strategy = FetchStrategy.API

    def __init__(
        self,
        http: HttpClient,
        api_key: Optional[str],
        error_handler: Optional[ErrorHandler] = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        memo: Optional[ResponseMemo] = None,
    ):
        super().__init__(http, error_handler)
        self.api_key = api_key
        self.timeout = timeout
        self.retry_policy = RetryPolicy.rate_limited(retries=max_retries, base_delay=retry_base_delay)
        self.memo: ResponseMemo[List[ContentItem]] = memo or ResponseMemo(MEMO_TTL_SECONDS)
        self._warned_missing_key = False

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def _fetch_items(self, source: Source, category: Optional[str]) -> List[ContentItem]:
        if not self._check_key():
            return []

        # Category scopes other than general news are used as the search query
        query = category if category and category != "news" else None
        return await self._query(source, query, scope_category=category)

    async def search(self, source: Source, query: str) -> List[ContentItem]:
        """Free-text search; empty on missing key or upstream failure."""
        if not query or not self._check_key():
            return []
        try:
            return await self._query(source, query, scope_category=None)
        except (HTTPStatusError, FetchError, ValueError) as e:
            self.logger.warning(f"⚠️ News API search for {query!r} failed: {e}")
            return []

    def _check_key(self) -> bool:
        if self.api_key:
            return True
        if not self._warned_missing_key:
            self.logger.info("No GNEWS_API_KEY configured; news API results disabled")
            self._warned_missing_key = True
        return False

    def _build_url(self, query: Optional[str], max_results: int) -> str:
        params: Dict[str, Any] = {}
        if query:
            endpoint = "search"
            params["q"] = query
        else:
            endpoint = "top-headlines"
        params.update({"token": self.api_key, "lang": "en", "max": max_results})
        return f"{GNEWS_BASE_URL}/{endpoint}?{urlencode(params)}"

    async def _query(
        self,
        source: Source,
        query: Optional[str],
        scope_category: Optional[str],
    ) -> List[ContentItem]:
        memo_key = f"{source.id}:{query or 'top'}:{scope_category or '*'}"
        cached = self.memo.get(memo_key)
        if cached is not None:
            return list(cached)

        max_results = params_get(source, "max", DEFAULT_MAX_RESULTS)
        payload = await self.http.get_json(
            self._build_url(query, max_results),
            headers={"User-Agent": API_USER_AGENT, "Accept": "application/json"},
            timeout=self.timeout,
            retry=self.retry_policy,
        )

        items = [
            item for item in (
                self._article_to_item(article, source, scope_category)
                for article in (payload or {}).get("articles") or []
            )
            if item is not None
        ]
        self.memo.set(memo_key, items)
        self.logger.info(f"Fetched {len(items)} articles from {source.name} ({query or 'top headlines'})")
        return list(items)

    def _article_to_item(
        self,
        article: Dict[str, Any],
        source: Source,
        scope_category: Optional[str],
    ) -> Optional[ContentItem]:
        url = article.get("url")
        title = article.get("title")
        if not url or not title:
            return None

        description = article.get("description") or ""
        text = f"{title} {description}"
        category = scope_category or categorize_text(text)

        item = self.build_item(
            source,
            title=title,
            url=url,
            description=description,
            published_at=get_best_date(article.get("publishedAt") or article.get("publishedDate"), url),
            image_url=article.get("image"),
            content=article.get("content"),
            category=category,
            tags=generate_tags(text, limit=MAX_TAGS),
        )
        publisher = (article.get("source") or {}).get("name")
        if publisher:
            item.source = SourceRef(id=source.id, name=publisher, icon_url=source.icon_url)
        return item
