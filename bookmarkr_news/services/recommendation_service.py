"""
Recommendation engine: scores aggregated news against an interest profile
built from the user's saved bookmarks.

Four modes share the same primitives: personalized, similar-to-bookmark,
topic, and discovery. Every mode is best-effort; any failure degrades to the
trending list (or an empty list if even that fails).
"""

import logging
import math
import random
from collections import Counter
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from bookmarkr_news.models.content import Bookmark, ContentItem, Recommendation, UserProfile
from bookmarkr_news.pipeline.content_aggregator import NewsAggregator
from bookmarkr_news.services.content_utils import domain_of
from bookmarkr_news.services.storage import Storage
from bookmarkr_news.services.text_analysis import dice_similarity, extract_key_terms
from bookmarkr_news.utils.date_extraction import utc_now

# Scoring weights
TERM_WEIGHT = 2
TAG_WEIGHT = 5
CATEGORY_WEIGHT = 10
SOURCE_WEIGHT = 7
RECENCY_MAX_BONUS = 5.0
RECENCY_WINDOW_HOURS = 24.0

TITLE_TERMS = 5
DESCRIPTION_TERMS = 10
PROFILE_TERMS = 50

PERSONALIZED_TITLE_SIMILARITY = 0.7
SIMILAR_CATEGORY_BONUS = 20.0

TOPIC_TITLE_WEIGHT = 10
TOPIC_DESCRIPTION_WEIGHT = 5
TOPIC_TAG_WEIGHT = 7

DISCOVERY_TRENDING_SHARE = 0.3
DISCOVERY_CATEGORIES = ["technology", "business", "design", "science", "ai"]

WORDS_PER_MINUTE = 200
CHARS_PER_WORD = 5
MIN_READ_MINUTES = 2


class RecommendationError(Exception):
    """Internal failure inside a recommendation mode"""
    pass


def estimate_read_time(item: ContentItem) -> str:
    length = len(item.content or "") + len(item.description or "")
    minutes = max(MIN_READ_MINUTES, math.ceil((length / CHARS_PER_WORD) / WORDS_PER_MINUTE))
    return f"{minutes} min read"


def to_recommendation(item: ContentItem, score: Optional[float] = None) -> Recommendation:
    return Recommendation(
        id=item.id,
        title=item.title,
        description=item.description,
        url=item.url,
        image_url=item.image_url,
        source=item.source.name,
        read_time=estimate_read_time(item),
        category=item.category,
        relevance_score=round(score, 2) if score is not None else None,
    )


def item_key_terms(item: ContentItem) -> List[str]:
    return extract_key_terms(item.title, TITLE_TERMS) + extract_key_terms(item.description, DESCRIPTION_TERMS)


class RecommendationEngine:
    """
    Scores items from the aggregator against a profile derived from Storage.
    Profiles are rebuilt per call and never persisted.
    """

    def __init__(
        self,
        aggregator: NewsAggregator,
        storage: Storage,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.aggregator = aggregator
        self.storage = storage
        self.rng = rng or random.Random()
        self._clock = clock
        self.logger = logging.getLogger(__name__)

    # Profile and scoring

    async def build_user_profile(self) -> UserProfile:
        try:
            bookmarks = await self.storage.get_all_bookmarks()
        except Exception as e:
            raise RecommendationError(f"Could not read bookmarks: {e}") from e

        term_weights: Counter = Counter()
        tags: Set[str] = set()
        categories: Set[str] = set()
        sources: Set[str] = set()

        for bookmark in bookmarks:
            # Description terms weigh double
            for term in extract_key_terms(bookmark.title, TITLE_TERMS):
                term_weights[term] += 1
            for term in extract_key_terms(bookmark.description or "", DESCRIPTION_TERMS):
                term_weights[term] += 2

            tags.update(tag.name.lower() for tag in bookmark.tags)
            if bookmark.category:
                categories.add(bookmark.category.lower())
            if bookmark.source_name:
                sources.add(bookmark.source_name.lower())
            elif bookmark.domain:
                sources.add(bookmark.domain.lower())

        profile = UserProfile(
            terms=[term for term, _ in term_weights.most_common(PROFILE_TERMS)],
            tags=tags,
            categories=categories,
            sources=sources,
        )
        self.logger.debug(
            f"Profile from {len(bookmarks)} bookmarks: {len(profile.terms)} terms, "
            f"{len(tags)} tags, {len(categories)} categories, {len(sources)} sources"
        )
        return profile

    def score_against_profile(self, item: ContentItem, profile: UserProfile) -> float:
        """Additive and uncapped: explicit signals (tags, categories) outweigh term overlap."""
        profile_terms = set(profile.terms)
        score = 0.0

        score += TERM_WEIGHT * sum(1 for term in item_key_terms(item) if term in profile_terms)
        score += TAG_WEIGHT * sum(1 for tag in item.tags if tag.lower() in profile.tags)

        if item.category and item.category.lower() in profile.categories:
            score += CATEGORY_WEIGHT

        if item.source.name.lower() in profile.sources or domain_of(item.url) in profile.sources:
            score += SOURCE_WEIGHT

        age_hours = (self._clock() - item.published_at).total_seconds() / 3600
        if age_hours < RECENCY_WINDOW_HOURS:
            score += RECENCY_MAX_BONUS * (1 - max(age_hours, 0.0) / RECENCY_WINDOW_HOURS)

        return score

    # Modes

    async def get_personalized(self, limit: int = 10) -> List[Recommendation]:
        return await self._guarded("personalized", limit, lambda: self._personalized(limit))

    async def get_similar(self, bookmark_id: int, limit: int = 5) -> List[Recommendation]:
        return await self._guarded("similar", limit, lambda: self._similar(bookmark_id, limit))

    async def get_topic(self, topic: str, limit: int = 10) -> List[Recommendation]:
        return await self._guarded("topic", limit, lambda: self._topic(topic, limit))

    async def get_discovery(self, limit: int = 10) -> List[Recommendation]:
        return await self._guarded("discovery", limit, lambda: self._discovery(limit))

    async def _personalized(self, limit: int) -> List[Recommendation]:
        profile = await self.build_user_profile()
        if profile.is_empty():
            self.logger.info("Empty profile; serving trending items")
            return await self._trending(limit)

        trending = await self.aggregator.get_trending_news(min(limit, 5))
        candidates = self._merge_pools(trending, await self.aggregator.get_all_news(), limit * 3)
        scored = sorted(
            ((item, self.score_against_profile(item, profile)) for item in candidates),
            key=lambda pair: pair[1],
            reverse=True,
        )

        selected: List[Tuple[ContentItem, float]] = []
        for item, score in scored:
            if any(
                dice_similarity(item.title, chosen.title) > PERSONALIZED_TITLE_SIMILARITY
                for chosen, _ in selected
            ):
                continue
            selected.append((item, score))
            if len(selected) >= limit:
                break

        return [to_recommendation(item, score) for item, score in selected]

    async def _similar(self, bookmark_id: int, limit: int) -> List[Recommendation]:
        bookmark = await self.storage.get_bookmark_by_id(bookmark_id)
        if bookmark is None:
            self.logger.info(f"Bookmark {bookmark_id} not found; no similar content")
            return []

        candidates: List[ContentItem] = []
        if bookmark.category:
            candidates = list(await self.aggregator.get_news_by_category(bookmark.category.lower()))
        if len(candidates) < limit * 2:
            candidates = self._merge_pools(candidates, await self.aggregator.get_all_news(), limit * 3)

        reference = self._bookmark_text(bookmark)
        bookmark_category = (bookmark.category or "").lower()
        scored = []
        for item in candidates:
            if item.url == bookmark.url:
                continue
            score = dice_similarity(reference, f"{item.title} {item.description} {' '.join(item.tags)}") * 100
            if bookmark_category and item.category.lower() == bookmark_category:
                score += SIMILAR_CATEGORY_BONUS
            scored.append((item, score))

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [to_recommendation(item, score) for item, score in scored[:limit]]

    async def _topic(self, topic: str, limit: int) -> List[Recommendation]:
        normalized = topic.strip().lower()
        if not normalized:
            raise RecommendationError("Topic is empty")

        category = self._match_category(normalized)
        if category:
            items = await self.aggregator.get_news_by_category(category)
            return [to_recommendation(item) for item in items[:limit]]

        scored = []
        for item in await self.aggregator.get_all_news():
            score = 0
            if normalized in item.title.lower():
                score += TOPIC_TITLE_WEIGHT
            if normalized in (item.description or "").lower():
                score += TOPIC_DESCRIPTION_WEIGHT
            if any(normalized in tag.lower() or tag.lower() in normalized for tag in item.tags):
                score += TOPIC_TAG_WEIGHT
            if score > 0:
                scored.append((item, score))

        if scored:
            scored.sort(key=lambda pair: pair[1], reverse=True)
            return [to_recommendation(item, score) for item, score in scored[:limit]]

        searched = await self.aggregator.search_from_apis(topic.strip())
        if searched:
            self.logger.info(f"Topic {topic!r} matched nothing cached; using {len(searched)} API results")
            return [to_recommendation(item) for item in searched[:limit]]

        return await self._trending(limit)

    async def _discovery(self, limit: int) -> List[Recommendation]:
        trending = await self.aggregator.get_trending_news(int(math.floor(limit * DISCOVERY_TRENDING_SHARE)))
        picked: List[ContentItem] = list(trending)
        seen_ids = {item.id for item in picked}

        per_category = math.ceil((limit - len(picked)) / len(DISCOVERY_CATEGORIES))
        for category in DISCOVERY_CATEGORIES:
            if len(picked) >= limit:
                break
            pool = [
                item for item in await self.aggregator.get_news_by_category(category)
                if item.id not in seen_ids
            ]
            if not pool:
                continue
            sample = self.rng.sample(pool, min(per_category, len(pool)))
            picked.extend(sample)
            seen_ids.update(item.id for item in sample)

        # Interleave categories instead of returning them in blocks
        self.rng.shuffle(picked)
        return [to_recommendation(item) for item in picked[:limit]]

    # Helpers

    async def _guarded(
        self,
        mode: str,
        limit: int,
        run: Callable[[], Awaitable[List[Recommendation]]],
    ) -> List[Recommendation]:
        try:
            return await run()
        except Exception as e:
            self.logger.warning(f"⚠️ {mode} recommendations failed ({type(e).__name__}: {e}); falling back to trending")
            return await self._trending(limit)

    async def _trending(self, limit: int) -> List[Recommendation]:
        try:
            return [to_recommendation(item) for item in await self.aggregator.get_trending_news(limit)]
        except Exception as e:
            self.logger.error(f"💥 Trending fallback failed: {type(e).__name__}: {e}")
            return []

    def _match_category(self, topic: str) -> Optional[str]:
        categories = [c.lower() for c in self.aggregator.registry.categories()]
        if topic in categories:
            return topic
        for category in categories:
            if topic in category or category in topic:
                return category
        return None

    @staticmethod
    def _merge_pools(first: List[ContentItem], second: List[ContentItem], cap: int) -> List[ContentItem]:
        merged: Dict[str, ContentItem] = {item.id: item for item in first}
        for item in second:
            if len(merged) >= cap:
                break
            merged.setdefault(item.id, item)
        return list(merged.values())

    @staticmethod
    def _bookmark_text(bookmark: Bookmark) -> str:
        tags = " ".join(tag.name for tag in bookmark.tags)
        return f"{bookmark.title} {bookmark.description or ''} {tags}"
