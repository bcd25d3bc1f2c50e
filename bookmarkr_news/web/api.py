"""
HTTP surface for the news aggregator and recommendation engine.

Read endpoints always answer 200 with a (possibly empty or stale) list;
only malformed parameters are rejected, with 400.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException

from bookmarkr_news.models.content import FetchStrategy
from bookmarkr_news.pipeline.content_aggregator import NewsAggregator
from bookmarkr_news.services.recommendation_service import RecommendationEngine

MAX_LIMIT = 100

logger = logging.getLogger(__name__)


def _check_limit(limit: int) -> int:
    if limit < 1 or limit > MAX_LIMIT:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {MAX_LIMIT}")
    return limit


def create_app(
    aggregator: NewsAggregator,
    engine: RecommendationEngine,
    prefix: str = "",
) -> FastAPI:
    """Build the application around already-wired service instances."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await aggregator.close()

    app = FastAPI(title="Bookmarkr News", version="0.1.0", lifespan=lifespan)
    app.state.aggregator = aggregator
    app.state.engine = engine

    # News

    @app.get(f"{prefix}/news")
    async def all_news() -> List[Dict[str, Any]]:
        items = await aggregator.get_all_news()
        return [item.to_dict() for item in items]

    @app.get(f"{prefix}/news/trending")
    async def trending_news(limit: int = 5) -> List[Dict[str, Any]]:
        items = await aggregator.get_trending_news(_check_limit(limit))
        return [item.to_dict() for item in items]

    @app.get(f"{prefix}/news/top-by-category")
    async def top_by_category() -> Dict[str, Optional[Dict[str, Any]]]:
        top = await aggregator.get_top_news_by_category()
        return {category: item.to_dict() if item else None for category, item in top.items()}

    @app.get(f"{prefix}/news/sources")
    async def news_sources(category: Optional[str] = None, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        if kind is not None and kind not in {strategy.value for strategy in FetchStrategy}:
            raise HTTPException(status_code=400, detail=f"Unknown source kind: {kind}")
        return aggregator.list_sources_with_state(category=category, kind=kind)

    @app.get(f"{prefix}/news/health")
    async def news_health() -> Dict[str, Any]:
        return aggregator.get_fetch_statistics()

    @app.get(f"{prefix}/news/category/{{category}}")
    async def news_by_category(category: str) -> List[Dict[str, Any]]:
        items = await aggregator.get_news_by_category(category.lower())
        return [item.to_dict() for item in items]

    # Recommendations

    @app.get(f"{prefix}/recommendations/personalized")
    async def personalized(limit: int = 10) -> List[Dict[str, Any]]:
        recommendations = await engine.get_personalized(_check_limit(limit))
        return [r.to_dict() for r in recommendations]

    @app.get(f"{prefix}/recommendations/similar/{{bookmark_id}}")
    async def similar(bookmark_id: int, limit: int = 5) -> List[Dict[str, Any]]:
        if bookmark_id < 1:
            raise HTTPException(status_code=400, detail="Invalid bookmark ID")
        recommendations = await engine.get_similar(bookmark_id, _check_limit(limit))
        return [r.to_dict() for r in recommendations]

    @app.get(f"{prefix}/recommendations/topic/{{topic}}")
    async def topic(topic: str, limit: int = 10) -> List[Dict[str, Any]]:
        if not topic.strip():
            raise HTTPException(status_code=400, detail="Topic is required")
        recommendations = await engine.get_topic(topic, _check_limit(limit))
        return [r.to_dict() for r in recommendations]

    @app.get(f"{prefix}/recommendations/discover")
    async def discover(limit: int = 10) -> List[Dict[str, Any]]:
        recommendations = await engine.get_discovery(_check_limit(limit))
        return [r.to_dict() for r in recommendations]

    logger.info(f"API ready ({len(aggregator.registry)} sources)")
    return app
