import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

import uvicorn

from bookmarkr_news.config import ServiceConfig
from bookmarkr_news.pipeline.content_aggregator import NewsAggregator
from bookmarkr_news.services.recommendation_service import RecommendationEngine
from bookmarkr_news.services.source_registry import SourceRegistry
from bookmarkr_news.services.storage import InMemoryStorage
from bookmarkr_news.utils.logging_config import setup_logging
from bookmarkr_news.web.api import create_app


def build_storage(config: ServiceConfig) -> InMemoryStorage:
    if config.storage_seed_path:
        return InMemoryStorage.from_json_file(config.storage_seed_path)
    return InMemoryStorage()


def configure_logging(config: ServiceConfig) -> None:
    setup_logging(
        log_level=config.log_level,
        log_dir=config.log_dir,
        enable_file_logging=config.log_to_file,
        enable_structured_logging=config.structured_logs,
    )


def serve(config: ServiceConfig) -> None:
    aggregator = NewsAggregator.from_config(config)
    engine = RecommendationEngine(aggregator, build_storage(config))
    app = create_app(aggregator, engine)
    print(f"Serving {len(aggregator.registry)} sources on http://{config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


async def fetch_once(config: ServiceConfig, category: Optional[str], limit: int, as_json: bool) -> int:
    """Run one aggregation cycle and print the newest items."""
    async with NewsAggregator.from_config(config) as aggregator:
        if category:
            items = await aggregator.get_news_by_category(category)
        else:
            items = await aggregator.get_all_news()

        if as_json:
            print(json.dumps([item.to_dict() for item in items[:limit]], indent=2))
        else:
            print(f"{len(items)} items ({category or 'all categories'})")
            for item in items[:limit]:
                print(f"  [{item.category}] {item.title} ({item.source.name})")
                print(f"      {item.url}")

        stats = aggregator.get_fetch_statistics()
        for family, family_stats in stats["families"].items():
            print(f"  {family}: {family_stats['succeeded']}/{family_stats['attempted']} sources ok")
        return 0 if items else 1


def list_sources(category: Optional[str], kind: Optional[str]) -> int:
    sources = SourceRegistry.from_file().list_sources(category=category, kind=kind)
    for source in sources:
        print(f"{source.id:<24} {source.kind.value:<7} {source.category:<11} {source.name}")
    print(f"{len(sources)} sources")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bookmarkr news aggregation and recommendations")
    subparsers = parser.add_subparsers(dest='command')

    serve_parser = subparsers.add_parser('serve', help='Run the HTTP API')
    serve_parser.add_argument('--host', help='Bind address (default: HOST or 127.0.0.1)')
    serve_parser.add_argument('--port', type=int, help='Port (default: PORT or 5000)')

    fetch_parser = subparsers.add_parser('fetch', help='Run one aggregation cycle and print the result')
    fetch_parser.add_argument('--category', help='Only fetch this category')
    fetch_parser.add_argument('--limit', type=int, default=20, help='Items to print (default: 20)')
    fetch_parser.add_argument('--json', action='store_true', help='Print items as JSON')

    sources_parser = subparsers.add_parser('sources', help='List configured sources')
    sources_parser.add_argument('--category', help='Filter by category')
    sources_parser.add_argument('--kind', choices=['feed', 'crawl', 'social', 'api'], help='Filter by fetch strategy')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2

    try:
        config = ServiceConfig.from_environment()
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        return 2

    configure_logging(config)

    try:
        if args.command == 'serve':
            if args.host:
                config.host = args.host
            if args.port:
                config.port = args.port
            serve(config)
            return 0
        if args.command == 'fetch':
            return asyncio.run(fetch_once(config, args.category, args.limit, args.json))
        return list_sources(args.category, args.kind)
    except KeyboardInterrupt:
        print("\n⚠️ Shutting down gracefully...")
        return 0
    except Exception as e:  # noqa: BLE001
        print(f"❌ Fatal error: {e}")
        logging.exception("Fatal error in main")
        return 1


if __name__ == "__main__":
    sys.exit(main())
