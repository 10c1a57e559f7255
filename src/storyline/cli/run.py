import argparse
import asyncio
import json
import logging
import os
import time
from typing import Any

from storyline.ingestion.rss import RSSFeedFetcher
from storyline.ingestion.source_factory import seed_sources
from storyline.services.config import Config, load_config
from storyline.services.logging import setup_logging
from storyline.services.scheduler import run_forever
from storyline.workflows.pipeline_factory import NewsPipeline, create_pipeline

logger = logging.getLogger(__name__)

COMMANDS = [
    "init-db", "seed", "sync", "enrich", "digest",
    "run-all", "schedule", "validate-feed", "health",
]


def _print(result: Any) -> None:
    print(json.dumps(result, indent=2, default=str))


def _ensure_db_dir(path: str) -> None:
    db_dir = os.path.dirname(path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)


async def _prepare(config: Config, auto_seed: bool = True) -> NewsPipeline:
    _ensure_db_dir(config.DATABASE_PATH)
    pipeline = create_pipeline(config)
    await pipeline.initialize()

    # First start: seed from config
    if auto_seed and not await pipeline.db.get_sources():
        logger.info("No sources found, seeding from config")
        await seed_sources(pipeline.db, config.sources)
    return pipeline


async def execute(command: str, config: Config, url: str | None = None) -> Any:
    if command == "validate-feed":
        if not url:
            raise SystemExit("validate-feed requires a URL")
        result = await RSSFeedFetcher(timeout=config.FETCH_TIMEOUT).validate(url)
        return result.model_dump()

    pipeline = await _prepare(config, auto_seed=command != "seed")

    if command == "init-db":
        return {"database": os.path.abspath(config.DATABASE_PATH)}

    if command == "seed":
        inserted, skipped = await seed_sources(pipeline.db, config.sources)
        return {"inserted": inserted, "skipped": skipped}

    if command == "sync":
        return (await pipeline.run_sync()).to_dict()

    if command == "enrich":
        return {"enriched": await pipeline.run_enrichment()}

    if command == "digest":
        return {"created": await pipeline.run_digest()}

    if command == "run-all":
        return await pipeline.run_all()

    if command == "health":
        llm = pipeline.enrichment.llm
        return {
            "llm_available": pipeline.enrichment_available(),
            "llm_reachable": await llm.health_check() if llm is not None and llm.available() else False,
            "counts": await pipeline.db.get_counts(),
        }

    if command == "schedule":
        await run_forever(
            pipeline,
            sync_interval_minutes=config.SYNC_INTERVAL_MINUTES,
            digest_hour=config.DIGEST_HOUR,
        )
        return None

    raise SystemExit(f"Unknown command: {command}")


def main() -> None:
    parser = argparse.ArgumentParser(description='storyline news pipeline')
    parser.add_argument('command', choices=COMMANDS, help='Command to execute')
    parser.add_argument('url', nargs='?', help='Feed URL (validate-feed only)')
    parser.add_argument('--config', default=None,
                        help='Path to config.yml (default: resources/config.yml)')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    start_time = time.perf_counter()
    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    config = load_config(args.config)

    result = asyncio.run(execute(args.command, config, url=args.url))
    if result is not None:
        _print(result)

    logger.info(f"Command {args.command} finished in {time.perf_counter() - start_time:.2f}s")


if __name__ == "__main__":
    main()
