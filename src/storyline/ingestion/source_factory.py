"""
Source Factory - Seeds feed sources from configuration.
"""
import logging
from typing import Dict, List, Tuple

from storyline.services.config import SourceConfig
from storyline.services.database import Database

logger = logging.getLogger(__name__)

DEFAULT_BIAS_LABEL = "center"

# Outlet name (lowercase) -> bias label, used when a source omits one
BIAS_MAP: Dict[str, str] = {
    "bbc": "center",
    "bloomberg": "center",
    "cnet": "center",
    "engadget": "center",
    "financial times": "center",
    "forbes": "center-right",
    "marketwatch": "center",
    "mashable": "center-left",
    "new york times": "center-left",
    "politico": "center",
    "techcrunch": "center",
    "the guardian": "left",
    "the verge": "center-left",
    "vox": "left",
    "wired": "center-left",
    "ycombinator": "center",
}


def resolve_bias_label(source_config: SourceConfig) -> str:
    if source_config.bias_label:
        return source_config.bias_label
    return BIAS_MAP.get(source_config.name.strip().lower(), DEFAULT_BIAS_LABEL)


async def seed_sources(database: Database, sources: List[SourceConfig]) -> Tuple[int, int]:
    """
    Insert configured sources, keyed by feed URL.

    Returns:
        (inserted, skipped) counts; already known feed URLs are skipped
    """
    inserted = 0
    skipped = 0

    for source_config in sources:
        try:
            source_id = await database.add_source(
                name=source_config.name,
                feed_url=source_config.feed_url,
                bias_label=resolve_bias_label(source_config),
                is_active=source_config.active,
            )
        except Exception as e:
            logger.error(f"Failed to seed source {source_config.name} ({source_config.feed_url}): {e}")
            skipped += 1
            continue

        if source_id is None:
            skipped += 1
        else:
            inserted += 1
            logger.info(f"Seeded source: {source_config.name} ({source_config.feed_url})")

    logger.info(f"Source seeding complete: inserted={inserted}, skipped={skipped}")
    return inserted, skipped
