import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import Author, Ayah, Book, Category, Hadith, Page
from app.services.search.config import DB_STATS_CACHE_TTL_SECONDS
from app.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

_stats_cache: TTLCache[dict] = TTLCache(max_size=1, ttl_seconds=DB_STATS_CACHE_TTL_SECONDS)

_COUNTED = {
    "book_count": Book,
    "author_count": Author,
    "category_count": Category,
    "page_count": Page,
    "hadith_count": Hadith,
    "ayah_count": Ayah,
}


async def get_database_stats(session: AsyncSession) -> dict:
    """Row counts for the main content tables, cached for a few minutes."""
    cached = _stats_cache.get("stats")
    if cached is not None:
        return cached

    stats = {}
    for key, model in _COUNTED.items():
        stats[key] = await session.scalar(select(func.count()).select_from(model)) or 0

    _stats_cache.set("stats", stats)
    logger.debug("Refreshed database stats: %s", stats)
    return stats


def clear_stats_cache() -> None:
    _stats_cache.clear()
