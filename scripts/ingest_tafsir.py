"""Ingest Quran tafsir editions into PostgreSQL.

Editions and their per-surah text come from the spa5k/tafsir_api CDN. Edition
metadata is synced on every run; an edition that already has entries is skipped
unless ``--force`` is given, which deletes and re-imports it.

Usage (from project root):
    python scripts/ingest_tafsir.py --all [--force]
    python scripts/ingest_tafsir.py --language en --language ar
    python scripts/ingest_tafsir.py --edition en-al-jalalayn
"""

import argparse
import asyncio
import hashlib
import logging
import sys
from pathlib import Path

import httpx
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert

# Configure logging BEFORE app imports (which may configure root logger first)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True,
)
logger = logging.getLogger(__name__)

# Add backend to path so we can import app modules
backend_dir = Path(__file__).resolve().parent.parent / "backend"
sys.path.insert(0, str(backend_dir))

from app.database import async_session, engine  # noqa: E402
from app.models.db import AyahTafsir, Base, QuranTafsir  # noqa: E402
from app.services.source_urls import LEGACY_TAFSIR_EDITIONS, TAFSIR_CDN  # noqa: E402

EDITIONS_URL = f"{TAFSIR_CDN}/editions.json"
EDITION_SOURCE = "spa5k-tafsir"
TOTAL_SURAHS = 114
BATCH_CONCURRENCY = 5
BATCH_DELAY = 1.0

LANGUAGE_CODES = {
    "arabic": "ar",
    "english": "en",
    "bengali": "bn",
    "urdu": "ur",
    "russian": "ru",
    "kurdish": "ku",
}
RTL_LANGUAGES = {"ar", "ur", "fa", "ku", "ps", "sd", "ug", "dv", "he"}

# edition id -> short slug stored in ayah_tafsirs.source
LEGACY_SOURCES = {edition: slug for slug, edition in LEGACY_TAFSIR_EDITIONS.items()}


def parse_editions(data: list[dict]) -> list[dict]:
    """Map the CDN's edition list onto ``quran_tafsirs`` rows."""
    editions = []
    for item in data:
        language_name = (item.get("language_name") or "").lower()
        language = LANGUAGE_CODES.get(language_name, language_name[:2])
        editions.append({
            "id": item["slug"],
            "language": language,
            "name": item["name"],
            "author": item.get("author_name") or None,
            "source": EDITION_SOURCE,
            "direction": "rtl" if language in RTL_LANGUAGES else "ltr",
        })
    return editions


def build_tafsir_rows(entries: list[dict], edition: dict) -> list[dict]:
    """One row per ayah entry; entries with blank text are dropped."""
    source = LEGACY_SOURCES.get(edition["id"], edition["id"])
    rows = []
    for entry in entries:
        text = (entry.get("text") or "").strip()
        if not text:
            continue
        surah, ayah = entry["surah"], entry["ayah"]
        rows.append({
            "surah_number": surah,
            "ayah_number": ayah,
            "edition_id": edition["id"],
            "source": source,
            "language": edition["language"],
            "text": text,
            "content_hash": hashlib.sha256(f"{surah}:{ayah}:{edition['id']}:{text}".encode("utf-8")).hexdigest(),
        })
    return rows


async def fetch_editions(client: httpx.AsyncClient) -> list[dict]:
    resp = await client.get(EDITIONS_URL)
    resp.raise_for_status()
    return parse_editions(resp.json())


async def fetch_surah_tafsir(client: httpx.AsyncClient, edition_id: str, surah_number: int) -> list[dict]:
    """One surah of an edition. Editions missing a surah answer 404, which yields no entries."""
    resp = await client.get(f"{TAFSIR_CDN}/{edition_id}/{surah_number}.json")
    if resp.status_code == 404:
        return []
    resp.raise_for_status()
    return resp.json().get("ayahs", [])


async def sync_editions(editions: list[dict]) -> None:
    async with async_session() as session:
        for edition in editions:
            stmt = insert(QuranTafsir).values(**edition)
            await session.execute(stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={
                    "language": stmt.excluded.language,
                    "name": stmt.excluded.name,
                    "author": stmt.excluded.author,
                    "direction": stmt.excluded.direction,
                },
            ))
        await session.commit()
    logger.info("Synced %d tafsir editions.", len(editions))


async def ingest_edition(client: httpx.AsyncClient, edition: dict, force: bool) -> int | None:
    """Import every surah of ``edition``. Returns the entry count, or None when skipped."""
    async with async_session() as session:
        existing = await session.scalar(
            select(func.count(AyahTafsir.id)).where(AyahTafsir.edition_id == edition["id"])
        )
        if existing and not force:
            logger.info("[%s] Already has %d entries, skipping (use --force).", edition["id"], existing)
            return None
        if existing:
            await session.execute(delete(AyahTafsir).where(AyahTafsir.edition_id == edition["id"]))
            await session.commit()
            logger.info("[%s] Deleted %d existing entries.", edition["id"], existing)

    imported = 0
    for i in range(1, TOTAL_SURAHS + 1, BATCH_CONCURRENCY):
        batch_end = min(i + BATCH_CONCURRENCY, TOTAL_SURAHS + 1)
        results = await asyncio.gather(
            *[fetch_surah_tafsir(client, edition["id"], s) for s in range(i, batch_end)]
        )
        rows = [row for entries in results for row in build_tafsir_rows(entries, edition)]
        if rows:
            async with async_session() as session:
                await session.execute(insert(AyahTafsir).values(rows).on_conflict_do_nothing())
                await session.commit()
            imported += len(rows)
        logger.info("[%s] Surahs %d-%d done, %d entries so far.", edition["id"], i, batch_end - 1, imported)

        if batch_end <= TOTAL_SURAHS:
            await asyncio.sleep(BATCH_DELAY)

    return imported


def select_editions(editions: list[dict], edition_id: str | None, languages: list[str] | None) -> list[dict]:
    if edition_id:
        return [e for e in editions if e["id"] == edition_id]
    if languages:
        return [e for e in editions if e["language"] in languages]
    return editions


async def main():
    parser = argparse.ArgumentParser(description="Ingest Quran tafsir editions into PostgreSQL")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--all", action="store_true", help="Import every available edition")
    group.add_argument("--language", action="append", help="Import editions in this language code (repeatable)")
    group.add_argument("--edition", help="Import a single edition by id")
    parser.add_argument("--force", action="store_true", help="Re-import editions that already have entries")
    args = parser.parse_args()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    failed = 0
    async with httpx.AsyncClient(timeout=30.0) as client:
        editions = await fetch_editions(client)
        logger.info("Found %d tafsir editions.", len(editions))
        await sync_editions(editions)

        selected = select_editions(editions, args.edition, args.language)
        if not selected:
            logger.error("No editions match; available: %s", ", ".join(e["id"] for e in editions))
            sys.exit(1)

        for n, edition in enumerate(selected, start=1):
            logger.info("=== [%d/%d] %s (%s) ===", n, len(selected), edition["name"], edition["language"])
            try:
                count = await ingest_edition(client, edition, args.force)
            except httpx.HTTPError as exc:
                logger.error("[%s] Import failed: %s", edition["id"], exc)
                failed += 1
                continue
            if count is not None:
                logger.info("[%s] Imported %d entries.", edition["id"], count)

    await engine.dispose()
    logger.info("Done: %d editions processed, %d failed.", len(selected), failed)


if __name__ == "__main__":
    asyncio.run(main())
