"""Ingest the full Quran (6,236 ayahs) into PostgreSQL + Qdrant.

Uses the alquran.cloud API to fetch Arabic (Uthmani) and English (Sahih International)
for each surah, stores surahs, ayahs and the English edition, then embeds every ayah
into the quran collection.

Usage (from project root):
    python scripts/ingest_quran.py [--skip-embed]
"""

import argparse
import asyncio
import hashlib
import logging
import sys
from pathlib import Path

import httpx
from sqlalchemy import select
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
from app.models.db import Ayah, AyahTranslation, Base, QuranTranslation, Surah  # noqa: E402
from app.services.arabic_text import normalize_arabic_text  # noqa: E402
from app.services.embedding import embed_texts  # noqa: E402
from app.services.vector_store import QURAN_COLLECTION, ensure_collection, upsert_points  # noqa: E402

API_BASE = "https://api.alquran.cloud/v1"
ARABIC_EDITION = "quran-uthmani"
ENGLISH_EDITION = "en.sahih"
TOTAL_SURAHS = 114
FETCH_BATCH_SIZE = 5
EMBED_BATCH_SIZE = 100

SAHIH_EDITION = {
    "id": "eng-ummmuhammad",
    "language": "en",
    "name": "Sahih International",
    "translator": "Umm Muhammad",
    "source": "alquran.cloud",
}


async def fetch_surah(client: httpx.AsyncClient, surah_number: int) -> dict:
    """Fetch a single surah in both Arabic and English editions."""
    url = f"{API_BASE}/surah/{surah_number}/editions/{ARABIC_EDITION},{ENGLISH_EDITION}"
    resp = await client.get(url)
    resp.raise_for_status()
    data = resp.json()

    if data["code"] != 200:
        raise RuntimeError(f"API error for surah {surah_number}: {data}")

    arabic_data = data["data"][0]
    english_data = data["data"][1]

    return {
        "number": surah_number,
        "name_arabic": arabic_data["name"],
        "name_english": arabic_data["englishName"],
        "revelation_type": arabic_data["revelationType"],
        "ayahs_arabic": arabic_data["ayahs"],
        "ayahs_english": english_data["ayahs"],
    }


async def fetch_all_surahs() -> list[dict]:
    surahs = []

    async with httpx.AsyncClient(timeout=30.0) as client:
        # Fetch in batches to be respectful to the API
        for i in range(1, TOTAL_SURAHS + 1, FETCH_BATCH_SIZE):
            batch_end = min(i + FETCH_BATCH_SIZE, TOTAL_SURAHS + 1)
            logger.info("Fetching surahs %d-%d...", i, batch_end - 1)

            results = await asyncio.gather(*[fetch_surah(client, n) for n in range(i, batch_end)])
            surahs.extend(results)

            if batch_end <= TOTAL_SURAHS:
                await asyncio.sleep(1.0)

    logger.info("Fetched all %d surahs.", len(surahs))
    return surahs


def build_ayah_rows(surah: dict) -> list[dict]:
    """One row per ayah, with the English text carried alongside for translations."""
    rows = []
    for ar_ayah, en_ayah in zip(surah["ayahs_arabic"], surah["ayahs_english"]):
        text = ar_ayah["text"]
        rows.append({
            "ayah_number": ar_ayah["numberInSurah"],
            "text_uthmani": text,
            "text_plain": normalize_arabic_text(text),
            "juz_number": ar_ayah["juz"],
            "page_number": ar_ayah["page"],
            "content_hash": hashlib.sha256(text.encode("utf-8")).hexdigest(),
            "english": en_ayah["text"],
        })
    return rows


async def store_surahs(surahs: list[dict]) -> list[dict]:
    """Upsert surahs, ayahs and the Sahih International edition.

    Returns the flattened ayah records used for embedding.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    records = []
    async with async_session() as session:
        await session.execute(
            insert(QuranTranslation).values(**SAHIH_EDITION).on_conflict_do_nothing(index_elements=["id"])
        )

        for surah in surahs:
            rows = build_ayah_rows(surah)
            stmt = insert(Surah).values(
                number=surah["number"],
                name_arabic=surah["name_arabic"],
                name_english=surah["name_english"],
                revelation_type=surah["revelation_type"],
                ayah_count=len(rows),
            )
            await session.execute(stmt.on_conflict_do_update(
                index_elements=["number"],
                set_={
                    "name_arabic": stmt.excluded.name_arabic,
                    "name_english": stmt.excluded.name_english,
                    "revelation_type": stmt.excluded.revelation_type,
                    "ayah_count": stmt.excluded.ayah_count,
                },
            ))
            surah_id = await session.scalar(select(Surah.id).where(Surah.number == surah["number"]))

            for row in rows:
                ayah_stmt = insert(Ayah).values(
                    surah_id=surah_id,
                    ayah_number=row["ayah_number"],
                    text_uthmani=row["text_uthmani"],
                    text_plain=row["text_plain"],
                    juz_number=row["juz_number"],
                    page_number=row["page_number"],
                    content_hash=row["content_hash"],
                )
                await session.execute(ayah_stmt.on_conflict_do_update(
                    constraint="uq_ayah_surah_number",
                    set_={
                        "text_uthmani": ayah_stmt.excluded.text_uthmani,
                        "text_plain": ayah_stmt.excluded.text_plain,
                        "juz_number": ayah_stmt.excluded.juz_number,
                        "page_number": ayah_stmt.excluded.page_number,
                        "content_hash": ayah_stmt.excluded.content_hash,
                    },
                ))

                tr_stmt = insert(AyahTranslation).values(
                    surah_number=surah["number"],
                    ayah_number=row["ayah_number"],
                    language=SAHIH_EDITION["language"],
                    edition_id=SAHIH_EDITION["id"],
                    text=row["english"],
                )
                await session.execute(tr_stmt.on_conflict_do_update(
                    constraint="uq_ayah_translation_edition",
                    set_={"text": tr_stmt.excluded.text},
                ))

                records.append({**row, "surah": surah})

            await session.commit()
            logger.info("Stored surah %d (%d ayahs).", surah["number"], len(rows))

    return records


async def embed_ayahs(records: list[dict]) -> None:
    await ensure_collection(QURAN_COLLECTION)

    total_batches = (len(records) + EMBED_BATCH_SIZE - 1) // EMBED_BATCH_SIZE
    for i in range(0, len(records), EMBED_BATCH_SIZE):
        batch = records[i : i + EMBED_BATCH_SIZE]
        logger.info("Embedding batch %d/%d (%d ayahs)...", i // EMBED_BATCH_SIZE + 1, total_batches, len(batch))

        # Arabic plus English so that English queries land on the right ayah
        embeddings = await asyncio.to_thread(
            embed_texts, [f"{r['text_plain']} {r['english']}" for r in batch],
        )
        keys = [f"{r['surah']['number']}-{r['ayah_number']}" for r in batch]
        payloads = [
            {
                "surah_number": r["surah"]["number"],
                "ayah_number": r["ayah_number"],
                "surah_name_arabic": r["surah"]["name_arabic"],
                "surah_name_english": r["surah"]["name_english"],
                "text": r["text_uthmani"],
                "juz_number": r["juz_number"],
                "page_number": r["page_number"],
                "content_hash": r["content_hash"],
            }
            for r in batch
        ]
        await upsert_points(QURAN_COLLECTION, keys, embeddings, payloads)


async def main():
    parser = argparse.ArgumentParser(description="Ingest the Quran into PostgreSQL and Qdrant")
    parser.add_argument("--skip-embed", action="store_true", help="Only write PostgreSQL rows")
    args = parser.parse_args()

    logger.info("Starting Quran ingestion...")

    surahs = await fetch_all_surahs()
    records = await store_surahs(surahs)

    if not args.skip_embed:
        await embed_ayahs(records)

    await engine.dispose()
    logger.info("Done! %d ayahs ingested.", len(records))


if __name__ == "__main__":
    asyncio.run(main())
