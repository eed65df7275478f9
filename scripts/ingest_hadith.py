"""Ingest the Kutub al-Sittah (6 major hadith collections, ~34k hadiths) into PostgreSQL + Qdrant.

Uses hadithapi.com to fetch hadiths with Arabic text, English translation, and metadata.
Each hadithapi chapter becomes a HadithBook (they line up with sunnah.com books); the
English text is stored as a HadithTranslation so it is never replaced by an LLM one.

Usage (from project root):
    python scripts/ingest_hadith.py [--collection bukhari] [--skip-embed]
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

# Windows-specific: use SelectorEventLoop for httpx async compatibility
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Add backend to path so we can import app modules
backend_dir = Path(__file__).resolve().parent.parent / "backend"
sys.path.insert(0, str(backend_dir))

from app.config import settings  # noqa: E402
from app.database import async_session, engine  # noqa: E402
from app.models.db import Base, Hadith, HadithBook, HadithCollection, HadithTranslation  # noqa: E402
from app.services.arabic_text import normalize_arabic_text  # noqa: E402
from app.services.embedding import embed_texts  # noqa: E402
from app.services.vector_store import HADITH_COLLECTION, ensure_collection, upsert_points  # noqa: E402

API_BASE = "https://hadithapi.com/api/hadiths"
PAGE_SIZE = 300
EMBED_BATCH_SIZE = 100
TRANSLATION_SOURCE = "hadithapi"

# api_slug is hadithapi.com's name, slug is sunnah.com's
COLLECTIONS = [
    {"api_slug": "sahih-bukhari", "slug": "bukhari", "name_english": "Sahih al-Bukhari", "name_arabic": "صحيح البخاري"},
    {"api_slug": "sahih-muslim", "slug": "muslim", "name_english": "Sahih Muslim", "name_arabic": "صحيح مسلم"},
    {"api_slug": "al-tirmidhi", "slug": "tirmidhi", "name_english": "Jami` at-Tirmidhi", "name_arabic": "جامع الترمذي"},
    {"api_slug": "abu-dawood", "slug": "abudawud", "name_english": "Sunan Abi Dawud", "name_arabic": "سنن أبي داود"},
    {"api_slug": "ibn-e-majah", "slug": "ibnmajah", "name_english": "Sunan Ibn Majah", "name_arabic": "سنن ابن ماجه"},
    {"api_slug": "sunan-nasai", "slug": "nasai", "name_english": "Sunan an-Nasa'i", "name_arabic": "سنن النسائي"},
]


async def fetch_collection(client: httpx.AsyncClient, api_slug: str) -> list[dict]:
    """Fetch all hadiths for a single collection, paginating through all pages."""
    hadiths = []
    page = 1

    while True:
        params = {
            "apiKey": settings.hadith_api_key,
            "book": api_slug,
            "paginate": PAGE_SIZE,
            "page": page,
        }

        resp = await client.get(API_BASE, params=params)
        resp.raise_for_status()
        data = resp.json()

        page_hadiths = data.get("hadiths", {}).get("data", [])
        if not page_hadiths:
            break

        hadiths.extend(page_hadiths)

        last_page = data.get("hadiths", {}).get("last_page", page)
        logger.info(
            "Fetching %s page %d/%d... (%d hadiths so far)",
            api_slug, page, last_page, len(hadiths),
        )

        if page >= last_page:
            break

        page += 1
        await asyncio.sleep(1.0)

    logger.info("Fetched %d hadiths from %s.", len(hadiths), api_slug)
    return hadiths


def _chapter_number(chapter: dict) -> int | None:
    try:
        return int(str(chapter.get("chapterNumber", "")).strip())
    except ValueError:
        return None


def build_hadith_rows(hadiths: list[dict]) -> list[dict]:
    """Normalize API records; hadiths without Arabic text or chapter are skipped."""
    rows = []
    seen: set[tuple[int, str]] = set()

    for h in hadiths:
        arabic = (h.get("hadithArabic") or "").strip()
        chapter = h.get("chapter") or {}
        book_number = _chapter_number(chapter)
        hadith_number = str(h.get("hadithNumber", "")).strip()
        if not arabic or book_number is None or not hadith_number:
            continue
        if (book_number, hadith_number) in seen:
            continue
        seen.add((book_number, hadith_number))

        english = (h.get("hadithEnglish") or "").strip()
        narrator = (h.get("englishNarrator") or "").strip()

        rows.append({
            "book_number": book_number,
            "book_name_english": (chapter.get("chapterEnglish") or "").strip(),
            "book_name_arabic": (chapter.get("chapterArabic") or "").strip(),
            "hadith_number": hadith_number,
            "text_arabic": arabic,
            "text_plain": normalize_arabic_text(arabic),
            "chapter_arabic": (h.get("headingArabic") or "").strip() or None,
            "chapter_english": (h.get("headingEnglish") or "").strip() or None,
            "grade": (h.get("status") or "").strip() or None,
            # Narrator is part of the English hadith text
            "english": f"{narrator} {english}".strip() if narrator else english,
            "content_hash": hashlib.sha256(arabic.encode("utf-8")).hexdigest(),
        })

    return rows


async def store_collection(info: dict, rows: list[dict]) -> dict[int, int]:
    """Upsert the collection, its books, hadiths and English translations.

    Returns ``{book_number: hadith_books.id}``.
    """
    async with async_session() as session:
        stmt = insert(HadithCollection).values(
            slug=info["slug"], name_english=info["name_english"], name_arabic=info["name_arabic"],
        )
        await session.execute(stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={"name_english": stmt.excluded.name_english, "name_arabic": stmt.excluded.name_arabic},
        ))
        collection_id = await session.scalar(
            select(HadithCollection.id).where(HadithCollection.slug == info["slug"])
        )

        books: dict[int, dict] = {}
        for row in rows:
            books.setdefault(row["book_number"], row)

        book_ids: dict[int, int] = {}
        for book_number, row in sorted(books.items()):
            book_stmt = insert(HadithBook).values(
                collection_id=collection_id,
                book_number=book_number,
                name_english=row["book_name_english"],
                name_arabic=row["book_name_arabic"],
            )
            await session.execute(book_stmt.on_conflict_do_update(
                constraint="uq_hadith_book_number",
                set_={"name_english": book_stmt.excluded.name_english, "name_arabic": book_stmt.excluded.name_arabic},
            ))
            book_ids[book_number] = await session.scalar(
                select(HadithBook.id).where(
                    HadithBook.collection_id == collection_id, HadithBook.book_number == book_number,
                )
            )

        for row in rows:
            book_id = book_ids[row["book_number"]]
            hadith_stmt = insert(Hadith).values(
                book_id=book_id,
                hadith_number=row["hadith_number"],
                text_arabic=row["text_arabic"],
                text_plain=row["text_plain"],
                chapter_arabic=row["chapter_arabic"],
                chapter_english=row["chapter_english"],
                grade=row["grade"],
                content_hash=row["content_hash"],
            )
            await session.execute(hadith_stmt.on_conflict_do_update(
                constraint="uq_hadith_book_number_hadith",
                set_={
                    "text_arabic": hadith_stmt.excluded.text_arabic,
                    "text_plain": hadith_stmt.excluded.text_plain,
                    "chapter_arabic": hadith_stmt.excluded.chapter_arabic,
                    "chapter_english": hadith_stmt.excluded.chapter_english,
                    "grade": hadith_stmt.excluded.grade,
                    "content_hash": hadith_stmt.excluded.content_hash,
                },
            ))

            if row["english"]:
                tr_stmt = insert(HadithTranslation).values(
                    book_id=book_id,
                    hadith_number=row["hadith_number"],
                    language="en",
                    text=row["english"],
                    source=TRANSLATION_SOURCE,
                )
                # Source translations replace earlier machine translations
                await session.execute(tr_stmt.on_conflict_do_update(
                    constraint="uq_hadith_translation_lang",
                    set_={"text": tr_stmt.excluded.text, "source": TRANSLATION_SOURCE, "model": None},
                ))

        await session.commit()

    logger.info("Stored %s: %d books, %d hadiths.", info["slug"], len(book_ids), len(rows))
    return book_ids


async def embed_collection(info: dict, rows: list[dict], book_ids: dict[int, int]) -> None:
    total_batches = (len(rows) + EMBED_BATCH_SIZE - 1) // EMBED_BATCH_SIZE
    for i in range(0, len(rows), EMBED_BATCH_SIZE):
        batch = rows[i : i + EMBED_BATCH_SIZE]
        logger.info(
            "[%s] Embedding batch %d/%d (%d hadiths)...",
            info["slug"], i // EMBED_BATCH_SIZE + 1, total_batches, len(batch),
        )

        embeddings = await asyncio.to_thread(
            embed_texts, [f"{r['text_plain']} {r['english']}".strip() for r in batch],
        )
        keys = [f"{info['slug']}-{r['book_number']}-{r['hadith_number']}" for r in batch]
        payloads = [
            {
                "collection_slug": info["slug"],
                "collection_name_arabic": info["name_arabic"],
                "collection_name_english": info["name_english"],
                "book_id": book_ids[r["book_number"]],
                "book_number": r["book_number"],
                "book_name_arabic": r["book_name_arabic"],
                "book_name_english": r["book_name_english"],
                "hadith_number": r["hadith_number"],
                "text": r["text_arabic"],
                "chapter_arabic": r["chapter_arabic"],
                "chapter_english": r["chapter_english"],
                "grade": r["grade"],
            }
            for r in batch
        ]
        await upsert_points(HADITH_COLLECTION, keys, embeddings, payloads)


async def main():
    parser = argparse.ArgumentParser(description="Ingest hadith collections from hadithapi.com")
    parser.add_argument("--collection", action="append", help="sunnah.com slug to ingest (repeatable)")
    parser.add_argument("--skip-embed", action="store_true", help="Only write PostgreSQL rows")
    args = parser.parse_args()

    if not settings.hadith_api_key:
        logger.error("HADITH_API_KEY not set in .env, aborting.")
        sys.exit(1)

    collections = [c for c in COLLECTIONS if not args.collection or c["slug"] in args.collection]
    logger.info("Starting hadith ingestion for %d collections...", len(collections))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if not args.skip_embed:
        await ensure_collection(HADITH_COLLECTION)

    async with httpx.AsyncClient(timeout=30.0) as client:
        for info in collections:
            logger.info("=== Processing %s ===", info["name_english"])

            hadiths = await fetch_collection(client, info["api_slug"])
            rows = build_hadith_rows(hadiths)
            book_ids = await store_collection(info, rows)

            if not args.skip_embed:
                await embed_collection(info, rows, book_ids)

            logger.info("=== Done with %s ===", info["name_english"])

    await engine.dispose()
    logger.info("All collections ingested successfully!")


if __name__ == "__main__":
    asyncio.run(main())
