"""Create the Elasticsearch indices and bulk-load them from PostgreSQL.

Usage (from project root):
    python scripts/sync_elasticsearch.py [--recreate] [--skip-pages] [--only-catalog]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from elasticsearch.helpers import async_bulk
from sqlalchemy import select
from sqlalchemy.orm import selectinload

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
from app.models.db import Author, Ayah, Book, Hadith, HadithBook, Page, Surah  # noqa: E402
from app.services import search_index  # noqa: E402
from app.services.arabic_text import normalize_arabic_text  # noqa: E402

FETCH_SIZE = 2000
BULK_CHUNK_SIZE = 500

CATALOG_INDICES = (search_index.BOOKS_INDEX, search_index.AUTHORS_INDEX)


async def page_actions():
    last_id = 0
    async with async_session() as session:
        while True:
            result = await session.execute(
                select(Page).where(Page.id > last_id).order_by(Page.id).limit(FETCH_SIZE)
            )
            pages = result.scalars().all()
            if not pages:
                return
            for p in pages:
                yield {
                    "_index": search_index.PAGES_INDEX,
                    "_id": f"{p.book_id}-{p.page_number}",
                    "book_id": p.book_id,
                    "page_number": p.page_number,
                    "volume_number": p.volume_number,
                    "url_page_index": p.url_page_index,
                    "content_plain": p.content_plain,
                    "text_searchable": normalize_arabic_text(p.content_plain),
                }
            last_id = pages[-1].id
            session.expunge_all()


async def hadith_actions():
    last_id = 0
    async with async_session() as session:
        while True:
            result = await session.execute(
                select(Hadith)
                .options(selectinload(Hadith.book).selectinload(HadithBook.collection))
                .where(Hadith.id > last_id)
                .order_by(Hadith.id)
                .limit(FETCH_SIZE)
            )
            hadiths = result.scalars().all()
            if not hadiths:
                return
            for h in hadiths:
                book = h.book
                yield {
                    "_index": search_index.HADITHS_INDEX,
                    "_id": str(h.id),
                    "id": h.id,
                    "book_id": h.book_id,
                    "hadith_number": h.hadith_number,
                    "text_arabic": h.text_arabic,
                    "text_plain": h.text_plain,
                    "text_searchable": normalize_arabic_text(h.text_plain or h.text_arabic),
                    "chapter_arabic": h.chapter_arabic,
                    "chapter_english": h.chapter_english,
                    "grade": h.grade,
                    "book_number": book.book_number,
                    "book_name_arabic": book.name_arabic,
                    "book_name_english": book.name_english,
                    "collection_slug": book.collection.slug,
                    "collection_name_arabic": book.collection.name_arabic,
                    "collection_name_english": book.collection.name_english,
                }
            last_id = hadiths[-1].id
            session.expunge_all()


async def ayah_actions():
    async with async_session() as session:
        result = await session.execute(
            select(Ayah, Surah).join(Surah, Ayah.surah_id == Surah.id).order_by(Ayah.id)
        )
        for ayah, surah in result.all():
            yield {
                "_index": search_index.AYAHS_INDEX,
                "_id": str(ayah.id),
                "id": ayah.id,
                "ayah_number": ayah.ayah_number,
                "text_uthmani": ayah.text_uthmani,
                "text_plain": ayah.text_plain,
                "text_searchable": normalize_arabic_text(ayah.text_plain),
                "juz_number": ayah.juz_number,
                "page_number": ayah.page_number,
                "surah_number": surah.number,
                "surah_name_arabic": surah.name_arabic,
                "surah_name_english": surah.name_english,
            }


async def book_actions():
    async with async_session() as session:
        result = await session.execute(select(Book).options(selectinload(Book.author)).order_by(Book.id))
        for book in result.scalars().all():
            yield {
                "_index": search_index.BOOKS_INDEX,
                "_id": book.id,
                "id": book.id,
                "title_arabic": book.title_arabic,
                "title_latin": book.title_latin,
                "author_name_arabic": book.author.name_arabic if book.author else None,
                "author_name_latin": book.author.name_latin if book.author else None,
                "author_id": book.author_id,
                "category_id": book.category_id,
            }


async def author_actions():
    async with async_session() as session:
        result = await session.execute(select(Author).order_by(Author.id))
        for author in result.scalars().all():
            yield {
                "_index": search_index.AUTHORS_INDEX,
                "_id": author.id,
                "id": author.id,
                "name_arabic": author.name_arabic,
                "name_latin": author.name_latin,
                "death_date_hijri": author.death_date_hijri,
            }


async def load(name: str, actions) -> None:
    logger.info("Indexing %s...", name)
    success, errors = await async_bulk(
        search_index.get_client(),
        actions,
        chunk_size=BULK_CHUNK_SIZE,
        raise_on_error=False,
    )
    if errors:
        logger.warning("%s: %d documents failed, first error: %s", name, len(errors), errors[0])
    logger.info("Indexed %d %s.", success, name)


async def main():
    parser = argparse.ArgumentParser(description="Sync PostgreSQL content into Elasticsearch")
    parser.add_argument("--recreate", action="store_true", help="Drop and recreate the indices first")
    parser.add_argument("--skip-pages", action="store_true", help="Do not index book pages")
    parser.add_argument("--only-catalog", action="store_true", help="Only index the books and authors catalogs")
    args = parser.parse_args()

    only = CATALOG_INDICES if args.only_catalog else None
    await search_index.ensure_indices(recreate=args.recreate, only=only)

    try:
        if not args.only_catalog:
            if not args.skip_pages:
                await load("pages", page_actions())
            await load("hadiths", hadith_actions())
            await load("ayahs", ayah_actions())
        await load("books", book_actions())
        await load("authors", author_actions())

        await search_index.get_client().indices.refresh(index="_all")
    finally:
        await search_index.close_client()
        await engine.dispose()

    logger.info("Elasticsearch sync complete.")


if __name__ == "__main__":
    asyncio.run(main())
