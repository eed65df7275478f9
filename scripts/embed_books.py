"""Embed book pages and authors into Qdrant.

Pages are read from PostgreSQL in id order; the last embedded page id is written to a
checkpoint file after every batch so an interrupted run resumes where it stopped.
A run limited to one book keeps its own entry in the checkpoint.

Usage (from project root):
    python scripts/embed_books.py [--book-id 1234] [--batch-size 64] [--reset] [--skip-authors]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from sqlalchemy import func, select

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
from app.models.db import Author, Book, Page  # noqa: E402
from app.services.arabic_text import normalize_arabic_text  # noqa: E402
from app.services.embedding import embed_texts  # noqa: E402
from app.services.vector_store import (  # noqa: E402
    AUTHORS_COLLECTION,
    PAGES_COLLECTION,
    ensure_collection,
    upsert_points,
)

DEFAULT_CHECKPOINT = Path(__file__).resolve().parent / ".embed_books_checkpoint.json"
DEFAULT_BATCH_SIZE = 64
SNIPPET_CHARS = 300
MIN_PAGE_CHARS = 20


def checkpoint_scope(book_id: str | None) -> str:
    """Checkpoint key: ``all`` for a full run, ``book:<id>`` for a run limited to one book."""
    return f"book:{book_id}" if book_id else "all"


def load_checkpoint(path: Path) -> dict:
    if path.exists():
        return json.loads(path.read_text(encoding="utf-8"))
    return {}


def save_checkpoint(path: Path, data: dict) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data), encoding="utf-8")
    tmp.replace(path)


def page_payload(page: Page) -> dict:
    return {
        "book_id": page.book_id,
        "page_number": page.page_number,
        "volume_number": page.volume_number,
        "text_snippet": page.content_plain[:SNIPPET_CHARS],
    }


async def embed_pages(book_id: str | None, batch_size: int, checkpoint: Path) -> None:
    await ensure_collection(PAGES_COLLECTION)
    data = load_checkpoint(checkpoint)
    state = data.setdefault(checkpoint_scope(book_id), {"last_page_id": 0, "pages_embedded": 0})
    last_id = state["last_page_id"]

    async with async_session() as session:
        conditions = [Page.id > last_id]
        if book_id:
            conditions.append(Page.book_id == book_id)
        remaining = await session.scalar(select(func.count(Page.id)).where(*conditions))
        logger.info("Resuming after page id %d, %d pages to embed.", last_id, remaining or 0)

        while True:
            conditions[0] = Page.id > last_id
            result = await session.execute(
                select(Page).where(*conditions).order_by(Page.id).limit(batch_size)
            )
            pages = result.scalars().all()
            if not pages:
                break

            usable = [p for p in pages if len(p.content_plain.strip()) >= MIN_PAGE_CHARS]
            if usable:
                embeddings = await asyncio.to_thread(
                    embed_texts, [normalize_arabic_text(p.content_plain) for p in usable],
                )
                await upsert_points(
                    PAGES_COLLECTION,
                    [f"{p.book_id}-{p.page_number}" for p in usable],
                    embeddings,
                    [page_payload(p) for p in usable],
                )

            last_id = pages[-1].id
            state["last_page_id"] = last_id
            state["pages_embedded"] += len(usable)
            save_checkpoint(checkpoint, data)
            logger.info("Embedded %d pages so far (last id %d).", state["pages_embedded"], last_id)

            # Keep the identity map from growing across the whole table
            session.expunge_all()


async def embed_authors(batch_size: int) -> None:
    await ensure_collection(AUTHORS_COLLECTION)

    books_count = func.count(Book.id).label("books_count")
    async with async_session() as session:
        rows = (await session.execute(
            select(Author, books_count)
            .outerjoin(Book, Book.author_id == Author.id)
            .group_by(Author.id)
            .order_by(Author.id)
        )).all()

    logger.info("Embedding %d authors...", len(rows))
    for i in range(0, len(rows), batch_size):
        batch = rows[i : i + batch_size]
        texts = [f"{a.name_arabic} {a.name_latin}".strip() for a, _ in batch]
        embeddings = await asyncio.to_thread(embed_texts, texts)
        payloads = [
            {
                "author_id": a.id,
                "name_arabic": a.name_arabic,
                "name_latin": a.name_latin,
                "death_date_hijri": a.death_date_hijri,
                "death_date_gregorian": a.death_date_gregorian,
                "books_count": count,
            }
            for a, count in batch
        ]
        await upsert_points(AUTHORS_COLLECTION, [f"author-{a.id}" for a, _ in batch], embeddings, payloads)


async def main():
    parser = argparse.ArgumentParser(description="Embed book pages and authors into Qdrant")
    parser.add_argument("--book-id", help="Only embed pages of this book")
    parser.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE)
    parser.add_argument("--checkpoint", type=Path, default=DEFAULT_CHECKPOINT)
    parser.add_argument("--reset", action="store_true", help="Ignore and overwrite the checkpoint")
    parser.add_argument("--skip-authors", action="store_true")
    args = parser.parse_args()

    if args.reset and args.checkpoint.exists():
        args.checkpoint.unlink()

    await embed_pages(args.book_id, args.batch_size, args.checkpoint)
    if not args.skip_authors:
        await embed_authors(args.batch_size)

    await engine.dispose()
    logger.info("Book embedding complete.")


if __name__ == "__main__":
    asyncio.run(main())
