"""Translate hadiths that have no translation in a language yet, through the LLM.

A fixed pool of workers each takes a batch of hadiths, translates it in one LLM call
and stores the results. Hadiths already translated (by a human source or an earlier
run) are never picked up, and the checkpoint file records progress and the ids of
hadiths whose batch failed so a rerun skips them unless ``--retry-failed`` is given.

Usage (from project root):
    python scripts/translate_hadiths.py --language en [--collection bukhari] [--concurrency 4] [--limit 500]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from sqlalchemy import and_, select

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

from app.config import settings  # noqa: E402
from app.database import async_session, engine  # noqa: E402
from app.models.db import Hadith, HadithBook, HadithCollection, HadithTranslation  # noqa: E402
from app.services.translation import MAX_BATCH, request_translations, save_translation  # noqa: E402

DEFAULT_CHECKPOINT = Path(__file__).resolve().parent / ".translate_hadiths_checkpoint.json"
DEFAULT_CONCURRENCY = 4
FETCH_SIZE = 500


class Checkpoint:
    """Per-language progress persisted as JSON after every batch."""

    def __init__(self, path: Path, language: str):
        self.path = path
        self.language = language
        self.data = json.loads(path.read_text(encoding="utf-8")) if path.exists() else {}
        self.state = self.data.setdefault(language, {"translated": 0, "batches": 0, "failed": []})
        self.lock = asyncio.Lock()

    @property
    def failed(self) -> set[int]:
        return set(self.state["failed"])

    def clear_failed(self) -> None:
        self.state["failed"] = []

    async def record(self, translated: int, failed_ids: list[int]) -> None:
        async with self.lock:
            self.state["translated"] += translated
            self.state["batches"] += 1
            self.state["failed"] = sorted(set(self.state["failed"]) | set(failed_ids))
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(self.data, indent=2), encoding="utf-8")
            tmp.replace(self.path)


async def fetch_untranslated(language: str, after_id: int, collections: list[str] | None) -> list[tuple[int, int, str, str]]:
    """``(id, book_id, hadith_number, text_arabic)`` for hadiths lacking ``language``."""
    stmt = (
        select(Hadith.id, Hadith.book_id, Hadith.hadith_number, Hadith.text_arabic)
        .outerjoin(
            HadithTranslation,
            and_(
                HadithTranslation.book_id == Hadith.book_id,
                HadithTranslation.hadith_number == Hadith.hadith_number,
                HadithTranslation.language == language,
            ),
        )
        .where(HadithTranslation.id.is_(None), Hadith.id > after_id)
        .order_by(Hadith.id)
        .limit(FETCH_SIZE)
    )
    if collections:
        stmt = (
            stmt.join(HadithBook, Hadith.book_id == HadithBook.id)
            .join(HadithCollection, HadithBook.collection_id == HadithCollection.id)
            .where(HadithCollection.slug.in_(collections))
        )
    async with async_session() as session:
        return [tuple(row) for row in (await session.execute(stmt)).all()]


async def produce(queue: asyncio.Queue, args, skip: set[int], workers: int) -> None:
    last_id = 0
    queued = 0
    batch: list[tuple] = []
    while args.limit is None or queued < args.limit:
        rows = await fetch_untranslated(args.language, last_id, args.collection)
        if not rows:
            break
        last_id = rows[-1][0]
        for row in rows:
            if row[0] in skip:
                continue
            if args.limit is not None and queued >= args.limit:
                break
            batch.append(row)
            queued += 1
            if len(batch) == MAX_BATCH:
                await queue.put(batch)
                batch = []
    if batch:
        await queue.put(batch)

    logger.info("Queued %d hadiths for translation.", queued)
    for _ in range(workers):
        await queue.put(None)


async def worker(name: str, queue: asyncio.Queue, language: str, checkpoint: Checkpoint) -> None:
    while True:
        batch = await queue.get()
        if batch is None:
            return

        ids = [row[0] for row in batch]
        try:
            translated = await request_translations([row[3] for row in batch], language)
        except Exception as exc:
            logger.warning("[%s] Batch starting at hadith %d failed: %s", name, ids[0], exc)
            await checkpoint.record(0, ids)
            continue

        failed = []
        async with async_session() as session:
            try:
                for seq, (hadith_id, book_id, hadith_number, _) in enumerate(batch, start=1):
                    text = translated.get(seq)
                    if not text:
                        failed.append(hadith_id)
                        continue
                    await save_translation(session, book_id, hadith_number, language, text, settings.openrouter_model)
                await session.commit()
            except Exception:
                # A dead worker would leave the producer blocked on the full queue
                logger.exception("[%s] Saving batch starting at hadith %d failed", name, ids[0])
                await session.rollback()
                await checkpoint.record(0, ids)
                continue

        await checkpoint.record(len(batch) - len(failed), failed)
        logger.info(
            "[%s] Translated %d/%d (total %d)",
            name, len(batch) - len(failed), len(batch), checkpoint.state["translated"],
        )


async def main():
    parser = argparse.ArgumentParser(description="Translate untranslated hadiths with the LLM")
    parser.add_argument("--language", required=True, help="Target language code, e.g. en, ur, id")
    parser.add_argument("--collection", action="append", help="Limit to a collection slug (repeatable)")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Batches in flight at once")
    parser.add_argument("--limit", type=int, help="Stop after this many hadiths")
    parser.add_argument("--checkpoint", type=Path, default=DEFAULT_CHECKPOINT)
    parser.add_argument("--retry-failed", action="store_true", help="Include hadiths whose batch failed before")
    args = parser.parse_args()

    if not settings.openrouter_api_key:
        logger.error("OPENROUTER_API_KEY not set in .env, aborting.")
        sys.exit(1)

    checkpoint = Checkpoint(args.checkpoint, args.language)
    if args.retry_failed:
        checkpoint.clear_failed()
    skip = checkpoint.failed

    queue: asyncio.Queue = asyncio.Queue(maxsize=args.concurrency * 2)
    workers = [
        asyncio.create_task(worker(f"w{i}", queue, args.language, checkpoint))
        for i in range(args.concurrency)
    ]
    await produce(queue, args, skip, args.concurrency)
    for result in await asyncio.gather(*workers, return_exceptions=True):
        if isinstance(result, Exception):
            logger.error("Translation worker stopped: %r", result)

    await engine.dispose()
    logger.info(
        "Done: %d hadiths translated into %s, %d failed.",
        checkpoint.state["translated"], args.language, len(checkpoint.state["failed"]),
    )


if __name__ == "__main__":
    asyncio.run(main())
