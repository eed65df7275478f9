"""Import dictionary sources, entries, sub-entries and the word/root table from JSONL.

Each line is one JSON object with a ``type``:

    {"type": "source", "slug": "lisan", "name_arabic": "لسان العرب", "name_english": "Lisan al-Arab",
     "author": "Ibn Manzur", "book_id": "1687"}
    {"type": "entry", "source": "lisan", "root": "كتب", "headword": "كتب", "definition": "...",
     "definition_html": "...", "start_page": 12, "end_page": 14,
     "sub_entries": [{"headword": "الكِتَاب", "definition": "...", "page_number": 12}]}
    {"type": "root", "word": "مكتوب", "root": "كتب", "vocalized": "مَكْتُوب", "pattern": "مفعول",
     "word_type": "noun", "part_of_speech": "passive participle", "definition": "...", "source": "corpus"}

Normalized columns are computed here so lookups never normalize at query time.

Usage (from project root):
    python scripts/import_dictionary.py data/lisan.jsonl [data/roots.jsonl ...] [--replace]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from sqlalchemy import delete, select
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
from app.models.db import (  # noqa: E402
    ArabicRoot,
    Base,
    DictionaryEntry,
    DictionarySource,
    DictionarySubEntry,
)
from app.services.arabic_text import (  # noqa: E402
    extract_arabic_root,
    has_tashkeel,
    normalize_arabic,
    normalize_arabic_light,
    strip_definite_article,
)

BATCH_INSERT_SIZE = 500


def read_jsonl(path: Path):
    with path.open(encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning("%s:%d: skipping invalid JSON (%s)", path, line_no, exc)


def headword_columns(headword: str) -> dict:
    """Headword plus its normalized and (when vocalized) light-normalized forms."""
    return {
        "headword": headword,
        "headword_normalized": normalize_arabic(headword),
        "headword_vocalized": normalize_arabic_light(headword) if has_tashkeel(headword) else None,
    }


def root_columns(root: str | None, headword: str, fallback: str = "") -> dict:
    """Use the given root, else one derived from the headword, else ``fallback``."""
    if not root:
        root = extract_arabic_root(headword) or strip_definite_article(headword) or fallback
    return {"root": root, "root_normalized": normalize_arabic(root)}


class Importer:
    def __init__(self, session, replace: bool):
        self.session = session
        self.replace = replace
        self.source_ids: dict[str, int] = {}
        self.replaced: set[int] = set()
        self.roots: list[dict] = []
        self.counts = {"source": 0, "entry": 0, "sub_entry": 0, "root": 0}

    async def source_id(self, slug: str) -> int:
        if slug not in self.source_ids:
            source_id = await self.session.scalar(select(DictionarySource.id).where(DictionarySource.slug == slug))
            if source_id is None:
                raise ValueError(f"Unknown dictionary source {slug!r}; declare it before its entries")
            self.source_ids[slug] = source_id
        return self.source_ids[slug]

    async def add_source(self, record: dict) -> None:
        stmt = insert(DictionarySource).values(
            slug=record["slug"],
            name_arabic=record["name_arabic"],
            name_english=record.get("name_english", ""),
            author=record.get("author"),
            book_id=record.get("book_id"),
        )
        await self.session.execute(stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={
                "name_arabic": stmt.excluded.name_arabic,
                "name_english": stmt.excluded.name_english,
                "author": stmt.excluded.author,
                "book_id": stmt.excluded.book_id,
            },
        ))
        self.counts["source"] += 1

    async def _clear_source(self, source_id: int) -> None:
        if not self.replace or source_id in self.replaced:
            return
        logger.info("Replacing existing entries for source %d", source_id)
        await self.session.execute(delete(DictionarySubEntry).where(DictionarySubEntry.source_id == source_id))
        await self.session.execute(delete(DictionaryEntry).where(DictionaryEntry.source_id == source_id))
        self.replaced.add(source_id)

    async def add_entry(self, record: dict) -> None:
        source_id = await self.source_id(record["source"])
        await self._clear_source(source_id)

        book_id = record.get("book_id")
        entry_roots = root_columns(record.get("root"), record["headword"])
        entry = DictionaryEntry(
            source_id=source_id,
            **entry_roots,
            **headword_columns(record["headword"]),
            definition_plain=record["definition"],
            definition_html=record.get("definition_html"),
            book_id=book_id,
            start_page=record.get("start_page"),
            end_page=record.get("end_page"),
        )
        self.session.add(entry)
        await self.session.flush()
        self.counts["entry"] += 1

        for position, sub in enumerate(record.get("sub_entries") or []):
            self.session.add(DictionarySubEntry(
                source_id=source_id,
                entry_id=entry.id,
                **root_columns(sub.get("root"), sub["headword"], fallback=entry_roots["root"]),
                **headword_columns(sub["headword"]),
                definition_plain=sub["definition"],
                definition_html=sub.get("definition_html"),
                book_id=book_id,
                page_number=sub.get("page_number"),
                position=position,
            ))
            self.counts["sub_entry"] += 1

    async def add_root(self, record: dict) -> None:
        self.roots.append({
            "word": normalize_arabic(record["word"]),
            "root": normalize_arabic(record["root"]),
            "vocalized": record.get("vocalized"),
            "pattern": record.get("pattern"),
            "word_type": record.get("word_type"),
            "part_of_speech": record.get("part_of_speech"),
            "definition": record.get("definition"),
            "source": record.get("source"),
        })
        if len(self.roots) >= BATCH_INSERT_SIZE:
            await self.flush_roots()

    async def flush_roots(self) -> None:
        if not self.roots:
            return
        await self.session.execute(insert(ArabicRoot), self.roots)
        self.counts["root"] += len(self.roots)
        self.roots = []

    async def handle(self, record: dict) -> None:
        kind = record.get("type")
        if kind == "source":
            await self.add_source(record)
        elif kind == "entry":
            await self.add_entry(record)
        elif kind == "root":
            await self.add_root(record)
        else:
            logger.warning("Skipping record with unknown type %r", kind)


async def main():
    parser = argparse.ArgumentParser(description="Import dictionary JSONL files")
    parser.add_argument("files", nargs="+", type=Path)
    parser.add_argument("--replace", action="store_true", help="Delete existing entries of each imported source first")
    args = parser.parse_args()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        importer = Importer(session, args.replace)
        for path in args.files:
            logger.info("Importing %s...", path)
            for i, record in enumerate(read_jsonl(path), 1):
                await importer.handle(record)
                if i % BATCH_INSERT_SIZE == 0:
                    await session.flush()
                    logger.info("  %d records processed", i)
        await importer.flush_roots()
        await session.commit()

    await engine.dispose()
    logger.info(
        "Import complete: %d sources, %d entries, %d sub-entries, %d roots.",
        importer.counts["source"], importer.counts["entry"], importer.counts["sub_entry"], importer.counts["root"],
    )


if __name__ == "__main__":
    asyncio.run(main())
