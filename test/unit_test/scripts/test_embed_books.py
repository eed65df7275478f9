import json

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.db import Page
from scripts import embed_books

LONG_TEXT = "حدثنا عبد الله بن يوسف قال أخبرنا مالك عن نافع"


@pytest.fixture
def embedded(monkeypatch, test_engine) -> list[str]:
    """Run the page loop against the test database, collecting upserted point keys."""
    keys: list[str] = []

    async def ensure_collection(collection):
        return None

    async def upsert_points(collection, point_keys, embeddings, payloads):
        keys.extend(point_keys)

    monkeypatch.setattr(embed_books, "async_session", async_sessionmaker(test_engine, class_=AsyncSession))
    monkeypatch.setattr(embed_books, "ensure_collection", ensure_collection)
    monkeypatch.setattr(embed_books, "upsert_points", upsert_points)
    monkeypatch.setattr(embed_books, "embed_texts", lambda texts: [[0.0] * 4 for _ in texts])
    return keys


@pytest_asyncio.fixture
async def pages(seeded):
    seeded.add_all([
        Page(book_id="10", page_number=3, content_plain=LONG_TEXT),
        Page(book_id="20", page_number=1, content_plain=LONG_TEXT),
    ])
    await seeded.commit()


def test_checkpoint_scope():
    assert embed_books.checkpoint_scope(None) == "all"
    assert embed_books.checkpoint_scope("20") == "book:20"


async def test_book_run_does_not_advance_full_run(embedded, pages, tmp_path):
    checkpoint = tmp_path / "embed.json"

    await embed_books.embed_pages("20", batch_size=10, checkpoint=checkpoint)
    assert embedded == ["20-1"]

    await embed_books.embed_pages(None, batch_size=10, checkpoint=checkpoint)
    assert embedded == ["20-1", "10-3", "20-1"]

    state = json.loads(checkpoint.read_text(encoding="utf-8"))
    assert set(state) == {"book:20", "all"}
    assert state["book:20"]["pages_embedded"] == 1
    assert state["all"]["pages_embedded"] == 2
    assert state["all"]["last_page_id"] == state["book:20"]["last_page_id"]


async def test_resumes_after_checkpoint(embedded, pages, tmp_path):
    checkpoint = tmp_path / "embed.json"

    await embed_books.embed_pages(None, batch_size=1, checkpoint=checkpoint)
    assert embedded == ["10-3", "20-1"]

    embedded.clear()
    await embed_books.embed_pages(None, batch_size=1, checkpoint=checkpoint)
    assert embedded == []
