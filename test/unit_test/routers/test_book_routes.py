import pytest

from app.routers import books


@pytest.fixture
def catalog(monkeypatch):
    """Scripted catalog index answers; None means the index is unavailable."""
    answers = {"books": None, "authors": None}

    async def books_catalog(query, limit):
        return answers["books"]

    async def authors_catalog(query, limit):
        return answers["authors"]

    monkeypatch.setattr(books, "search_books_catalog", books_catalog)
    monkeypatch.setattr(books, "search_authors_catalog", authors_catalog)
    return answers


async def test_list_books_sorted_by_title(client, seeded):
    data = (await client.get("/api/books")).json()

    assert data["total"] == 2
    assert [b["id"] for b in data["books"]] == ["20", "10"]
    riyad = data["books"][1]
    assert riyad["author"]["name_latin"] == "al-Nawawi"
    assert riyad["category"]["name_english"] == "Fiqh"
    assert riyad["reference_url"] == "https://app.turath.io/book/10"


async def test_list_books_filters(client, seeded):
    data = (await client.get("/api/books", params={"author_id": "200"})).json()
    assert [b["id"] for b in data["books"]] == ["20"]

    data = (await client.get("/api/books", params={"category_id": 1})).json()
    assert [b["id"] for b in data["books"]] == ["10"]


async def test_search_keeps_catalog_rank(client, seeded, catalog):
    catalog["books"] = ["10", "999", "20"]

    data = (await client.get("/api/books", params={"search": "kitab"})).json()

    assert data["total"] == 2
    assert [b["id"] for b in data["books"]] == ["10", "20"]


async def test_search_without_catalog_hits(client, seeded, catalog):
    catalog["books"] = []
    data = (await client.get("/api/books", params={"search": "nothing"})).json()
    assert data == {"books": [], "total": 0, "limit": 20, "offset": 0}


async def test_search_falls_back_to_sql(client, seeded, catalog):
    data = (await client.get("/api/books", params={"search": "Ihya"})).json()
    assert [b["id"] for b in data["books"]] == ["20"]


async def test_list_authors_with_counts(client, seeded, catalog):
    data = (await client.get("/api/books/authors")).json()
    assert [(a["id"], a["books_count"]) for a in data["authors"]] == [("100", 1), ("200", 1)]

    catalog["authors"] = ["200"]
    data = (await client.get("/api/books/authors", params={"search": "غزالي"})).json()
    assert [a["name_latin"] for a in data["authors"]] == ["al-Ghazali"]
    assert data["total"] == 1


async def test_get_author_with_books(client, seeded):
    data = (await client.get("/api/books/authors/100")).json()

    assert data["books_count"] == 1
    assert [b["title_latin"] for b in data["books"]] == ["Riyad al-Salihin"]

    assert (await client.get("/api/books/authors/404")).status_code == 404


async def test_get_book(client, seeded):
    data = (await client.get("/api/books/10")).json()
    assert data["title_arabic"] == "رياض الصالحين"

    assert (await client.get("/api/books/404")).status_code == 404


async def test_get_page_with_translation(client, seeded):
    from sqlalchemy import select

    from app.models.db import Page, PageTranslation

    page = (await seeded.execute(select(Page).where(Page.book_id == "10", Page.page_number == 1))).scalar_one()
    seeded.add(PageTranslation(page_id=page.id, language="en", model="m",
                               paragraphs=[{"index": 0, "translation": "Chapter of sincerity"}]))
    await seeded.commit()

    plain = (await client.get("/api/books/10/pages/1")).json()
    assert plain["reference_url"] == "https://app.turath.io/book/10#p-1"
    assert "translation" not in plain

    translated = (await client.get("/api/books/10/pages/1", params={"lang": "en"})).json()
    assert translated["translation"] == [{"index": 0, "translation": "Chapter of sincerity"}]
    assert translated["translation_model"] == "m"

    assert (await client.get("/api/books/10/pages/50")).status_code == 404
