import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_session
from app.models.db import Author, Book, Page, PageTranslation
from app.models.schemas import (
    AuthorListResponse,
    AuthorWithBooks,
    BookListResponse,
    BookSummary,
    PageResponse,
)
from app.services.keyword_search import search_authors_catalog, search_books_catalog
from app.services.source_urls import book_url, page_url

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/books", tags=["books"])

# Upper bound on ids pulled from the catalog index for one listing
CATALOG_SEARCH_LIMIT = 1000


def _book_dict(book: Book) -> dict:
    return {
        "id": book.id,
        "title_arabic": book.title_arabic,
        "title_latin": book.title_latin,
        "total_volumes": book.total_volumes,
        "total_pages": book.total_pages,
        "publication_year_hijri": book.publication_year_hijri,
        "author": book.author,
        "category": book.category,
        "reference_url": book_url(book.id),
    }


def _ordered_slice(ids: list[str], ranked: list[str], limit: int, offset: int) -> list[str]:
    """Keep the catalog ranking for the ids that survived the SQL filters."""
    allowed = set(ids)
    return [i for i in ranked if i in allowed][offset: offset + limit]


@router.get("", response_model=BookListResponse)
async def list_books(
    search: str | None = Query(None, max_length=200),
    author_id: str | None = None,
    category_id: int | None = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    """List books, ranked by the catalog index when a search term is given."""
    conditions = []
    ranked_ids = None
    if search:
        ranked_ids = await search_books_catalog(search, CATALOG_SEARCH_LIMIT)
        if ranked_ids == []:
            return {"books": [], "total": 0, "limit": limit, "offset": offset}
        if ranked_ids is None:
            pattern = f"%{search}%"
            conditions.append(or_(Book.title_arabic.ilike(pattern), Book.title_latin.ilike(pattern)))
        else:
            conditions.append(Book.id.in_(ranked_ids))
    if author_id:
        conditions.append(Book.author_id == author_id)
    if category_id is not None:
        conditions.append(Book.category_id == category_id)

    total = await session.scalar(select(func.count(Book.id)).where(*conditions)) or 0
    stmt = select(Book).options(selectinload(Book.author), selectinload(Book.category))

    if ranked_ids:
        matching = (await session.execute(select(Book.id).where(*conditions))).scalars().all()
        page_ids = _ordered_slice(list(matching), ranked_ids, limit, offset)
        result = await session.execute(stmt.where(Book.id.in_(page_ids)))
        by_id = {b.id: b for b in result.scalars().all()}
        books = [by_id[i] for i in page_ids if i in by_id]
    else:
        result = await session.execute(
            stmt.where(*conditions).order_by(Book.title_arabic).limit(limit).offset(offset)
        )
        books = result.scalars().all()

    return {"books": [_book_dict(b) for b in books], "total": total, "limit": limit, "offset": offset}


async def _books_counts(session: AsyncSession, author_ids: list[str]) -> dict[str, int]:
    if not author_ids:
        return {}
    rows = await session.execute(
        select(Book.author_id, func.count(Book.id))
        .where(Book.author_id.in_(author_ids))
        .group_by(Book.author_id)
    )
    return dict(rows.all())


def _author_dict(author: Author, books_count: int) -> dict:
    return {
        "id": author.id,
        "name_arabic": author.name_arabic,
        "name_latin": author.name_latin,
        "death_date_hijri": author.death_date_hijri,
        "death_date_gregorian": author.death_date_gregorian,
        "biography": author.biography,
        "books_count": books_count,
    }


@router.get("/authors", response_model=AuthorListResponse)
async def list_authors(
    search: str | None = Query(None, max_length=200),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    ranked_ids = None
    conditions = []
    if search:
        ranked_ids = await search_authors_catalog(search, CATALOG_SEARCH_LIMIT)
        if ranked_ids == []:
            return {"authors": [], "total": 0, "limit": limit, "offset": offset}
        if ranked_ids is None:
            pattern = f"%{search}%"
            conditions.append(or_(Author.name_arabic.ilike(pattern), Author.name_latin.ilike(pattern)))

    if ranked_ids:
        existing = (await session.execute(
            select(Author.id).where(Author.id.in_(ranked_ids))
        )).scalars().all()
        total = len(existing)
        page_ids = _ordered_slice(list(existing), ranked_ids, limit, offset)
        result = await session.execute(select(Author).where(Author.id.in_(page_ids)))
        by_id = {a.id: a for a in result.scalars().all()}
        authors = [by_id[i] for i in page_ids if i in by_id]
    else:
        total = await session.scalar(select(func.count(Author.id)).where(*conditions)) or 0
        result = await session.execute(
            select(Author).where(*conditions).order_by(Author.id).limit(limit).offset(offset)
        )
        authors = result.scalars().all()

    counts = await _books_counts(session, [a.id for a in authors])
    return {
        "authors": [_author_dict(a, counts.get(a.id, 0)) for a in authors],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/authors/{author_id}", response_model=AuthorWithBooks)
async def get_author(author_id: str, session: AsyncSession = Depends(get_session)):
    author = await session.get(Author, author_id)
    if author is None:
        raise HTTPException(status_code=404, detail="Author not found")

    result = await session.execute(
        select(Book)
        .options(selectinload(Book.author), selectinload(Book.category))
        .where(Book.author_id == author_id)
        .order_by(Book.title_arabic)
    )
    books = result.scalars().all()
    return {**_author_dict(author, len(books)), "books": [_book_dict(b) for b in books]}


@router.get("/{book_id}", response_model=BookSummary)
async def get_book(book_id: str, session: AsyncSession = Depends(get_session)):
    book = await session.scalar(
        select(Book)
        .options(selectinload(Book.author), selectinload(Book.category))
        .where(Book.id == book_id)
    )
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")
    return _book_dict(book)


@router.get("/{book_id}/pages/{page_number}", response_model=PageResponse, response_model_exclude_none=True)
async def get_page(
    book_id: str,
    page_number: int,
    lang: str | None = Query(None, max_length=10),
    session: AsyncSession = Depends(get_session),
):
    """A single page, with its stored paragraph translation when ``lang`` is given."""
    page = await session.scalar(
        select(Page).where(Page.book_id == book_id, Page.page_number == page_number)
    )
    if page is None:
        raise HTTPException(status_code=404, detail="Page not found")

    body = {
        "book_id": page.book_id,
        "page_number": page.page_number,
        "volume_number": page.volume_number,
        "url_page_index": page.url_page_index,
        "content_plain": page.content_plain,
        "content_html": page.content_html,
        "reference_url": page_url(page.book_id, page.page_number),
    }
    if lang:
        translation = await session.scalar(
            select(PageTranslation).where(PageTranslation.page_id == page.id, PageTranslation.language == lang)
        )
        if translation is not None:
            body["translation"] = translation.paragraphs
            body["translation_model"] = translation.model
    return body
