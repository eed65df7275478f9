from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_session
from app.models.db import Book, Category
from app.models.schemas import CategoryBooksResponse, CategoryListResponse
from app.services.source_urls import SOURCES, book_url

# Mounted ahead of the books router so "/books/categories" never reads as a book id
router = APIRouter(prefix="/books/categories", tags=["categories"])

CACHE_CONTROL = "public, max-age=86400, stale-while-revalidate=86400"


def build_category_tree(nodes: list[dict]) -> list[dict]:
    """Nest flat category rows under their parents.

    A row whose parent is missing from ``nodes`` becomes a root. Order within
    each level follows the input order.
    """
    by_id = {node["id"]: {**node, "children": []} for node in nodes}
    roots = []
    for node in nodes:
        item = by_id[node["id"]]
        parent = by_id.get(node["parent_id"]) if node["parent_id"] is not None else None
        if parent is not None and parent is not item:
            parent["children"].append(item)
        else:
            roots.append(item)
    return roots


@router.get("", response_model=CategoryListResponse)
async def list_categories(
    response: Response,
    flat: bool = False,
    session: AsyncSession = Depends(get_session),
):
    """All categories with their book counts, as a tree or as a flat list."""
    counts = (
        select(Book.category_id, func.count(Book.id).label("books_count"))
        .group_by(Book.category_id)
        .subquery()
    )
    rows = await session.execute(
        select(Category, func.coalesce(counts.c.books_count, 0))
        .outerjoin(counts, counts.c.category_id == Category.id)
        .order_by(Category.name_arabic)
    )
    nodes = [
        {
            "id": category.id,
            "code": category.code,
            "name_arabic": category.name_arabic,
            "name_english": category.name_english,
            "parent_id": category.parent_id,
            "books_count": books_count,
        }
        for category, books_count in rows.all()
    ]

    response.headers["Cache-Control"] = CACHE_CONTROL
    return {
        "categories": nodes if flat else build_category_tree(nodes),
        "sources": SOURCES["turath"],
    }


@router.get("/{category_id}", response_model=CategoryBooksResponse)
async def get_category(
    category_id: int,
    response: Response,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    category = await session.scalar(
        select(Category)
        .options(selectinload(Category.parent), selectinload(Category.children))
        .where(Category.id == category_id)
    )
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")

    total = await session.scalar(select(func.count(Book.id)).where(Book.category_id == category_id)) or 0
    result = await session.execute(
        select(Book)
        .options(selectinload(Book.author))
        .where(Book.category_id == category_id)
        .order_by(Book.title_arabic)
        .limit(limit)
        .offset(offset)
    )
    books = [
        {
            "id": book.id,
            "title_arabic": book.title_arabic,
            "title_latin": book.title_latin,
            "total_volumes": book.total_volumes,
            "total_pages": book.total_pages,
            "publication_year_hijri": book.publication_year_hijri,
            "author": book.author,
            "reference_url": book_url(book.id),
        }
        for book in result.scalars().all()
    ]

    response.headers["Cache-Control"] = CACHE_CONTROL
    return {
        "category": {
            "id": category.id,
            "code": category.code,
            "name_arabic": category.name_arabic,
            "name_english": category.name_english,
            "parent": category.parent,
            "children": sorted(category.children, key=lambda c: c.name_arabic),
        },
        "books": books,
        "total": total,
        "limit": limit,
        "offset": offset,
        "sources": SOURCES["turath"],
    }
