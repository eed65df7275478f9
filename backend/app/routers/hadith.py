from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_session
from app.models.db import Hadith, HadithBook, HadithCollection
from app.models.schemas import (
    HadithBookDetail,
    HadithCollectionDetail,
    HadithCollectionResponse,
    HadithResponse,
)
from app.services.source_urls import sunnah_url

router = APIRouter(prefix="/hadith", tags=["hadith"])

CACHE_CONTROL = "public, max-age=86400, stale-while-revalidate=86400"


def _hadith_dict(hadith: Hadith, slug: str, book_number: int) -> dict:
    return {
        "id": hadith.id,
        "book_id": hadith.book_id,
        "collection_slug": slug,
        "book_number": book_number,
        "hadith_number": hadith.hadith_number,
        "text_arabic": hadith.text_arabic,
        "chapter_arabic": hadith.chapter_arabic,
        "chapter_english": hadith.chapter_english,
        "isnad": hadith.isnad,
        "matn": hadith.matn,
        "grade": hadith.grade,
        "grader_name": hadith.grader_name,
        "source_url": sunnah_url(slug, hadith.hadith_number, book_number),
    }


@router.get("/collections", response_model=list[HadithCollectionResponse])
async def list_collections(response: Response, session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(HadithCollection).order_by(HadithCollection.id))
    response.headers["Cache-Control"] = CACHE_CONTROL
    return result.scalars().all()


@router.get("/collections/{slug}", response_model=HadithCollectionDetail)
async def get_collection(slug: str, response: Response, session: AsyncSession = Depends(get_session)):
    collection = await session.scalar(
        select(HadithCollection)
        .options(selectinload(HadithCollection.books))
        .where(HadithCollection.slug == slug)
    )
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    response.headers["Cache-Control"] = CACHE_CONTROL
    return collection


@router.get("/collections/{slug}/books/{book_number}", response_model=HadithBookDetail)
async def get_collection_book(
    slug: str,
    book_number: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    """One book of a collection with a page of its hadiths."""
    book = await session.scalar(
        select(HadithBook)
        .options(selectinload(HadithBook.collection))
        .join(HadithCollection, HadithBook.collection_id == HadithCollection.id)
        .where(HadithCollection.slug == slug, HadithBook.book_number == book_number)
    )
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found")

    result = await session.execute(
        select(Hadith)
        .where(Hadith.book_id == book.id)
        .order_by(Hadith.id)
        .limit(limit)
        .offset(offset)
    )
    total = await session.scalar(select(func.count(Hadith.id)).where(Hadith.book_id == book.id))

    return {
        "collection": book.collection,
        "book": book,
        "hadiths": [_hadith_dict(h, slug, book_number) for h in result.scalars().all()],
        "total": total or 0,
        "limit": limit,
        "offset": offset,
    }


@router.get("/collections/{slug}/{number}", response_model=HadithResponse)
async def get_hadith(slug: str, number: str, session: AsyncSession = Depends(get_session)):
    row = (await session.execute(
        select(Hadith, HadithBook.book_number)
        .join(HadithBook, Hadith.book_id == HadithBook.id)
        .join(HadithCollection, HadithBook.collection_id == HadithCollection.id)
        .where(HadithCollection.slug == slug, Hadith.hadith_number == number)
        .limit(1)
    )).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Hadith not found")

    hadith, book_number = row
    return _hadith_dict(hadith, slug, book_number)
