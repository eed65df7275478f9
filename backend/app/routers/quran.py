from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_session
from app.models.db import Ayah, AyahTafsir, AyahTranslation, QuranTafsir, QuranTranslation, Surah
from app.models.schemas import (
    AyahListResponse,
    AyahTafsirResponse,
    AyahTranslationResponse,
    QuranEditionResponse,
    SurahDetailResponse,
    SurahResponse,
    TafsirEditionResponse,
)
from app.services.source_urls import quran_url, tafsir_source_url, translation_source_url

router = APIRouter(prefix="/quran", tags=["quran"])


def _ayah_dict(ayah: Ayah, surah_number: int) -> dict:
    return {
        "surah_number": surah_number,
        "ayah_number": ayah.ayah_number,
        "text_uthmani": ayah.text_uthmani,
        "text_plain": ayah.text_plain,
        "juz_number": ayah.juz_number,
        "page_number": ayah.page_number,
        "quran_com_url": quran_url(surah_number, ayah.ayah_number),
    }


@router.get("/surahs", response_model=list[SurahResponse])
async def list_surahs(session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(Surah).order_by(Surah.number))
    return result.scalars().all()


@router.get("/surahs/{number}", response_model=SurahDetailResponse)
async def get_surah(number: int, session: AsyncSession = Depends(get_session)):
    """A surah with all of its ayahs in order."""
    surah = await session.scalar(
        select(Surah).options(selectinload(Surah.ayahs)).where(Surah.number == number)
    )
    if surah is None:
        raise HTTPException(status_code=404, detail="Surah not found")

    return {
        "number": surah.number,
        "name_arabic": surah.name_arabic,
        "name_english": surah.name_english,
        "revelation_type": surah.revelation_type,
        "ayah_count": surah.ayah_count,
        "ayahs": [_ayah_dict(a, surah.number) for a in surah.ayahs],
    }


@router.get("/ayahs", response_model=AyahListResponse)
async def list_ayahs(
    surah: int | None = Query(None, ge=1, le=114),
    juz: int | None = Query(None, ge=1, le=30),
    page: int | None = Query(None, ge=1, le=604),
    limit: int = Query(50, ge=1, le=300),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    conditions = []
    if surah is not None:
        conditions.append(Surah.number == surah)
    if juz is not None:
        conditions.append(Ayah.juz_number == juz)
    if page is not None:
        conditions.append(Ayah.page_number == page)

    rows = await session.execute(
        select(Ayah, Surah.number)
        .join(Surah, Ayah.surah_id == Surah.id)
        .where(*conditions)
        .order_by(Ayah.surah_id, Ayah.ayah_number)
        .limit(limit)
        .offset(offset)
    )
    total = await session.scalar(
        select(func.count(Ayah.id)).join(Surah, Ayah.surah_id == Surah.id).where(*conditions)
    )
    return {
        "ayahs": [_ayah_dict(ayah, surah_number) for ayah, surah_number in rows.all()],
        "total": total or 0,
        "limit": limit,
        "offset": offset,
    }


@router.get("/translations", response_model=list[QuranEditionResponse])
async def list_translations(
    language: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    stmt = select(QuranTranslation).order_by(QuranTranslation.language, QuranTranslation.name)
    if language:
        stmt = stmt.where(QuranTranslation.language == language)
    result = await session.execute(stmt)
    return result.scalars().all()


@router.get("/translations/{surah}/{ayah}", response_model=list[AyahTranslationResponse])
async def ayah_translations(
    surah: int,
    ayah: int,
    language: str | None = None,
    edition_id: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    """All stored translations of one ayah, optionally narrowed by edition or language."""
    stmt = (
        select(AyahTranslation)
        .options(selectinload(AyahTranslation.edition))
        .where(AyahTranslation.surah_number == surah, AyahTranslation.ayah_number == ayah)
    )
    if edition_id:
        stmt = stmt.where(AyahTranslation.edition_id == edition_id)
    elif language:
        stmt = stmt.where(AyahTranslation.language == language)

    result = await session.execute(stmt)
    return [
        {
            "edition_id": t.edition_id,
            "language": t.language,
            "name": t.edition.name,
            "text": t.text,
            "source_url": translation_source_url(t.edition_id),
        }
        for t in result.scalars().all()
    ]


@router.get("/tafsirs", response_model=list[TafsirEditionResponse])
async def list_tafsirs(
    language: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    stmt = select(QuranTafsir).order_by(QuranTafsir.language, QuranTafsir.name)
    if language:
        stmt = stmt.where(QuranTafsir.language == language)
    result = await session.execute(stmt)
    return result.scalars().all()


@router.get("/tafsir/{surah}/{ayah}", response_model=list[AyahTafsirResponse])
async def ayah_tafsir(
    surah: int = Path(..., ge=1, le=114),
    ayah: int = Path(..., ge=1),
    source: str | None = None,
    edition_id: str | None = None,
    language: str | None = None,
    session: AsyncSession = Depends(get_session),
):
    """Tafsir entries for one ayah.

    ``edition_id`` wins over ``source`` (the short legacy slug); ``language``
    narrows either.
    """
    stmt = (
        select(AyahTafsir)
        .options(selectinload(AyahTafsir.edition))
        .where(AyahTafsir.surah_number == surah, AyahTafsir.ayah_number == ayah)
        .order_by(AyahTafsir.edition_id)
    )
    if edition_id:
        stmt = stmt.where(AyahTafsir.edition_id == edition_id)
    elif source:
        stmt = stmt.where(AyahTafsir.source == source)
    if language:
        stmt = stmt.where(AyahTafsir.language == language)

    result = await session.execute(stmt)
    return [
        {
            "edition_id": t.edition_id,
            "source": t.source,
            "language": t.language,
            "name": t.edition.name,
            "text": t.text,
            "source_url": tafsir_source_url(t.edition_id, surah),
        }
        for t in result.scalars().all()
    ]
