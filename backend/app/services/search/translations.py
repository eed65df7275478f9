import logging
import re

from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import AyahTranslation, HadithTranslation, Page, PageTranslation, QuranTranslation
from app.services.arabic_text import normalize_arabic
from app.services.search.params import SearchParams

logger = logging.getLogger(__name__)

_PARAGRAPH_RE = re.compile(r"<p\b[^>]*>(.*?)</p>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_HIGHLIGHT_RE = re.compile(r"</?mark>")

# Leading slice of the snippet used for a containment match
_PREFIX_CHARS = 60


def extract_paragraph_texts(html: str) -> list[str]:
    """Plain text of every ``<p>`` on a page, in document order."""
    return [_TAG_RE.sub("", m).strip() for m in _PARAGRAPH_RE.findall(html or "")]


def find_matching_paragraph_index(snippet: str, paragraphs: list[str]) -> int | None:
    """Index of the paragraph the snippet was taken from.

    Tries a containment match on the start of the snippet first, then falls
    back to the paragraph sharing the most words with it.
    """
    if not snippet or not paragraphs:
        return None

    target = normalize_arabic(_HIGHLIGHT_RE.sub("", snippet))
    normalized = [normalize_arabic(p) for p in paragraphs]

    prefix = target[:_PREFIX_CHARS].strip()
    if prefix:
        for i, text in enumerate(normalized):
            if prefix in text:
                return i

    words = set(target.split())
    best_index, best_overlap = None, 0
    for i, text in enumerate(normalized):
        overlap = len(words & set(text.split()))
        if overlap > best_overlap:
            best_index, best_overlap = i, overlap
    return best_index


async def _ayah_translations(session: AsyncSession, translation: str, ayahs: list[dict]) -> list[dict]:
    if translation == "none" or not ayahs:
        return ayahs

    # Values with a dash are edition ids (e.g. "eng-ummmuhammad"), others are languages
    by_edition = "-" in translation
    stmt = (
        select(AyahTranslation, QuranTranslation.name, QuranTranslation.source)
        .join(QuranTranslation, AyahTranslation.edition_id == QuranTranslation.id)
        .where(
            tuple_(AyahTranslation.surah_number, AyahTranslation.ayah_number).in_(
                [(a["surah_number"], a["ayah_number"]) for a in ayahs]
            )
        )
    )
    if by_edition:
        stmt = stmt.where(AyahTranslation.edition_id == translation)
    else:
        stmt = stmt.where(AyahTranslation.language == translation)

    rows = await session.execute(stmt)
    found: dict[tuple[int, int], dict] = {}
    for t, name, source in rows.all():
        found.setdefault((t.surah_number, t.ayah_number), {
            "translation": t.text,
            "translation_edition_id": t.edition_id,
            "translation_name": name,
            "translation_source": source,
        })

    return [{**a, **found.get((a["surah_number"], a["ayah_number"]), {})} for a in ayahs]


async def _hadith_translations(session: AsyncSession, language: str, hadiths: list[dict]) -> list[dict]:
    if language == "none" or not hadiths:
        return hadiths

    rows = await session.execute(
        select(HadithTranslation).where(
            HadithTranslation.language == language,
            tuple_(HadithTranslation.book_id, HadithTranslation.hadith_number).in_(
                [(h["book_id"], h["hadith_number"]) for h in hadiths]
            ),
        )
    )
    found = {(t.book_id, t.hadith_number): t for t in rows.scalars().all()}

    merged = []
    for h in hadiths:
        t = found.get((h["book_id"], h["hadith_number"]))
        if t is None:
            merged.append({**h, "translation_pending": True})
        else:
            merged.append({
                **h,
                "translation": t.text,
                "translation_source": t.source or None,
                "translation_pending": False,
            })
    return merged


async def _page_translations(session: AsyncSession, language: str, results: list[dict]) -> list[dict]:
    if language == "none" or not results:
        return results

    rows = await session.execute(
        select(PageTranslation, Page.book_id, Page.page_number, Page.content_html)
        .join(Page, PageTranslation.page_id == Page.id)
        .where(
            PageTranslation.language == language,
            tuple_(Page.book_id, Page.page_number).in_([(r["book_id"], r["page_number"]) for r in results]),
        )
    )
    found = {
        (book_id, page_number): (t, content_html)
        for t, book_id, page_number, content_html in rows.all()
    }
    if not found:
        return results

    merged = []
    for r in results:
        entry = found.get((r["book_id"], r["page_number"]))
        if entry is None:
            merged.append(r)
            continue
        t, content_html = entry
        index = find_matching_paragraph_index(r.get("text_snippet", ""), extract_paragraph_texts(content_html))
        paragraph = next((p for p in t.paragraphs or [] if p.get("index") == index), None)
        merged.append({
            **r,
            "content_translation": paragraph.get("translation") if paragraph else None,
            "content_translation_model": t.model,
        })
    return merged


async def fetch_and_merge_translations(
    session: AsyncSession,
    params: SearchParams,
    ranked_results: list[dict],
    ayahs: list[dict],
    hadiths: list[dict],
) -> tuple[list[dict], list[dict], list[dict]]:
    """Attach stored translations. Returns ``(ranked_results, ayahs, hadiths)``."""
    ayahs = await _ayah_translations(session, params.quran_translation, ayahs)
    hadiths = await _hadith_translations(session, params.hadith_translation, hadiths)
    ranked_results = await _page_translations(session, params.book_content_translation, ranked_results)
    return ranked_results, ayahs, hadiths
