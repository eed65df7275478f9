import asyncio
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_session
from app.dependencies import require_internal_secret
from app.middleware.rate_limit import EXPENSIVE_LIMIT, SEARCH_LIMIT, limiter
from app.models.schemas import SearchResponse, TranslateHadithsRequest, TranslateHadithsResponse
from app.services import vector_store
from app.services.search.config import (
    DEFAULT_BOOK_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SIMILARITY_CUTOFF,
    MAX_BOOK_LIMIT,
    MAX_QUERY_LENGTH,
    MAX_SEARCH_LIMIT,
    MIN_BOOK_LIMIT,
    REFINE_AYAH_PER_QUERY,
    REFINE_AYAH_RERANK,
    REFINE_BOOK_PER_QUERY,
    REFINE_BOOK_RERANK,
    REFINE_EXPANDED_WEIGHT,
    REFINE_HADITH_PER_QUERY,
    REFINE_HADITH_RERANK,
    REFINE_ORIGINAL_WEIGHT,
    REFINE_SIMILARITY_CUTOFF,
)
from app.services.search.engines import search_authors
from app.services.search.params import SearchParams
from app.services.search.refine import execute_refine_search
from app.services.search.rerankers import RERANKER_TYPES
from app.services.search.response import build_debug_stats, fetch_book_details, format_search_results
from app.services.search.standard import execute_standard_search
from app.services.search.translations import fetch_and_merge_translations
from app.services.translation import translate_hadiths

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/search", tags=["search"])

RERANKER_PATTERN = "^(" + "|".join(RERANKER_TYPES) + ")$"


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


async def run_search(session: AsyncSession, params: SearchParams) -> dict:
    """Full search pipeline: retrieval, translations, book metadata and formatting."""
    start = time.perf_counter()
    timing: dict = {}

    authors_task = asyncio.create_task(
        search_authors(params.query, 5) if not params.book_id else asyncio.sleep(0, result=[])
    )

    expanded_queries: list[dict] = []
    total_above_cutoff = 0
    reranker_timed_out = False
    refine_stats = None
    ayah_search_meta = {"collection": vector_store.QURAN_COLLECTION, "used_fallback": False}

    try:
        if params.uses_refine:
            result = await execute_refine_search(session, params)
            expanded_queries = result["expanded_queries"]
            reranker_timed_out = result["reranker_timed_out"]
            refine_stats = result["refine_stats"]
        else:
            result = await execute_standard_search(params)
            ayah_search_meta = result["ayah_search_meta"]
            total_above_cutoff = result["total_above_cutoff"]
            timing.update(result["timing"])
    except Exception:
        authors_task.cancel()
        raise

    ranked_results = result["ranked_results"]
    ayahs = result["ayahs_raw"]
    hadiths = result["hadiths"]

    author_start = time.perf_counter()
    try:
        authors = await authors_task
    except Exception as exc:
        logger.error("Author search failed: %s", exc)
        authors = []
    timing["author_search"] = _elapsed_ms(author_start)

    translations_start = time.perf_counter()
    ranked_results, ayahs, hadiths = await fetch_and_merge_translations(
        session, params, ranked_results, ayahs, hadiths,
    )
    timing["translations"] = _elapsed_ms(translations_start)

    ranked_results = ranked_results[: params.limit]

    metadata_start = time.perf_counter()
    ranked_results, books = await fetch_book_details(session, ranked_results, params.book_title_lang)
    timing["book_metadata"] = _elapsed_ms(metadata_start)

    results = format_search_results(ranked_results, books, params.mode)

    response = {
        "query": params.query,
        "mode": params.mode,
        "count": len(results),
        "results": results,
        "authors": authors,
        "ayahs": ayahs,
        "hadiths": hadiths,
    }
    if params.refine:
        response["refined"] = True
        response["expanded_queries"] = expanded_queries
    if settings.environment != "production":
        timing["total"] = _elapsed_ms(start)
        response["debug_stats"] = await build_debug_stats(
            session, params, results, ayahs, hadiths, ranked_results,
            ayah_search_meta, total_above_cutoff, reranker_timed_out, timing, refine_stats,
        )
    return response


def _flag(value: str) -> bool:
    return value.lower() != "false"


@router.get("", response_model=SearchResponse, response_model_exclude_none=True)
@limiter.limit(SEARCH_LIMIT)
async def search(
    request: Request,
    q: str = Query(..., min_length=1, max_length=MAX_QUERY_LENGTH),
    limit: int = Query(DEFAULT_SEARCH_LIMIT, ge=1, le=MAX_SEARCH_LIMIT),
    book_id: str | None = None,
    mode: str = Query("hybrid", pattern="^(hybrid|semantic|keyword)$"),
    include_quran: str = "true",
    include_hadith: str = "true",
    include_books: str = "true",
    reranker: str = Query("none", pattern=RERANKER_PATTERN),
    similarity_cutoff: float = Query(DEFAULT_SIMILARITY_CUTOFF, ge=0.0, le=1.0),
    book_limit: int = Query(DEFAULT_BOOK_LIMIT, ge=MIN_BOOK_LIMIT, le=MAX_BOOK_LIMIT),
    fuzzy: str = "true",
    quran_translation: str = "none",
    hadith_translation: str = "none",
    book_title_lang: str | None = None,
    book_content_translation: str = "none",
    refine: str = "false",
    refine_similarity_cutoff: float = Query(REFINE_SIMILARITY_CUTOFF, ge=0.0, le=1.0),
    refine_original_weight: float = Query(REFINE_ORIGINAL_WEIGHT, ge=0.0, le=2.0),
    refine_expanded_weight: float = Query(REFINE_EXPANDED_WEIGHT, ge=0.0, le=2.0),
    refine_book_per_query: int = Query(REFINE_BOOK_PER_QUERY, ge=1, le=100),
    refine_ayah_per_query: int = Query(REFINE_AYAH_PER_QUERY, ge=1, le=100),
    refine_hadith_per_query: int = Query(REFINE_HADITH_PER_QUERY, ge=1, le=100),
    refine_book_rerank: int = Query(REFINE_BOOK_RERANK, ge=1, le=50),
    refine_ayah_rerank: int = Query(REFINE_AYAH_RERANK, ge=1, le=50),
    refine_hadith_rerank: int = Query(REFINE_HADITH_RERANK, ge=1, le=50),
    query_expansion_model: str = "gemini-flash",
    hadith_collections: str = "",
    session: AsyncSession = Depends(get_session),
):
    """Search across Quran, Hadith and books."""
    params = SearchParams(
        query=q,
        limit=limit,
        book_id=book_id or None,
        mode=mode,
        include_quran=_flag(include_quran),
        include_hadith=_flag(include_hadith),
        include_books=_flag(include_books),
        reranker=reranker,
        similarity_cutoff=similarity_cutoff,
        book_limit=book_limit,
        fuzzy_enabled=_flag(fuzzy),
        quran_translation=quran_translation,
        hadith_translation=hadith_translation,
        book_title_lang=book_title_lang,
        book_content_translation=book_content_translation,
        refine=refine.lower() == "true",
        refine_similarity_cutoff=refine_similarity_cutoff,
        refine_original_weight=refine_original_weight,
        refine_expanded_weight=refine_expanded_weight,
        refine_book_per_query=refine_book_per_query,
        refine_ayah_per_query=refine_ayah_per_query,
        refine_hadith_per_query=refine_hadith_per_query,
        refine_book_rerank=refine_book_rerank,
        refine_ayah_rerank=refine_ayah_rerank,
        refine_hadith_rerank=refine_hadith_rerank,
        query_expansion_model=query_expansion_model,
        hadith_collections=[s.strip() for s in hadith_collections.split(",") if s.strip()],
    )

    try:
        return await run_search(session, params)
    except Exception as exc:
        logger.exception("Search failed for %r", q)
        if "Collection not found" in str(exc):
            raise HTTPException(status_code=503, detail="Search index not initialized")
        raise HTTPException(status_code=400, detail="Search failed")


@router.post(
    "/translate-hadiths",
    response_model=TranslateHadithsResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_internal_secret)],
)
@limiter.limit(EXPENSIVE_LIMIT)
async def translate_hadiths_endpoint(
    request: Request,
    body: TranslateHadithsRequest,
    session: AsyncSession = Depends(get_session),
):
    """Translate up to ten hadiths, serving stored translations first."""
    return await translate_hadiths(
        session,
        [h.model_dump() for h in body.hadiths],
        body.language,
    )
