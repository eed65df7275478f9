import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from app.services import vector_store
from app.services.embedding import generate_query_embedding
from app.services.keyword_search import keyword_search_ayahs, keyword_search_hadiths, keyword_search_pages
from app.services.search.bm25 import normalize_bm25_score
from app.services.search.config import (
    DEFAULT_AYAH_LIMIT,
    DEFAULT_HADITH_LIMIT,
    EMBEDDING_TIMEOUT_SECONDS,
    EXCLUDED_HADITH_COLLECTIONS,
    STANDARD_FETCH_LIMIT,
)
from app.services.search.engines import search_ayahs_semantic, search_hadiths_semantic, semantic_search
from app.services.search.fusion import ayah_key, hadith_key, merge_with_rrf, merge_with_rrf_generic
from app.services.search.params import SearchParams
from app.services.search.query_utils import get_search_strategy, should_skip_semantic_search

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


async def _timed(
    coro: Awaitable,
    timings: dict,
    key: str,
    label: str,
    default,
):
    """Await ``coro``, record its duration, and swallow failures into ``default``."""
    start = time.perf_counter()
    try:
        result = await coro
    except Exception as exc:
        logger.error("Search leg %s failed: %s", label, exc)
        return default
    timings[key] = _elapsed_ms(start)
    return result


async def _empty(value):
    return value


def merge_by_mode(
    include: bool,
    mode: str,
    keyword_results: list[dict],
    semantic_results: list[dict],
    limit: int,
    merge: Callable[[], list[dict]],
    normalize_keyword: Callable[[list[dict]], list[dict]] | None = None,
) -> list[dict]:
    if not include:
        return []
    if mode == "keyword":
        items = normalize_keyword(keyword_results) if normalize_keyword else keyword_results
        return items[:limit]
    if mode == "semantic":
        return semantic_results[:limit]
    return merge()[:limit]


def _with_bm25_score(items: list[dict]) -> list[dict]:
    return [
        {**item, "score": normalize_bm25_score(item.get("bm25_score") or item.get("score") or 0.0)}
        for item in items
    ]


async def _embed_with_timeout(query: str) -> list[float] | None:
    try:
        return await asyncio.wait_for(generate_query_embedding(query), timeout=EMBEDDING_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.error("Embedding generation timed out after %ss", EMBEDDING_TIMEOUT_SECONDS)
    except Exception as exc:
        logger.error("Embedding generation failed: %s", exc)
    return None


async def execute_standard_search(params: SearchParams) -> dict:
    """Single-query search across books, ayahs and hadiths.

    Keyword legs start alongside embedding generation; semantic legs start
    once the embedding is ready. Each leg degrades to an empty list on error.
    Returns ``ranked_results``, ``ayahs_raw``, ``hadiths``,
    ``ayah_search_meta``, ``total_above_cutoff`` and ``timing``.
    """
    query = params.query
    mode = params.mode
    book_id = params.book_id

    skip_keyword = get_search_strategy(query) == "semantic_only" or mode == "semantic"
    skip_semantic = should_skip_semantic_search(query)
    fetch_limit = STANDARD_FETCH_LIMIT if mode == "hybrid" else params.limit
    ayah_limit = min(params.limit, DEFAULT_AYAH_LIMIT)
    hadith_limit = min(params.limit, DEFAULT_HADITH_LIMIT)
    collections = params.hadith_collections or None

    search_books = params.include_books
    search_ayahs = params.include_quran and not book_id
    search_hadiths = params.include_hadith and not book_id

    timing: dict = {"embedding": 0.0, "semantic": {}, "keyword": {}, "merge": 0.0}

    # Phase 1: keyword legs run while the query embedding is generated
    embedding_start = time.perf_counter()
    embedding_task = asyncio.create_task(
        _empty(None) if skip_semantic or mode == "keyword" else _embed_with_timeout(query)
    )

    keyword_tasks = asyncio.gather(
        _timed(
            keyword_search_pages(query, fetch_limit, book_id, fuzzy_fallback=params.fuzzy_enabled),
            timing["keyword"], "books", "keyword books", [],
        ) if search_books and not skip_keyword else _empty([]),
        _timed(
            keyword_search_ayahs(query, fetch_limit, fuzzy_fallback=params.fuzzy_enabled),
            timing["keyword"], "ayahs", "keyword ayahs", [],
        ) if search_ayahs and not skip_keyword else _empty([]),
        _timed(
            keyword_search_hadiths(query, fetch_limit, collection_slugs=collections, fuzzy_fallback=params.fuzzy_enabled),
            timing["keyword"], "hadiths", "keyword hadiths", [],
        ) if search_hadiths and not skip_keyword else _empty([]),
    )

    embedding = await embedding_task
    timing["embedding"] = _elapsed_ms(embedding_start)

    # Phase 2: semantic legs reuse the precomputed embedding
    default_meta = {"collection": vector_store.QURAN_COLLECTION, "used_fallback": False}
    semantic_tasks = asyncio.gather(
        _timed(
            semantic_search(query, fetch_limit, book_id, params.similarity_cutoff, embedding),
            timing["semantic"], "books", "semantic books", [],
        ) if search_books and mode != "keyword" else _empty([]),
        _timed(
            search_ayahs_semantic(query, fetch_limit, params.similarity_cutoff, embedding),
            timing["semantic"], "ayahs", "semantic ayahs", ([], default_meta),
        ) if search_ayahs and mode != "keyword" else _empty(([], default_meta)),
        _timed(
            search_hadiths_semantic(query, fetch_limit, params.similarity_cutoff, embedding, collections),
            timing["semantic"], "hadiths", "semantic hadiths", [],
        ) if search_hadiths and mode != "keyword" else _empty([]),
    )

    # Phase 3: wait for everything and merge per mode
    (kw_books, kw_ayahs, kw_hadiths), (sem_books, (sem_ayahs, ayah_meta), sem_hadiths) = await asyncio.gather(
        keyword_tasks, semantic_tasks,
    )

    merge_start = time.perf_counter()
    total_above_cutoff = 0
    if not search_books:
        ranked_results = []
    elif mode == "keyword":
        ranked_results = kw_books[: params.limit]
    elif mode == "semantic":
        ranked_results = sem_books[: params.limit]
    else:
        merged = merge_with_rrf(sem_books, kw_books, query)
        total_above_cutoff = len(merged)
        ranked_results = merged[: params.book_limit]

    ayahs_raw = merge_by_mode(
        search_ayahs, mode, kw_ayahs, sem_ayahs, ayah_limit,
        merge=lambda: merge_with_rrf_generic(sem_ayahs, kw_ayahs, ayah_key, query),
        normalize_keyword=_with_bm25_score,
    )

    # Excluded collections are dropped unless the caller asked for specific ones
    def drop_excluded(items: list[dict]) -> list[dict]:
        if params.hadith_collections:
            return items
        return [h for h in items if h["collection_slug"] not in EXCLUDED_HADITH_COLLECTIONS]

    hadiths = merge_by_mode(
        search_hadiths, mode, drop_excluded(kw_hadiths), drop_excluded(sem_hadiths), hadith_limit,
        merge=lambda: drop_excluded(merge_with_rrf_generic(sem_hadiths, kw_hadiths, hadith_key, query)),
        normalize_keyword=_with_bm25_score,
    )
    timing["merge"] = _elapsed_ms(merge_start)

    return {
        "ranked_results": ranked_results,
        "ayahs_raw": ayahs_raw,
        "hadiths": hadiths,
        "ayah_search_meta": ayah_meta,
        "total_above_cutoff": total_above_cutoff,
        "timing": timing,
    }
