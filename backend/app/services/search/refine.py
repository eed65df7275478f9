import asyncio
import logging
import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.db import Book
from app.services.embedding import generate_query_embedding
from app.services.keyword_search import keyword_search_pages
from app.services.search.engines import (
    search_ayahs_hybrid,
    search_ayahs_semantic,
    search_hadiths_hybrid,
    search_hadiths_semantic,
    semantic_search,
)
from app.services.search.expansion import ExpandedQuery, expand_query_with_cache_info
from app.services.search.fusion import (
    merge_and_deduplicate_ayahs,
    merge_and_deduplicate_books,
    merge_and_deduplicate_hadiths,
    merge_with_rrf,
)
from app.services.search.params import SearchParams
from app.services.search.query_utils import get_search_strategy, should_skip_semantic_search
from app.services.search.rerankers import rerank_unified_refine

logger = logging.getLogger(__name__)

# Only the head of the merged book list can reach the reranker
RERANK_BOOK_META_WINDOW = 30


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


async def _safe(coro, label: str, default):
    try:
        return await coro
    except Exception as exc:
        logger.error("Refine %s search failed: %s", label, exc)
        return default


async def get_book_metadata_for_reranking(session: AsyncSession, book_ids: list[str]) -> dict[str, dict]:
    """Arabic title and author name per book id, for reranker prompts."""
    if not book_ids:
        return {}
    rows = await session.execute(
        select(Book).options(selectinload(Book.author)).where(Book.id.in_(book_ids))
    )
    return {
        book.id: {
            "title_arabic": book.title_arabic,
            "author_name_arabic": book.author.name_arabic if book.author else "",
        }
        for book in rows.scalars().all()
    }


async def _embed(query: str) -> list[float] | None:
    if should_skip_semantic_search(query):
        return None
    try:
        return await generate_query_embedding(query)
    except Exception as exc:
        logger.error("Refine embedding failed for %r: %s", query, exc)
        return None


async def _search_one(
    params: SearchParams,
    expanded: ExpandedQuery,
    embedding: list[float] | None,
    skip_keyword: bool,
) -> dict:
    q = expanded.query
    cutoff = params.refine_similarity_cutoff
    start = time.perf_counter()

    book_semantic, book_keyword = await asyncio.gather(
        _safe(semantic_search(q, params.refine_book_per_query, None, cutoff, embedding), "book semantic", []),
        _safe(
            keyword_search_pages(q, params.refine_book_per_query, None, fuzzy_fallback=params.fuzzy_enabled),
            "book keyword", [],
        ) if not skip_keyword else asyncio.sleep(0, result=[]),
    )
    books = merge_with_rrf(book_semantic, book_keyword, q)

    ayahs: list[dict] = []
    hadiths: list[dict] = []
    collections = params.hadith_collections or None

    # Non-Arabic queries have no useful keyword leg; use semantic only
    if skip_keyword:
        if params.include_quran:
            ayahs, _meta = await _safe(
                search_ayahs_semantic(q, params.refine_ayah_per_query, cutoff, embedding), "ayah", ([], None),
            )
        if params.include_hadith:
            hadiths = await _safe(
                search_hadiths_semantic(q, params.refine_hadith_per_query, cutoff, embedding, collections),
                "hadith", [],
            )
    else:
        if params.include_quran:
            ayahs = await _safe(
                search_ayahs_hybrid(
                    q, params.refine_ayah_per_query, reranker="none",
                    pre_rerank_limit=params.refine_ayah_per_query, similarity_cutoff=cutoff,
                    fuzzy_fallback=params.fuzzy_enabled, embedding=embedding,
                ),
                "ayah", [],
            )
        if params.include_hadith:
            hadiths = await _safe(
                search_hadiths_hybrid(
                    q, params.refine_hadith_per_query, reranker="none",
                    pre_rerank_limit=params.refine_hadith_per_query, similarity_cutoff=cutoff,
                    fuzzy_fallback=params.fuzzy_enabled, embedding=embedding, collection_slugs=collections,
                ),
                "hadith", [],
            )

    return {
        "books": {"results": books, "weight": expanded.weight},
        "ayahs": {"results": ayahs, "weight": expanded.weight},
        "hadiths": {"results": hadiths, "weight": expanded.weight},
        "search_time_ms": _elapsed_ms(start),
    }


async def execute_refine_search(session: AsyncSession, params: SearchParams) -> dict:
    """Query-expansion search with one cross-type rerank at the end.

    The query is expanded by the LLM, every variant is searched in parallel,
    per-type lists are merged with weighted RRF, and a single unified rerank
    picks the final books, ayahs and hadiths.
    """
    query = params.query
    skip_keyword = get_search_strategy(query) == "semantic_only"
    timing = {"query_expansion": 0.0, "parallel_searches": 0.0, "merge": 0.0, "rerank": 0.0}

    start = time.perf_counter()
    raw_queries, expansion_cached = await expand_query_with_cache_info(query, params.query_expansion_model)
    timing["query_expansion"] = _elapsed_ms(start)

    expanded = [
        ExpandedQuery(
            query=e.query,
            weight=params.refine_original_weight if i == 0 else params.refine_expanded_weight,
            reason=e.reason,
        )
        for i, e in enumerate(raw_queries)
    ]

    start = time.perf_counter()
    embeddings = await asyncio.gather(*(_embed(e.query) for e in expanded))
    per_query = await asyncio.gather(
        *(_search_one(params, e, emb, skip_keyword) for e, emb in zip(expanded, embeddings))
    )
    timing["parallel_searches"] = _elapsed_ms(start)

    query_stats = []
    for e, res in zip(expanded, per_query):
        counts = {kind: len(res[kind]["results"]) for kind in ("books", "ayahs", "hadiths")}
        query_stats.append({
            "query": e.query,
            "weight": e.weight,
            "reason": e.reason,
            "docs_retrieved": sum(counts.values()),
            **counts,
            "search_time_ms": res["search_time_ms"],
        })
    total_before_merge = sum(s["docs_retrieved"] for s in query_stats)

    start = time.perf_counter()
    merged_books = merge_and_deduplicate_books([r["books"] for r in per_query]) if params.include_books else []
    merged_ayahs = merge_and_deduplicate_ayahs([r["ayahs"] for r in per_query]) if params.include_quran else []
    merged_hadiths = merge_and_deduplicate_hadiths([r["hadiths"] for r in per_query]) if params.include_hadith else []
    timing["merge"] = _elapsed_ms(start)

    start = time.perf_counter()
    book_ids = list(dict.fromkeys(r["book_id"] for r in merged_books[:RERANK_BOOK_META_WINDOW]))
    book_meta = await get_book_metadata_for_reranking(session, book_ids)

    limits = {
        "books": params.refine_book_rerank,
        "ayahs": params.refine_ayah_rerank,
        "hadiths": params.refine_hadith_rerank,
    }
    sent_to_reranker = (
        min(len(merged_books), limits["books"])
        + min(len(merged_ayahs), limits["ayahs"])
        + min(len(merged_hadiths), limits["hadiths"])
    )
    unified = await rerank_unified_refine(
        query, merged_ayahs, merged_hadiths, merged_books, book_meta, limits, params.reranker,
    )
    timing["rerank"] = _elapsed_ms(start)

    return {
        "ranked_results": unified["books"],
        "ayahs_raw": unified["ayahs"],
        "hadiths": unified["hadiths"],
        "expanded_queries": [{"query": e.query, "reason": e.reason} for e in expanded],
        "reranker_timed_out": unified["timed_out"],
        "refine_stats": {
            "query_stats": query_stats,
            "candidates": {
                "total_before_merge": total_before_merge,
                "after_merge": {
                    "books": len(merged_books),
                    "ayahs": len(merged_ayahs),
                    "hadiths": len(merged_hadiths),
                },
                "sent_to_reranker": sent_to_reranker,
            },
            "query_expansion_cached": expansion_cached,
            "timing": timing,
        },
    }
