from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.db import Book, BookTitleTranslation, Page
from app.services.embedding import EMBEDDING_DIMENSIONS
from app.services.search.bm25 import BM25_B, BM25_K1, BM25_NORM_K
from app.services.search.config import KEYWORD_WEIGHT, RRF_K, SEMANTIC_WEIGHT
from app.services.search.expansion import get_query_expansion_model_id
from app.services.search.fusion import calculate_rrf_score, get_match_type
from app.services.search.params import SearchParams
from app.services.search.query_utils import get_search_strategy
from app.services.source_urls import page_url
from app.services.stats import get_database_stats

# Title languages answered from the book row itself
_UNTRANSLATED_TITLE_LANGS = {None, "none", "transliteration"}


async def fetch_book_details(
    session: AsyncSession,
    ranked_results: list[dict],
    book_title_lang: str | None = None,
) -> tuple[list[dict], dict[str, dict]]:
    """Attach ``url_page_index`` to page hits and load their books.

    Returns ``(results, books_by_id)``.
    """
    if not ranked_results:
        return [], {}

    keys = [(r["book_id"], r["page_number"]) for r in ranked_results]
    rows = await session.execute(
        select(Page.book_id, Page.page_number, Page.url_page_index)
        .where(tuple_(Page.book_id, Page.page_number).in_(keys))
    )
    page_index = {(b, p): idx for b, p, idx in rows.all()}
    results = [
        {**r, "url_page_index": page_index.get((r["book_id"], r["page_number"])) or str(r["page_number"])}
        for r in ranked_results
    ]

    book_ids = list(dict.fromkeys(r["book_id"] for r in ranked_results))
    books_rows = await session.execute(
        select(Book).options(selectinload(Book.author)).where(Book.id.in_(book_ids))
    )

    translated: dict[str, str] = {}
    if book_title_lang not in _UNTRANSLATED_TITLE_LANGS:
        title_rows = await session.execute(
            select(BookTitleTranslation.book_id, BookTitleTranslation.title).where(
                BookTitleTranslation.book_id.in_(book_ids),
                BookTitleTranslation.language == book_title_lang,
            )
        )
        translated = dict(title_rows.all())

    books = {}
    for book in books_rows.scalars().all():
        books[book.id] = {
            "id": book.id,
            "title_arabic": book.title_arabic,
            "title_latin": book.title_latin,
            "title_translated": translated.get(book.id),
            "publication_year_hijri": book.publication_year_hijri,
            "author": {
                "name_arabic": book.author.name_arabic,
                "name_latin": book.author.name_latin,
                "death_date_hijri": book.author.death_date_hijri,
            } if book.author else None,
        }
    return results, books


def _hybrid_score(result: dict) -> float:
    if result.get("fused_score") is not None:
        return result["fused_score"]
    if result.get("semantic_score") is not None:
        return result["semantic_score"]
    return calculate_rrf_score([result.get("semantic_rank"), result.get("keyword_rank")])


def format_search_results(ranked_results: list[dict], books: dict[str, dict], mode: str) -> list[dict]:
    formatted = []
    for rank, result in enumerate(ranked_results, start=1):
        if mode == "hybrid":
            score = _hybrid_score(result)
        elif mode == "semantic":
            score = result.get("semantic_score") or 0.0
        else:
            score = result.get("keyword_score") or 0.0

        formatted.append({
            "score": score,
            "semantic_score": result.get("semantic_score"),
            "rank": rank,
            "book_id": result["book_id"],
            "page_number": result["page_number"],
            "volume_number": result.get("volume_number", 1),
            "text_snippet": result.get("text_snippet", ""),
            "highlighted_snippet": result.get("highlighted_snippet", ""),
            "match_type": get_match_type(result),
            "url_page_index": result.get("url_page_index"),
            "reference_url": result.get("reference_url") or page_url(result["book_id"], result["page_number"]),
            "content_translation": result.get("content_translation"),
            "content_translation_model": result.get("content_translation_model"),
            "book": books.get(result["book_id"]),
        })
    return formatted


def build_top_results_breakdown(
    results: list[dict],
    ranked_results: list[dict],
    ayahs: list[dict],
    hadiths: list[dict],
) -> list[dict]:
    """Top five hits across all content types, with their score components."""
    unified = []
    for i, r in enumerate(results):
        ranked = ranked_results[i] if i < len(ranked_results) else {}
        title = ((r.get("book") or {}).get("title_arabic") or "")[:50] or f"Book {r['book_id']}"
        unified.append(("book", r["score"], r, ranked, title))
    for a in ayahs:
        score = a.get("fused_score") if a.get("fused_score") is not None else a.get("score", 0.0)
        unified.append(("quran", score, a, a, f"{a.get('surah_name_arabic', '')} {a['ayah_number']}"))
    for h in hadiths:
        score = h.get("fused_score") if h.get("fused_score") is not None else h.get("score", 0.0)
        unified.append(("hadith", score, h, h, f"{h.get('collection_name_arabic', '')} {h['hadith_number']}"))

    unified.sort(key=lambda item: item[1] or 0.0, reverse=True)

    breakdown = []
    for rank, (kind, _score, data, ranked, title) in enumerate(unified[:5], start=1):
        has_semantic = data.get("semantic_score") is not None
        has_keyword = ranked.get("bm25_score") is not None
        if has_semantic and has_keyword:
            match_type = "both"
        elif has_semantic:
            match_type = "semantic"
        else:
            match_type = "keyword"
        breakdown.append({
            "rank": rank,
            "type": kind,
            "title": title,
            "match_type": match_type,
            "keyword_score": ranked.get("bm25_score"),
            "semantic_score": data.get("semantic_score"),
            "final_score": data.get("score"),
        })
    return breakdown


async def build_debug_stats(
    session: AsyncSession,
    params: SearchParams,
    results: list[dict],
    ayahs: list[dict],
    hadiths: list[dict],
    ranked_results: list[dict],
    ayah_search_meta: dict,
    total_above_cutoff: int,
    reranker_timed_out: bool,
    timing: dict,
    refine_stats: dict | None = None,
) -> dict:
    skip_keyword = get_search_strategy(params.query) == "semantic_only" or params.mode == "semantic"
    shown = len(results) + len(ayahs) + len(hadiths)

    stats = {
        "database_stats": await get_database_stats(session),
        "search_params": {
            "mode": params.mode,
            "cutoff": params.similarity_cutoff,
            "total_above_cutoff": total_above_cutoff or shown,
            "total_shown": shown,
        },
        "algorithm": {
            "fusion_method": "semantic_only" if skip_keyword else "weighted_combination",
            "fusion_weights": (
                {"semantic": 1.0, "keyword": 0.0}
                if skip_keyword
                else {"semantic": SEMANTIC_WEIGHT, "keyword": KEYWORD_WEIGHT}
            ),
            "keyword_engine": "elasticsearch",
            "bm25_params": {"k1": BM25_K1, "b": BM25_B, "norm_k": BM25_NORM_K},
            "rrf_k": RRF_K,
            "embedding_model": settings.embedding_model,
            "embedding_dimensions": EMBEDDING_DIMENSIONS,
            "reranker_model": None if params.reranker == "none" else params.reranker,
            "query_expansion_model": (
                get_query_expansion_model_id(params.query_expansion_model) if params.refine else None
            ),
            "quran_collection": ayah_search_meta.get("collection"),
            "quran_collection_fallback": ayah_search_meta.get("used_fallback", False),
        },
        "top_results_breakdown": build_top_results_breakdown(results, ranked_results, ayahs, hadiths),
        "timing": timing,
    }

    if params.refine and refine_stats and refine_stats["query_stats"]:
        refine_timing = refine_stats["timing"]
        stats["refine_stats"] = {
            "expanded_queries": refine_stats["query_stats"],
            "original_query_docs": refine_stats["query_stats"][0]["docs_retrieved"],
            "timing": {**refine_timing, "total": round(sum(refine_timing.values()), 1)},
            "candidates": refine_stats["candidates"],
            "query_expansion_cached": refine_stats["query_expansion_cached"],
        }
    if reranker_timed_out:
        stats["reranker_timed_out"] = True
    return stats
