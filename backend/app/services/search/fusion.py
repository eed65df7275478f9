"""Merging semantic and keyword result lists.

Every search leg returns plain dicts. Semantic hits carry ``semantic_rank``
and ``semantic_score``; keyword hits carry ``keyword_rank`` and
``bm25_score``. Fusion unions them by a per-type key and attaches
``fused_score`` (weighted blend) and ``rrf_score`` (rank-based tie breaker).
"""

import logging
from collections.abc import Callable
from functools import cmp_to_key

from app.services.search.bm25 import normalize_bm25_score
from app.services.search.config import FLOAT_TOLERANCE, KEYWORD_WEIGHT, RRF_K, SEMANTIC_WEIGHT

logger = logging.getLogger(__name__)

KEYWORD_FIELDS = ("keyword_rank", "bm25_score", "keyword_score")


def calculate_rrf_score(ranks: list[int | None]) -> float:
    return sum(1.0 / (RRF_K + rank) for rank in ranks if rank is not None)


def _compare_fused(a: dict, b: dict) -> int:
    diff = b["fused_score"] - a["fused_score"]
    if abs(diff) > FLOAT_TOLERANCE:
        return 1 if diff > 0 else -1
    rrf_diff = b["rrf_score"] - a["rrf_score"]
    if rrf_diff > 0:
        return 1
    if rrf_diff < 0:
        return -1
    return 0


def merge_with_rrf_generic(
    semantic_results: list[dict],
    keyword_results: list[dict],
    get_key: Callable[[dict], str],
    query: str,
    on_merge: Callable[[dict, dict], None] | None = None,
) -> list[dict]:
    """Union two ranked lists and sort them by weighted fused score.

    Hits found by both methods score ``0.8*semantic + 0.3*norm(bm25)``;
    single-method hits keep their own (normalized) score.
    """
    merged: dict[str, dict] = {}

    for result in semantic_results:
        merged[get_key(result)] = dict(result)

    for result in keyword_results:
        key = get_key(result)
        existing = merged.get(key)
        if existing is None:
            merged[key] = dict(result)
            continue
        for name in KEYWORD_FIELDS:
            if result.get(name) is not None:
                existing[name] = result[name]
        if on_merge is not None:
            on_merge(existing, result)

    for item in merged.values():
        semantic_score = item.get("semantic_score")
        bm25_score = item.get("bm25_score")
        item["rrf_score"] = calculate_rrf_score([item.get("semantic_rank"), item.get("keyword_rank")])

        if semantic_score is not None and bm25_score is not None:
            item["fused_score"] = SEMANTIC_WEIGHT * semantic_score + KEYWORD_WEIGHT * normalize_bm25_score(bm25_score)
        elif semantic_score is not None:
            item["fused_score"] = semantic_score
        elif bm25_score is not None:
            item["fused_score"] = normalize_bm25_score(bm25_score)
        else:
            item["fused_score"] = 0.0

    results = sorted(merged.values(), key=cmp_to_key(_compare_fused))
    logger.debug(
        "Fused %d semantic + %d keyword → %d results for %r",
        len(semantic_results), len(keyword_results), len(results), query,
    )
    return results


def book_key(result: dict) -> str:
    return f"{result['book_id']}-{result['page_number']}"


def ayah_key(result: dict) -> str:
    return f"{result['surah_number']}-{result['ayah_number']}"


def hadith_key(result: dict) -> str:
    return f"{result['collection_slug']}-{result['hadith_number']}"


def _take_keyword_highlight(existing: dict, keyword_result: dict) -> None:
    if keyword_result.get("highlighted_snippet"):
        existing["highlighted_snippet"] = keyword_result["highlighted_snippet"]


def merge_with_rrf(semantic_results: list[dict], keyword_results: list[dict], query: str) -> list[dict]:
    """Fuse book page results; keyword highlights replace semantic snippets."""
    return merge_with_rrf_generic(
        semantic_results, keyword_results, book_key, query, on_merge=_take_keyword_highlight,
    )


def get_match_type(result: dict) -> str:
    has_semantic = result.get("semantic_rank") is not None
    has_keyword = result.get("keyword_rank") is not None
    if has_semantic and has_keyword:
        return "both"
    if has_semantic:
        return "semantic"
    return "keyword"


# --- Multi-query merging (refine search) ---

def _merge_weighted(
    query_results: list[dict],
    get_key: Callable[[dict], str],
    on_duplicate: Callable[[dict, dict], None],
) -> list[dict]:
    """Accumulate weighted RRF across the result lists of expanded queries.

    ``query_results`` items are ``{"results": [...], "weight": float}``.
    """
    merged: dict[str, dict] = {}

    for entry in query_results:
        weight = entry.get("weight", 1.0)
        for rank, result in enumerate(entry.get("results", [])):
            contribution = weight / (RRF_K + rank + 1)
            key = get_key(result)
            existing = merged.get(key)
            if existing is None:
                item = dict(result)
                item["rrf_score"] = contribution
                merged[key] = item
                continue
            existing["rrf_score"] += contribution
            on_duplicate(existing, result)

    return sorted(merged.values(), key=lambda r: r["rrf_score"], reverse=True)


def _keep_best_semantic(existing: dict, result: dict) -> None:
    new_score = result.get("semantic_score")
    if new_score is None:
        return
    old_score = existing.get("semantic_score")
    if old_score is None or new_score > old_score:
        existing["semantic_score"] = new_score
        if result.get("score") is not None:
            existing["score"] = result["score"]


def _merge_book_duplicate(existing: dict, result: dict) -> None:
    _keep_best_semantic(existing, result)
    highlighted = result.get("highlighted_snippet")
    if highlighted and highlighted != result.get("text_snippet"):
        if existing.get("highlighted_snippet") == existing.get("text_snippet"):
            existing["highlighted_snippet"] = highlighted


def merge_and_deduplicate_books(query_results: list[dict]) -> list[dict]:
    return _merge_weighted(query_results, book_key, _merge_book_duplicate)


def merge_and_deduplicate_ayahs(query_results: list[dict]) -> list[dict]:
    return _merge_weighted(query_results, ayah_key, _keep_best_semantic)


def merge_and_deduplicate_hadiths(query_results: list[dict]) -> list[dict]:
    return _merge_weighted(query_results, hadith_key, _keep_best_semantic)
