import pytest

from app.services.search.config import KEYWORD_WEIGHT, RRF_K, SEMANTIC_WEIGHT
from app.services.search.params import SearchParams
from app.services.search.response import build_debug_stats, fetch_book_details, format_search_results
from app.services.stats import clear_stats_cache

BOOKS = {"10": {"id": "10", "title_arabic": "رياض الصالحين"}}


@pytest.fixture(autouse=True)
def fresh_stats():
    clear_stats_cache()
    yield
    clear_stats_cache()


def _hit(**fields) -> dict:
    return {"book_id": "10", "page_number": 1, **fields}


def test_hybrid_scores_prefer_fused_then_semantic_then_rrf():
    ranked = [
        _hit(fused_score=0.71, semantic_score=0.7, semantic_rank=1, keyword_rank=1),
        _hit(page_number=2, semantic_score=0.6, semantic_rank=2),
        _hit(page_number=3, keyword_rank=3),
    ]

    results = format_search_results(ranked, BOOKS, "hybrid")

    assert [r["score"] for r in results] == [0.71, 0.6, pytest.approx(1 / (RRF_K + 3))]
    assert [r["rank"] for r in results] == [1, 2, 3]
    assert [r["match_type"] for r in results] == ["both", "semantic", "keyword"]


@pytest.mark.parametrize("mode, expected", [("semantic", [0.7, 0.0]), ("keyword", [0.0, 0.4])])
def test_single_mode_scores(mode, expected):
    ranked = [_hit(semantic_score=0.7, semantic_rank=1), _hit(page_number=2, keyword_score=0.4, keyword_rank=1)]
    assert [r["score"] for r in format_search_results(ranked, BOOKS, mode)] == expected


def test_formatted_fields():
    ranked = [
        _hit(text_snippet="باب", highlighted_snippet="<mark>باب</mark>", semantic_rank=1, semantic_score=0.5),
        _hit(book_id="99", page_number=4, reference_url="https://example.org/99/4", keyword_rank=1),
    ]

    first, second = format_search_results(ranked, BOOKS, "hybrid")

    assert first["book"] == BOOKS["10"]
    assert first["volume_number"] == 1
    assert first["highlighted_snippet"] == "<mark>باب</mark>"
    assert first["reference_url"] == "https://app.turath.io/book/10#p-1"
    assert second["book"] is None
    assert second["reference_url"] == "https://example.org/99/4"


async def test_fetch_book_details_attaches_page_index(seeded):
    results, books = await fetch_book_details(seeded, [_hit(), _hit(page_number=9)])

    assert [r["url_page_index"] for r in results] == ["1", "9"]
    assert books["10"]["author"]["name_latin"] is not None
    assert books["10"]["title_translated"] is None


async def test_debug_stats_hybrid(seeded):
    params = SearchParams(query="الصبر", reranker="jina")
    results = [{"book_id": "10", "score": 0.5, "semantic_score": 0.5, "book": BOOKS["10"]}]
    ranked = [{"book_id": "10", "bm25_score": 4.0}]
    ayahs = [{"ayah_number": 153, "surah_name_arabic": "البقرة", "score": 0.9, "semantic_score": 0.9}]
    hadiths = [{"hadith_number": "1", "collection_name_arabic": "البخاري", "fused_score": 0.7, "score": 0.7}]

    stats = await build_debug_stats(
        seeded, params, results, ayahs, hadiths, ranked,
        {"collection": "quran_ayahs", "used_fallback": False},
        total_above_cutoff=0, reranker_timed_out=True, timing={"total": 12.0},
    )

    assert stats["database_stats"]["book_count"] == 2
    assert stats["database_stats"]["ayah_count"] == 3
    assert stats["search_params"]["total_above_cutoff"] == 3
    assert stats["search_params"]["total_shown"] == 3
    assert stats["algorithm"]["fusion_method"] == "weighted_combination"
    assert stats["algorithm"]["fusion_weights"] == {"semantic": SEMANTIC_WEIGHT, "keyword": KEYWORD_WEIGHT}
    assert stats["algorithm"]["reranker_model"] == "jina"
    assert stats["algorithm"]["query_expansion_model"] is None

    breakdown = stats["top_results_breakdown"]
    assert [(b["type"], b["rank"]) for b in breakdown] == [("quran", 1), ("hadith", 2), ("book", 3)]
    assert breakdown[0]["title"] == "البقرة 153"
    assert breakdown[2]["match_type"] == "both"
    assert breakdown[2]["title"] == "رياض الصالحين"
    assert stats["reranker_timed_out"] is True
    assert "refine_stats" not in stats


async def test_debug_stats_semantic_only_and_refine(seeded):
    params = SearchParams(query="patience", refine=True)
    refine_stats = {
        "query_stats": [{"query": "patience", "docs_retrieved": 4}, {"query": "perseverance", "docs_retrieved": 2}],
        "timing": {"query_expansion": 10.0, "parallel_searches": 20.5, "merge": 0.5, "rerank": 0.0},
        "candidates": {"total_before_merge": 6},
        "query_expansion_cached": True,
    }

    stats = await build_debug_stats(
        seeded, params, [], [], [], [], {}, total_above_cutoff=0, reranker_timed_out=False,
        timing={}, refine_stats=refine_stats,
    )

    assert stats["algorithm"]["fusion_method"] == "semantic_only"
    assert stats["algorithm"]["fusion_weights"] == {"semantic": 1.0, "keyword": 0.0}
    assert stats["algorithm"]["query_expansion_model"] == "google/gemini-3-flash-preview"
    assert stats["refine_stats"]["original_query_docs"] == 4
    assert stats["refine_stats"]["timing"]["total"] == 31.0
    assert stats["refine_stats"]["query_expansion_cached"] is True
    assert "reranker_timed_out" not in stats
