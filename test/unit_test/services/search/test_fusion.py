import pytest

from app.services.search.bm25 import normalize_bm25_score
from app.services.search.fusion import (
    calculate_rrf_score,
    get_match_type,
    merge_and_deduplicate_ayahs,
    merge_and_deduplicate_books,
    merge_with_rrf,
    merge_with_rrf_generic,
)


def _by_id(result: dict) -> str:
    return result["id"]


def test_normalize_bm25_score():
    assert normalize_bm25_score(0) == 0.0
    assert normalize_bm25_score(-3) == 0.0
    assert normalize_bm25_score(5.0) == pytest.approx(0.5)
    assert normalize_bm25_score(1000) < 1.0


def test_calculate_rrf_score_ignores_missing_ranks():
    assert calculate_rrf_score([1, None]) == pytest.approx(1 / 61)
    assert calculate_rrf_score([1, 2]) == pytest.approx(1 / 61 + 1 / 62)
    assert calculate_rrf_score([None, None]) == 0.0


def test_weighted_fusion_scores_and_order():
    semantic = [
        {"id": "a", "semantic_rank": 1, "semantic_score": 0.7},
        {"id": "b", "semantic_rank": 2, "semantic_score": 0.6},
    ]
    keyword = [
        {"id": "b", "keyword_rank": 1, "bm25_score": 5.0},
        {"id": "c", "keyword_rank": 2, "bm25_score": 20.0},
    ]

    merged = merge_with_rrf_generic(semantic, keyword, _by_id, "q")
    scores = {r["id"]: r["fused_score"] for r in merged}

    assert scores["a"] == pytest.approx(0.7)
    assert scores["b"] == pytest.approx(0.8 * 0.6 + 0.3 * 0.5)
    assert scores["c"] == pytest.approx(0.8)
    assert [r["id"] for r in merged] == ["c", "a", "b"]

    both = next(r for r in merged if r["id"] == "b")
    assert both["keyword_rank"] == 1
    assert get_match_type(both) == "both"


def test_rrf_breaks_fused_score_ties():
    semantic = [
        {"id": "late", "semantic_rank": 5, "semantic_score": 0.5},
        {"id": "early", "semantic_rank": 1, "semantic_score": 0.5},
    ]
    merged = merge_with_rrf_generic(semantic, [], _by_id, "q")
    assert [r["id"] for r in merged] == ["early", "late"]


def test_merge_does_not_mutate_inputs():
    semantic = [{"id": "a", "semantic_rank": 1, "semantic_score": 0.7}]
    merge_with_rrf_generic(semantic, [], _by_id, "q")
    assert "fused_score" not in semantic[0]


def test_book_merge_takes_keyword_highlight():
    semantic = [{
        "book_id": "10", "page_number": 1, "semantic_rank": 1, "semantic_score": 0.7,
        "highlighted_snippet": "باب الإخلاص",
    }]
    keyword = [{
        "book_id": "10", "page_number": 1, "keyword_rank": 1, "bm25_score": 3.0,
        "highlighted_snippet": "باب <mark>الإخلاص</mark>",
    }]

    [merged] = merge_with_rrf(semantic, keyword, "الإخلاص")
    assert merged["highlighted_snippet"] == "باب <mark>الإخلاص</mark>"


def test_match_type():
    assert get_match_type({"semantic_rank": 1}) == "semantic"
    assert get_match_type({"keyword_rank": 1}) == "keyword"


def test_multi_query_merge_accumulates_weighted_rrf():
    ayah_11 = {"surah_number": 1, "ayah_number": 1, "semantic_score": 0.5}
    ayah_12 = {"surah_number": 1, "ayah_number": 2, "semantic_score": 0.4}
    better_11 = {"surah_number": 1, "ayah_number": 1, "semantic_score": 0.9, "score": 0.9}

    merged = merge_and_deduplicate_ayahs([
        {"results": [ayah_12, ayah_11], "weight": 1.0},
        {"results": [better_11], "weight": 0.7},
    ])

    assert [r["ayah_number"] for r in merged] == [1, 2]
    assert merged[0]["rrf_score"] == pytest.approx(1.0 / 62 + 0.7 / 61)
    assert merged[0]["semantic_score"] == 0.9
    assert merged[0]["score"] == 0.9


def test_book_dedup_prefers_real_highlight():
    plain = {"book_id": "10", "page_number": 1, "text_snippet": "نص", "highlighted_snippet": "نص"}
    marked = {"book_id": "10", "page_number": 1, "text_snippet": "نص", "highlighted_snippet": "<mark>نص</mark>"}

    [merged] = merge_and_deduplicate_books([
        {"results": [plain], "weight": 1.0},
        {"results": [marked], "weight": 0.7},
    ])
    assert merged["highlighted_snippet"] == "<mark>نص</mark>"
