import pytest

from app.services.search import standard
from app.services.search.params import SearchParams
from app.services.search.standard import execute_standard_search, merge_by_mode

AYAH_META = {"collection": "quran_ayahs", "used_fallback": False}


class Legs:
    """Scripted search legs patched into the standard search module."""

    def __init__(self, monkeypatch):
        self.calls: list[str] = []
        self.results = {
            "embedding": [0.1, 0.2],
            "keyword_pages": [{"book_id": "10", "page_number": 1, "keyword_rank": 1, "bm25_score": 5.0}],
            "keyword_ayahs": [],
            "keyword_hadiths": [
                {"collection_slug": "suyuti", "hadith_number": "5", "keyword_rank": 1, "bm25_score": 9.0},
                {"collection_slug": "bukhari", "hadith_number": "1", "keyword_rank": 2, "bm25_score": 4.0},
            ],
            "semantic_pages": [
                {"book_id": "10", "page_number": 1, "semantic_rank": 1, "semantic_score": 0.7},
                {"book_id": "20", "page_number": 3, "semantic_rank": 2, "semantic_score": 0.65},
            ],
            "semantic_ayahs": (
                [{"surah_number": 2, "ayah_number": 153, "semantic_rank": 1, "semantic_score": 0.6}],
                AYAH_META,
            ),
            "semantic_hadiths": RuntimeError("qdrant down"),
        }
        for name, target in [
            ("embedding", "generate_query_embedding"),
            ("keyword_pages", "keyword_search_pages"),
            ("keyword_ayahs", "keyword_search_ayahs"),
            ("keyword_hadiths", "keyword_search_hadiths"),
            ("semantic_pages", "semantic_search"),
            ("semantic_ayahs", "search_ayahs_semantic"),
            ("semantic_hadiths", "search_hadiths_semantic"),
        ]:
            monkeypatch.setattr(standard, target, self._leg(name))

    def _leg(self, name: str):
        async def leg(*args, **kwargs):
            self.calls.append(name)
            result = self.results[name]
            if isinstance(result, Exception):
                raise result
            return result

        return leg


@pytest.fixture
def legs(monkeypatch) -> Legs:
    return Legs(monkeypatch)


def test_merge_by_mode():
    kw, sem = [{"k": 1}, {"k": 2}], [{"s": 1}]

    def merge():
        return [{"m": 1}, {"m": 2}, {"m": 3}]

    assert merge_by_mode(False, "hybrid", kw, sem, 5, merge) == []
    assert merge_by_mode(True, "keyword", kw, sem, 1, merge) == [{"k": 1}]
    assert merge_by_mode(True, "semantic", kw, sem, 5, merge) == sem
    assert merge_by_mode(True, "hybrid", kw, sem, 2, merge) == [{"m": 1}, {"m": 2}]
    assert merge_by_mode(True, "keyword", kw, sem, 5, merge, normalize_keyword=lambda items: items[::-1]) == kw[::-1]


async def test_hybrid_search_fuses_every_type(legs):
    out = await execute_standard_search(SearchParams(query="الصبر"))

    books = out["ranked_results"]
    assert [(b["book_id"], b["page_number"]) for b in books] == [("10", 1), ("20", 3)]
    assert books[0]["fused_score"] == pytest.approx(0.8 * 0.7 + 0.3 * 0.5)
    assert out["total_above_cutoff"] == 2

    assert [a["ayah_number"] for a in out["ayahs_raw"]] == [153]
    assert out["ayah_search_meta"] == AYAH_META

    # Failed semantic leg degrades to keyword hits; excluded collections are dropped
    assert [h["collection_slug"] for h in out["hadiths"]] == ["bukhari"]

    assert "semantic" in out["timing"] and "keyword" in out["timing"]
    assert "hadiths" not in out["timing"]["semantic"]


async def test_explicit_collections_keep_excluded_ones(legs):
    out = await execute_standard_search(SearchParams(query="الصبر", hadith_collections=["suyuti", "bukhari"]))
    assert [h["collection_slug"] for h in out["hadiths"]] == ["suyuti", "bukhari"]


async def test_keyword_mode_skips_embedding(legs):
    out = await execute_standard_search(SearchParams(query="الصبر", mode="keyword"))

    assert "embedding" not in legs.calls
    assert not any(c.startswith("semantic") for c in legs.calls)
    assert out["ranked_results"][0]["keyword_rank"] == 1
    assert out["hadiths"][0]["score"] == pytest.approx(4.0 / 9.0)


async def test_non_arabic_query_is_semantic_only(legs):
    await execute_standard_search(SearchParams(query="patience in hardship"))
    assert not any(c.startswith("keyword") for c in legs.calls)
    assert "semantic_pages" in legs.calls


async def test_book_scope_skips_quran_and_hadith(legs):
    out = await execute_standard_search(SearchParams(query="الصبر", book_id="10"))

    assert out["ayahs_raw"] == []
    assert out["hadiths"] == []
    assert set(legs.calls) == {"embedding", "keyword_pages", "semantic_pages"}
