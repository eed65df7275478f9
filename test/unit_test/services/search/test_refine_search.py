import pytest

from app.services.llm import LLMError, LLMTimeoutError
from app.services.search import expansion, refine, rerankers
from app.services.search.expansion import ExpandedQuery, clear_expansion_cache
from app.services.search.params import SearchParams
from app.services.search.refine import execute_refine_search

ORIGINAL = "الصبر"
EXPANDED = "الصبر على البلاء"


def _page(book_id, page_number, **scores):
    return {"book_id": book_id, "page_number": page_number, "text_snippet": "نص", **scores}


def _ayah(surah, ayah, score):
    return {"surah_number": surah, "ayah_number": ayah, "text": "آية", "semantic_score": score, "score": score}


def _hadith(slug, number, score):
    return {"collection_slug": slug, "hadith_number": number, "text": "حديث", "semantic_score": score, "score": score}


class RefineLegs:
    """Per-query scripted legs patched into the refine module."""

    def __init__(self, monkeypatch):
        self.calls: list[tuple[str, str, object]] = []
        self.expanded = [
            ExpandedQuery(ORIGINAL, 1.0, "Original query"),
            ExpandedQuery(EXPANDED, 0.7, "Expanded query 1"),
        ]
        self.results = {
            ("semantic_pages", ORIGINAL): [_page("10", 1, semantic_rank=1, semantic_score=0.7)],
            ("keyword_pages", ORIGINAL): [_page("10", 1, keyword_rank=1, bm25_score=5.0)],
            ("semantic_pages", EXPANDED): [_page("20", 3, semantic_rank=1, semantic_score=0.9)],
            ("keyword_pages", EXPANDED): [],
            ("ayahs", ORIGINAL): [_ayah(2, 153, 0.6)],
            ("ayahs", EXPANDED): [_ayah(2, 153, 0.8), _ayah(3, 200, 0.5)],
            ("hadiths", ORIGINAL): [],
            ("hadiths", EXPANDED): [_hadith("bukhari", "1", 0.55)],
        }

        async def expand(query, model="gemini-flash"):
            return self.expanded, False

        async def embed(query):
            return [float(len(query))]

        monkeypatch.setattr(refine, "expand_query_with_cache_info", expand)
        monkeypatch.setattr(refine, "generate_query_embedding", embed)
        for name, target in [
            ("semantic_pages", "semantic_search"),
            ("keyword_pages", "keyword_search_pages"),
            ("ayahs", "search_ayahs_hybrid"),
            ("hadiths", "search_hadiths_hybrid"),
            ("semantic_ayahs", "search_ayahs_semantic"),
            ("semantic_hadiths", "search_hadiths_semantic"),
        ]:
            monkeypatch.setattr(refine, target, self._leg(name))

    def _leg(self, name: str):
        async def leg(query, *args, **kwargs):
            embedding = kwargs.get("embedding", args[3] if len(args) > 3 else None)
            self.calls.append((name, query, embedding))
            result = self.results.get((name, query), [])
            if isinstance(result, Exception):
                raise result
            return result

        return leg

    def legs_called(self) -> set[str]:
        return {name for name, _, _ in self.calls}


@pytest.fixture
def legs(monkeypatch) -> RefineLegs:
    return RefineLegs(monkeypatch)


async def test_merges_weighted_queries(legs, seeded):
    params = SearchParams(query=ORIGINAL, refine=True, refine_expanded_weight=0.5)

    out = await execute_refine_search(seeded, params)

    books = out["ranked_results"]
    assert [(b["book_id"], b["page_number"]) for b in books] == [("10", 1), ("20", 3)]
    # page 10/1 was found by both legs of the original query
    assert books[0]["fused_score"] == pytest.approx(0.8 * 0.7 + 0.3 * 0.5)
    assert books[0]["rrf_score"] == pytest.approx(1.0 / 61)
    assert books[1]["rrf_score"] == pytest.approx(0.5 / 61)

    ayahs = out["ayahs_raw"]
    assert [(a["surah_number"], a["ayah_number"]) for a in ayahs] == [(2, 153), (3, 200)]
    assert ayahs[0]["rrf_score"] == pytest.approx(1.0 / 61 + 0.5 / 61)
    assert ayahs[0]["semantic_score"] == 0.8
    assert [h["hadith_number"] for h in out["hadiths"]] == ["1"]

    assert out["expanded_queries"] == [
        {"query": ORIGINAL, "reason": "Original query"},
        {"query": EXPANDED, "reason": "Expanded query 1"},
    ]
    assert out["reranker_timed_out"] is False


async def test_reports_per_query_stats(legs, seeded):
    out = await execute_refine_search(seeded, SearchParams(query=ORIGINAL, refine=True))

    stats = out["refine_stats"]
    first, second = stats["query_stats"]
    assert (first["query"], first["weight"], first["docs_retrieved"]) == (ORIGINAL, 1.0, 2)
    assert (first["books"], first["ayahs"], first["hadiths"]) == (1, 1, 0)
    assert (second["query"], second["weight"], second["docs_retrieved"]) == (EXPANDED, 0.7, 4)

    assert stats["candidates"] == {
        "total_before_merge": 6,
        "after_merge": {"books": 2, "ayahs": 2, "hadiths": 1},
        "sent_to_reranker": 5,
    }
    assert stats["query_expansion_cached"] is False
    assert set(stats["timing"]) == {"query_expansion", "parallel_searches", "merge", "rerank"}


async def test_each_query_uses_its_own_embedding(legs, seeded):
    await execute_refine_search(seeded, SearchParams(query=ORIGINAL, refine=True))

    semantic = {query: emb for name, query, emb in legs.calls if name == "semantic_pages"}
    assert semantic == {ORIGINAL: [float(len(ORIGINAL))], EXPANDED: [float(len(EXPANDED))]}


async def test_failed_leg_does_not_sink_the_query(legs, seeded):
    legs.results[("semantic_pages", EXPANDED)] = RuntimeError("qdrant down")

    out = await execute_refine_search(seeded, SearchParams(query=ORIGINAL, refine=True))

    assert [(b["book_id"], b["page_number"]) for b in out["ranked_results"]] == [("10", 1)]
    assert out["refine_stats"]["query_stats"][1]["books"] == 0


async def test_latin_query_searches_semantically_only(legs, seeded):
    legs.expanded = [ExpandedQuery("patience", 1.0, "Original query")]
    legs.results[("semantic_ayahs", "patience")] = ([_ayah(2, 153, 0.7)], {"collection": "quran_ayahs"})

    out = await execute_refine_search(seeded, SearchParams(query="patience", refine=True))

    assert legs.legs_called() == {"semantic_pages", "semantic_ayahs", "semantic_hadiths"}
    assert [a["ayah_number"] for a in out["ayahs_raw"]] == [153]


async def test_falls_back_to_original_query_when_expansion_fails(legs, seeded, monkeypatch):
    async def failing_llm(**kwargs):
        raise LLMError("LLM service returned 500")

    monkeypatch.setattr(refine, "expand_query_with_cache_info", expansion.expand_query_with_cache_info)
    monkeypatch.setattr(expansion, "call_llm", failing_llm)
    clear_expansion_cache()

    out = await execute_refine_search(seeded, SearchParams(query=ORIGINAL, refine=True))

    assert out["expanded_queries"] == [{"query": ORIGINAL, "reason": "Original query"}]
    assert [s["query"] for s in out["refine_stats"]["query_stats"]] == [ORIGINAL]
    assert {query for _, query, _ in legs.calls} == {ORIGINAL}
    assert [(b["book_id"], b["page_number"]) for b in out["ranked_results"]] == [("10", 1)]


@pytest.mark.parametrize("error, timed_out", [
    (LLMError("LLM service returned 502"), False),
    (LLMTimeoutError("LLM call timed out after 25.0s"), True),
])
async def test_keeps_fused_order_when_rerank_fails(legs, seeded, monkeypatch, error, timed_out):
    async def failing_llm(*args, **kwargs):
        raise error

    monkeypatch.setattr(rerankers, "call_llm", failing_llm)
    params = SearchParams(query=ORIGINAL, refine=True, reranker="gemini-flash", refine_ayah_rerank=1)

    out = await execute_refine_search(seeded, params)

    assert out["reranker_timed_out"] is timed_out
    assert [(b["book_id"], b["page_number"]) for b in out["ranked_results"]] == [("10", 1), ("20", 3)]
    assert [(a["surah_number"], a["ayah_number"]) for a in out["ayahs_raw"]] == [(2, 153)]


async def test_unified_rerank_picks_across_types(legs, seeded, monkeypatch):
    prompts: list[str] = []

    async def ranking_llm(system_prompt, user_message, **kwargs):
        prompts.append(user_message)
        return "[3, 1]"

    monkeypatch.setattr(rerankers, "call_llm", ranking_llm)
    params = SearchParams(query=ORIGINAL, refine=True, reranker="gemini-flash")

    out = await execute_refine_search(seeded, params)

    # documents are numbered books first, then ayahs, then hadiths
    assert [(a["surah_number"], a["ayah_number"], a["rank"]) for a in out["ayahs_raw"]] == [(2, 153, 1)]
    assert [(b["book_id"], b["page_number"]) for b in out["ranked_results"]] == [("10", 1)]
    assert out["ranked_results"][0]["semantic_score"] == pytest.approx(0.98)
    assert out["hadiths"] == []
    assert "رياض الصالحين" in prompts[0]
