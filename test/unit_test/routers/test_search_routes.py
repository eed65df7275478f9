import pytest

from app.routers import search as search_router

EMPTY_RESPONSE = {"query": "", "mode": "hybrid", "count": 0, "results": [], "authors": [], "ayahs": [], "hadiths": []}


@pytest.fixture
def captured(monkeypatch) -> list:
    """Replace the search pipeline and record the params it receives."""
    calls = []

    async def fake_run_search(session, params):
        calls.append(params)
        return {**EMPTY_RESPONSE, "query": params.query, "mode": params.mode}

    monkeypatch.setattr(search_router, "run_search", fake_run_search)
    return calls


async def test_query_params_are_parsed(client, captured):
    response = await client.get("/api/search", params={
        "q": "الصبر",
        "include_quran": "false",
        "include_hadith": "yes",
        "fuzzy": "FALSE",
        "refine": "TRUE",
        "hadith_collections": "bukhari, muslim,,",
        "book_limit": 5,
    })

    assert response.status_code == 200
    assert response.json()["query"] == "الصبر"
    [params] = captured
    assert params.include_quran is False
    assert params.include_hadith is True
    assert params.fuzzy_enabled is False
    assert params.refine is True
    assert params.hadith_collections == ["bukhari", "muslim"]
    assert params.book_limit == 5


async def test_refine_needs_exact_true(client, captured):
    await client.get("/api/search", params={"q": "الصبر", "refine": "yes"})
    assert captured[0].refine is False


@pytest.mark.parametrize(
    "params",
    [
        {},
        {"q": ""},
        {"q": "x" * 501},
        {"q": "الصبر", "mode": "fuzzy"},
        {"q": "الصبر", "reranker": "gpt-5"},
        {"q": "الصبر", "limit": 0},
        {"q": "الصبر", "book_limit": 51},
        {"q": "الصبر", "similarity_cutoff": 1.5},
    ],
)
async def test_invalid_params(client, captured, params):
    response = await client.get("/api/search", params=params)
    assert response.status_code == 422
    assert captured == []


async def test_missing_vector_collection_is_503(client, monkeypatch):
    async def failing(session, params):
        raise RuntimeError("Collection not found: quran_ayahs")

    monkeypatch.setattr(search_router, "run_search", failing)

    response = await client.get("/api/search", params={"q": "الصبر"})
    assert response.status_code == 503
    assert response.json()["detail"] == "Search index not initialized"


async def test_other_failures_are_400(client, monkeypatch):
    async def failing(session, params):
        raise RuntimeError("boom")

    monkeypatch.setattr(search_router, "run_search", failing)

    response = await client.get("/api/search", params={"q": "الصبر"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Search failed"


async def test_search_pipeline_formats_results(client, seeded, monkeypatch):
    monkeypatch.setattr(search_router.settings, "environment", "production")

    async def fake_standard(params):
        return {
            "ranked_results": [{
                "book_id": "10", "page_number": 1, "text_snippet": "باب الإخلاص",
                "semantic_rank": 1, "keyword_rank": 1, "semantic_score": 0.6, "fused_score": 0.7,
            }],
            "ayahs_raw": [{"surah_number": 1, "ayah_number": 1, "text": "بسم الله الرحمن الرحيم"}],
            "hadiths": [],
            "ayah_search_meta": {"collection": "quran_ayahs", "used_fallback": False},
            "total_above_cutoff": 1,
            "timing": {},
        }

    async def fake_authors(query, limit):
        return [{"id": "100", "name_arabic": "النووي", "score": 0.8}]

    monkeypatch.setattr(search_router, "execute_standard_search", fake_standard)
    monkeypatch.setattr(search_router, "search_authors", fake_authors)

    response = await client.get("/api/search", params={"q": "الإخلاص", "quran_translation": "en"})

    data = response.json()
    assert response.status_code == 200
    assert "debug_stats" not in data
    assert "refined" not in data
    assert data["count"] == 1
    [result] = data["results"]
    assert result["score"] == pytest.approx(0.7)
    assert result["match_type"] == "both"
    assert result["url_page_index"] == "1"
    assert result["book"]["author"]["name_latin"] == "al-Nawawi"
    assert data["authors"][0]["id"] == "100"
    assert data["ayahs"][0]["translation_edition_id"] == "eng-ummmuhammad"


async def test_translate_hadiths_requires_configured_secret(client, monkeypatch):
    monkeypatch.setattr(search_router.settings, "internal_api_secret", "")

    response = await client.post("/api/search/translate-hadiths", json={})
    assert response.status_code == 503


async def test_translate_hadiths_rejects_wrong_secret(client, monkeypatch):
    monkeypatch.setattr(search_router.settings, "internal_api_secret", "s3cret")

    response = await client.post(
        "/api/search/translate-hadiths",
        json={"language": "en", "hadiths": [{"book_id": 1, "hadith_number": "1", "collection_slug": "bukhari", "text": "x"}]},
        headers={"X-Internal-Secret": "guess"},
    )
    assert response.status_code == 403


async def test_translate_hadiths(client, monkeypatch):
    monkeypatch.setattr(search_router.settings, "internal_api_secret", "s3cret")
    received = {}

    async def fake_translate(session, hadiths, language):
        received.update(hadiths=hadiths, language=language)
        return {"translations": [{"book_id": 1, "hadith_number": "1", "translation": "Hello", "source": "llm"}]}

    monkeypatch.setattr(search_router, "translate_hadiths", fake_translate)

    response = await client.post(
        "/api/search/translate-hadiths",
        json={"language": "en", "hadiths": [{"book_id": 1, "hadith_number": "1", "collection_slug": "bukhari", "text": "x"}]},
        headers={"X-Internal-Secret": "s3cret"},
    )

    assert response.status_code == 200
    assert response.json() == {"translations": [{"book_id": 1, "hadith_number": "1", "translation": "Hello", "source": "llm"}]}
    assert received["language"] == "en"
    assert received["hadiths"][0]["collection_slug"] == "bukhari"


async def test_translate_hadiths_batch_limit(client, monkeypatch):
    monkeypatch.setattr(search_router.settings, "internal_api_secret", "s3cret")
    hadith = {"book_id": 1, "hadith_number": "1", "collection_slug": "bukhari", "text": "x"}

    response = await client.post(
        "/api/search/translate-hadiths",
        json={"language": "en", "hadiths": [hadith] * 11},
        headers={"X-Internal-Secret": "s3cret"},
    )
    assert response.status_code == 422
