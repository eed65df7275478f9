import httpx
import pytest

from scripts import ingest_tafsir
from scripts.ingest_tafsir import build_tafsir_rows, fetch_surah_tafsir, parse_editions, select_editions

CDN_EDITIONS = [
    {"id": 1, "author_name": "Hafiz Ibn Kathir", "name": "Tafsir Ibn Kathir", "language_name": "arabic",
     "slug": "ar-tafsir-ibn-kathir", "source": "quran.com"},
    {"id": 2, "author_name": "", "name": "Al-Jalalayn", "language_name": "english",
     "slug": "en-al-jalalayn", "source": "altafsir.com"},
    {"id": 3, "author_name": "Maududi", "name": "Tafheem", "language_name": "Urdu",
     "slug": "ur-tafheem", "source": "quran.com"},
]


def test_parse_editions():
    editions = parse_editions(CDN_EDITIONS)

    assert [(e["id"], e["language"], e["direction"]) for e in editions] == [
        ("ar-tafsir-ibn-kathir", "ar", "rtl"),
        ("en-al-jalalayn", "en", "ltr"),
        ("ur-tafheem", "ur", "rtl"),
    ]
    assert editions[0]["author"] == "Hafiz Ibn Kathir"
    assert editions[1]["author"] is None
    assert {e["source"] for e in editions} == {"spa5k-tafsir"}


def test_build_rows_keeps_legacy_source_slug():
    ibn_kathir, jalalayn, _ = parse_editions(CDN_EDITIONS)
    entries = [{"surah": 1, "ayah": 1, "text": " بسم الله "}, {"surah": 1, "ayah": 2, "text": "  "}]

    [row] = build_tafsir_rows(entries, ibn_kathir)
    assert (row["surah_number"], row["ayah_number"], row["text"]) == (1, 1, "بسم الله")
    assert row["source"] == "ibn_kathir"
    assert row["language"] == "ar"
    assert len(row["content_hash"]) == 64

    [other] = build_tafsir_rows(entries[:1], jalalayn)
    assert other["source"] == "en-al-jalalayn"
    assert other["content_hash"] != row["content_hash"]


def test_select_editions():
    editions = parse_editions(CDN_EDITIONS)

    assert [e["id"] for e in select_editions(editions, "ur-tafheem", ["ar"])] == ["ur-tafheem"]
    assert [e["id"] for e in select_editions(editions, None, ["ar", "en"])] == ["ar-tafsir-ibn-kathir", "en-al-jalalayn"]
    assert len(select_editions(editions, None, None)) == 3
    assert select_editions(editions, "missing", None) == []


@pytest.fixture
def cdn():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/en-al-jalalayn/1.json"):
            return httpx.Response(200, json={"ayahs": [{"surah": 1, "ayah": 1, "text": "In the name of God"}]})
        if request.url.path.endswith("/en-al-jalalayn/2.json"):
            return httpx.Response(404)
        return httpx.Response(500)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_fetch_surah_tafsir(cdn):
    assert await fetch_surah_tafsir(cdn, "en-al-jalalayn", 1) == [{"surah": 1, "ayah": 1, "text": "In the name of God"}]
    assert await fetch_surah_tafsir(cdn, "en-al-jalalayn", 2) == []
    with pytest.raises(httpx.HTTPStatusError):
        await fetch_surah_tafsir(cdn, "en-al-jalalayn", 3)


def test_editions_url_points_at_the_cdn():
    assert ingest_tafsir.EDITIONS_URL == "https://cdn.jsdelivr.net/gh/spa5k/tafsir_api@main/tafsir/editions.json"
