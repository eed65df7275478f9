import logging
import re

from elasticsearch import ApiError, TransportError

from app.services.search.config import EXCLUDED_BOOK_IDS
from app.services.search.query_utils import ARABIC_RE, parse_search_query
from app.services.search_index import (
    AUTHORS_INDEX,
    AYAHS_INDEX,
    BOOKS_INDEX,
    HADITHS_INDEX,
    PAGES_INDEX,
    get_client,
)
from app.services.source_urls import page_url, quran_url, sunnah_url

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 300
NUMERIC_RE = re.compile(r"^\d+$")

HIGHLIGHT = {
    "pre_tags": ["<mark>"],
    "post_tags": ["</mark>"],
    "fields": {
        "text_searchable": {"number_of_fragments": 1, "fragment_size": 200},
        "text_searchable.exact": {"number_of_fragments": 1, "fragment_size": 200},
    },
}


def build_keyword_query(query: str, fuzzy: bool = False) -> dict | None:
    """Build the bool query for ``text_searchable``.

    Quoted phrases must match in order on the stopword-preserving subfield;
    loose terms must all match, or, in fuzzy mode, most of them approximately.
    Returns None when the query has nothing searchable.
    """
    parsed = parse_search_query(query)
    if not parsed.terms and not parsed.phrases:
        return None

    must: list[dict] = [
        {"match_phrase": {"text_searchable.exact": {"query": phrase}}}
        for phrase in parsed.phrases
    ]
    if parsed.terms:
        terms = " ".join(parsed.terms)
        if fuzzy:
            match = {"query": terms, "operator": "or", "fuzziness": "AUTO", "minimum_should_match": "60%"}
        else:
            match = {"query": terms, "operator": "and"}
        must.append({"match": {"text_searchable": match}})

    return {"bool": {"must": must}}


def _highlight(hit: dict) -> str | None:
    fields = hit.get("highlight") or {}
    for name in ("text_searchable.exact", "text_searchable"):
        fragments = fields.get(name)
        if fragments:
            return fragments[0]
    return None


async def _search(
    index: str,
    query: str,
    limit: int,
    filters: list[dict] | None = None,
    fuzzy_fallback: bool = True,
) -> list[dict]:
    """Run a keyword search, retrying once in fuzzy mode when nothing matches."""
    client = get_client()

    for fuzzy in (False, True):
        if fuzzy and not fuzzy_fallback:
            break
        es_query = build_keyword_query(query, fuzzy=fuzzy)
        if es_query is None:
            return []
        if filters:
            es_query["bool"]["filter"] = filters

        resp = await client.search(index=index, query=es_query, size=limit, highlight=HIGHLIGHT)
        hits = resp["hits"]["hits"]
        if hits:
            if fuzzy:
                logger.info("Keyword search on %s matched only with fuzzy fallback: %r", index, query)
            return hits
    return []


def _keyword_fields(hit: dict, rank: int) -> dict:
    score = hit.get("_score") or 0.0
    return {"keyword_rank": rank, "bm25_score": score, "keyword_score": score}


async def keyword_search_pages(
    query: str,
    limit: int,
    book_id: str | None = None,
    fuzzy_fallback: bool = True,
) -> list[dict]:
    filters = [{"term": {"book_id": book_id}}] if book_id else None
    hits = await _search(PAGES_INDEX, query, limit, filters, fuzzy_fallback)

    results = []
    for hit in hits:
        src = hit["_source"]
        if src["book_id"] in EXCLUDED_BOOK_IDS:
            continue
        snippet = (src.get("content_plain") or "")[:SNIPPET_CHARS]
        results.append({
            "book_id": src["book_id"],
            "page_number": src["page_number"],
            "volume_number": src.get("volume_number", 1),
            "text_snippet": snippet,
            "highlighted_snippet": _highlight(hit) or snippet,
            "reference_url": page_url(src["book_id"], src["page_number"]),
            **_keyword_fields(hit, len(results) + 1),
        })
    return results


async def keyword_search_ayahs(query: str, limit: int, fuzzy_fallback: bool = True) -> list[dict]:
    hits = await _search(AYAHS_INDEX, query, limit, None, fuzzy_fallback)

    results = []
    for rank, hit in enumerate(hits, start=1):
        src = hit["_source"]
        results.append({
            "surah_number": src["surah_number"],
            "ayah_number": src["ayah_number"],
            "surah_name_arabic": src.get("surah_name_arabic", ""),
            "surah_name_english": src.get("surah_name_english", ""),
            "text": src.get("text_uthmani") or src.get("text_plain", ""),
            "juz_number": src.get("juz_number"),
            "page_number": src.get("page_number"),
            "highlighted_snippet": _highlight(hit),
            "quran_com_url": quran_url(src["surah_number"], src["ayah_number"]),
            **_keyword_fields(hit, rank),
        })
    return results


async def keyword_search_hadiths(
    query: str,
    limit: int,
    collection_slugs: list[str] | None = None,
    fuzzy_fallback: bool = True,
) -> list[dict]:
    filters = [{"terms": {"collection_slug": collection_slugs}}] if collection_slugs else None
    hits = await _search(HADITHS_INDEX, query, limit, filters, fuzzy_fallback)

    results = []
    for rank, hit in enumerate(hits, start=1):
        src = hit["_source"]
        results.append({
            "book_id": src.get("book_id"),
            "collection_slug": src["collection_slug"],
            "collection_name_arabic": src.get("collection_name_arabic", ""),
            "collection_name_english": src.get("collection_name_english", ""),
            "book_number": src.get("book_number"),
            "book_name_arabic": src.get("book_name_arabic", ""),
            "book_name_english": src.get("book_name_english", ""),
            "hadith_number": src["hadith_number"],
            "text": src.get("text_arabic") or src.get("text_plain", ""),
            "chapter_arabic": src.get("chapter_arabic"),
            "chapter_english": src.get("chapter_english"),
            "grade": src.get("grade"),
            "highlighted_snippet": _highlight(hit),
            "source_url": sunnah_url(src["collection_slug"], src["hadith_number"], src.get("book_number") or 0),
            **_keyword_fields(hit, rank),
        })
    return results


# --- Catalog (books / authors) ---

def _catalog_query(query: str, arabic_fields: list[str], latin_fields: list[str]) -> dict:
    if NUMERIC_RE.match(query):
        return {
            "bool": {
                "should": [
                    {"term": {"id": {"value": query, "boost": 100}}},
                    {"prefix": {"id": {"value": query, "boost": 10}}},
                ],
            },
        }
    fields = arabic_fields if ARABIC_RE.search(query) else latin_fields
    return {"multi_match": {"query": query, "fields": fields, "fuzziness": "AUTO", "type": "best_fields"}}


async def _catalog_ids(index: str, query: str, limit: int, arabic_fields: list[str], latin_fields: list[str]) -> list[str] | None:
    """Ranked ids from a catalog index, or None when Elasticsearch is unavailable."""
    trimmed = query.strip()
    if not trimmed:
        return []
    try:
        resp = await get_client().search(
            index=index,
            query=_catalog_query(trimmed, arabic_fields, latin_fields),
            size=limit,
            source=["id"],
        )
    except (ApiError, TransportError) as exc:
        logger.warning("Catalog search on %s failed, falling back to SQL: %s", index, exc)
        return None
    return [hit["_source"]["id"] for hit in resp["hits"]["hits"]]


async def search_books_catalog(query: str, limit: int) -> list[str] | None:
    return await _catalog_ids(
        BOOKS_INDEX, query, limit,
        ["title_arabic^3", "title_arabic.exact^2", "author_name_arabic"],
        ["title_latin^3", "author_name_latin"],
    )


async def search_authors_catalog(query: str, limit: int) -> list[str] | None:
    return await _catalog_ids(
        AUTHORS_INDEX, query, limit,
        ["name_arabic^3", "name_arabic.exact^2"],
        ["name_latin^3"],
    )
