"""Elasticsearch client, index names and Arabic-aware index definitions."""

import logging

from elasticsearch import AsyncElasticsearch

from app.config import settings
from app.services.search.bm25 import BM25_B, BM25_K1

logger = logging.getLogger(__name__)

PAGES_INDEX = "arabic_pages"
HADITHS_INDEX = "arabic_hadiths"
AYAHS_INDEX = "arabic_ayahs"
BOOKS_INDEX = "books_catalog"
AUTHORS_INDEX = "authors_catalog"

ARABIC_STOPWORDS = [
    "على", "في", "من", "إلى", "الى", "هذا", "هذه", "التي", "الذي", "الذين",
    "ان", "أن", "إن", "كان", "كانت", "عن", "مع", "هو", "هي", "ما", "لا", "قد",
    "قال", "بن", "ابن", "بين", "كل", "ذلك", "تلك", "أو", "او", "ثم", "بعد",
    "قبل", "عند", "له", "لها", "لهم", "به", "بها", "فيه", "فيها", "منه", "منها",
    "إذا", "اذا", "لم", "لن", "حتى", "وقد", "ولا", "وهو", "وهي", "ومن", "فإن",
    "فان", "والله",
]

# Same folds as arabic_text.normalize_arabic
ANALYSIS_SETTINGS = {
    "analysis": {
        "char_filter": {
            "arabic_normalize": {
                "type": "pattern_replace",
                "pattern": "[\\u064B-\\u065F\\u0670\\u0640]",
                "replacement": "",
            },
            "alef_normalize": {
                "type": "mapping",
                "mappings": [
                    "\\u0622=>\\u0627",
                    "\\u0623=>\\u0627",
                    "\\u0625=>\\u0627",
                    "\\u0671=>\\u0627",
                    "\\u0621=>",
                    "\\u0649=>\\u064A",
                ],
            },
            "teh_marbuta_normalize": {
                "type": "mapping",
                "mappings": ["\\u0629=>\\u0647"],
            },
        },
        "filter": {
            "arabic_stopwords": {"type": "stop", "stopwords": ARABIC_STOPWORDS},
        },
        "analyzer": {
            "arabic_normalized": {
                "type": "custom",
                "char_filter": ["arabic_normalize", "alef_normalize", "teh_marbuta_normalize"],
                "tokenizer": "standard",
                "filter": ["lowercase", "arabic_stopwords"],
            },
            "arabic_normalized_no_stop": {
                "type": "custom",
                "char_filter": ["arabic_normalize", "alef_normalize", "teh_marbuta_normalize"],
                "tokenizer": "standard",
                "filter": ["lowercase"],
            },
        },
    },
    "similarity": {
        "default": {"type": "BM25", "k1": BM25_K1, "b": BM25_B},
    },
    "number_of_shards": 1,
    "number_of_replicas": 0,
}

ARABIC_SEARCHABLE = {
    "type": "text",
    "analyzer": "arabic_normalized",
    "search_analyzer": "arabic_normalized",
    "fields": {
        "exact": {
            "type": "text",
            "analyzer": "arabic_normalized_no_stop",
            "search_analyzer": "arabic_normalized_no_stop",
        },
    },
}

STORED_TEXT = {"type": "text", "index": False}

INDEX_MAPPINGS: dict[str, dict] = {
    PAGES_INDEX: {
        "properties": {
            "book_id": {"type": "keyword"},
            "page_number": {"type": "integer"},
            "volume_number": {"type": "integer"},
            "content_plain": STORED_TEXT,
            "text_searchable": ARABIC_SEARCHABLE,
            "url_page_index": {"type": "keyword"},
        },
    },
    HADITHS_INDEX: {
        "properties": {
            "id": {"type": "integer"},
            "book_id": {"type": "integer"},
            "hadith_number": {"type": "keyword"},
            "text_arabic": STORED_TEXT,
            "text_plain": STORED_TEXT,
            "text_searchable": ARABIC_SEARCHABLE,
            "chapter_arabic": STORED_TEXT,
            "chapter_english": {"type": "keyword"},
            "grade": {"type": "keyword"},
            "book_number": {"type": "integer"},
            "book_name_arabic": {"type": "keyword"},
            "book_name_english": {"type": "keyword"},
            "collection_slug": {"type": "keyword"},
            "collection_name_arabic": {"type": "keyword"},
            "collection_name_english": {"type": "keyword"},
        },
    },
    AYAHS_INDEX: {
        "properties": {
            "id": {"type": "integer"},
            "ayah_number": {"type": "integer"},
            "text_uthmani": STORED_TEXT,
            "text_plain": STORED_TEXT,
            "text_searchable": ARABIC_SEARCHABLE,
            "juz_number": {"type": "integer"},
            "page_number": {"type": "integer"},
            "surah_number": {"type": "integer"},
            "surah_name_arabic": {"type": "keyword"},
            "surah_name_english": {"type": "keyword"},
        },
    },
    BOOKS_INDEX: {
        "properties": {
            "id": {"type": "keyword"},
            "title_arabic": ARABIC_SEARCHABLE,
            "title_latin": {"type": "text", "analyzer": "standard"},
            "author_name_arabic": {"type": "text", "analyzer": "arabic_normalized"},
            "author_name_latin": {"type": "text", "analyzer": "standard"},
            "author_id": {"type": "keyword"},
            "category_id": {"type": "integer"},
        },
    },
    AUTHORS_INDEX: {
        "properties": {
            "id": {"type": "keyword"},
            "name_arabic": ARABIC_SEARCHABLE,
            "name_latin": {"type": "text", "analyzer": "standard"},
            "death_date_hijri": {"type": "keyword"},
        },
    },
}

_client: AsyncElasticsearch | None = None


def get_client() -> AsyncElasticsearch:
    global _client
    if _client is None:
        _client = AsyncElasticsearch(
            settings.elasticsearch_url,
            basic_auth=("elastic", settings.elastic_password) if settings.elastic_password else None,
            request_timeout=30,
        )
    return _client


async def close_client() -> None:
    global _client
    if _client is not None:
        await _client.close()
        _client = None


async def ensure_indices(recreate: bool = False, only: tuple[str, ...] | None = None) -> None:
    """Create missing indices; with ``recreate`` drop and rebuild them."""
    client = get_client()
    for index, mappings in INDEX_MAPPINGS.items():
        if only and index not in only:
            continue
        exists = await client.indices.exists(index=index)
        if exists and recreate:
            logger.info("Deleting Elasticsearch index %s", index)
            await client.indices.delete(index=index)
            exists = False
        if not exists:
            logger.info("Creating Elasticsearch index %s", index)
            await client.indices.create(index=index, settings=ANALYSIS_SETTINGS, mappings=mappings)
