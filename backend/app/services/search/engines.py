import asyncio
import logging
from collections.abc import Awaitable, Callable

from sqlalchemy import func, or_, select

from app.database import async_session
from app.models.db import Author, Book, HadithBook, HadithCollection
from app.services import vector_store
from app.services.embedding import generate_query_embedding
from app.services.keyword_search import keyword_search_ayahs, keyword_search_hadiths
from app.services.search.config import (
    AUTHOR_SCORE_THRESHOLD,
    AYAH_PRE_RERANK_CAP,
    DEFAULT_AYAH_SIMILARITY_CUTOFF,
    EXCLUDED_BOOK_IDS,
    FETCH_LIMIT_CAP,
    HADITH_PRE_RERANK_CAP,
)
from app.services.search.fusion import ayah_key, hadith_key, merge_with_rrf_generic
from app.services.search.query_utils import get_dynamic_similarity_threshold, should_skip_semantic_search
from app.services.search.rerankers import format_ayah_for_reranking, format_hadith_for_reranking, rerank
from app.services.source_urls import page_url, quran_url, sunnah_url

logger = logging.getLogger(__name__)

# (collection slug, book number) -> hadith_books.id; book ids never change
_hadith_book_ids: dict[tuple[str, int], int] = {}


async def semantic_search(
    query: str,
    limit: int,
    book_id: str | None = None,
    similarity_cutoff: float = 0.25,
    embedding: list[float] | None = None,
) -> list[dict]:
    """Semantic search over book pages."""
    if should_skip_semantic_search(query):
        return []

    cutoff = get_dynamic_similarity_threshold(query, similarity_cutoff)
    vector = embedding or await generate_query_embedding(query)

    hits = await vector_store.search(
        vector_store.PAGES_COLLECTION,
        vector,
        limit=limit,
        score_threshold=cutoff,
        match={"book_id": book_id} if book_id else None,
    )

    results = []
    for hit in hits:
        payload = hit["payload"]
        if payload["book_id"] in EXCLUDED_BOOK_IDS:
            continue
        results.append({
            "book_id": payload["book_id"],
            "page_number": payload["page_number"],
            "volume_number": payload.get("volume_number", 1),
            "text_snippet": payload.get("text_snippet", ""),
            "highlighted_snippet": payload.get("text_snippet", ""),
            "semantic_score": hit["score"],
            "semantic_rank": len(results) + 1,
            "reference_url": page_url(payload["book_id"], payload["page_number"]),
        })
    return results


async def search_authors(query: str, limit: int = 5) -> list[dict]:
    """Vector search over authors, falling back to a name search in SQL."""
    try:
        vector = await generate_query_embedding(query)
        hits = await vector_store.search(
            vector_store.AUTHORS_COLLECTION, vector, limit=limit, score_threshold=AUTHOR_SCORE_THRESHOLD,
        )
        if hits:
            return [
                {
                    "id": hit["payload"]["author_id"],
                    "name_arabic": hit["payload"].get("name_arabic", ""),
                    "name_latin": hit["payload"].get("name_latin"),
                    "death_date_hijri": hit["payload"].get("death_date_hijri"),
                    "death_date_gregorian": hit["payload"].get("death_date_gregorian"),
                    "books_count": hit["payload"].get("books_count", 0),
                }
                for hit in hits
            ]
    except Exception as exc:
        logger.warning("Semantic author search failed, falling back to SQL: %s", exc)

    pattern = f"%{query}%"
    books_count = func.count(Book.id).label("books_count")
    async with async_session() as session:
        rows = await session.execute(
            select(Author, books_count)
            .outerjoin(Book, Book.author_id == Author.id)
            .where(or_(Author.name_arabic.ilike(pattern), Author.name_latin.ilike(pattern)))
            .group_by(Author.id)
            .order_by(books_count.desc())
            .limit(limit)
        )
        authors = rows.all()
    return [
        {
            "id": author.id,
            "name_arabic": author.name_arabic,
            "name_latin": author.name_latin,
            "death_date_hijri": author.death_date_hijri,
            "death_date_gregorian": author.death_date_gregorian,
            "books_count": count,
        }
        for author, count in authors
    ]


async def search_ayahs_semantic(
    query: str,
    limit: int = 10,
    similarity_cutoff: float = DEFAULT_AYAH_SIMILARITY_CUTOFF,
    embedding: list[float] | None = None,
) -> tuple[list[dict], dict]:
    """Semantic ayah search. Returns ``(results, meta)``; errors yield no results."""
    meta = {"collection": vector_store.QURAN_COLLECTION, "used_fallback": False}
    if should_skip_semantic_search(query):
        return [], meta

    try:
        cutoff = get_dynamic_similarity_threshold(query, similarity_cutoff)
        vector = embedding or await generate_query_embedding(query)
        hits = await vector_store.search(vector_store.QURAN_COLLECTION, vector, limit=limit, score_threshold=cutoff)
    except Exception:
        logger.exception("Semantic ayah search failed")
        return [], {**meta, "used_fallback": True}

    results = []
    for rank, hit in enumerate(hits, start=1):
        payload = hit["payload"]
        results.append({
            "score": hit["score"],
            "semantic_score": hit["score"],
            "semantic_rank": rank,
            "surah_number": payload["surah_number"],
            "ayah_number": payload["ayah_number"],
            "surah_name_arabic": payload.get("surah_name_arabic", ""),
            "surah_name_english": payload.get("surah_name_english", ""),
            "text": payload.get("text", ""),
            "juz_number": payload.get("juz_number"),
            "page_number": payload.get("page_number"),
            "quran_com_url": quran_url(payload["surah_number"], payload["ayah_number"]),
        })
    return results, meta


async def _resolve_hadith_book_ids(keys: set[tuple[str, int]]) -> None:
    missing = [k for k in keys if k not in _hadith_book_ids]
    if not missing:
        return
    slugs = {slug for slug, _ in missing}
    async with async_session() as session:
        rows = await session.execute(
            select(HadithBook.id, HadithBook.book_number, HadithCollection.slug)
            .join(HadithCollection, HadithBook.collection_id == HadithCollection.id)
            .where(HadithCollection.slug.in_(slugs))
            .where(HadithBook.book_number.in_({num for _, num in missing}))
        )
    for book_id, book_number, slug in rows.all():
        _hadith_book_ids[(slug, book_number)] = book_id


async def search_hadiths_semantic(
    query: str,
    limit: int = 10,
    similarity_cutoff: float = 0.25,
    embedding: list[float] | None = None,
    collection_slugs: list[str] | None = None,
) -> list[dict]:
    if should_skip_semantic_search(query):
        return []

    try:
        cutoff = get_dynamic_similarity_threshold(query, similarity_cutoff)
        vector = embedding or await generate_query_embedding(query)
        hits = await vector_store.search(
            vector_store.HADITH_COLLECTION,
            vector,
            limit=limit,
            score_threshold=cutoff,
            match_any={"collection_slug": collection_slugs} if collection_slugs else None,
        )
        missing = {
            (h["payload"]["collection_slug"], h["payload"]["book_number"])
            for h in hits
            if not h["payload"].get("book_id")
        }
        if missing:
            await _resolve_hadith_book_ids(missing)
    except Exception as exc:
        logger.warning("Hadith semantic search failed: %s", exc)
        return []

    results = []
    for rank, hit in enumerate(hits, start=1):
        payload = hit["payload"]
        slug = payload["collection_slug"]
        book_number = payload["book_number"]
        results.append({
            "score": hit["score"],
            "semantic_score": hit["score"],
            "semantic_rank": rank,
            "book_id": payload.get("book_id") or _hadith_book_ids.get((slug, book_number), 0),
            "collection_slug": slug,
            "collection_name_arabic": payload.get("collection_name_arabic", ""),
            "collection_name_english": payload.get("collection_name_english", ""),
            "book_number": book_number,
            "book_name_arabic": payload.get("book_name_arabic", ""),
            "book_name_english": payload.get("book_name_english", ""),
            "hadith_number": payload["hadith_number"],
            "text": payload.get("text", ""),
            "chapter_arabic": payload.get("chapter_arabic"),
            "chapter_english": payload.get("chapter_english"),
            "grade": payload.get("grade"),
            "source_url": sunnah_url(slug, payload["hadith_number"], book_number),
        })
    return results


async def _leg(coro: Awaitable[list[dict]], label: str) -> list[dict]:
    try:
        return await coro
    except Exception as exc:
        logger.error("Hybrid %s leg failed: %s", label, exc)
        return []


async def hybrid_search_with_rerank(
    query: str,
    limit: int,
    reranker: str,
    pre_rerank_limit: int,
    post_rerank_limit: int,
    pre_rerank_cap: int,
    semantic: Callable[[int], Awaitable[list[dict]]],
    keyword: Callable[[int], Awaitable[list[dict]]],
    get_key: Callable[[dict], str],
    format_for_reranking: Callable[[dict], str],
) -> list[dict]:
    """Semantic + keyword in parallel, fuse, cap, rerank, then assign final scores."""
    fetch_limit = min(pre_rerank_limit, FETCH_LIMIT_CAP)

    semantic_results, keyword_results = await asyncio.gather(
        _leg(semantic(fetch_limit), "semantic"),
        _leg(keyword(fetch_limit), "keyword"),
    )

    merged = merge_with_rrf_generic(semantic_results, keyword_results, get_key, query)
    candidates = merged[: min(pre_rerank_limit, pre_rerank_cap)]
    final_limit = min(post_rerank_limit, limit)

    reranked, _timed_out = await rerank(query, candidates, format_for_reranking, final_limit, reranker)

    results = []
    for rank, result in enumerate(reranked, start=1):
        score = result.get("fused_score")
        if score is None:
            score = result.get("semantic_score")
        if score is None:
            score = result.get("rrf_score")
        results.append({**result, "score": score, "rank": rank})
    return results


async def search_ayahs_hybrid(
    query: str,
    limit: int = 10,
    reranker: str = "none",
    pre_rerank_limit: int = 60,
    post_rerank_limit: int | None = None,
    similarity_cutoff: float = 0.6,
    fuzzy_fallback: bool = True,
    embedding: list[float] | None = None,
) -> list[dict]:
    async def semantic(fetch_limit: int) -> list[dict]:
        results, _meta = await search_ayahs_semantic(query, fetch_limit, similarity_cutoff, embedding)
        return results

    async def keyword(fetch_limit: int) -> list[dict]:
        return await keyword_search_ayahs(query, fetch_limit, fuzzy_fallback=fuzzy_fallback)

    return await hybrid_search_with_rerank(
        query, limit, reranker, pre_rerank_limit, post_rerank_limit or limit, AYAH_PRE_RERANK_CAP,
        semantic, keyword, ayah_key, format_ayah_for_reranking,
    )


async def search_hadiths_hybrid(
    query: str,
    limit: int = 10,
    reranker: str = "none",
    pre_rerank_limit: int = 60,
    post_rerank_limit: int | None = None,
    similarity_cutoff: float = 0.6,
    fuzzy_fallback: bool = True,
    embedding: list[float] | None = None,
    collection_slugs: list[str] | None = None,
) -> list[dict]:
    async def semantic(fetch_limit: int) -> list[dict]:
        return await search_hadiths_semantic(
            query, fetch_limit, similarity_cutoff, embedding, collection_slugs,
        )

    async def keyword(fetch_limit: int) -> list[dict]:
        return await keyword_search_hadiths(
            query, fetch_limit, collection_slugs=collection_slugs, fuzzy_fallback=fuzzy_fallback,
        )

    return await hybrid_search_with_rerank(
        query, limit, reranker, pre_rerank_limit, post_rerank_limit or limit, HADITH_PRE_RERANK_CAP,
        semantic, keyword, hadith_key, format_hadith_for_reranking,
    )
