import json
import logging
import re
from collections.abc import Callable

import httpx

from app.config import settings
from app.prompts.reranking import RERANKER_PROMPT, UNIFIED_RERANKER_PROMPT
from app.services.llm import LLMError, LLMTimeoutError, call_llm, get_http_client
from app.services.search.config import (
    RERANKER_TEXT_LIMIT,
    UNIFIED_RERANK_TIMEOUT_SECONDS,
    UNIFIED_RERANKER_TEXT_LIMIT,
)

logger = logging.getLogger(__name__)

JINA_RERANK_URL = "https://api.jina.ai/v1/rerank"
JINA_RERANK_MODEL = "jina-reranker-v3"
JINA_RERANK_TIMEOUT_SECONDS = 10.0

RERANKER_CONFIG: dict[str, dict] = {
    "gpt-oss-20b": {"model": "openai/gpt-oss-20b", "timeout": 20.0},
    "gpt-oss-120b": {"model": "openai/gpt-oss-120b", "timeout": 20.0},
    "gemini-flash": {"model": "google/gemini-3-flash-preview", "timeout": 15.0},
}

RERANKER_TYPES = ("none", "jina", *RERANKER_CONFIG)

DEFAULT_LLM_MODEL = "google/gemini-3-flash-preview"

_RANKING_RE = re.compile(r"\[[\d,\s]+\]")


class RerankError(Exception):
    """Raised when a reranking backend returns an unusable response."""


async def call_jina_reranker(query: str, documents: list[str], top_n: int) -> list[dict]:
    """POST to the Jina rerank API; returns ``[{index, relevance_score}, ...]``."""
    if not settings.jina_api_key:
        raise RerankError("JINA_API_KEY is not set")

    client = get_http_client()
    resp = await client.post(
        JINA_RERANK_URL,
        json={"model": JINA_RERANK_MODEL, "query": query, "documents": documents, "top_n": top_n},
        headers={"Authorization": f"Bearer {settings.jina_api_key}"},
        timeout=JINA_RERANK_TIMEOUT_SECONDS,
    )
    if resp.status_code != 200:
        raise RerankError(f"Jina reranker returned {resp.status_code}: {resp.text[:200]}")
    return resp.json().get("results", [])


def format_ayah_for_reranking(ayah: dict) -> str:
    ayah_range = ayah["ayah_number"]
    if ayah.get("ayah_end"):
        ayah_range = f"{ayah['ayah_number']}-{ayah['ayah_end']}"
    return (
        f"[QURAN] {ayah.get('surah_name_arabic', '')} ({ayah.get('surah_name_english', '')}), Ayah {ayah_range}\n"
        f"{(ayah.get('text') or '')[:RERANKER_TEXT_LIMIT]}"
    )


def format_hadith_for_reranking(hadith: dict) -> str:
    chapter = f" - {hadith['chapter_arabic']}" if hadith.get("chapter_arabic") else ""
    return (
        f"[HADITH] {hadith.get('collection_name_arabic', '')} ({hadith.get('collection_name_english', '')}), "
        f"{hadith.get('book_name_arabic', '')}{chapter}\n"
        f"{(hadith.get('text') or '')[:RERANKER_TEXT_LIMIT]}"
    )


def format_book_for_reranking(result: dict, book_title: str | None = None, author_name: str | None = None) -> str:
    if book_title:
        author = f" - {author_name}" if author_name else ""
        meta = f"[BOOK] {book_title}{author}, p.{result['page_number']}"
    else:
        meta = f"[BOOK] Page {result['page_number']}"
    return f"{meta}\n{(result.get('text_snippet') or '')[:RERANKER_TEXT_LIMIT]}"


def sanitize_query_for_prompt(query: str) -> str:
    return re.sub(r"[\r\n]+", " ", query.replace('"', "'"))[:500]


def parse_llm_ranking(content: str, results: list, top_n: int) -> list | None:
    """Map a ``[3, 1, 2]`` style answer back onto ``results``.

    Document numbers are 1-based. Out-of-range and repeated numbers are
    ignored; slots the model left out are filled in original order.
    Returns None when no ranking array is found.
    """
    m = _RANKING_RE.search(content)
    if not m:
        return None
    try:
        ranking = json.loads(m.group(0))
    except json.JSONDecodeError:
        return None

    picked: list[int] = []
    for doc_num in ranking[:top_n]:
        idx = doc_num - 1
        if 0 <= idx < len(results) and idx not in picked:
            picked.append(idx)

    for idx in range(len(results)):
        if len(picked) >= top_n:
            break
        if idx not in picked:
            picked.append(idx)

    return [results[i] for i in picked[:top_n]]


async def _rerank_with_jina(
    query: str,
    results: list[dict],
    get_text: Callable[[dict], str],
    top_n: int,
) -> tuple[list[dict], bool]:
    try:
        documents = [get_text(r)[:RERANKER_TEXT_LIMIT] for r in results]
        reranked = await call_jina_reranker(query, documents, top_n)
    except httpx.TimeoutException:
        logger.warning("jina reranker timed out after %ss, using original order", JINA_RERANK_TIMEOUT_SECONDS)
        return results[:top_n], True
    except (httpx.HTTPError, RerankError, ValueError) as exc:
        logger.warning("jina reranker failed, using original order: %s", exc)
        return results[:top_n], False

    picked: list[int] = []
    for item in reranked:
        idx = item.get("index", -1)
        if 0 <= idx < len(results) and idx not in picked:
            picked.append(idx)
    for idx in range(len(results)):
        if len(picked) >= top_n:
            break
        if idx not in picked:
            picked.append(idx)
    return [results[i] for i in picked[:top_n]], False


async def _rerank_with_llm(
    query: str,
    results: list[dict],
    get_text: Callable[[dict], str],
    top_n: int,
    model: str,
    timeout: float,
) -> tuple[list[dict], bool]:
    documents = "\n\n".join(
        f"[{i + 1}] {get_text(r)[:RERANKER_TEXT_LIMIT]}" for i, r in enumerate(results)
    )
    prompt = RERANKER_PROMPT.format(query=sanitize_query_for_prompt(query), documents=documents)

    try:
        content = await call_llm("", prompt, max_tokens=500, temperature=0, model=model, timeout=timeout)
    except LLMTimeoutError:
        logger.warning("%s reranker timed out after %ss, using fused order", model, timeout)
        return results[:top_n], True
    except LLMError as exc:
        logger.warning("%s reranker failed, using original order: %s", model, exc)
        return results[:top_n], False

    reranked = parse_llm_ranking(content, results, top_n)
    if reranked is None:
        logger.warning("%s reranker returned invalid format, using original order", model)
        return results[:top_n], False
    return reranked, False


async def rerank(
    query: str,
    results: list[dict],
    get_text: Callable[[dict], str],
    top_n: int,
    reranker: str,
) -> tuple[list[dict], bool]:
    """Reorder ``results`` with the chosen reranker and cut to ``top_n``.

    Returns ``(results, timed_out)``. Every failure falls back to the
    incoming order.
    """
    if not results or reranker == "none":
        return results[:top_n], False

    if reranker == "jina":
        return await _rerank_with_jina(query, results, get_text, top_n)

    config = RERANKER_CONFIG.get(reranker)
    if config is None:
        return results[:top_n], False
    return await _rerank_with_llm(query, results, get_text, top_n, config["model"], config["timeout"])


def _fallback_refine(books, ayahs, hadiths, limits: dict, timed_out: bool = False) -> dict:
    return {
        "books": books[: limits["books"]],
        "ayahs": ayahs[: limits["ayahs"]],
        "hadiths": hadiths[: limits["hadiths"]],
        "timed_out": timed_out,
    }


def _split_ranking(
    order: list[tuple[int, float | None]],
    unified: list[dict],
    books: list[dict],
    ayahs: list[dict],
    hadiths: list[dict],
    limits: dict,
) -> dict:
    """Distribute a ranked list of unified indices back into per-type lists.

    ``order`` holds ``(unified_index, score)``; a None score means the
    positional score ``1 - rank/100``.
    """
    out = {"books": [], "ayahs": [], "hadiths": []}
    for idx, score in order:
        if not 0 <= idx < len(unified):
            continue
        doc = unified[idx]
        rank = len(out["books"]) + len(out["ayahs"]) + len(out["hadiths"]) + 1
        value = score if score is not None else 1 - rank / 100

        if doc["type"] == "book" and len(out["books"]) < limits["books"]:
            out["books"].append({**books[doc["index"]], "semantic_score": value})
        elif doc["type"] == "ayah" and len(out["ayahs"]) < limits["ayahs"]:
            out["ayahs"].append({**ayahs[doc["index"]], "rank": rank, "score": value})
        elif doc["type"] == "hadith" and len(out["hadiths"]) < limits["hadiths"]:
            out["hadiths"].append({**hadiths[doc["index"]], "rank": rank, "score": value})
    out["timed_out"] = False
    return out


async def rerank_unified_refine(
    query: str,
    ayahs: list[dict],
    hadiths: list[dict],
    books: list[dict],
    book_meta: dict[str, dict],
    limits: dict,
    reranker: str,
) -> dict:
    """Rerank books, ayahs and hadiths together in one mixed list.

    ``limits`` is ``{"books": n, "ayahs": n, "hadiths": n}``; ``book_meta``
    maps book id to ``{"title_arabic", "author_name_arabic"}``.
    Returns ``{"books", "ayahs", "hadiths", "timed_out"}``.
    """
    if reranker == "none":
        return _fallback_refine(books, ayahs, hadiths, limits)

    unified: list[dict] = []
    for i, b in enumerate(books[: limits["books"]]):
        meta = book_meta.get(b["book_id"], {})
        unified.append({
            "type": "book",
            "index": i,
            "content": format_book_for_reranking(b, meta.get("title_arabic"), meta.get("author_name_arabic")),
        })
    for i, a in enumerate(ayahs[: limits["ayahs"]]):
        unified.append({"type": "ayah", "index": i, "content": format_ayah_for_reranking(a)})
    for i, h in enumerate(hadiths[: limits["hadiths"]]):
        unified.append({"type": "hadith", "index": i, "content": format_hadith_for_reranking(h)})

    if len(unified) < 3:
        return _fallback_refine(books, ayahs, hadiths, limits)

    if reranker == "jina":
        try:
            documents = [d["content"][:UNIFIED_RERANKER_TEXT_LIMIT] for d in unified]
            total = limits["books"] + limits["ayahs"] + limits["hadiths"]
            jina_results = await call_jina_reranker(query, documents, total)
        except httpx.TimeoutException:
            logger.warning("Unified rerank: jina timed out after %ss, using fused order", JINA_RERANK_TIMEOUT_SECONDS)
            return _fallback_refine(books, ayahs, hadiths, limits, timed_out=True)
        except (httpx.HTTPError, RerankError, ValueError) as exc:
            logger.warning("Unified rerank: jina error, keeping original order: %s", exc)
            return _fallback_refine(books, ayahs, hadiths, limits)
        order = [(r.get("index", -1), r.get("relevance_score")) for r in jina_results]
        return _split_ranking(order, unified, books, ayahs, hadiths, limits)

    documents_text = "\n\n".join(
        f"[{i + 1}] {d['content'][:UNIFIED_RERANKER_TEXT_LIMIT]}" for i, d in enumerate(unified)
    )
    prompt = UNIFIED_RERANKER_PROMPT.format(query=sanitize_query_for_prompt(query), documents=documents_text)
    model = RERANKER_CONFIG.get(reranker, {}).get("model", DEFAULT_LLM_MODEL)

    try:
        content = await call_llm(
            "", prompt, max_tokens=800, temperature=0, model=model, timeout=UNIFIED_RERANK_TIMEOUT_SECONDS,
        )
    except LLMTimeoutError:
        logger.warning("Unified rerank timed out after %ss, using fused order", UNIFIED_RERANK_TIMEOUT_SECONDS)
        return _fallback_refine(books, ayahs, hadiths, limits, timed_out=True)
    except LLMError as exc:
        logger.warning("Unified rerank error, keeping original order: %s", exc)
        return _fallback_refine(books, ayahs, hadiths, limits)

    m = re.search(r"\[[\d,\s]*\]", content)
    if not m:
        logger.warning("Unified rerank returned invalid format, keeping original order")
        return _fallback_refine(books, ayahs, hadiths, limits)

    try:
        ranking = json.loads(m.group(0))
    except json.JSONDecodeError:
        return _fallback_refine(books, ayahs, hadiths, limits)

    order = [(doc_num - 1, None) for doc_num in ranking]
    return _split_ranking(order, unified, books, ayahs, hadiths, limits)
