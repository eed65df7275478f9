import json
import logging
import re
from dataclasses import dataclass

from app.prompts.query_expansion import QUERY_EXPANSION_PROMPT
from app.services.llm import LLMError, call_llm
from app.services.search.config import REFINE_EXPANDED_WEIGHT, REFINE_ORIGINAL_WEIGHT
from app.services.search.rerankers import DEFAULT_LLM_MODEL, RERANKER_CONFIG, sanitize_query_for_prompt
from app.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

MAX_EXPANDED_QUERIES = 4
EXPANSION_TIMEOUT_SECONDS = 15.0

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

_expansion_cache: TTLCache[list["ExpandedQuery"]] = TTLCache(max_size=500, ttl_seconds=3600, eviction_count=50)


@dataclass
class ExpandedQuery:
    query: str
    weight: float
    reason: str


def get_query_expansion_model_id(model: str) -> str:
    return RERANKER_CONFIG.get(model, {}).get("model", DEFAULT_LLM_MODEL)


def clear_expansion_cache() -> None:
    _expansion_cache.clear()


async def expand_query_with_cache_info(
    query: str,
    model: str = "gemini-flash",
) -> tuple[list[ExpandedQuery], bool]:
    """Expand ``query`` into up to four alternatives via the LLM.

    The original query always comes first. Returns ``(queries, cached)``;
    on any failure only the original query is returned and nothing is cached.
    """
    cached = _expansion_cache.get(query)
    if cached is not None:
        return cached, True

    original = ExpandedQuery(query=query, weight=REFINE_ORIGINAL_WEIGHT, reason="Original query")
    fallback = [original]

    try:
        content = await call_llm(
            system_prompt=QUERY_EXPANSION_PROMPT,
            user_message=f'User query: "{sanitize_query_for_prompt(query)}"',
            max_tokens=300,
            temperature=0.3,
            model=get_query_expansion_model_id(model),
            timeout=EXPANSION_TIMEOUT_SECONDS,
        )
    except LLMError as exc:
        logger.warning("Query expansion failed, proceeding with original query only: %s", exc)
        return fallback, False

    m = _JSON_ARRAY_RE.search(content)
    if not m:
        logger.warning("Query expansion returned invalid format")
        return fallback, False
    try:
        expanded = json.loads(m.group(0))
    except json.JSONDecodeError:
        logger.warning("Query expansion returned unparseable JSON: %s", m.group(0)[:200])
        return fallback, False
    if not isinstance(expanded, list):
        return fallback, False

    queries = [original]
    for i, item in enumerate(expanded[:MAX_EXPANDED_QUERIES]):
        text = item.get("query") if isinstance(item, dict) else item
        if not isinstance(text, str):
            continue
        text = text.strip()
        if text and text != query:
            queries.append(ExpandedQuery(query=text, weight=REFINE_EXPANDED_WEIGHT, reason=f"Expanded query {i + 1}"))

    logger.info("Query expanded into %d queries: %s", len(queries), [q.query for q in queries])
    _expansion_cache.set(query, queries)
    return queries, False
