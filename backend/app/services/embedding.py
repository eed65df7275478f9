import asyncio
import logging

from app.config import settings
from app.services.arabic_text import normalize_arabic_text
from app.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 1024  # bge-m3 output dimension

# bge-m3 accepts 8192 tokens; Arabic runs ~2-3 chars per token
MAX_EMBEDDING_CHARS = 6000

_model = None

_query_cache: TTLCache[list[float]] = TTLCache(max_size=2000, ttl_seconds=3600, eviction_count=100)


def _load_model():
    """Load the sentence-transformers model once per process."""
    global _model
    if _model is not None:
        return _model

    from sentence_transformers import SentenceTransformer

    logger.info("Loading embedding model: %s...", settings.embedding_model)
    _model = SentenceTransformer(settings.embedding_model)
    logger.info("Embedding model loaded.")
    return _model


def truncate_for_embedding(text: str, max_chars: int = MAX_EMBEDDING_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    cut = text.rfind(" ", 0, max_chars)
    return text[: cut if cut > 0 else max_chars]


def embed_texts(texts: list[str]) -> list[list[float]]:
    """Generate L2-normalized embeddings for a list of texts using bge-m3."""
    model = _load_model()
    embeddings = model.encode(
        [truncate_for_embedding(t) for t in texts],
        normalize_embeddings=True,
        show_progress_bar=False,
    )
    return embeddings.tolist()


def embed_query(text: str) -> list[float]:
    """Generate a single embedding for a query string."""
    return embed_texts([text])[0]


async def generate_query_embedding(query: str) -> list[float]:
    """Embed a search query off the event loop, memoized per normalized text."""
    normalized = normalize_arabic_text(query)
    cached = _query_cache.get(normalized)
    if cached is not None:
        return cached

    embedding = await asyncio.to_thread(embed_query, normalized)
    _query_cache.set(normalized, embedding)
    return embedding
