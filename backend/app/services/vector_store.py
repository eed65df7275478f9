import logging
import uuid

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    MatchValue,
    PointStruct,
    VectorParams,
)

from app.config import settings
from app.services.embedding import EMBEDDING_DIMENSIONS

logger = logging.getLogger(__name__)

PAGES_COLLECTION = "arabic_texts_pages"
AUTHORS_COLLECTION = "arabic_texts_authors"
QURAN_COLLECTION = "quran_ayahs"
HADITH_COLLECTION = "sunnah_hadiths"

ALL_COLLECTIONS = (PAGES_COLLECTION, AUTHORS_COLLECTION, QURAN_COLLECTION, HADITH_COLLECTION)

UPSERT_BATCH_SIZE = 100

# Fixed namespace so re-ingesting the same record overwrites its point
POINT_NAMESPACE = uuid.UUID("6f1c2b1e-8d4a-4c55-9b0e-2a7d5e3f9c10")

_client: QdrantClient | None = None


def get_client() -> QdrantClient:
    global _client
    if _client is None:
        _client = QdrantClient(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key or None,
        )
    return _client


def point_id(key: str) -> str:
    """Deterministic point id for a natural key such as ``"2-255"``."""
    return str(uuid.uuid5(POINT_NAMESPACE, key))


async def ensure_collection(collection: str):
    """Create the Qdrant collection if it doesn't exist."""
    client = get_client()
    names = [c.name for c in client.get_collections().collections]

    if collection not in names:
        logger.info("Creating Qdrant collection: %s", collection)
        client.create_collection(
            collection_name=collection,
            vectors_config=VectorParams(size=EMBEDDING_DIMENSIONS, distance=Distance.COSINE),
        )
    else:
        logger.info("Qdrant collection %s already exists.", collection)


async def upsert_points(
    collection: str,
    keys: list[str],
    embeddings: list[list[float]],
    payloads: list[dict],
) -> list[str]:
    """Upsert embedding vectors with metadata payloads into ``collection``.

    ``keys`` are natural keys turned into deterministic point IDs.
    """
    client = get_client()

    point_ids = [point_id(k) for k in keys]
    points = [
        PointStruct(id=pid, vector=emb, payload=payload)
        for pid, emb, payload in zip(point_ids, embeddings, payloads)
    ]

    for i in range(0, len(points), UPSERT_BATCH_SIZE):
        client.upsert(collection_name=collection, points=points[i : i + UPSERT_BATCH_SIZE])

    logger.info("Upserted %d points to %s.", len(points), collection)
    return point_ids


async def search(
    collection: str,
    query_vector: list[float],
    limit: int = 10,
    score_threshold: float | None = None,
    match: dict[str, str | int] | None = None,
    match_any: dict[str, list] | None = None,
) -> list[dict]:
    """Search ``collection`` for similar vectors.

    ``match`` adds exact-value conditions, ``match_any`` adds one-of
    conditions. Returns dicts with 'id', 'score', and 'payload'.
    """
    client = get_client()

    must_conditions = []
    for key, value in (match or {}).items():
        must_conditions.append(FieldCondition(key=key, match=MatchValue(value=value)))
    for key, values in (match_any or {}).items():
        if values:
            must_conditions.append(FieldCondition(key=key, match=MatchAny(any=list(values))))

    query_filter = Filter(must=must_conditions) if must_conditions else None

    results = client.query_points(
        collection_name=collection,
        query=query_vector,
        limit=limit,
        query_filter=query_filter,
        score_threshold=score_threshold,
        with_payload=True,
    )

    return [
        {
            "id": str(hit.id),
            "score": hit.score,
            "payload": hit.payload or {},
        }
        for hit in results.points
    ]
