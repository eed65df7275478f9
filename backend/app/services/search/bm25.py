"""BM25 constants shared with the Elasticsearch index settings.

Elasticsearch returns raw, unbounded BM25 scores; ``normalize_bm25_score``
squashes them into [0, 1) so they can be blended with cosine similarities.
"""

BM25_K1 = 1.2
BM25_B = 0.75

# Score at which the normalized value reaches 0.5
BM25_NORM_K = 5.0


def normalize_bm25_score(score: float, k: float = BM25_NORM_K) -> float:
    if score <= 0:
        return 0.0
    return score / (score + k)
