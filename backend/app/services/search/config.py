# RRF constant (standard value is 60)
RRF_K = 60

# Weighted fusion of semantic and keyword scores. The weights sum past 1.0 so
# hits found by both methods outrank single-method hits of similar quality.
SEMANTIC_WEIGHT = 0.8
KEYWORD_WEIGHT = 0.3

# Queries shorter than this (after normalization) skip semantic search
MIN_CHARS_FOR_SEMANTIC = 4

DB_STATS_CACHE_TTL_SECONDS = 5 * 60

# Books whose content degrades search relevance
EXCLUDED_BOOK_IDS = frozenset({"2"})

# Suyuti's Jami al-Kabir duplicates the primary collections en masse
EXCLUDED_HADITH_COLLECTIONS = frozenset({"suyuti"})

DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 100
MAX_QUERY_LENGTH = 500
DEFAULT_SIMILARITY_CUTOFF = 0.6
REFINE_SIMILARITY_CUTOFF = 0.25
DEFAULT_BOOK_LIMIT = 10
MAX_BOOK_LIMIT = 50
MIN_BOOK_LIMIT = 5
DEFAULT_AYAH_LIMIT = 30
DEFAULT_HADITH_LIMIT = 30
STANDARD_FETCH_LIMIT = 50

FLOAT_TOLERANCE = 0.001

AUTHOR_SCORE_THRESHOLD = 0.3

RERANKER_TEXT_LIMIT = 800
UNIFIED_RERANKER_TEXT_LIMIT = 600
UNIFIED_RERANK_TIMEOUT_SECONDS = 25.0

AYAH_PRE_RERANK_CAP = 60
HADITH_PRE_RERANK_CAP = 75
FETCH_LIMIT_CAP = 100

DEFAULT_AYAH_SIMILARITY_CUTOFF = 0.28

EMBEDDING_TIMEOUT_SECONDS = 5.0

# Refine (query expansion) defaults
REFINE_ORIGINAL_WEIGHT = 1.0
REFINE_EXPANDED_WEIGHT = 0.7
REFINE_BOOK_PER_QUERY = 30
REFINE_AYAH_PER_QUERY = 30
REFINE_HADITH_PER_QUERY = 30
REFINE_BOOK_RERANK = 20
REFINE_AYAH_RERANK = 12
REFINE_HADITH_RERANK = 15
