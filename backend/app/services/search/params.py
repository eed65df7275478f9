from dataclasses import dataclass, field

from app.services.search.config import (
    DEFAULT_BOOK_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SIMILARITY_CUTOFF,
    REFINE_AYAH_PER_QUERY,
    REFINE_AYAH_RERANK,
    REFINE_BOOK_PER_QUERY,
    REFINE_BOOK_RERANK,
    REFINE_EXPANDED_WEIGHT,
    REFINE_HADITH_PER_QUERY,
    REFINE_HADITH_RERANK,
    REFINE_ORIGINAL_WEIGHT,
    REFINE_SIMILARITY_CUTOFF,
)

SEARCH_MODES = ("hybrid", "semantic", "keyword")


@dataclass
class SearchParams:
    """Validated options for one search request."""

    query: str
    limit: int = DEFAULT_SEARCH_LIMIT
    book_id: str | None = None
    mode: str = "hybrid"
    include_quran: bool = True
    include_hadith: bool = True
    include_books: bool = True
    reranker: str = "none"
    similarity_cutoff: float = DEFAULT_SIMILARITY_CUTOFF
    book_limit: int = DEFAULT_BOOK_LIMIT
    fuzzy_enabled: bool = True
    # edition id (contains "-") or language code; "none" disables
    quran_translation: str = "none"
    hadith_translation: str = "none"
    book_title_lang: str | None = None
    book_content_translation: str = "none"
    refine: bool = False
    refine_similarity_cutoff: float = REFINE_SIMILARITY_CUTOFF
    refine_original_weight: float = REFINE_ORIGINAL_WEIGHT
    refine_expanded_weight: float = REFINE_EXPANDED_WEIGHT
    refine_book_per_query: int = REFINE_BOOK_PER_QUERY
    refine_ayah_per_query: int = REFINE_AYAH_PER_QUERY
    refine_hadith_per_query: int = REFINE_HADITH_PER_QUERY
    refine_book_rerank: int = REFINE_BOOK_RERANK
    refine_ayah_rerank: int = REFINE_AYAH_RERANK
    refine_hadith_rerank: int = REFINE_HADITH_RERANK
    query_expansion_model: str = "gemini-flash"
    hadith_collections: list[str] = field(default_factory=list)

    @property
    def uses_refine(self) -> bool:
        return self.refine and self.mode == "hybrid" and not self.book_id
