from pydantic import BaseModel, Field


# --- Books ---

class AuthorSummary(BaseModel):
    id: str
    name_arabic: str
    name_latin: str
    death_date_hijri: str | None = None
    death_date_gregorian: str | None = None

    model_config = {"from_attributes": True}


class AuthorDetail(AuthorSummary):
    biography: str | None = None
    books_count: int = 0


class CategoryResponse(BaseModel):
    id: int
    code: str | None = None
    name_arabic: str
    name_english: str | None = None

    model_config = {"from_attributes": True}


class CategoryNode(CategoryResponse):
    parent_id: int | None = None
    books_count: int = 0
    children: list["CategoryNode"] = []


class CategoryListResponse(BaseModel):
    categories: list[CategoryNode]
    sources: list[dict]


class CategoryDetail(CategoryResponse):
    parent: CategoryResponse | None = None
    children: list[CategoryResponse] = []


class BookSummary(BaseModel):
    id: str
    title_arabic: str
    title_latin: str
    title_translated: str | None = None
    total_volumes: int
    total_pages: int | None = None
    publication_year_hijri: str | None = None
    author: AuthorSummary | None = None
    category: CategoryResponse | None = None
    reference_url: str

    model_config = {"from_attributes": True}


class BookListResponse(BaseModel):
    books: list[BookSummary]
    total: int
    limit: int
    offset: int


class CategoryBooksResponse(BaseModel):
    category: CategoryDetail
    books: list[BookSummary]
    total: int
    limit: int
    offset: int
    sources: list[dict]


class AuthorListResponse(BaseModel):
    authors: list[AuthorDetail]
    total: int
    limit: int
    offset: int


class AuthorWithBooks(AuthorDetail):
    books: list[BookSummary] = []


class PageResponse(BaseModel):
    book_id: str
    page_number: int
    volume_number: int
    url_page_index: str | None = None
    content_plain: str
    content_html: str
    reference_url: str
    translation: list[dict] | None = None
    translation_model: str | None = None


# --- Quran ---

class SurahResponse(BaseModel):
    number: int
    name_arabic: str
    name_english: str
    revelation_type: str
    ayah_count: int

    model_config = {"from_attributes": True}


class AyahResponse(BaseModel):
    surah_number: int
    ayah_number: int
    text_uthmani: str
    text_plain: str
    juz_number: int
    page_number: int
    quran_com_url: str
    translation: str | None = None


class SurahDetailResponse(SurahResponse):
    ayahs: list[AyahResponse]


class AyahListResponse(BaseModel):
    ayahs: list[AyahResponse]
    total: int
    limit: int
    offset: int


class QuranEditionResponse(BaseModel):
    id: str
    language: str
    name: str
    translator: str | None = None
    source: str | None = None

    model_config = {"from_attributes": True}


class AyahTranslationResponse(BaseModel):
    edition_id: str
    language: str
    name: str
    text: str
    source_url: str


class TafsirEditionResponse(BaseModel):
    id: str
    language: str
    name: str
    author: str | None = None
    source: str
    direction: str

    model_config = {"from_attributes": True}


class AyahTafsirResponse(BaseModel):
    edition_id: str
    source: str | None = None
    language: str
    name: str
    text: str
    source_url: str


# --- Hadith ---

class HadithBookResponse(BaseModel):
    id: int
    book_number: int
    name_english: str
    name_arabic: str

    model_config = {"from_attributes": True}


class HadithCollectionResponse(BaseModel):
    slug: str
    name_english: str
    name_arabic: str

    model_config = {"from_attributes": True}


class HadithCollectionDetail(HadithCollectionResponse):
    books: list[HadithBookResponse]


class HadithResponse(BaseModel):
    id: int
    book_id: int
    collection_slug: str
    book_number: int
    hadith_number: str
    text_arabic: str
    chapter_arabic: str | None = None
    chapter_english: str | None = None
    isnad: str | None = None
    matn: str | None = None
    grade: str | None = None
    grader_name: str | None = None
    source_url: str
    translation: str | None = None
    translation_source: str | None = None


class HadithBookDetail(BaseModel):
    collection: HadithCollectionResponse
    book: HadithBookResponse
    hadiths: list[HadithResponse]
    total: int
    limit: int
    offset: int


# --- Search ---

class SearchResponse(BaseModel):
    query: str
    mode: str
    count: int
    results: list[dict]
    authors: list[dict]
    ayahs: list[dict]
    hadiths: list[dict]
    refined: bool | None = None
    expanded_queries: list[dict] | None = None
    debug_stats: dict | None = None


class HadithToTranslate(BaseModel):
    book_id: int
    hadith_number: str = Field(..., min_length=1, max_length=20)
    collection_slug: str
    text: str = Field(..., max_length=10_000)


class TranslateHadithsRequest(BaseModel):
    hadiths: list[HadithToTranslate] = Field(..., min_length=1, max_length=10)
    language: str = Field(..., min_length=2, max_length=5)


class HadithTranslationItem(BaseModel):
    book_id: int
    hadith_number: str
    translation: str
    source: str


class TranslateHadithsResponse(BaseModel):
    translations: list[HadithTranslationItem]
    error: str | None = None


# --- Dictionary ---

class DictionarySourceResponse(BaseModel):
    id: int
    slug: str
    name_arabic: str
    name_english: str
    author: str | None = None
    book_id: str | None = None


class DefinitionResponse(BaseModel):
    id: int
    source: DictionarySourceResponse
    root: str
    headword: str
    definition: str
    definition_html: str | None = None
    match_type: str | None = None
    precision: str
    book_id: str | None = None
    start_page: int | None = None
    end_page: int | None = None


class RootResolution(BaseModel):
    root: str
    confidence: str
    tier: str


class LookupResponse(BaseModel):
    word: str
    word_normalized: str
    resolved_roots: list[RootResolution] | None = None
    definitions: list[DefinitionResponse]
    match_strategy: str
    sources: list[dict]


class ResolveResponse(BaseModel):
    word: str
    word_normalized: str
    resolutions: list[RootResolution]


class DerivedForm(BaseModel):
    word: str
    vocalized: str | None = None
    pattern: str | None = None
    word_type: str | None = None
    definition: str | None = None
    part_of_speech: str | None = None
    source: str | None = None


class RootFamilyResponse(BaseModel):
    root: str
    root_normalized: str
    derived_forms: list[DerivedForm]
    dictionary_entries: list[DefinitionResponse]
    sources: list[dict]


class SourceListResponse(BaseModel):
    sources: list[DictionarySourceResponse]
    attribution: list[dict]


# --- Stats / health ---

class StatsResponse(BaseModel):
    book_count: int
    author_count: int
    category_count: int
    page_count: int
    hadith_count: int
    ayah_count: int


class HealthResponse(BaseModel):
    status: str
    version: str
