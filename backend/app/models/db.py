from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


# --- Books ---

class Author(Base):
    __tablename__ = "authors"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name_arabic: Mapped[str] = mapped_column(String(500))
    name_latin: Mapped[str] = mapped_column(String(500), default="")
    death_date_hijri: Mapped[str | None] = mapped_column(String(20), nullable=True)
    death_date_gregorian: Mapped[str | None] = mapped_column(String(20), nullable=True)
    biography: Mapped[str | None] = mapped_column(Text, nullable=True)

    books: Mapped[list["Book"]] = relationship(back_populates="author")


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    name_arabic: Mapped[str] = mapped_column(String(300))
    name_english: Mapped[str | None] = mapped_column(String(300), nullable=True)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True, index=True)

    parent: Mapped["Category | None"] = relationship(remote_side=[id], back_populates="children")
    children: Mapped[list["Category"]] = relationship(back_populates="parent")


class Book(Base):
    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    title_arabic: Mapped[str] = mapped_column(String(1000))
    title_latin: Mapped[str] = mapped_column(String(1000), default="")
    author_id: Mapped[str | None] = mapped_column(ForeignKey("authors.id"), nullable=True, index=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True, index=True)
    total_volumes: Mapped[int] = mapped_column(Integer, default=1)
    total_pages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    publication_year_hijri: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    author: Mapped["Author | None"] = relationship(back_populates="books")
    category: Mapped["Category | None"] = relationship()
    title_translations: Mapped[list["BookTitleTranslation"]] = relationship(
        back_populates="book", cascade="all, delete-orphan",
    )


class BookTitleTranslation(Base):
    __tablename__ = "book_title_translations"
    __table_args__ = (UniqueConstraint("book_id", "language", name="uq_book_title_lang"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    book_id: Mapped[str] = mapped_column(ForeignKey("books.id"))
    language: Mapped[str] = mapped_column(String(10))
    title: Mapped[str] = mapped_column(String(1000))

    book: Mapped["Book"] = relationship(back_populates="title_translations")


class Page(Base):
    __tablename__ = "pages"
    __table_args__ = (UniqueConstraint("book_id", "page_number", name="uq_page_book_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    book_id: Mapped[str] = mapped_column(ForeignKey("books.id"), index=True)
    page_number: Mapped[int] = mapped_column(Integer)
    volume_number: Mapped[int] = mapped_column(Integer, default=1)
    url_page_index: Mapped[str | None] = mapped_column(String(20), nullable=True)
    content_plain: Mapped[str] = mapped_column(Text, default="")
    content_html: Mapped[str] = mapped_column(Text, default="")

    translations: Mapped[list["PageTranslation"]] = relationship(
        back_populates="page", cascade="all, delete-orphan",
    )


class PageTranslation(Base):
    __tablename__ = "page_translations"
    __table_args__ = (UniqueConstraint("page_id", "language", name="uq_page_translation_lang"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    page_id: Mapped[int] = mapped_column(ForeignKey("pages.id"))
    language: Mapped[str] = mapped_column(String(10))
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # [{"index": int, "translation": str}, ...] keyed by <p> position on the page
    paragraphs: Mapped[list] = mapped_column(JSON, default=list)

    page: Mapped["Page"] = relationship(back_populates="translations")


# --- Quran ---

class Surah(Base):
    __tablename__ = "surahs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    number: Mapped[int] = mapped_column(Integer, unique=True)
    name_arabic: Mapped[str] = mapped_column(String(100))
    name_english: Mapped[str] = mapped_column(String(100))
    revelation_type: Mapped[str] = mapped_column(String(20))  # Meccan, Medinan
    ayah_count: Mapped[int] = mapped_column(Integer)

    ayahs: Mapped[list["Ayah"]] = relationship(back_populates="surah", order_by="Ayah.ayah_number")


class Ayah(Base):
    __tablename__ = "ayahs"
    __table_args__ = (UniqueConstraint("surah_id", "ayah_number", name="uq_ayah_surah_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    surah_id: Mapped[int] = mapped_column(ForeignKey("surahs.id"), index=True)
    ayah_number: Mapped[int] = mapped_column(Integer)
    text_uthmani: Mapped[str] = mapped_column(Text)
    text_plain: Mapped[str] = mapped_column(Text)
    juz_number: Mapped[int] = mapped_column(Integer, index=True)
    page_number: Mapped[int] = mapped_column(Integer, index=True)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    surah: Mapped["Surah"] = relationship(back_populates="ayahs")


class QuranTranslation(Base):
    """A translation edition, e.g. ``en.sahih``."""

    __tablename__ = "quran_translations"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    language: Mapped[str] = mapped_column(String(10), index=True)
    name: Mapped[str] = mapped_column(String(300))
    translator: Mapped[str | None] = mapped_column(String(300), nullable=True)
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)


class AyahTranslation(Base):
    __tablename__ = "ayah_translations"
    __table_args__ = (
        UniqueConstraint("edition_id", "surah_number", "ayah_number", name="uq_ayah_translation_edition"),
        Index("ix_ayah_translation_lookup", "surah_number", "ayah_number", "language"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    surah_number: Mapped[int] = mapped_column(Integer)
    ayah_number: Mapped[int] = mapped_column(Integer)
    language: Mapped[str] = mapped_column(String(10))
    edition_id: Mapped[str] = mapped_column(ForeignKey("quran_translations.id"))
    text: Mapped[str] = mapped_column(Text)

    edition: Mapped["QuranTranslation"] = relationship()


class QuranTafsir(Base):
    """A tafsir edition, e.g. ``ar-tafsir-ibn-kathir``."""

    __tablename__ = "quran_tafsirs"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    language: Mapped[str] = mapped_column(String(10), index=True)
    name: Mapped[str] = mapped_column(String(300))
    author: Mapped[str | None] = mapped_column(String(300), nullable=True)
    source: Mapped[str] = mapped_column(String(100), default="spa5k-tafsir")
    direction: Mapped[str] = mapped_column(String(3), default="rtl")


class AyahTafsir(Base):
    __tablename__ = "ayah_tafsirs"
    __table_args__ = (
        UniqueConstraint("edition_id", "surah_number", "ayah_number", name="uq_ayah_tafsir_edition"),
        Index("ix_ayah_tafsir_lookup", "surah_number", "ayah_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    surah_number: Mapped[int] = mapped_column(Integer)
    ayah_number: Mapped[int] = mapped_column(Integer)
    edition_id: Mapped[str] = mapped_column(ForeignKey("quran_tafsirs.id"))
    # Short slug kept for older clients (``ibn_kathir``, ``jalalayn``)
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    language: Mapped[str] = mapped_column(String(10))
    text: Mapped[str] = mapped_column(Text)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    edition: Mapped["QuranTafsir"] = relationship()


# --- Hadith ---

class HadithCollection(Base):
    __tablename__ = "hadith_collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(50), unique=True)
    name_english: Mapped[str] = mapped_column(String(200))
    name_arabic: Mapped[str] = mapped_column(String(200), default="")

    books: Mapped[list["HadithBook"]] = relationship(
        back_populates="collection", order_by="HadithBook.book_number",
    )


class HadithBook(Base):
    __tablename__ = "hadith_books"
    __table_args__ = (UniqueConstraint("collection_id", "book_number", name="uq_hadith_book_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    collection_id: Mapped[int] = mapped_column(ForeignKey("hadith_collections.id"), index=True)
    book_number: Mapped[int] = mapped_column(Integer)
    name_english: Mapped[str] = mapped_column(String(500), default="")
    name_arabic: Mapped[str] = mapped_column(String(500), default="")

    collection: Mapped["HadithCollection"] = relationship(back_populates="books")
    hadiths: Mapped[list["Hadith"]] = relationship(back_populates="book")


class Hadith(Base):
    __tablename__ = "hadiths"
    __table_args__ = (UniqueConstraint("book_id", "hadith_number", name="uq_hadith_book_number_hadith"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("hadith_books.id"), index=True)
    # Text so that numbers like "12a" survive
    hadith_number: Mapped[str] = mapped_column(String(20))
    text_arabic: Mapped[str] = mapped_column(Text)
    text_plain: Mapped[str] = mapped_column(Text)
    chapter_arabic: Mapped[str | None] = mapped_column(Text, nullable=True)
    chapter_english: Mapped[str | None] = mapped_column(Text, nullable=True)
    isnad: Mapped[str | None] = mapped_column(Text, nullable=True)
    matn: Mapped[str | None] = mapped_column(Text, nullable=True)
    grade: Mapped[str | None] = mapped_column(String(100), nullable=True)
    grader_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    book: Mapped["HadithBook"] = relationship(back_populates="hadiths")


class HadithTranslation(Base):
    __tablename__ = "hadith_translations"
    __table_args__ = (
        UniqueConstraint("book_id", "hadith_number", "language", name="uq_hadith_translation_lang"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("hadith_books.id"))
    hadith_number: Mapped[str] = mapped_column(String(20))
    language: Mapped[str] = mapped_column(String(10))
    text: Mapped[str] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(50), default="llm")  # llm, hadithapi, sunnah.com
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# --- Dictionary ---

class DictionarySource(Base):
    __tablename__ = "dictionary_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True)
    name_arabic: Mapped[str] = mapped_column(String(300))
    name_english: Mapped[str] = mapped_column(String(300), default="")
    author: Mapped[str | None] = mapped_column(String(300), nullable=True)
    book_id: Mapped[str | None] = mapped_column(String(50), nullable=True)


class DictionaryEntry(Base):
    """A whole root article of a lexicon."""

    __tablename__ = "dictionary_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_id: Mapped[int] = mapped_column(ForeignKey("dictionary_sources.id"), index=True)
    root: Mapped[str] = mapped_column(String(50))
    root_normalized: Mapped[str] = mapped_column(String(50), index=True)
    headword: Mapped[str] = mapped_column(String(200))
    headword_normalized: Mapped[str] = mapped_column(String(200), index=True)
    headword_vocalized: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    definition_plain: Mapped[str] = mapped_column(Text)
    definition_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    book_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    start_page: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_page: Mapped[int | None] = mapped_column(Integer, nullable=True)

    source: Mapped["DictionarySource"] = relationship()


class DictionarySubEntry(Base):
    """A single derived word inside a root article."""

    __tablename__ = "dictionary_sub_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_id: Mapped[int] = mapped_column(ForeignKey("dictionary_sources.id"), index=True)
    entry_id: Mapped[int | None] = mapped_column(ForeignKey("dictionary_entries.id"), nullable=True)
    root: Mapped[str] = mapped_column(String(50))
    root_normalized: Mapped[str] = mapped_column(String(50), index=True)
    headword: Mapped[str] = mapped_column(String(200))
    headword_normalized: Mapped[str] = mapped_column(String(200), index=True)
    headword_vocalized: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    definition_plain: Mapped[str] = mapped_column(Text)
    definition_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    book_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    page_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

    source: Mapped["DictionarySource"] = relationship()
    entry: Mapped["DictionaryEntry | None"] = relationship()


class ArabicRoot(Base):
    """Word → root mapping used for root resolution and derived-form listings."""

    __tablename__ = "arabic_roots"
    __table_args__ = (Index("ix_arabic_roots_word_root", "word", "root"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    word: Mapped[str] = mapped_column(String(200), index=True)
    root: Mapped[str] = mapped_column(String(50), index=True)
    vocalized: Mapped[str | None] = mapped_column(String(200), nullable=True)
    pattern: Mapped[str | None] = mapped_column(String(50), nullable=True)
    word_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    part_of_speech: Mapped[str | None] = mapped_column(String(50), nullable=True)
    definition: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)
