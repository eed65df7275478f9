from sqlalchemy import select

from app.models.db import HadithBook, Page, PageTranslation
from app.services.search.params import SearchParams
from app.services.search.translations import (
    extract_paragraph_texts,
    fetch_and_merge_translations,
    find_matching_paragraph_index,
)

PAGE_HTML = (
    "<h1>كتاب الصلاة</h1>"
    '<p class="intro">باب <b>فضل</b> الصلاة في أول وقتها</p>'
    "<p>قال رسول الله صلى الله عليه وسلم الصلاة على وقتها</p>"
    "<p>باب ما جاء في صلاة الجماعة وفضلها على صلاة الفذ</p>"
)


def test_extract_paragraph_texts_strips_markup():
    assert extract_paragraph_texts(PAGE_HTML) == [
        "باب فضل الصلاة في أول وقتها",
        "قال رسول الله صلى الله عليه وسلم الصلاة على وقتها",
        "باب ما جاء في صلاة الجماعة وفضلها على صلاة الفذ",
    ]
    assert extract_paragraph_texts("") == []


def test_containment_match_ignores_highlights_and_tashkeel():
    paragraphs = extract_paragraph_texts(PAGE_HTML)
    snippet = "قَالَ رسول الله <mark>صلى</mark> الله عليه"
    assert find_matching_paragraph_index(snippet, paragraphs) == 1


def test_word_overlap_fallback():
    paragraphs = extract_paragraph_texts(PAGE_HTML)
    # Not a contiguous slice of any paragraph
    snippet = "الجماعة وفضلها الفذ"
    assert find_matching_paragraph_index(snippet, paragraphs) == 2


def test_no_match():
    assert find_matching_paragraph_index("", ["نص"]) is None
    assert find_matching_paragraph_index("كلمة", []) is None
    assert find_matching_paragraph_index("زكاة", ["صلاة"]) is None


async def test_fetch_and_merge_translations(seeded):
    session = seeded
    page = (await session.execute(select(Page).where(Page.book_id == "10", Page.page_number == 1))).scalar_one()
    session.add(PageTranslation(
        page_id=page.id, language="en", model="test-model",
        paragraphs=[{"index": 0, "translation": "Chapter of sincerity"}],
    ))
    await session.commit()
    revelation = (await session.execute(select(HadithBook).where(HadithBook.book_number == 1))).scalar_one()

    params = SearchParams(
        query="الإخلاص",
        quran_translation="fra-muhammadhameedu",
        hadith_translation="en",
        book_content_translation="en",
    )
    books = [
        {"book_id": "10", "page_number": 1, "text_snippet": "باب الإخلاص"},
        {"book_id": "10", "page_number": 2, "text_snippet": "باب التوبة"},
    ]
    ayahs = [{"surah_number": 1, "ayah_number": 1}, {"surah_number": 1, "ayah_number": 2}]
    hadiths = [
        {"book_id": revelation.id, "hadith_number": "1"},
        {"book_id": revelation.id, "hadith_number": "2"},
    ]

    books, ayahs, hadiths = await fetch_and_merge_translations(session, params, books, ayahs, hadiths)

    assert books[0]["content_translation"] == "Chapter of sincerity"
    assert books[0]["content_translation_model"] == "test-model"
    assert "content_translation" not in books[1]

    assert ayahs[0]["translation_edition_id"] == "fra-muhammadhameedu"
    assert ayahs[0]["translation_name"] == "Hamidullah"
    assert "translation" not in ayahs[1]

    assert hadiths[0]["translation"] == "Actions are judged by intentions."
    assert hadiths[0]["translation_source"] == "hadithapi"
    assert hadiths[0]["translation_pending"] is False
    assert hadiths[1]["translation_pending"] is True


async def test_translations_by_language_and_disabled(seeded):
    params = SearchParams(query="q", quran_translation="en")
    ayahs = [{"surah_number": 1, "ayah_number": 1}]
    hadiths = [{"book_id": 1, "hadith_number": "1"}]

    _, ayahs, hadiths = await fetch_and_merge_translations(seeded, params, [], ayahs, hadiths)

    assert ayahs[0]["translation_edition_id"] == "eng-ummmuhammad"
    assert ayahs[0]["translation_source"] == "alquran.cloud"
    # hadith_translation defaults to "none"
    assert hadiths == [{"book_id": 1, "hadith_number": "1"}]
