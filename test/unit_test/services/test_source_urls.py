from app.services.source_urls import (
    book_url,
    page_url,
    quran_url,
    sunnah_url,
    tafsir_source_url,
    translation_source_url,
)


def test_sunnah_url_colon_form():
    assert sunnah_url("bukhari", "52", 2) == "https://sunnah.com/bukhari:52"


def test_sunnah_url_drops_letter_suffix():
    assert sunnah_url("muslim", "8a", 1) == "https://sunnah.com/muslim:8"


def test_sunnah_url_book_path_collections():
    assert sunnah_url("malik", "3", 17) == "https://sunnah.com/malik/17/3"


def test_quran_and_turath_urls():
    assert quran_url(2, 255) == "https://quran.com/2?startingVerse=255"
    assert book_url("147") == "https://app.turath.io/book/147"
    assert page_url("147", 12) == "https://app.turath.io/book/147#p-12"


def test_cdn_urls():
    assert tafsir_source_url("jalalayn", 1).endswith("/tafsir/ar-jalalayn/1.json")
    assert tafsir_source_url("en-tafisr-ibn-kathir", 2).endswith("/tafsir/en-tafisr-ibn-kathir/2.json")
    assert translation_source_url("eng-ummmuhammad").endswith("/editions/eng-ummmuhammad.json")
