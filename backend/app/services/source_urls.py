"""Reference URLs and attribution for the external sources the data comes from."""

import re

SOURCES = {
    "turath": [{"name": "Turath Library", "url": "https://turath.io", "type": "api"}],
    "sunnah": [{"name": "sunnah.com", "url": "https://sunnah.com", "type": "scrape"}],
    "hadith_api": [{"name": "HadithAPI", "url": "https://hadithapi.com", "type": "api"}],
    "quran_cloud": [{"name": "Al Quran Cloud API", "url": "https://api.alquran.cloud", "type": "api"}],
    "tafsir": [
        {"name": "spa5k/tafsir_api", "url": "https://github.com/spa5k/tafsir_api", "type": "api"},
        {"name": "quran-tafseer.com", "url": "http://api.quran-tafseer.com", "type": "api"},
    ],
    "quran_translation": [
        {"name": "fawazahmed0/quran-api", "url": "https://github.com/fawazahmed0/quran-api", "type": "api"},
    ],
}

# These collections use /slug/book/number instead of /slug:number
BOOK_PATH_COLLECTIONS = {"malik", "bulugh"}

_TRAILING_LETTERS = re.compile(r"[A-Za-z]+$")

TAFSIR_CDN = "https://cdn.jsdelivr.net/gh/spa5k/tafsir_api@main/tafsir"
TRANSLATION_CDN = "https://cdn.jsdelivr.net/gh/fawazahmed0/quran-api@1/editions"

LEGACY_TAFSIR_EDITIONS = {
    "jalalayn": "ar-jalalayn",
    "ibn_kathir": "ar-tafsir-ibn-kathir",
}


def sunnah_url(collection_slug: str, hadith_number: str, book_number: int) -> str:
    number = _TRAILING_LETTERS.sub("", hadith_number)
    if collection_slug in BOOK_PATH_COLLECTIONS:
        return f"https://sunnah.com/{collection_slug}/{book_number}/{number}"
    return f"https://sunnah.com/{collection_slug}:{number}"


def quran_url(surah_number: int, ayah_number: int) -> str:
    return f"https://quran.com/{surah_number}?startingVerse={ayah_number}"


def book_url(book_id: str) -> str:
    return f"https://app.turath.io/book/{book_id}"


def page_url(book_id: str, page_number: int) -> str:
    return f"https://app.turath.io/book/{book_id}#p-{page_number}"


def tafsir_source_url(edition: str, surah_number: int) -> str:
    """Accepts an edition id (``ar-tafsir-ibn-kathir``) or a legacy source slug."""
    edition = LEGACY_TAFSIR_EDITIONS.get(edition, edition)
    return f"{TAFSIR_CDN}/{edition}/{surah_number}.json"


def translation_source_url(edition_id: str) -> str:
    return f"{TRANSLATION_CDN}/{edition_id}.json"
