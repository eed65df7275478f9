"""Arabic dictionary lookups over the imported lexicons.

A lookup walks from the most precise match to the loosest: vocalized
headword, normalized headword, article-stripped headword, and finally the
word's resolved root. Definitions come either from sub-entries (a single
derived word inside a root article) or from whole root articles, which are
cut down to an excerpt when long.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.db import ArabicRoot, DictionaryEntry, DictionarySource, DictionarySubEntry
from app.services.arabic_text import (
    extract_relevant_excerpt,
    has_tashkeel,
    normalize_arabic,
    normalize_arabic_light,
    resolve_root,
    strip_definite_article,
)

logger = logging.getLogger(__name__)

LOOKUP_LIMIT = 20
FULL_DEFINITION_MAX_CHARS = 300
DERIVED_FORMS_LIMIT = 200
ROOT_SUB_ENTRIES_LIMIT = 100

PRECISION_RANK = {"sub_entry": 0, "full": 1, "excerpt": 2}


def source_to_dict(source: DictionarySource) -> dict:
    return {
        "id": source.id,
        "slug": source.slug,
        "name_arabic": source.name_arabic,
        "name_english": source.name_english,
        "author": source.author,
        "book_id": source.book_id,
    }


def sub_entry_to_definition(sub: DictionarySubEntry, match_type: str) -> dict:
    """Sub-entry definition; page info falls back to the parent article."""
    entry = sub.entry
    page = sub.page_number
    return {
        "id": sub.id,
        "source": source_to_dict(sub.source),
        "root": sub.root,
        "headword": sub.headword,
        "definition": sub.definition_plain,
        "definition_html": sub.definition_html,
        "match_type": match_type,
        "precision": "sub_entry",
        "book_id": sub.book_id or (entry.book_id if entry else None),
        "start_page": page if page is not None else (entry.start_page if entry else None),
        "end_page": page if page is not None else (entry.end_page if entry else None),
    }


def _truncated(text: str) -> str:
    return text[:FULL_DEFINITION_MAX_CHARS] + "..."


def full_entry_to_definition(entry: DictionaryEntry, match_type: str, search_word: str | None = None) -> dict:
    """Whole-article definition, cut to an excerpt around ``search_word`` when long."""
    if len(entry.definition_plain) <= FULL_DEFINITION_MAX_CHARS:
        definition, definition_html, precision = entry.definition_plain, entry.definition_html, "full"
    else:
        excerpt = extract_relevant_excerpt(entry.definition_plain, search_word) if search_word else None
        definition = excerpt or _truncated(entry.definition_plain)
        definition_html, precision = None, "excerpt"

    return {
        "id": entry.id,
        "source": source_to_dict(entry.source),
        "root": entry.root,
        "headword": entry.headword,
        "definition": definition,
        "definition_html": definition_html,
        "match_type": match_type,
        "precision": precision,
        "book_id": entry.book_id,
        "start_page": entry.start_page,
        "end_page": entry.end_page,
    }


def dedup_definitions(definitions: list[dict]) -> list[dict]:
    """Keep one definition per source, preferring the most precise."""
    by_source: dict[int, dict] = {}
    for definition in definitions:
        source_id = definition["source"]["id"]
        existing = by_source.get(source_id)
        if existing is None or PRECISION_RANK[definition["precision"]] < PRECISION_RANK[existing["precision"]]:
            by_source[source_id] = definition
    return list(by_source.values())


# --- Queries ---

def _sub_entries():
    return select(DictionarySubEntry).options(
        selectinload(DictionarySubEntry.source),
        selectinload(DictionarySubEntry.entry),
    )


def _entries():
    return select(DictionaryEntry).options(selectinload(DictionaryEntry.source))


async def lookup_roots(session: AsyncSession, word_normalized: str) -> list[str]:
    rows = await session.execute(
        select(ArabicRoot.root).where(ArabicRoot.word == word_normalized).distinct()
    )
    return list(rows.scalars().all())


async def root_exists(session: AsyncSession, root: str) -> bool:
    sub_id = await session.scalar(
        select(DictionarySubEntry.id).where(DictionarySubEntry.root_normalized == root).limit(1)
    )
    if sub_id is not None:
        return True
    root_id = await session.scalar(select(ArabicRoot.id).where(ArabicRoot.root == root).limit(1))
    return root_id is not None


async def _find_by_headword(session: AsyncSession, column_sub, column_entry, value: str, word: str, match_type: str) -> list[dict]:
    """Sub-entries on ``column_sub == value``, else full entries on ``column_entry == value``."""
    subs = (await session.execute(_sub_entries().where(column_sub == value).limit(LOOKUP_LIMIT))).scalars().all()
    if subs:
        return [sub_entry_to_definition(s, match_type) for s in subs]
    entries = (await session.execute(_entries().where(column_entry == value).limit(LOOKUP_LIMIT))).scalars().all()
    return [full_entry_to_definition(e, match_type, word) for e in entries]


async def lookup_word(session: AsyncSession, word: str) -> dict:
    word_normalized = normalize_arabic(word)
    stripped = strip_definite_article(word)

    definitions: list[dict] = []
    match_strategy = "none"
    resolved_roots = None

    if has_tashkeel(word):
        definitions = await _find_by_headword(
            session,
            DictionarySubEntry.headword_vocalized, DictionaryEntry.headword_vocalized,
            normalize_arabic_light(word), word, "exact",
        )
        if definitions:
            match_strategy = "exact_vocalized"

    if not definitions:
        definitions = await _find_by_headword(
            session,
            DictionarySubEntry.headword_normalized, DictionaryEntry.headword_normalized,
            word_normalized, word, "exact",
        )
        if definitions:
            match_strategy = "exact"

    if not definitions and stripped != word_normalized:
        definitions = await _find_by_headword(
            session,
            DictionarySubEntry.headword_normalized, DictionaryEntry.headword_normalized,
            stripped, word, "exact",
        )
        if definitions:
            match_strategy = "exact_stripped"

    if not definitions:
        resolutions = await resolve_root(
            word,
            lambda w: lookup_roots(session, w),
            lambda r: root_exists(session, r),
        )
        if resolutions:
            resolved_roots = resolutions
            roots = [r["root"] for r in resolutions]
            subs = (await session.execute(
                _sub_entries().where(DictionarySubEntry.root_normalized.in_(roots)).limit(LOOKUP_LIMIT)
            )).scalars().all()
            if subs:
                definitions = [sub_entry_to_definition(s, "root") for s in subs]
            else:
                entries = (await session.execute(
                    _entries().where(DictionaryEntry.root_normalized.in_(roots)).limit(LOOKUP_LIMIT)
                )).scalars().all()
                definitions = [full_entry_to_definition(e, "root", word) for e in entries]
            if definitions:
                match_strategy = "root_resolved"

    logger.debug("Dictionary lookup %r → %s (%d definitions)", word, match_strategy, len(definitions))
    return {
        "word": word,
        "word_normalized": word_normalized,
        "resolved_roots": resolved_roots,
        "definitions": dedup_definitions(definitions),
        "match_strategy": match_strategy,
    }


async def resolve_word(session: AsyncSession, word: str) -> dict:
    resolutions = await resolve_root(
        word,
        lambda w: lookup_roots(session, w),
        lambda r: root_exists(session, r),
    )
    return {"word": word, "word_normalized": normalize_arabic(word), "resolutions": resolutions}


async def root_family(session: AsyncSession, root: str) -> dict:
    """Derived forms of ``root`` plus its dictionary definitions.

    Sub-entries are preferred; whole articles are only included for sources
    that have no sub-entries for the root.
    """
    root_normalized = normalize_arabic(root)

    forms = (await session.execute(
        select(ArabicRoot)
        .where(ArabicRoot.root == root_normalized)
        .order_by(ArabicRoot.part_of_speech, ArabicRoot.word)
        .limit(DERIVED_FORMS_LIMIT)
    )).scalars().all()

    subs = (await session.execute(
        _sub_entries()
        .where(DictionarySubEntry.root_normalized == root_normalized)
        .order_by(DictionarySubEntry.source_id, DictionarySubEntry.position)
        .limit(ROOT_SUB_ENTRIES_LIMIT)
    )).scalars().all()

    entries = (await session.execute(
        _entries().where(DictionaryEntry.root_normalized == root_normalized).limit(LOOKUP_LIMIT)
    )).scalars().all()

    dictionary_entries = []
    for sub in subs:
        definition = sub_entry_to_definition(sub, "root")
        del definition["match_type"]
        dictionary_entries.append(definition)

    sources_with_subs = {sub.source_id for sub in subs}
    for entry in entries:
        if entry.source_id in sources_with_subs:
            continue
        definition = full_entry_to_definition(entry, "root")
        del definition["match_type"]
        dictionary_entries.append(definition)

    return {
        "root": root,
        "root_normalized": root_normalized,
        "derived_forms": [
            {
                "word": f.word,
                "vocalized": f.vocalized,
                "pattern": f.pattern,
                "word_type": f.word_type,
                "definition": f.definition,
                "part_of_speech": f.part_of_speech,
                "source": f.source,
            }
            for f in forms
        ],
        "dictionary_entries": dictionary_entries,
    }


async def list_sources(session: AsyncSession) -> list[dict]:
    rows = await session.execute(select(DictionarySource).order_by(DictionarySource.id))
    return [source_to_dict(s) for s in rows.scalars().all()]
