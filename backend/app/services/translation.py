import json
import logging
import re

from sqlalchemy import select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.db import HadithTranslation
from app.prompts.translation import HADITH_TRANSLATION_SYSTEM_PROMPT, LANGUAGE_NAMES
from app.services.llm import LLMError, call_llm

logger = logging.getLogger(__name__)

MAX_BATCH = 10
MAX_CHARS_PER_TEXT = 10_000
TRANSLATION_TIMEOUT_SECONDS = 30.0

LLM_SOURCE = "llm"


def build_numbered_batch(texts: list[str]) -> str:
    return "\n\n".join(f"{seq}. {text[:MAX_CHARS_PER_TEXT]}" for seq, text in enumerate(texts, start=1))


def parse_translation_array(raw: str, expected: int) -> dict[int, str]:
    """Parse ``[{"index": n, "translation": "..."}]`` from an LLM reply.

    Indices are 1-based, matching the numbered input. Handles markdown code
    fences and trailing commas; entries with a bad shape or an index outside
    ``1..expected`` are dropped. Raises ValueError if nothing parses.
    """
    text = raw.strip()

    m = re.search(r"```(?:json)?\s*\n?(.*?)```", text, re.DOTALL)
    if m:
        text = m.group(1).strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        fixed = re.sub(r",\s*([\]}])", r"\1", text)
        try:
            parsed = json.loads(fixed)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Could not parse LLM translation response as JSON: {text[:200]}") from exc

    if not isinstance(parsed, list):
        raise ValueError(f"Expected JSON array, got {type(parsed).__name__}")

    translations: dict[int, str] = {}
    for item in parsed[:expected]:
        if not isinstance(item, dict):
            continue
        index = item.get("index")
        translation = item.get("translation")
        if isinstance(index, int) and not isinstance(index, bool) and 1 <= index <= expected \
                and isinstance(translation, str) and translation.strip():
            translations[index] = translation.strip()[:MAX_CHARS_PER_TEXT]

    if len(translations) != expected:
        logger.warning("Translation count mismatch: got %d, expected %d", len(translations), expected)
    return translations


async def request_translations(texts: list[str], language: str) -> dict[int, str]:
    """Translate a numbered batch of Arabic hadith texts in one LLM call."""
    system_prompt = HADITH_TRANSLATION_SYSTEM_PROMPT.format(language=LANGUAGE_NAMES.get(language, language))
    raw = await call_llm(
        system_prompt=system_prompt,
        user_message=build_numbered_batch(texts),
        temperature=0.3,
        max_tokens=8000,
        timeout=TRANSLATION_TIMEOUT_SECONDS,
    )
    return parse_translation_array(raw, expected=len(texts))


async def save_translation(
    session: AsyncSession,
    book_id: int,
    hadith_number: str,
    language: str,
    text: str,
    model: str,
) -> HadithTranslation:
    """Insert or refresh an LLM translation; human translations are left untouched.

    Returns the row that is now stored for the hadith.
    """
    existing = await session.scalar(
        select(HadithTranslation).where(
            HadithTranslation.book_id == book_id,
            HadithTranslation.hadith_number == hadith_number,
            HadithTranslation.language == language,
        )
    )
    if existing is not None:
        if existing.source != LLM_SOURCE:
            return existing
        existing.text = text
        existing.model = model
        return existing

    row = HadithTranslation(
        book_id=book_id,
        hadith_number=hadith_number,
        language=language,
        text=text,
        source=LLM_SOURCE,
        model=model,
    )
    session.add(row)
    return row


async def translate_hadiths(session: AsyncSession, hadiths: list[dict], language: str) -> dict:
    """Return translations for up to ``MAX_BATCH`` hadiths, translating what is missing.

    Each hadith dict needs ``book_id``, ``hadith_number`` and ``text``. Stored
    translations are served as-is; the rest go to the LLM in one batch and are
    persisted. If the LLM fails, only the stored subset is returned, along
    with an ``error`` message.
    """
    hadiths = hadiths[:MAX_BATCH]
    rows = await session.execute(
        select(HadithTranslation).where(
            HadithTranslation.language == language,
            tuple_(HadithTranslation.book_id, HadithTranslation.hadith_number).in_(
                [(h["book_id"], h["hadith_number"]) for h in hadiths]
            ),
        )
    )
    cached = {(t.book_id, t.hadith_number): t for t in rows.scalars().all()}

    translations = []
    pending = []
    for h in hadiths:
        hit = cached.get((h["book_id"], h["hadith_number"]))
        if hit is not None:
            translations.append({
                "book_id": h["book_id"],
                "hadith_number": h["hadith_number"],
                "translation": hit.text,
                "source": hit.source or LLM_SOURCE,
            })
        else:
            pending.append(h)

    if not pending:
        return {"translations": translations}

    try:
        translated = await request_translations([h["text"] for h in pending], language)
    except (LLMError, ValueError) as exc:
        logger.warning("Hadith translation failed, returning cached subset: %s", exc)
        return {"translations": translations, "error": "Translation failed"}

    model = settings.openrouter_model
    for seq, h in enumerate(pending, start=1):
        text = translated.get(seq)
        if not text:
            continue
        stored = await save_translation(session, h["book_id"], h["hadith_number"], language, text, model)
        translations.append({
            "book_id": h["book_id"],
            "hadith_number": h["hadith_number"],
            "translation": stored.text,
            "source": stored.source or LLM_SOURCE,
        })

    await session.commit()
    logger.info("Translated %d/%d hadiths into %s", len(translated), len(pending), language)
    return {"translations": translations}
