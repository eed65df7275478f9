"""Arabic normalization, article stripping and word → root resolution.

``normalize_arabic`` mirrors the Elasticsearch ``arabic_normalized`` analyzer
so that headwords stored in PostgreSQL and terms indexed in Elasticsearch
compare equal.
"""

import logging
import re
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TASHKEEL_RE = re.compile("[\u064B-\u065F\u0670]")
TATWEEL = "\u0640"
ALEF_VARIANTS_RE = re.compile("[آأإٱ]")
WHITESPACE_RE = re.compile(r"\s+")
ARABIC_LETTERS_RE = re.compile("^[\u0621-\u064A]+$")
ARABIC_LETTER_RE = re.compile("[\u0621-\u064A]")

# Single-character folds applied by normalize_arabic (None = drop)
_CHAR_FOLDS: dict[str, str | None] = {
    "آ": "ا",
    "أ": "ا",
    "إ": "ا",
    "ٱ": "ا",
    "ى": "ي",
    "ة": "ه",
    "ؤ": "و",
    "ئ": "ي",
    "ء": None,
    TATWEEL: None,
}

DEFINITE_ARTICLE_PREFIXES = ("وال", "فال", "بال", "كال", "لل", "ال")

# Proclitic clusters, longest first
PREFIXES = (
    "وبال", "وكال", "فبال", "وال", "فال", "بال", "كال", "ولل", "فلل", "لل", "ال",
    "وب", "ول", "وس", "فب", "فل", "فس", "و", "ف", "ب", "ل", "ك", "س",
)

# Enclitic pronouns and inflectional endings (already normalized: ة → ه), longest first
SUFFIXES = (
    "تموها", "كموها", "تموه", "تما", "هما", "كما", "ونه", "ونها",
    "ات", "ون", "ين", "ان", "وا", "ها", "هم", "هن", "كم", "كن", "نا", "ني", "تم", "تن", "يه",
    "ه", "ي", "ك", "ت", "ا", "ن",
)

# Morphological templates over normalized stems; the groups are the root radicals
PATTERNS: tuple[tuple[str, re.Pattern], ...] = tuple(
    (name, re.compile(regex))
    for name, regex in (
        ("استفعال", r"^است(.)(.)ا(.)$"),
        ("مستفعل", r"^مست(.)(.)(.)$"),
        ("استفعل", r"^است(.)(.)(.)$"),
        ("انفعال", r"^ان(.)(.)ا(.)$"),
        ("افتعال", r"^ا(.)ت(.)ا(.)$"),
        ("مفاعيل", r"^م(.)ا(.)ي(.)$"),
        ("تفعيل", r"^ت(.)(.)ي(.)$"),
        ("تفاعل", r"^ت(.)ا(.)(.)$"),
        ("مفعول", r"^م(.)(.)و(.)$"),
        ("مفعال", r"^م(.)(.)ا(.)$"),
        ("مفاعل", r"^م(.)ا(.)(.)$"),
        ("مفعله", r"^م(.)(.)(.)ه$"),
        ("فعايل", r"^(.)(.)اي(.)$"),
        ("فواعل", r"^(.)وا(.)(.)$"),
        ("انفعل", r"^ان(.)(.)(.)$"),
        ("افتعل", r"^ا(.)ت(.)(.)$"),
        ("افعال", r"^ا(.)(.)ا(.)$"),
        ("فاعل", r"^(.)ا(.)(.)$"),
        ("فعيل", r"^(.)(.)ي(.)$"),
        ("فعال", r"^(.)(.)ا(.)$"),
        ("فعول", r"^(.)(.)و(.)$"),
        ("فعله", r"^(.)(.)(.)ه$"),
        ("مفعل", r"^م(.)(.)(.)$"),
        ("تفعل", r"^ت(.)(.)(.)$"),
    )
)

# Letters that can be augments (حروف الزيادة: سألتمونيها, hamza already folded away)
AUGMENT_LETTERS = set("سالتمونيه")
LONG_VOWELS = set("اوي")

MAX_RESOLUTIONS = 3

RootLookup = Callable[[str], Awaitable[list[str]]]
RootCheck = Callable[[str], Awaitable[bool]]


def _fold(text: str) -> str:
    out = []
    for ch in TASHKEEL_RE.sub("", text):
        folded = _CHAR_FOLDS.get(ch, ch)
        if folded:
            out.append(folded)
    return "".join(out)


def normalize_arabic(text: str) -> str:
    """Strip vocalization and fold letter variants for exact matching."""
    return WHITESPACE_RE.sub(" ", _fold(text)).strip()


def normalize_arabic_light(text: str) -> str:
    """Keep tashkeel, only remove tatweel and unify alef wasla."""
    return text.replace(TATWEEL, "").replace("ٱ", "ا").strip()


def normalize_arabic_text(text: str) -> str:
    """Query normalization applied before embedding and keyword search."""
    text = TASHKEEL_RE.sub("", text).replace(TATWEEL, "")
    text = ALEF_VARIANTS_RE.sub("ا", text)
    return WHITESPACE_RE.sub(" ", text).strip()


def has_tashkeel(text: str) -> bool:
    return bool(TASHKEEL_RE.search(text))


def strip_definite_article(word: str) -> str:
    """Normalize ``word`` and drop a leading (conjunction/preposition +) al-."""
    normalized = normalize_arabic(word)
    for prefix in DEFINITE_ARTICLE_PREFIXES:
        if normalized.startswith(prefix) and len(normalized) - len(prefix) >= 2:
            return normalized[len(prefix):]
    return normalized


def extract_relevant_excerpt(text: str, word: str, radius: int = 150) -> str | None:
    """Return a window of ``text`` around the first occurrence of ``word``.

    Matching happens on normalized text; the excerpt is cut from the original
    so vocalization and punctuation survive.
    """
    folded_chars: list[str] = []
    positions: list[int] = []
    for i, ch in enumerate(text):
        if TASHKEEL_RE.match(ch):
            continue
        folded = _CHAR_FOLDS.get(ch, ch)
        if not folded:
            continue
        folded_chars.append(folded)
        positions.append(i)
    haystack = "".join(folded_chars)

    for needle in (normalize_arabic(word), strip_definite_article(word)):
        if len(needle) < 2:
            continue
        pos = haystack.find(needle)
        if pos == -1:
            continue

        start = positions[pos]
        end = positions[pos + len(needle) - 1] + 1
        window_start = max(0, start - radius)
        window_end = min(len(text), end + radius)

        # Snap to word boundaries
        if window_start > 0:
            space = text.find(" ", window_start, start)
            if space != -1:
                window_start = space + 1
        if window_end < len(text):
            space = text.rfind(" ", end, window_end)
            if space != -1:
                window_end = space

        excerpt = text[window_start:window_end].strip()
        if window_start > 0:
            excerpt = "..." + excerpt
        if window_end < len(text):
            excerpt = excerpt + "..."
        return excerpt

    return None


def candidate_stems(word: str) -> list[str]:
    """Stems obtained by peeling proclitics and enclitics off ``word``.

    The normalized word comes first; every stem keeps at least three letters.
    """
    normalized = normalize_arabic(word)
    stems: list[str] = [normalized]

    bases = [normalized]
    for prefix in PREFIXES:
        if normalized.startswith(prefix) and len(normalized) - len(prefix) >= 3:
            bases.append(normalized[len(prefix):])

    for base in bases:
        if base not in stems:
            stems.append(base)
        for suffix in SUFFIXES:
            if base.endswith(suffix) and len(base) - len(suffix) >= 3:
                stem = base[: -len(suffix)]
                if stem not in stems:
                    stems.append(stem)
    return stems


def pattern_roots(stem: str) -> list[str]:
    """Three-letter roots implied by the morphological templates ``stem`` fits."""
    roots = []
    for _name, regex in PATTERNS:
        m = regex.match(stem)
        if m:
            root = "".join(m.groups())
            if root not in roots:
                roots.append(root)
    return roots


def consonant_skeleton(stem: str) -> str | None:
    """Reduce ``stem`` to three radicals by dropping vowels, then augment letters."""
    # Keep the first letter: a radical even when it is an augment letter
    without_vowels = stem[:1] + "".join(ch for ch in stem[1:] if ch not in LONG_VOWELS)
    if len(without_vowels) == 3:
        return without_vowels
    without_augments = "".join(ch for ch in stem if ch not in AUGMENT_LETTERS)
    if len(without_augments) == 3:
        return without_augments
    return None


def extract_arabic_root(word: str) -> str | None:
    """Best-effort root guess without a lookup table (used at import time)."""
    stems = candidate_stems(word)
    for stem in stems:
        if len(stem) == 3 and ARABIC_LETTERS_RE.match(stem):
            return stem
        roots = pattern_roots(stem)
        if roots:
            return roots[0]
    return None


async def resolve_root(
    word: str,
    lookup_roots: RootLookup,
    root_exists: RootCheck,
) -> list[dict]:
    """Resolve ``word`` to candidate roots, most trustworthy tier first.

    ``lookup_roots(normalized_word)`` returns the roots a known word maps to;
    ``root_exists(root)`` says whether a root is attested at all. Resolution
    stops at the first tier that yields anything.
    """
    normalized = normalize_arabic(word)
    if not normalized:
        return []

    def _results(roots: list[str], confidence: str, tier: str) -> list[dict]:
        seen: list[str] = []
        for root in roots:
            if root and root not in seen:
                seen.append(root)
        return [
            {"root": root, "confidence": confidence, "tier": tier}
            for root in seen[:MAX_RESOLUTIONS]
        ]

    direct = await lookup_roots(normalized)
    if direct:
        return _results(direct, "high", "direct")

    stripped = strip_definite_article(word)
    if stripped != normalized:
        via_article = await lookup_roots(stripped)
        if via_article:
            return _results(via_article, "high", "article")

    stems = [s for s in candidate_stems(word) if s not in (normalized, stripped)]
    affix_roots: list[str] = []
    for stem in stems:
        affix_roots.extend(await lookup_roots(stem))
        if len(affix_roots) >= MAX_RESOLUTIONS:
            break
    if affix_roots:
        return _results(affix_roots, "medium", "affix")

    all_stems = [normalized, stripped, *stems]
    checked: set[str] = set()

    pattern_hits: list[str] = []
    for stem in all_stems:
        for root in pattern_roots(stem):
            if root in checked:
                continue
            checked.add(root)
            if await root_exists(root):
                pattern_hits.append(root)
        if len(pattern_hits) >= MAX_RESOLUTIONS:
            break
    if pattern_hits:
        return _results(pattern_hits, "medium", "pattern")

    consonant_hits: list[str] = []
    for stem in all_stems:
        root = consonant_skeleton(stem)
        if root is None or root in checked:
            continue
        checked.add(root)
        if await root_exists(root):
            consonant_hits.append(root)
    if consonant_hits:
        return _results(consonant_hits, "low", "consonant")

    logger.debug("No root found for %s", word)
    return []
