import re
from dataclasses import dataclass, field

from app.services.arabic_text import normalize_arabic_text
from app.services.search.config import MIN_CHARS_FOR_SEMANTIC

ARABIC_RE = re.compile("[\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF]")

# "...", “...”, «...», „...“
QUOTED_RE = re.compile('["“«„]([^"“”«»„]+)["”»“]')

# Anything that is neither a word character nor Arabic (tashkeel included)
NON_TERM_RE = re.compile(r"[^\w\s\u0600-\u06FF]")


@dataclass
class ParsedQuery:
    terms: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)


def is_arabic_query(query: str) -> bool:
    return bool(ARABIC_RE.search(query))


def get_search_strategy(query: str) -> str:
    """Keyword indices only hold Arabic text, so other scripts go semantic-only."""
    return "hybrid" if is_arabic_query(query) else "semantic_only"


def has_quoted_phrases(query: str) -> bool:
    return bool(QUOTED_RE.search(query))


def should_skip_semantic_search(query: str) -> bool:
    """Quoted queries ask for exact matches; very short ones embed as noise."""
    if has_quoted_phrases(query):
        return True
    normalized = normalize_arabic_text(query).replace(" ", "")
    return len(normalized) < MIN_CHARS_FOR_SEMANTIC


def prepare_search_terms(text: str) -> list[str]:
    cleaned = NON_TERM_RE.sub(" ", text)
    return [t for t in cleaned.split() if t]


def parse_search_query(query: str) -> ParsedQuery:
    """Split a query into loose terms and exact phrases.

    A quoted segment with a single word is treated as a term.
    """
    parsed = ParsedQuery()
    if not query or not query.strip():
        return parsed

    for m in QUOTED_RE.finditer(query):
        words = prepare_search_terms(m.group(1))
        if len(words) >= 2:
            parsed.phrases.append(" ".join(words))
        else:
            parsed.terms.extend(words)

    remainder = QUOTED_RE.sub(" ", query)
    parsed.terms.extend(prepare_search_terms(remainder))
    return parsed


def get_dynamic_similarity_threshold(query: str, base_threshold: float) -> float:
    """Raise the similarity cutoff for short queries.

    Single words count as at most 6 characters: a long single word is still
    one concept, and benefits from the stricter cutoff.
    """
    normalized = normalize_arabic_text(query)
    words = normalized.split()
    chars = len(normalized.replace(" ", ""))
    if len(words) <= 1:
        chars = min(chars, 6)

    if chars <= 3:
        threshold = 0.55
    elif chars <= 6:
        threshold = 0.40
    elif chars <= 10:
        threshold = 0.30
    else:
        threshold = base_threshold
    return max(base_threshold, threshold)
