import pytest

from app.services.arabic_text import (
    candidate_stems,
    consonant_skeleton,
    extract_arabic_root,
    extract_relevant_excerpt,
    has_tashkeel,
    normalize_arabic,
    normalize_arabic_light,
    normalize_arabic_text,
    pattern_roots,
    resolve_root,
    strip_definite_article,
)


class TestNormalization:
    def test_normalize_arabic_folds_letters_and_strips_tashkeel(self):
        assert normalize_arabic("الْكِتَابُ") == "الكتاب"
        assert normalize_arabic("أَحْمَد") == "احمد"
        assert normalize_arabic("مدرسة") == "مدرسه"
        assert normalize_arabic("مستشفى") == "مستشفي"
        assert normalize_arabic("سؤال") == "سوال"
        assert normalize_arabic("سماء") == "سما"

    def test_normalize_arabic_collapses_whitespace_and_tatweel(self):
        assert normalize_arabic("  كـــتاب   الله ") == "كتاب الله"

    def test_light_normalization_keeps_vocalization(self):
        assert normalize_arabic_light("ٱلْحَمْـدُ") == "الْحَمْدُ"

    def test_query_normalization_keeps_teh_marbuta(self):
        assert normalize_arabic_text("الصَّلاةُ  في إِسلام") == "الصلاة في اسلام"

    def test_has_tashkeel(self):
        assert has_tashkeel("كَتَبَ")
        assert not has_tashkeel("كتب")

    @pytest.mark.parametrize(
        ("word", "expected"),
        [
            ("الكتاب", "كتاب"),
            ("والكتاب", "كتاب"),
            ("بالقلم", "قلم"),
            ("للناس", "ناس"),
            ("كتاب", "كتاب"),
            # Too short once stripped
            ("الم", "الم"),
        ],
    )
    def test_strip_definite_article(self, word, expected):
        assert strip_definite_article(word) == expected


class TestStemming:
    def test_candidate_stems_start_with_normalized_word(self):
        stems = candidate_stems("والكاتبون")
        assert stems[0] == "والكاتبون"
        assert "كاتب" in stems

    def test_candidate_stems_keep_three_letters(self):
        assert all(len(s) >= 3 for s in candidate_stems("وكتبها"))

    def test_pattern_roots(self):
        assert "كتب" in pattern_roots("مكتوب")
        assert "علم" in pattern_roots("استعلام")
        assert pattern_roots("كتب") == []

    def test_consonant_skeleton(self):
        assert consonant_skeleton("كاتب") == "كتب"
        assert consonant_skeleton("كتب") == "كتب"
        assert consonant_skeleton("ك") is None

    def test_extract_arabic_root(self):
        assert extract_arabic_root("المكتوب") == "كتب"
        assert extract_arabic_root("كتب") == "كتب"


class TestExcerpt:
    def test_excerpt_is_cut_from_original_text(self):
        text = "أ " * 200 + "الكِتَابُ هو المرجع " + "ب " * 200
        excerpt = extract_relevant_excerpt(text, "كتاب", radius=20)

        assert excerpt is not None
        assert "الكِتَابُ" in excerpt
        assert excerpt.startswith("...")
        assert excerpt.endswith("...")

    def test_excerpt_missing_word(self):
        assert extract_relevant_excerpt("نص لا يحتوي الكلمة", "قلم") is None


class TestResolveRoot:
    @staticmethod
    def _tables(words: dict[str, list[str]], roots: set[str]):
        calls: list[str] = []

        async def lookup(word: str) -> list[str]:
            calls.append(word)
            return words.get(word, [])

        async def exists(root: str) -> bool:
            return root in roots

        return lookup, exists, calls

    async def test_direct_lookup_wins(self):
        lookup, exists, _ = self._tables({"مكتبه": ["كتب"]}, set())
        result = await resolve_root("مكتبة", lookup, exists)
        assert result == [{"root": "كتب", "confidence": "high", "tier": "direct"}]

    async def test_article_tier(self):
        lookup, exists, _ = self._tables({"كتاب": ["كتب"]}, set())
        result = await resolve_root("الكتاب", lookup, exists)
        assert result == [{"root": "كتب", "confidence": "high", "tier": "article"}]

    async def test_affix_tier(self):
        lookup, exists, _ = self._tables({"كتاب": ["كتب"]}, set())
        result = await resolve_root("كتابهم", lookup, exists)
        assert result[0] == {"root": "كتب", "confidence": "medium", "tier": "affix"}

    async def test_pattern_tier_requires_attested_root(self):
        lookup, exists, _ = self._tables({}, {"علم"})
        result = await resolve_root("استعلام", lookup, exists)
        assert result == [{"root": "علم", "confidence": "medium", "tier": "pattern"}]

    async def test_consonant_tier(self):
        lookup, exists, _ = self._tables({}, {"قرب"})
        result = await resolve_root("قاروب", lookup, exists)
        assert result == [{"root": "قرب", "confidence": "low", "tier": "consonant"}]

    async def test_unknown_word(self):
        lookup, exists, _ = self._tables({}, set())
        assert await resolve_root("زززز", lookup, exists) == []

    async def test_empty_word_skips_lookups(self):
        lookup, exists, calls = self._tables({}, set())
        assert await resolve_root("   ", lookup, exists) == []
        assert calls == []

    async def test_results_are_capped_and_deduplicated(self):
        lookup, exists, _ = self._tables({"عين": ["عين", "عين", "عون", "اين", "وعن"]}, set())
        result = await resolve_root("عين", lookup, exists)
        assert [r["root"] for r in result] == ["عين", "عون", "اين"]
