RERANKER_PROMPT = """\
You are ranking Arabic/Islamic documents for a search query.

Query: "{query}"

Documents:
{documents}

STEP 1: DETERMINE USER INTENT
Identify which type of search this is:

A) SPECIFIC SOURCE LOOKUP - User wants a particular Quran verse or hadith
   Indicators: named verses, famous hadiths by title, surah/ayah references

B) QUESTION - User seeks an answer

C) TOPIC SEARCH - User wants content about a subject

STEP 2: RANK BY INTENT

If SPECIFIC SOURCE LOOKUP (A):
1. [QURAN] or [HADITH] containing the EXACT verse/hadith being searched (highest)
2. Related sources
3. [BOOK] with detailed tafsir/sharh
4. [BOOK] that quotes the source
5. Unrelated content (lowest)

If QUESTION (B):
1. Documents that directly ANSWER the question (highest)
2. Documents that explain or discuss the answer
3. Documents that mention the topic but don't answer
4. Unrelated documents (lowest)

If TOPIC SEARCH (C):
1. Documents primarily ABOUT the topic (highest)
2. Documents with significant discussion
3. Documents mentioning the topic in context
4. Unrelated documents (lowest)

CROSS-LINGUAL MATCHING: match English to Arabic and vice versa.

Include ALL documents in your ranking. Only omit a document if it cannot \
possibly relate to the query; when in doubt, include it at a lower rank.

Return ONLY a JSON array of ALL document numbers ordered by relevance: [3, 1, 5, 2, 4]"""

UNIFIED_RERANKER_PROMPT = """\
You are ranking a MIXED set of Arabic/Islamic documents for a search query.
The set contains [BOOK] excerpts, [QURAN] verses, and [HADITH] narrations.

Query: "{query}"

Documents:
{documents}

RANKING PRIORITY:
1. SPECIFIC SOURCE LOOKUP: the ACTUAL source ranks HIGHEST
2. QUESTION: documents that directly ANSWER rank highest
3. TOPIC SEARCH: primary sources directly about the topic rank highest

Include ALL documents in your ranking. Only omit a document if it cannot \
possibly relate to the query; prefer returning too many results over too few.

Return ONLY a JSON array of ALL document numbers ordered by relevance (best first):
[3, 1, 5, 2, ...]"""
