"""
Commodity Matcher — Tier 1 Gate

Recognizes bare whole-food / staple inputs ("apple", "fresh salmon")
that carry no marketing claims and therefore score 0.0 without any
further analysis.

Strict by construction: anything that looks like a brand, a supplement,
a quantity, a price, or a URL is rejected. No fuzzy matching.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from claimrisk.catalog import CommodityLexicon

MAX_TOKENS = 5

_URL_RE = re.compile(r"https?://|www\.|\.com|\.ca|\.org|\.net|\.io", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"\d|[$€£¥]|%")
_ALLOWED_CHARS_RE = re.compile(r"^[a-z\s\-']+$")
_HAS_LETTER_RE = re.compile(r"[a-z]")


@dataclass(frozen=True)
class CommodityMatch:
    matched: bool
    item: Optional[str] = None

    def __bool__(self) -> bool:
        return self.matched


NO_MATCH = CommodityMatch(matched=False)


def normalize_phrase(text: str) -> str:
    """Lowercase, trim, collapse internal whitespace."""
    return " ".join(text.lower().split())


def _contains_term(phrase: str, tokens: set[str], term: str) -> bool:
    # Symbol terms (®, ™) are plain substrings; word terms must sit on
    # word boundaries so that "co" does not disqualify "broccoli".
    if not _HAS_LETTER_RE.search(term):
        return term in phrase
    if " " not in term and "-" not in term:
        return term in tokens
    pattern = r"(?<![a-z0-9])" + re.escape(term) + r"(?![a-z0-9])"
    return re.search(pattern, phrase) is not None


def has_disqualifying_term(phrase: str, lexicon: CommodityLexicon) -> bool:
    tokens = set(re.split(r"[\s\-']+", phrase)) | set(phrase.split(" "))
    return any(_contains_term(phrase, tokens, t) for t in lexicon.disqualifying_terms)


def _lexicon_span_with_descriptors(words: list[str], lexicon: CommodityLexicon) -> bool:
    """True when one contiguous span is a lexicon term and every other word is a descriptor."""
    n = len(words)
    for start in range(n):
        for end in range(start + 1, n + 1):
            if " ".join(words[start:end]) not in lexicon.terms:
                continue
            rest = words[:start] + words[end:]
            if rest and all(w in lexicon.descriptors for w in rest):
                return True
    return False


def match_commodity(text: str, lexicon: CommodityLexicon) -> CommodityMatch:
    """Classify a short phrase as a bare commodity or not."""
    phrase = normalize_phrase(text)
    if not phrase:
        return NO_MATCH

    words = phrase.split(" ")
    if len(words) > MAX_TOKENS:
        return NO_MATCH
    if _URL_RE.search(phrase):
        return NO_MATCH
    if _NUMERIC_RE.search(phrase):
        return NO_MATCH
    if has_disqualifying_term(phrase, lexicon):
        return NO_MATCH
    if not _ALLOWED_CHARS_RE.match(phrase):
        return NO_MATCH

    if phrase in lexicon.terms:
        return CommodityMatch(matched=True, item=phrase)

    if _lexicon_span_with_descriptors(words, lexicon):
        return CommodityMatch(matched=True, item=phrase)

    return NO_MATCH
