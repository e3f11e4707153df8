"""
Disambiguation — short queries with more than one plausible meaning

"Apple", "JOVS", "minoxidil": a one- or two-word query that might be a
brand, a commodity, or a drug cannot be scored until the user picks a
meaning. Ambiguous queries get up to five candidate meanings from the
provider; the client shows a picker instead of a score.

Provider failures here never fail the job: they simply yield no
candidates and the router decides what happens next.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Optional

from claimrisk.cache import TTLCache
from claimrisk.catalog import CommodityLexicon
from claimrisk.commodity import match_commodity
from claimrisk.errors import ClaimRiskError
from claimrisk.llm import LLMProvider
from claimrisk.logging import get_logger

logger = get_logger("disambiguation")

MAX_CANDIDATES = 5
MAX_WORDS = 2

_URL_RE = re.compile(r"https?://|www\.|\.com|\.ca|\.org|\.net|\.io", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"[$€£¥]|%|\d{3,}")
_ACRONYM_RE = re.compile(r"^[A-Z]{2,6}$")
_PROPER_NOUN_RE = re.compile(r"^[A-Z][a-z]{1,9}$")
_LOWER_WORD_RE = re.compile(r"^[a-z]{4,12}$")


@dataclass(frozen=True)
class AmbiguityCheck:
    ambiguous: bool
    reason: Optional[str] = None


NOT_AMBIGUOUS = AmbiguityCheck(ambiguous=False)


def check_ambiguity(text: str, lexicon: CommodityLexicon) -> AmbiguityCheck:
    """Classify a short text query as ambiguous (and why) or not."""
    raw = text.strip()
    normalized = " ".join(raw.lower().split())
    words = normalized.split(" ")

    if len(words) > MAX_WORDS:
        return NOT_AMBIGUOUS
    if _URL_RE.search(normalized) or _NUMERIC_RE.search(normalized):
        return NOT_AMBIGUOUS

    if normalized in lexicon.ambiguous_terms:
        return AmbiguityCheck(True, "known_ambiguous_term")

    if _ACRONYM_RE.match(raw):
        return AmbiguityCheck(True, "all_caps_acronym")

    if len(words) == 1:
        token = raw
        if 2 <= len(token) <= 10:
            if re.search(r"[a-z]", token) and re.search(r"[A-Z]", token):
                return AmbiguityCheck(True, "mixed_case_brand")
            if re.search(r"[a-zA-Z]", token) and re.search(r"\d", token):
                return AmbiguityCheck(True, "alphanumeric_brand")

        is_commodity = bool(match_commodity(raw, lexicon))
        if _PROPER_NOUN_RE.match(raw) and not is_commodity:
            return AmbiguityCheck(True, "proper_noun_single_word")
        # Drug, supplement and product names typed in lowercase
        if _LOWER_WORD_RE.match(raw) and not is_commodity:
            return AmbiguityCheck(True, "lowercase_single_word")

    return NOT_AMBIGUOUS


def is_ambiguous(text: str, lexicon: CommodityLexicon) -> bool:
    return check_ambiguity(text, lexicon).ambiguous


# ============================================================
# CANDIDATES
# ============================================================

DISAMBIGUATION_PROMPT = """You are a disambiguation engine. Given a short query, propose up to 5 plausible meanings the user might intend when checking a product or offer for misleading claims.

For each meaning, provide:
- id: unique lowercase slug (e.g. "jovs-beauty-device", "apple-fruit", "apple-inc")
- label: concise human-readable label (e.g. "JOVS Beauty Device", "Apple (fruit)", "Apple Inc.")
- category_hint: one of [whole_foods_commodity, supplements, beauty_personal_care, tech_gadgets, automotive, business_guru_coaching, home_improvement, general]
- confidence: 0.0-1.0 estimate of how likely this interpretation is

Return ONLY valid JSON in this shape:
{"candidates":[{"id":"...","label":"...","category_hint":"...","confidence":0.0}]}"""


@dataclass(frozen=True)
class Candidate:
    id: str
    label: str
    category_hint: str
    confidence: float

    def to_dict(self) -> dict:
        return asdict(self)


def _coerce_confidence(value) -> float:
    try:
        conf = float(value)
    except (TypeError, ValueError):
        return 0.5
    if conf != conf or conf == 0:  # NaN and zero count as missing
        return 0.5
    return max(0.0, min(1.0, conf))


def normalize_candidates(raw) -> list[Candidate]:
    """Validate provider output, slugify ids, clamp confidences, keep the top 5."""
    items = raw.get("candidates", []) if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        return []
    candidates = []
    for item in items:
        if not isinstance(item, dict):
            continue
        if not (item.get("id") and item.get("label") and item.get("category_hint")):
            continue
        candidates.append(Candidate(
            id=re.sub(r"\s+", "-", str(item["id"]).lower()),
            label=str(item["label"]),
            category_hint=str(item["category_hint"]),
            confidence=_coerce_confidence(item.get("confidence")),
        ))
    candidates.sort(key=lambda c: c.confidence, reverse=True)
    return candidates[:MAX_CANDIDATES]


async def get_candidates(
    llm: LLMProvider,
    query: str,
    cache: Optional[TTLCache] = None,
) -> list[Candidate]:
    """Candidate meanings for a query, from cache or the provider."""
    if cache is not None:
        cached = await cache.get(query)
        if cached:
            return cached

    try:
        raw = await llm.generate_json(
            f'Query: "{query}"',
            system_instruction=DISAMBIGUATION_PROMPT,
            temperature=0.3,
        )
    except ClaimRiskError as e:
        logger.warning(
            "Disambiguation call failed",
            extra={"error": str(e), "error_code": e.code},
        )
        return []

    candidates = normalize_candidates(raw)
    if candidates and cache is not None:
        await cache.put(query, candidates)
    return candidates
