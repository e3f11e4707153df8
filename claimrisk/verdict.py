"""
Verdict Bands & Text Alignment

Maps a 0-10 claim-risk score to stable display fields (verdict key,
headline label, subline, explanation, meter label) and keeps generated
prose from contradicting the number it sits next to.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from claimrisk.logging import get_logger
from claimrisk.numeric import clamp

logger = get_logger("verdict")


# ============================================================
# BANDS
# ============================================================

@dataclass(frozen=True)
class VerdictBand:
    upper: float                # inclusive upper bound
    verdict: str                # low | elevated | high
    verdict_label: str
    secondary_verdict: str
    verdict_text: str
    meter_label: str

    def fields(self) -> dict[str, str]:
        return {
            "verdict": self.verdict,
            "verdict_label": self.verdict_label,
            "secondary_verdict": self.secondary_verdict,
            "verdict_text": self.verdict_text,
            "meter_label": self.meter_label,
        }


VERDICT_BANDS: tuple[VerdictBand, ...] = (
    VerdictBand(
        1.5, "low", "Well Supported",
        "Strong evidence backing claims",
        "Claims appear well-supported with strong evidence.",
        "Very Low Risk",
    ),
    VerdictBand(
        3.3, "low", "Generally Credible",
        "Good evidence with minor gaps",
        "Claims have decent evidence support with minor gaps.",
        "Low Risk",
    ),
    VerdictBand(
        5.0, "elevated", "Overstated",
        "Some claims lack strong evidence",
        "Some claims lack strong evidence. Verify before trusting.",
        "Moderate Risk",
    ),
    VerdictBand(
        6.6, "elevated", "Questionable",
        "Multiple claims have weak support",
        "Multiple claims have weak or missing evidence support.",
        "Elevated Risk",
    ),
    VerdictBand(
        8.0, "high", "Not Credible",
        "Minimal supporting evidence found",
        "Claims have minimal supporting evidence. Exercise caution.",
        "High Risk",
    ),
    VerdictBand(
        10.0, "high", "Highly Suspect",
        "Major red flags detected",
        "Claims have almost no supporting evidence. Major red flags detected.",
        "Very High Risk",
    ),
)


def verdict_band(score: float) -> VerdictBand:
    s = clamp(score, 0.0, 10.0)
    for band in VERDICT_BANDS:
        if s <= band.upper:
            return band
    return VERDICT_BANDS[-1]


def verdict_fields(score: float) -> dict[str, str]:
    return verdict_band(score).fields()


def interpretation_label(
    score: float,
    interpretation: Sequence[tuple[str, float, str]],
) -> Optional[str]:
    """Coarse label from the scoring output config (band, upper, label)."""
    for _band, upper, label in interpretation:
        if score <= upper:
            return label
    return interpretation[-1][2] if interpretation else None


# ============================================================
# CONFIDENCE
# ============================================================

CONFIDENCE_EXPLANATIONS = {
    "high": "Strong evidence coverage across sources.",
    "medium": "Some signals missing; treat as an estimate.",
    "low": "Limited evidence or unclear category; treat as a rough estimate.",
}


def confidence_level(confidence: float) -> str:
    if confidence >= 0.75:
        return "high"
    if confidence >= 0.5:
        return "medium"
    return "low"


def confidence_explanation(level: str) -> str:
    return CONFIDENCE_EXPLANATIONS.get(level, CONFIDENCE_EXPLANATIONS["low"])


# ============================================================
# TEXT ALIGNMENT
# ============================================================

# Reassuring language that contradicts a high score
POSITIVE_PHRASES = (
    "well-supported", "strong evidence", "credible", "legitimate",
    "trustworthy", "appears genuine", "no red flags", "no major concerns",
    "seems reliable", "backed by research", "clinically proven",
    "scientifically validated",
)

# Alarming language that contradicts a low score
NEGATIVE_PHRASES = (
    "red flag", "major concern", "lacks evidence", "unsubstantiated",
    "misleading", "deceptive", "scam", "fraudulent", "avoid",
    "do not trust", "suspicious", "questionable claims",
)

HIGH_SCORE_FLOOR = 6.5
LOW_SCORE_CEILING = 3.5


def detect_verdict_mismatch(text: str, score: float) -> Optional[tuple[str, str]]:
    """Return (kind, phrase) when the text contradicts the score, else None."""
    lower = text.lower()
    if score >= HIGH_SCORE_FLOOR:
        for phrase in POSITIVE_PHRASES:
            if phrase in lower:
                return ("positive_in_high", phrase)
    if score <= LOW_SCORE_CEILING:
        for phrase in NEGATIVE_PHRASES:
            if phrase in lower:
                return ("negative_in_low", phrase)
    return None


def check_summary(summary: str, score: float) -> str:
    """Log when the summary contradicts the score. The text is kept as written."""
    mismatch = detect_verdict_mismatch(summary, score)
    if mismatch is not None:
        logger.info(
            "Summary language contradicts score",
            extra={"score": score, "error": f"{mismatch[0]}:{mismatch[1]}"},
        )
    return summary


# Harsh wording is softened unless the score is at least min_score
_TONE_RULES: tuple[tuple[re.Pattern, str, float], ...] = tuple(
    (re.compile(p, re.IGNORECASE), replacement, min_score)
    for p, replacement, min_score in (
        (r"\bappears? fabricated\b", "cannot be independently verified", 8.0),
        (r"\bfabricated\b", "unverified", 8.0),
        (r"\bfraudulent\b", "potentially misleading", 8.5),
        (r"\bscam\b", "questionable offering", 8.5),
        (r"\bpseudoscience\b", "not supported by peer-reviewed research", 8.0),
        (r"\bpseudoscientific\b", "lacking peer-reviewed support", 8.0),
        (r"\bquackery\b", "unproven alternative approach", 8.5),
        (r"\bsnake oil\b", "unsubstantiated remedy", 8.0),
        (r"\blies?\b", "unverified claim", 8.5),
        (r"\blying\b", "making unverified claims", 8.5),
        (r"\bdeceptive\b", "potentially misleading", 7.5),
        (r"\bdishonest\b", "not fully transparent", 8.0),
        (r"\bavoid at all costs\b", "approach with caution", 8.0),
        (r"\bdo not (?:buy|purchase|trust)\b", "consider carefully before trusting", 8.0),
        (r"\bworthless\b", "of questionable value", 8.0),
        (r"\buseless\b", "of limited proven benefit", 7.5),
        (r"\bdangerous\b", "potentially risky", 8.5),
        (r"\bharmful\b", "may have adverse effects", 8.0),
    )
)


def soften_tone(text: str, score: float) -> str:
    for pattern, replacement, min_score in _TONE_RULES:
        if score < min_score:
            text = pattern.sub(replacement, text)
    return text


_MARKDOWN_RULES = (
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"^\*\*?\s*"), ""),
    (re.compile(r"\s*\*\*?$"), ""),
    (re.compile(r"^\s*[-•]\s*", re.MULTILINE), ""),
)


def strip_markdown(text: str) -> str:
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


# ============================================================
# RED FLAG DEDUPLICATION
# ============================================================

# Two flags sharing two or more of these words are about the same topic
KEY_TERMS = frozenset({
    "clinical", "study", "studies", "trial", "trials", "research", "evidence", "scientific",
    "credential", "credentials", "verifiable", "verified", "certification", "certified",
    "company", "business", "seller", "manufacturer", "brand",
    "claim", "claims", "promise", "promises", "guarantee", "guarantees",
    "review", "reviews", "testimonial", "testimonials", "rating", "ratings",
    "price", "pricing", "cost", "expensive", "inflated", "overpriced",
    "safety", "safe", "harmful", "dangerous", "risk", "side",
    "ingredient", "ingredients", "formula", "formulation",
    "transparent", "transparency", "hidden", "undisclosed",
})

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")


def _comparable(text: str) -> str:
    return _WS_RE.sub(" ", _PUNCT_RE.sub("", text.lower())).strip()


def _jaccard(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def _is_near_duplicate(flag: str, existing: str, threshold: float) -> bool:
    na, nb = _comparable(flag), _comparable(existing)
    wa, wb = set(na.split(" ")), set(nb.split(" "))
    if _jaccard(wa, wb) >= threshold:
        return True
    if len(wa & wb & KEY_TERMS) >= 2:
        return True
    if len(na) >= 10 and na in nb:
        return True
    if len(nb) >= 10 and nb in na:
        return True
    return False


def deduplicate_red_flags(flags: Sequence[str], threshold: float = 0.5) -> list[str]:
    """Drop near-duplicate flags, keeping the more detailed (longer) wording.

    The result is ordered longest first.
    """
    if len(flags) <= 1:
        return list(flags)
    kept: list[str] = []
    for flag in sorted(flags, key=len, reverse=True):
        if not any(_is_near_duplicate(flag, k, threshold) for k in kept):
            kept.append(flag)
    return kept
