"""
Result Builders

Every finished job stores one result dict. The shape is shared across
tiers so the client can render any of them:

  - commodity          tier 1, score 0.0
  - claim_archetype    tier 2, archetype score
  - unable_to_assess   tier 4, no score
  - disambiguation     ambiguous short query, no score, candidate list
  - full_analysis /
    seller_specific    tier 3, composer score plus the validated report

Full-analysis text fields are run through tone softening and markdown
stripping so the prose stays consistent with the number.
"""

from __future__ import annotations

from collections import Counter
from typing import Optional, Sequence

from claimrisk.archetypes import ArchetypeMatch, archetype_score, match_archetype, strip_partial
from claimrisk.catalog import PRIMITIVE_IDS, Catalog
from claimrisk.categories import detect_categories
from claimrisk.config import settings
from claimrisk.disambiguation import Candidate
from claimrisk.logging import get_logger
from claimrisk.numeric import round_half_up
from claimrisk.primitives import extract_primitives
from claimrisk.report import SUBSCORE_NAMES, SUPPORT_LEVELS, ParsedReport
from claimrisk.router import MODE_ARCHETYPE, MODE_COMMODITY, MODE_FULL, MODE_UNABLE
from claimrisk.scorer import compose_score, legacy_subscores
from claimrisk.signals import signals_by_category
from claimrisk.verdict import (
    check_summary,
    confidence_explanation,
    confidence_level,
    deduplicate_red_flags,
    interpretation_label,
    soften_tone,
    strip_markdown,
    verdict_fields,
)

logger = get_logger("results")

RESULT_VERSION = "bunkd_v1"
COMMODITY_CATEGORY = "whole_foods_commodity"

MAX_RED_FLAGS = 4
REPORT_CONFIDENCE = 0.7
LOW_CITATION_CONFIDENCE = 0.5
MIN_CITATIONS = 2
LIMITED_CITATIONS_FLAG = "Limited citations returned; treat evidence strength cautiously."

DISCLAIMERS = {
    "low": "Limited evidence available - treat as a rough estimate",
    "medium": "Score based on partial evidence - treat as preliminary assessment",
}


def _zero_subscores() -> dict[str, float]:
    return {name: 0.0 for name in SUBSCORE_NAMES}


def _base(mode: str) -> dict:
    return {
        "version": RESULT_VERSION,
        "scoring_version": settings.ENGINE_VERSION,
        "analysis_mode": mode,
        "evidence_bullets": [],
        "key_claims": [],
        "red_flags": [],
        "risk_signals": [],
        "citations": [],
    }


# ============================================================
# INSTANT TIERS
# ============================================================

def build_commodity_result(item: str) -> dict:
    result = _base(MODE_COMMODITY)
    result.update({
        "score": 0.0,
        "confidence": 1.0,
        "confidence_level": "high",
        "confidence_explanation": "Basic commodity item with no inherent marketing claims.",
        **verdict_fields(0.0),
        "summary": (
            f'"{item}" is a basic commodity item with no inherent marketing claims. '
            "Claim risk is minimal unless a seller makes exaggerated claims about "
            "sourcing, quality, or health benefits."
        ),
        "evidence_bullets": [
            "This is a recognizable whole food or basic commodity",
            "No marketing claims, health promises, or brand-specific language detected",
            "Claim risk would increase if a seller adds claims about organic "
            "certification, sourcing, or health benefits",
        ],
        "subscores": _zero_subscores(),
        "pillar_scores": {p: 0.0 for p in PRIMITIVE_IDS},
        "category": COMMODITY_CATEGORY,
        "claims_summary": {"claims": [], "status": "No claims analyzed"},
    })
    return result


def build_archetype_result(match: ArchetypeMatch, text: str) -> dict:
    archetype = match.archetype
    signals = list(match.matched_signals)
    score = archetype_score(archetype, text, signals)
    pct = int(match.confidence * 100 + 0.5)
    fields = verdict_fields(score)
    # Archetype hits are never reported as low risk
    fields["verdict"] = "high" if score >= 7.0 else "elevated"

    key_claims = [
        {
            "claim": strip_partial(s),
            "support_level": "unsupported",
            "why": f"This is a common phrase in {archetype.name.lower()} content",
        }
        for s in signals[:5]
    ]

    result = _base(MODE_ARCHETYPE)
    result.update({
        "score": score,
        "confidence": match.confidence,
        "confidence_level": "high",
        "confidence_explanation": (
            f'Matches "{archetype.name}" pattern with {pct}% confidence '
            f"based on {len(signals)} signal matches."
        ),
        **fields,
        "summary": archetype.summary,
        "evidence_bullets": [
            archetype.description,
            f"Detected {len(signals)} warning signals characteristic of this pattern",
            *archetype.red_flags,
        ],
        "key_claims": key_claims,
        "red_flags": list(archetype.red_flags),
        "risk_signals": risk_signals(list(archetype.red_flags), score),
        "claims_summary": claims_summary(key_claims),
        "subscores": archetype.pillars.as_dict(),
        "category": archetype.id,
        "claim_archetype": {
            "id": archetype.id,
            "name": archetype.name,
            "confidence": match.confidence,
            "matched_signals": signals,
        },
    })
    return result


def build_unable_result() -> dict:
    result = _base(MODE_UNABLE)
    result.update({
        "score": None,
        "confidence": 0.1,
        "confidence_level": "low",
        "confidence_explanation": "Insufficient information to assess claim risk.",
        "verdict": None,
        "summary": (
            "Unable to assess. Please provide more context such as a URL, "
            "full product name, or marketing claims."
        ),
        "evidence_bullets": [
            "The input is too short or vague to analyze",
            "Try pasting a product URL for the most accurate analysis",
            "Or include specific marketing claims or product descriptions",
        ],
        "subscores": None,
        "unable_to_assess": True,
    })
    return result


def build_disambiguation_result(query: str, candidates: Sequence[Candidate]) -> dict:
    result = _base("disambiguation")
    result.update({
        "score": None,
        "confidence": 0.3,
        "confidence_level": "low",
        "confidence_explanation": "Query is ambiguous - please select the intended meaning.",
        "verdict": None,
        "verdict_label": "Needs Clarification",
        "secondary_verdict": "Select the intended meaning",
        "verdict_text": "Please select what you meant to analyze.",
        "meter_label": "Pending",
        "summary": (
            f'The query "{query}" could refer to multiple things. Please select '
            "the intended meaning to get an accurate claim-risk score."
        ),
        "claims_summary": {"claims": [], "status": "Awaiting clarification"},
        "subscores": _zero_subscores(),
        "needs_disambiguation": True,
        "disambiguation_query": query,
        "disambiguation_candidates": [c.to_dict() for c in candidates],
    })
    return result


# ============================================================
# FULL ANALYSIS
# ============================================================

def risk_signals(red_flags: Sequence[str], score: float) -> list[dict]:
    """Red flags with a 1-4 severity that steps down every two flags."""
    if score >= 8:
        base = 4
    elif score >= 6.5:
        base = 3
    elif score >= 4:
        base = 2
    else:
        base = 1
    return [
        {"text": flag, "severity": max(1, base - i // 2)}
        for i, flag in enumerate(red_flags)
    ]


def claims_summary(key_claims: Sequence[dict], empty_status: str = "No claims analyzed") -> dict:
    counts = Counter(c.get("support_level") for c in key_claims)
    parts = [f"{counts[level]} {level}" for level in SUPPORT_LEVELS if counts[level]]
    return {
        "claims": [c["claim"] for c in key_claims[:3]],
        "status": ", ".join(parts) if parts else empty_status,
    }


def _clean(text: str, score: float) -> str:
    return strip_markdown(soften_tone(text, score))


def _clean_flags(flags: Sequence[str], score: float) -> list[str]:
    cleaned = [_clean(f, score) for f in flags]
    cleaned = [f for f in cleaned if f]
    return deduplicate_red_flags(cleaned)[:MAX_RED_FLAGS]


def _apply_score(result: dict, score: float, red_flags: Sequence[str]) -> None:
    """(Re)derive every score-dependent field in place."""
    result["score"] = score
    result.update(verdict_fields(score))
    result["summary"] = _clean(check_summary(result["summary"], score), score)
    result["red_flags"] = _clean_flags(red_flags, score)
    result["risk_signals"] = risk_signals(result["red_flags"], score)
    result["claims_summary"] = claims_summary(result["key_claims"])


def build_full_result(
    report: ParsedReport,
    catalog: Catalog,
    source_url: Optional[str] = None,
    page_content: str = "",
    mode: str = MODE_FULL,
    hint: Optional[ArchetypeMatch] = None,
) -> dict:
    """Score a validated report with the engine and assemble the result."""
    config = catalog.scoring
    text = report.as_text()

    candidates = detect_categories(text, source_url, config.detection)
    primitives = extract_primitives(text, page_content)
    by_category = signals_by_category(candidates, text, page_content, catalog)
    breakdown = compose_score(primitives, candidates, by_category, config)
    score = breakdown.final_score

    confidence = REPORT_CONFIDENCE
    red_flags = list(report.red_flags)
    if len(report.citations) < MIN_CITATIONS:
        confidence = min(confidence, LOW_CITATION_CONFIDENCE)
        red_flags.append(LIMITED_CITATIONS_FLAG)
    level = confidence_level(confidence)

    key_claims = [
        {**c, "claim": _clean(c["claim"], score), "why": _clean(c["why"], score)}
        for c in report.key_claims
    ]

    result = _base(mode)
    result.update({
        "confidence": confidence,
        "confidence_level": level,
        "confidence_explanation": confidence_explanation(level),
        "summary": report.summary,
        "evidence_bullets": [_clean(b, score) for b in report.evidence_bullets],
        "key_claims": key_claims,
        "subscores": legacy_subscores(primitives),
        "reported_subscores": dict(report.subscores),
        "category": breakdown.category.id,
        "category_confidence": breakdown.category.confidence,
        "category_candidates": [
            {"id": c.id, "confidence": c.confidence} for c in candidates
        ],
        "pillar_scores": primitives.as_dict(),
        "score_breakdown": breakdown.to_dict(),
        "citations": list(report.citations),
        "unable_to_score": False,
    })
    _apply_score(result, score, red_flags)
    result["interpretation"] = interpretation_label(score, config.interpretation)

    disclaimer = DISCLAIMERS.get(level)
    if disclaimer:
        result["disclaimers"] = [disclaimer]

    if hint is not None:
        result["archetype_hint"] = {
            "id": hint.archetype.id,
            "name": hint.archetype.name,
            "confidence": hint.confidence,
        }

    apply_archetype_boost(result, f"{text}\n{page_content}", catalog)
    return result


def apply_archetype_boost(result: dict, text: str, catalog: Catalog) -> bool:
    """Raise the score to the archetype floor when the report matches one.

    Text analyses switch to the archetype mode; seller-specific results keep
    their mode and only gain the claim_archetype block. Returns True when
    the score was raised.
    """
    match = match_archetype(text, catalog.archetypes)
    if match is None:
        return False

    archetype = match.archetype
    current = result.get("score") or 0.0
    if archetype.score_min <= current:
        logger.info(
            "Archetype detected but score already at or above its floor",
            extra={"archetype": archetype.id, "score": current},
        )
        return False

    boosted = min(archetype.score_max, archetype.score_min + (match.confidence - 0.70) * 2)
    boosted = round_half_up(boosted, 1)

    existing = [f.lower() for f in result["red_flags"]]
    extra_flags = [
        f for f in archetype.red_flags
        if not any(f.lower()[:20] in e for e in existing)
    ]

    # Seller and image analyses keep their mode; the archetype rides along
    if result.get("analysis_mode") == MODE_FULL:
        result["analysis_mode"] = MODE_ARCHETYPE
    result["claim_archetype"] = {
        "id": archetype.id,
        "name": archetype.name,
        "confidence": match.confidence,
        "matched_signals": list(match.matched_signals),
    }
    _apply_score(result, boosted, [*result["red_flags"], *extra_flags])
    result["interpretation"] = interpretation_label(
        boosted, catalog.scoring.interpretation,
    )
    result["score_breakdown"]["archetype_boost"] = {"from": current, "to": boosted}

    logger.info(
        "Archetype boost applied",
        extra={"archetype": archetype.id, "score": boosted},
    )
    return True
