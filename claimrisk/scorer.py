"""
Risk Score Composer

Combines primitives, category candidates, and per-category signals into
a single 0-10 claim-risk score (higher = riskier):

  1. weighted base risk from the eight primitives
  2. category overlay: multiplier, additive, signal penalties/credits
  3. category harm multiplier
  4. shrink toward the midpoint when category confidence is low

Each stage is clamped to [0, 1] in that order. Fully deterministic:
same inputs always produce the same breakdown.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from claimrisk.catalog import PRIMITIVE_IDS, CategoryCandidate, ScoringConfig
from claimrisk.numeric import clamp01, round_half_up, round_to_half
from claimrisk.primitives import PrimitiveScores
from claimrisk.signals import Signal


@dataclass(frozen=True)
class ScoreBreakdown:
    category: CategoryCandidate
    applied_category: str
    base_risk: float
    multiplier: float
    additive: float
    penalties: float
    credits: float
    harm_multiplier: float
    confidence_adjusted: float
    final_score: float
    signals: tuple[Signal, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "category": {"id": self.category.id, "confidence": self.category.confidence},
            "applied_category": self.applied_category,
            "base_risk": round(self.base_risk, 4),
            "overlay": {
                "multiplier": self.multiplier,
                "additive": self.additive,
                "penalties": round(self.penalties, 4),
                "credits": round(self.credits, 4),
                "signals": [s.to_dict() for s in self.signals],
            },
            "harm_multiplier": self.harm_multiplier,
            "confidence_adjusted": round(self.confidence_adjusted, 4),
            "final_score": self.final_score,
        }


def base_risk(primitives: PrimitiveScores, weights: Mapping[str, float]) -> float:
    values = primitives.as_dict()
    return sum(values.get(k, 0.5) * weights[k] for k in PRIMITIVE_IDS)


def compose_score(
    primitives: PrimitiveScores,
    candidates: Sequence[CategoryCandidate],
    signals_by_category: Optional[Mapping[str, Sequence[Signal]]],
    config: ScoringConfig,
) -> ScoreBreakdown:
    detection = config.detection
    best = candidates[0] if candidates else detection.fallback
    if best.confidence >= detection.min_confidence_to_apply_overlay:
        category = best
    else:
        category = detection.fallback
    overlay = config.overlay(category.id)

    risk = base_risk(primitives, config.weights)

    signals = tuple((signals_by_category or {}).get(category.id, ()))

    penalties = 0.0
    credits = 0.0
    for s in signals:
        if s.points is not None:
            penalties += max(0.0, s.points)
            continue
        rule = overlay.penalty(s.id)
        if rule is not None:
            penalties += rule.points.for_severity(s.severity)
            continue
        rule = overlay.credit(s.id)
        if rule is not None:
            credits += rule.points.for_severity(s.severity)

    overlayed = clamp01(risk * overlay.multiplier + overlay.additive + penalties - credits)

    harm = config.harm_multiplier(category.id)
    harmed = clamp01(overlayed * harm)

    adjusted = harmed
    if best.confidence < config.shrink_below:
        t = config.shrink_strength
        adjusted = (1 - t) * harmed + t * config.midpoint

    return ScoreBreakdown(
        category=best,
        applied_category=category.id,
        base_risk=risk,
        multiplier=overlay.multiplier,
        additive=overlay.additive,
        penalties=penalties,
        credits=credits,
        harm_multiplier=harm,
        confidence_adjusted=adjusted,
        final_score=round_half_up(adjusted * 10, config.decimals),
        signals=signals,
    )


def legacy_subscores(primitives: PrimitiveScores) -> dict[str, float]:
    """Project primitives onto the four 0-10 display subscores (0.5 steps)."""
    p = primitives
    return {
        "human_evidence": round_to_half(p.evidence_quality * 10),
        "authenticity_transparency": round_to_half(
            (p.transparency + p.source_authority) / 2 * 10
        ),
        "marketing_overclaim": round_to_half(
            (p.claim_density + p.presentation_risk) / 2 * 10
        ),
        "pricing_value": round_to_half(p.transparency * 10),
    }
