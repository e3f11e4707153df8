"""
Tiered Router

Decides how much analysis an input needs before any expensive call:

  Tier 1  instant-zero       bare commodity, score 0.0
  Tier 2  instant-high       archetype match >= 0.70 confidence
  Tier 3  full analysis      everything else (URL and image always)
  Tier 4  unscorable         too short, no hits, disambiguation failed

Routing is pure: it depends on the input, the catalog, and one flag
telling whether a disambiguation attempt already came back empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from claimrisk.archetypes import (
    MIN_CONFIDENCE,
    ArchetypeMatch,
    archetype_hint,
    match_archetype,
)
from claimrisk.catalog import Catalog
from claimrisk.commodity import match_commodity

TIER_INSTANT_ZERO = 1
TIER_INSTANT_HIGH = 2
TIER_FULL_ANALYSIS = 3
TIER_UNSCORABLE = 4

MODE_COMMODITY = "commodity"
MODE_ARCHETYPE = "claim_archetype"
MODE_SELLER = "seller_specific"
MODE_FULL = "full_analysis"
MODE_UNABLE = "unable_to_assess"

INPUT_TYPES = ("url", "text", "image")

# Text shorter than this with no hits is a candidate for tier 4
MIN_TOKENS = 4


@dataclass(frozen=True)
class RoutingResult:
    tier: int
    mode: str
    reason: str
    commodity: Optional[str] = None
    archetype_match: Optional[ArchetypeMatch] = None


def _pct(confidence: float) -> int:
    return int(confidence * 100 + 0.5)


def route(
    input_type: str,
    input_value: str,
    catalog: Catalog,
    disambiguation_failed: bool = False,
) -> RoutingResult:
    """Pick the analysis tier for one input."""
    if input_type not in INPUT_TYPES:
        raise ValueError(f"Unknown input type: {input_type}")

    if input_type in ("url", "image"):
        # Archetype is a display hint only for URLs and images, never a routing decision
        hint = (
            match_archetype(input_value, catalog.archetypes)
            or archetype_hint(input_value, catalog.archetypes)
        )
        if input_type == "url":
            return RoutingResult(
                tier=TIER_FULL_ANALYSIS,
                mode=MODE_SELLER,
                archetype_match=hint,
                reason="URL input requires full seller-specific analysis",
            )
        return RoutingResult(
            tier=TIER_FULL_ANALYSIS,
            mode=MODE_FULL,
            archetype_match=hint,
            reason="Image input requires full analysis",
        )

    text = input_value.strip()
    token_count = len(text.split())

    commodity = match_commodity(text, catalog.commodities)
    if commodity:
        return RoutingResult(
            tier=TIER_INSTANT_ZERO,
            mode=MODE_COMMODITY,
            commodity=commodity.item,
            reason="Basic commodity item with no marketing claims",
        )

    archetype = match_archetype(text, catalog.archetypes)
    if archetype is not None and archetype.confidence >= MIN_CONFIDENCE:
        return RoutingResult(
            tier=TIER_INSTANT_HIGH,
            mode=MODE_ARCHETYPE,
            archetype_match=archetype,
            reason=(
                f'Matches "{archetype.archetype.name}" pattern with '
                f"{_pct(archetype.confidence)}% confidence"
            ),
        )

    if token_count < MIN_TOKENS and archetype is None and disambiguation_failed:
        return RoutingResult(
            tier=TIER_UNSCORABLE,
            mode=MODE_UNABLE,
            reason="Insufficient context to assess claim risk",
        )

    hint = archetype or archetype_hint(text, catalog.archetypes)
    if hint is not None:
        reason = (
            f"Partial archetype match ({_pct(hint.confidence)}%) "
            "- requires full analysis"
        )
    else:
        reason = "No clear pattern match - requires full analysis"
    return RoutingResult(
        tier=TIER_FULL_ANALYSIS,
        mode=MODE_FULL,
        archetype_match=hint,
        reason=reason,
    )
