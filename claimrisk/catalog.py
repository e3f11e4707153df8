"""
Catalog — Configuration Data Surface

Everything the matchers and the score composer are tuned with lives in
JSON files under ``claimrisk/data/``:

  - commodities.json  commodity lexicon, disqualifying terms, descriptors,
                      known ambiguous terms
  - archetypes.json   deceptive-claim archetype definitions
  - scoring.json      weights, shrink parameters, harm multipliers,
                      category detection, overlays, signal patterns

The files are parsed once into frozen dataclasses and the resulting
``Catalog`` is passed explicitly into the pure matching/scoring functions.
Point CLAIMRISK_CATALOG_DIR at another directory holding the same three
files to recalibrate without touching code.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, Union

from claimrisk.errors import CatalogError

DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"

PRIMITIVE_IDS = (
    "claim_density",
    "claim_specificity",
    "verifiability",
    "evidence_quality",
    "transparency",
    "presentation_risk",
    "source_authority",
    "harm_potential",
)

SEVERITIES = ("low", "med", "high")


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class CategoryCandidate:
    """A category id with a detection confidence in [0, 1]."""
    id: str
    confidence: float


@dataclass(frozen=True)
class SeverityPoints:
    low: float
    med: float
    high: float

    def for_severity(self, severity: str) -> float:
        return getattr(self, severity)


@dataclass(frozen=True)
class OverlayRule:
    """A named penalty or credit inside a category overlay."""
    id: str
    description: str
    points: SeverityPoints


@dataclass(frozen=True)
class CategoryOverlay:
    id: str
    multiplier: float
    additive: float
    penalties: tuple[OverlayRule, ...]
    credits: tuple[OverlayRule, ...]
    must_consider: tuple[str, ...] = ()
    red_flag_cues: tuple[str, ...] = ()
    green_flag_cues: tuple[str, ...] = ()

    def penalty(self, rule_id: str) -> Optional[OverlayRule]:
        return next((r for r in self.penalties if r.id == rule_id), None)

    def credit(self, rule_id: str) -> Optional[OverlayRule]:
        return next((r for r in self.credits if r.id == rule_id), None)


@dataclass(frozen=True)
class Pillars:
    """Per-archetype base subscores on the 0-10 scale."""
    human_evidence: float
    authenticity_transparency: float
    marketing_overclaim: float
    pricing_value: float

    def as_dict(self) -> dict[str, float]:
        return {
            "human_evidence": self.human_evidence,
            "authenticity_transparency": self.authenticity_transparency,
            "marketing_overclaim": self.marketing_overclaim,
            "pricing_value": self.pricing_value,
        }


@dataclass(frozen=True)
class ArchetypeDefinition:
    id: str
    name: str
    description: str
    priority: int               # lower = preferred
    score_min: float
    score_max: float
    pillars: Pillars
    signals: tuple[str, ...]
    intensity_modifiers: tuple[str, ...]
    red_flags: tuple[str, ...]
    summary: str
    threshold: float
    min_exact_matches: int = 1

    @property
    def midpoint(self) -> float:
        return (self.score_min + self.score_max) / 2


@dataclass(frozen=True)
class CommodityLexicon:
    terms: frozenset[str]
    disqualifying_terms: frozenset[str]
    descriptors: frozenset[str]
    ambiguous_terms: frozenset[str] = frozenset()


@dataclass(frozen=True)
class UrlBoost:
    pattern: re.Pattern
    category: str
    boost: float


@dataclass(frozen=True)
class CategoryDetectionConfig:
    max_candidates: int
    min_confidence_to_apply_overlay: float
    fallback: CategoryCandidate
    divisor: float
    base_scores: Mapping[str, float]
    keywords: Mapping[str, tuple[str, ...]]
    url_boosts: tuple[UrlBoost, ...]


@dataclass(frozen=True)
class SignalRule:
    """Regex triggers for one overlay rule, with the severity they imply."""
    id: str
    patterns: tuple[re.Pattern, ...]
    severity: str


@dataclass(frozen=True)
class ScoringConfig:
    version: str
    shrink_below: float
    shrink_strength: float
    midpoint: float
    weights: Mapping[str, float]
    primitive_descriptions: Mapping[str, str]
    harm_multipliers: Mapping[str, float]
    detection: CategoryDetectionConfig
    overlays: Mapping[str, CategoryOverlay]
    signal_rules: Mapping[str, SignalRule]
    decimals: int = 1
    interpretation: tuple[tuple[str, float, str], ...] = ()

    def overlay(self, category_id: str) -> CategoryOverlay:
        overlay = self.overlays.get(category_id)
        if overlay is None:
            return self.overlays[self.detection.fallback.id]
        return overlay

    def harm_multiplier(self, category_id: str) -> float:
        return self.harm_multipliers.get(category_id, 1.0)


@dataclass(frozen=True)
class Catalog:
    """All configuration data, loaded once per process."""
    commodities: CommodityLexicon
    archetypes: tuple[ArchetypeDefinition, ...]
    scoring: ScoringConfig
    source_dir: str = field(default="", compare=False)


# ============================================================
# LOADING
# ============================================================

def _read_json(directory: Path, name: str) -> dict:
    path = directory / name
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise CatalogError(f"Catalog file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise CatalogError(f"Catalog file {path} is not valid JSON: {e}") from e


def _compile(pattern: str, where: str) -> re.Pattern:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise CatalogError(f"Invalid pattern in {where}: {pattern!r} ({e})") from e


def _lower_set(values) -> frozenset[str]:
    return frozenset(str(v).lower() for v in values)


def parse_commodities(raw: dict) -> CommodityLexicon:
    try:
        return CommodityLexicon(
            terms=_lower_set(raw["lexicon"]),
            disqualifying_terms=_lower_set(raw["disqualifying_terms"]),
            descriptors=_lower_set(raw["descriptors"]),
            ambiguous_terms=_lower_set(raw.get("ambiguous_terms", [])),
        )
    except KeyError as e:
        raise CatalogError(f"commodities.json is missing key {e}") from e


def parse_archetypes(raw: dict) -> tuple[ArchetypeDefinition, ...]:
    archetypes = []
    for item in raw.get("archetypes", []):
        try:
            lo, hi = item["score_range"]
            archetype = ArchetypeDefinition(
                id=item["id"],
                name=item["name"],
                description=item.get("description", ""),
                priority=int(item["priority"]),
                score_min=float(lo),
                score_max=float(hi),
                pillars=Pillars(**{k: float(v) for k, v in item["pillars"].items()}),
                signals=tuple(item["signals"]),
                intensity_modifiers=tuple(m.lower() for m in item.get("intensity_modifiers", [])),
                red_flags=tuple(item.get("red_flags", [])),
                summary=item.get("summary", ""),
                threshold=float(item["threshold"]),
                min_exact_matches=int(item.get("min_exact_matches", 1)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(
                f"Invalid archetype {item.get('id', '?')!r}: {e}"
            ) from e
        if archetype.score_min > archetype.score_max:
            raise CatalogError(f"Archetype {archetype.id!r} has an inverted score range")
        if archetype.threshold <= 0:
            raise CatalogError(f"Archetype {archetype.id!r} needs a positive threshold")
        archetypes.append(archetype)
    if not archetypes:
        raise CatalogError("archetypes.json defines no archetypes")
    return tuple(archetypes)


def _parse_rule(item: dict) -> OverlayRule:
    return OverlayRule(
        id=item["id"],
        description=item.get("description", ""),
        points=SeverityPoints(**{k: float(item["points"][k]) for k in SEVERITIES}),
    )


def parse_scoring(raw: dict) -> ScoringConfig:
    try:
        weights = {k: float(raw["weights"][k]) for k in PRIMITIVE_IDS}
        det = raw["category_detection"]
        fallback = CategoryCandidate(
            id=det["fallback"]["id"],
            confidence=float(det["fallback"]["confidence"]),
        )
        detection = CategoryDetectionConfig(
            max_candidates=int(det["max_candidates"]),
            min_confidence_to_apply_overlay=float(det["min_confidence_to_apply_overlay"]),
            fallback=fallback,
            divisor=float(det.get("divisor", 10)),
            base_scores=MappingProxyType(
                {k: float(v) for k, v in det.get("base_scores", {}).items()}
            ),
            keywords=MappingProxyType(
                {k: tuple(w.lower() for w in v) for k, v in det["keywords"].items()}
            ),
            url_boosts=tuple(
                UrlBoost(
                    pattern=_compile(b["pattern"], "url_boosts"),
                    category=b["category"],
                    boost=float(b["boost"]),
                )
                for b in det.get("url_boosts", [])
            ),
        )

        overlays = {}
        for cat_id, o in raw["overlays"].items():
            cues = o.get("cues", {})
            overlays[cat_id] = CategoryOverlay(
                id=cat_id,
                multiplier=float(o["multiplier"]),
                additive=float(o.get("additive", 0.0)),
                penalties=tuple(_parse_rule(p) for p in o.get("penalties", [])),
                credits=tuple(_parse_rule(c) for c in o.get("credits", [])),
                must_consider=tuple(cues.get("must_consider", [])),
                red_flag_cues=tuple(cues.get("red_flags", [])),
                green_flag_cues=tuple(cues.get("green_flags", [])),
            )

        signal_rules = {}
        for rule_id, s in raw.get("signal_patterns", {}).items():
            if s["severity"] not in SEVERITIES:
                raise CatalogError(f"Signal {rule_id!r} has unknown severity {s['severity']!r}")
            signal_rules[rule_id] = SignalRule(
                id=rule_id,
                patterns=tuple(_compile(p, f"signal {rule_id}") for p in s["patterns"]),
                severity=s["severity"],
            )

        conf = raw["confidence"]
        out = raw.get("output", {})
        config = ScoringConfig(
            version=str(raw.get("version", "")),
            shrink_below=float(conf["shrink_below"]),
            shrink_strength=float(conf["shrink_strength"]),
            midpoint=float(conf["midpoint"]),
            weights=MappingProxyType(weights),
            primitive_descriptions=MappingProxyType(dict(raw.get("primitive_descriptions", {}))),
            harm_multipliers=MappingProxyType(
                {k: float(v) for k, v in raw.get("harm_multipliers", {}).items()}
            ),
            detection=detection,
            overlays=MappingProxyType(overlays),
            signal_rules=MappingProxyType(signal_rules),
            decimals=int(out.get("decimals", 1)),
            interpretation=tuple(
                (i["band"], float(i["upper"]), i["label"])
                for i in out.get("interpretation", [])
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CatalogError(f"scoring.json is invalid: {e!r}") from e

    if abs(sum(weights.values()) - 1.0) > 1e-6:
        raise CatalogError(
            f"Primitive weights must sum to 1 (got {sum(weights.values()):.4f})"
        )
    if fallback.id not in overlays:
        raise CatalogError(f"Fallback category {fallback.id!r} has no overlay")
    if not 0.0 <= config.shrink_strength <= 1.0:
        raise CatalogError("shrink_strength must be within [0, 1]")
    return config


def load_catalog(directory: Optional[Union[str, Path]] = None) -> Catalog:
    """Load and validate all configuration files from a directory."""
    base = Path(directory) if directory else DEFAULT_DATA_DIR
    return Catalog(
        commodities=parse_commodities(_read_json(base, "commodities.json")),
        archetypes=parse_archetypes(_read_json(base, "archetypes.json")),
        scoring=parse_scoring(_read_json(base, "scoring.json")),
        source_dir=str(base),
    )


@lru_cache(maxsize=1)
def get_catalog() -> Catalog:
    """Process-wide catalog for the service edges (API, worker)."""
    from claimrisk.config import settings
    return load_catalog(settings.CATALOG_DIR or None)
