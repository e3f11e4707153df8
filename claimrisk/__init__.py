"""
ClaimRisk — Claim Risk Scoring Engine

Scores product pages, marketing text and images for the risk that their
claims are misleading, on a 0-10 scale with one decimal.

Public API:
  - route:              Tiered router (commodity / archetype / full / unscorable)
  - match_commodity:    Tier 1 commodity matcher
  - match_archetype:    Tier 2 archetype signal matcher
  - detect_categories:  Category candidates with confidences
  - extract_primitives: Eight deterministic text primitives
  - compose_score:      Final score from primitives, category and signals
  - parse_report:       Validator for the BUNKD_V1 report protocol
  - JobStore:           SQLite job queue with atomic claims
  - Worker:             Polling worker that runs jobs to completion
  - LLMProvider:        Abstract text-generation interface

Usage:
    from claimrisk import get_catalog, route
    routing = route("text", "organic apple extract", get_catalog())
"""

__version__ = "2.1.0"

from claimrisk.catalog import Catalog, load_catalog, get_catalog
from claimrisk.commodity import match_commodity
from claimrisk.archetypes import match_archetype
from claimrisk.router import route, RoutingResult
from claimrisk.categories import detect_categories
from claimrisk.primitives import extract_primitives, PrimitiveScores
from claimrisk.scorer import compose_score, ScoreBreakdown
from claimrisk.report import parse_report, ParsedReport
from claimrisk.jobs import JobStore
from claimrisk.worker import Worker
from claimrisk.llm import LLMProvider
from claimrisk.llm.factory import get_provider

__all__ = [
    "Catalog",
    "load_catalog",
    "get_catalog",
    "match_commodity",
    "match_archetype",
    "route",
    "RoutingResult",
    "detect_categories",
    "extract_primitives",
    "PrimitiveScores",
    "compose_score",
    "ScoreBreakdown",
    "parse_report",
    "ParsedReport",
    "JobStore",
    "Worker",
    "LLMProvider",
    "get_provider",
]
