"""
Signal Detection

For a category, walk its overlay penalties then credits and look each
rule up in the configured signal patterns. The first pattern that fires
produces a Signal at the rule's configured severity. Rules without a
pattern entry never fire.

A Signal may instead carry explicit ``points`` (0-1 scale); the score
composer adds those directly as a penalty.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from claimrisk.catalog import CategoryCandidate, Catalog, OverlayRule


@dataclass(frozen=True)
class Signal:
    id: str
    severity: str
    note: str = ""
    points: Optional[float] = None

    def to_dict(self) -> dict:
        d = {"id": self.id, "severity": self.severity, "note": self.note}
        if self.points is not None:
            d["points"] = self.points
        return d


def _fire(rule: OverlayRule, combined: str, catalog: Catalog) -> Optional[Signal]:
    config = catalog.scoring.signal_rules.get(rule.id)
    if config is None:
        return None
    for pattern in config.patterns:
        if pattern.search(combined):
            return Signal(id=rule.id, severity=config.severity, note=rule.description)
    return None


def detect_signals(
    category_id: str,
    text: str,
    page_content: str,
    catalog: Catalog,
) -> list[Signal]:
    combined = f"{text}\n{page_content}".lower()
    overlay = catalog.scoring.overlay(category_id)

    signals = []
    for rule in (*overlay.penalties, *overlay.credits):
        signal = _fire(rule, combined, catalog)
        if signal is not None:
            signals.append(signal)
    return signals


def signals_by_category(
    candidates: Iterable[CategoryCandidate],
    text: str,
    page_content: str,
    catalog: Catalog,
) -> dict[str, list[Signal]]:
    """Signals for every candidate category plus the fallback."""
    ids = [c.id for c in candidates]
    fallback = catalog.scoring.detection.fallback.id
    if fallback not in ids:
        ids.append(fallback)
    return {cat: detect_signals(cat, text, page_content, catalog) for cat in ids}
