"""
Category Detector

Scores text and source URL against per-category keyword lists and URL
patterns. URL hits carry a much larger boost than a single keyword
because the storefront is a strong signal of what is being sold.
"""

from __future__ import annotations

from typing import Optional

from claimrisk.catalog import CategoryCandidate, CategoryDetectionConfig


def category_scores(
    text: str,
    url: Optional[str],
    config: CategoryDetectionConfig,
) -> dict[str, float]:
    """Raw accumulated score per category (before normalization)."""
    lower = text.lower()
    url_lower = (url or "").lower()

    scores: dict[str, float] = {cat: 0.0 for cat in config.keywords}
    for cat, base in config.base_scores.items():
        scores[cat] = base

    for cat, keywords in config.keywords.items():
        for kw in keywords:
            if kw in lower:
                scores[cat] += 1

    if url_lower:
        for boost in config.url_boosts:
            if boost.pattern.search(url_lower):
                scores[boost.category] = scores.get(boost.category, 0.0) + boost.boost

    return scores


def detect_categories(
    text: str,
    url: Optional[str],
    config: CategoryDetectionConfig,
) -> list[CategoryCandidate]:
    """Ranked category candidates, best first, capped at max_candidates."""
    scores = category_scores(text, url, config)

    candidates = [
        CategoryCandidate(id=cat, confidence=min(1.0, score / config.divisor))
        for cat, score in scores.items()
        if score > 0
    ]
    # sort() is stable: ties keep configuration order
    candidates.sort(key=lambda c: c.confidence, reverse=True)
    candidates = candidates[: config.max_candidates]

    if not candidates:
        return [config.fallback]
    return candidates
