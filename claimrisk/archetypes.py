"""
Archetype Signal Matcher — Tier 2 Detection

Matches text against the configured library of deceptive-claim
archetypes (unsubstantiated health claims, income claims, free-trial
traps, ...).

Scoring per archetype:
  - exact phrase hit           +1.0, counts toward min_exact_matches
  - all significant words hit  +0.5, recorded as "<signal> (partial)"
  - hits are substring tests on the normalized text, so "treats" also
    fires inside "pretreats"
  - confidence = min(1, weight / threshold)

An archetype is eligible when confidence >= 0.70 and it has at least
min_exact_matches exact hits. All eligible archetypes are collected and
the winner is the lowest priority number, then the highest confidence.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from claimrisk.catalog import ArchetypeDefinition
from claimrisk.numeric import clamp, round_half_up

MIN_CONFIDENCE = 0.70
EXACT_WEIGHT = 1.0
PARTIAL_WEIGHT = 0.5
PARTIAL_SUFFIX = " (partial)"

# Words of this length or shorter are ignored for partial matches
_SHORT_WORD = 2

_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ArchetypeMatch:
    archetype: ArchetypeDefinition
    confidence: float
    matched_signals: tuple[str, ...]
    exact_matches: int = 0

    @property
    def eligible(self) -> bool:
        return (
            self.confidence >= MIN_CONFIDENCE
            and self.exact_matches >= self.archetype.min_exact_matches
        )


def normalize_text(text: str) -> str:
    """Lowercase, punctuation to spaces, collapse whitespace."""
    lowered = _NON_WORD_RE.sub(" ", text.lower())
    return _SPACE_RE.sub(" ", lowered).strip()


def strip_partial(signal: str) -> str:
    if signal.endswith(PARTIAL_SUFFIX):
        return signal[: -len(PARTIAL_SUFFIX)]
    return signal


def score_archetype(archetype: ArchetypeDefinition, normalized: str) -> ArchetypeMatch:
    """Accumulate signal weight for one archetype against pre-normalized text."""
    matched: list[str] = []
    weight = 0.0
    exact = 0
    seen: set[str] = set()

    for signal in archetype.signals:
        sig = normalize_text(signal)
        if not sig or sig in seen:
            continue
        seen.add(sig)

        if sig in normalized:
            matched.append(signal)
            weight += EXACT_WEIGHT
            exact += 1
            continue

        words = [w for w in sig.split(" ") if len(w) > _SHORT_WORD]
        if len(words) >= 2 and all(w in normalized for w in words):
            matched.append(signal + PARTIAL_SUFFIX)
            weight += PARTIAL_WEIGHT

    confidence = min(1.0, weight / archetype.threshold)
    return ArchetypeMatch(
        archetype=archetype,
        confidence=confidence,
        matched_signals=tuple(matched),
        exact_matches=exact,
    )


def pick_winner(matches: Iterable[ArchetypeMatch]) -> Optional[ArchetypeMatch]:
    """Lowest priority number first, then highest confidence."""
    eligible = [m for m in matches if m.eligible]
    if not eligible:
        return None
    eligible.sort(key=lambda m: (m.archetype.priority, -m.confidence))
    return eligible[0]


def match_archetype(
    text: str,
    archetypes: Iterable[ArchetypeDefinition],
) -> Optional[ArchetypeMatch]:
    """Return the winning archetype match for the text, or None."""
    normalized = normalize_text(text)
    if not normalized:
        return None
    return pick_winner(score_archetype(a, normalized) for a in archetypes)


def archetype_hint(
    text: str,
    archetypes: Iterable[ArchetypeDefinition],
) -> Optional[ArchetypeMatch]:
    """Strongest sub-threshold match, kept for display alongside a full analysis."""
    normalized = normalize_text(text)
    if not normalized:
        return None
    scored = [score_archetype(a, normalized) for a in archetypes]
    scored = [m for m in scored if m.matched_signals]
    if not scored:
        return None
    scored.sort(key=lambda m: (-m.confidence, m.archetype.priority))
    return scored[0]


# ============================================================
# TIER 2 SCORE
# ============================================================

def stable_hash(text: str) -> int:
    """Absolute value of a 32-bit signed rolling hash (h = h*31 + c)."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def archetype_score(
    archetype: ArchetypeDefinition,
    text: str,
    matched_signals: Iterable[str],
) -> float:
    """Deterministic score inside the archetype's configured range."""
    lowered = text.lower()
    matched = list(matched_signals)

    intensity = 0.1 * sum(1 for m in archetype.intensity_modifiers if m in lowered)
    intensity = min(0.5, intensity)

    signal_bonus = min(0.3, (len(matched) - archetype.threshold) * 0.1)

    # Stable per-input offset in [-0.2, +0.19]
    jitter = ((stable_hash(text) % 40) - 20) / 100

    score = archetype.midpoint + intensity + signal_bonus + jitter
    score = clamp(score, archetype.score_min, archetype.score_max)
    return round_half_up(score, 1)
