"""
External Report Parser

Validates the line-oriented BUNKD_V1 report returned by the
text-generation provider:

    BUNKD_V1
    SUMMARY: one paragraph (may continue on following lines)
    EVIDENCE_BULLETS:
    - 5 to 10 bullets
    SUBSCORES:
    human_evidence=7.5
    authenticity_transparency=6
    marketing_overclaim=8
    pricing_value=5.5
    KEY_CLAIMS:
    - claim | support_level | why        (3 to 8)
    RED_FLAGS:
    - flag                               (3 to 8)
    CITATIONS:
    - title | url                        (0 or more)

Headers must appear in this order, each exactly once, on their own line.
The parser is a single pass over the lines that accumulates every
problem it sees; it never raises. A chat-completion JSON envelope
(``choices[0].message.content``) is unwrapped first.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Optional

PROTOCOL_HEADER = "BUNKD_V1"
SUMMARY = "SUMMARY:"
EVIDENCE = "EVIDENCE_BULLETS:"
SUBSCORES = "SUBSCORES:"
KEY_CLAIMS = "KEY_CLAIMS:"
RED_FLAGS = "RED_FLAGS:"
CITATIONS = "CITATIONS:"

REQUIRED_HEADERS = (
    PROTOCOL_HEADER, SUMMARY, EVIDENCE, SUBSCORES, KEY_CLAIMS, RED_FLAGS, CITATIONS,
)

SUBSCORE_NAMES = (
    "human_evidence",
    "authenticity_transparency",
    "marketing_overclaim",
    "pricing_value",
)

SUPPORT_LEVELS = ("supported", "mixed", "weak", "unsupported")

EVIDENCE_RANGE = (5, 10)
KEY_CLAIMS_RANGE = (3, 8)
RED_FLAGS_RANGE = (3, 8)


@dataclass
class ParsedReport:
    summary: str
    evidence_bullets: list[str]
    subscores: dict[str, float]
    key_claims: list[dict[str, str]]
    red_flags: list[str]
    citations: list[dict[str, str]]
    version: str = "bunkd_v1"

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "summary": self.summary,
            "evidence_bullets": list(self.evidence_bullets),
            "subscores": dict(self.subscores),
            "key_claims": [dict(c) for c in self.key_claims],
            "red_flags": list(self.red_flags),
            "citations": [dict(c) for c in self.citations],
        }

    def as_text(self) -> str:
        """Plain-text view used for primitive and signal extraction."""
        parts = [self.summary, *self.evidence_bullets]
        for c in self.key_claims:
            parts.append(f"{c['claim']} {c['support_level']} {c['why']}")
        parts.extend(self.red_flags)
        return "\n".join(parts)


@dataclass
class ParseResult:
    valid: bool
    report: Optional[ParsedReport] = None
    errors: list[str] = field(default_factory=list)
    missing_headers: list[str] = field(default_factory=list)
    content: str = ""


def unwrap_envelope(raw: str) -> str:
    """Return choices[0].message.content when raw is a chat JSON envelope."""
    stripped = raw.strip()
    if not stripped.startswith("{"):
        return raw
    try:
        envelope = json.loads(stripped)
    except json.JSONDecodeError:
        return raw
    if not isinstance(envelope, dict):
        return raw
    choices = envelope.get("choices")
    if isinstance(choices, list) and choices:
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str) and content:
            return content
    return raw


def _header_of(line: str) -> Optional[str]:
    if line == PROTOCOL_HEADER:
        return PROTOCOL_HEADER
    if line.startswith(SUMMARY):
        return SUMMARY
    if line in REQUIRED_HEADERS:
        return line
    return None


def _split_sections(lines: list[str], errors: list[str]) -> tuple[dict[str, list[str]], list[str]]:
    """Group lines under their header, checking order and uniqueness."""
    sections: dict[str, list[str]] = {}
    seen: list[str] = []
    current: Optional[str] = None

    for line in lines:
        header = _header_of(line)
        if header is None:
            if current is not None:
                sections[current].append(line)
            continue
        if header in sections:
            errors.append(f"Header {header} appears more than once")
            current = None
            continue
        seen.append(header)
        sections[header] = []
        if header == SUMMARY:
            sections[header].append(line[len(SUMMARY):].strip())
        current = header

    missing = [h for h in REQUIRED_HEADERS if h not in sections]
    if missing:
        errors.append(f"Missing required headers: {', '.join(missing)}")
    else:
        order = [h for h in seen if h in REQUIRED_HEADERS]
        if tuple(order) != REQUIRED_HEADERS:
            errors.append(
                "Headers out of order: expected "
                + " > ".join(REQUIRED_HEADERS)
            )
    return sections, missing


def _bullets(lines: list[str]) -> list[str]:
    return [line[1:].strip() for line in lines if line.startswith("-")]


def _check_count(name: str, items: list, bounds: tuple[int, int], errors: list[str]):
    lo, hi = bounds
    if not lo <= len(items) <= hi:
        errors.append(f"{name} must have {lo}-{hi} items (got {len(items)})")


def _parse_subscores(lines: list[str], errors: list[str]) -> dict[str, float]:
    subscores: dict[str, float] = {}
    seen: set[str] = set()
    for line in lines:
        if "=" not in line:
            continue
        name, _, raw = line.partition("=")
        name = name.strip()
        if name not in SUBSCORE_NAMES:
            continue
        if name in seen:
            errors.append(f"SUBSCORES: {name} given more than once")
            continue
        seen.add(name)
        raw = raw.strip()
        try:
            value = float(raw)
        except ValueError:
            errors.append(f"{name} must be 0-10 (got {raw})")
            continue
        if not 0 <= value <= 10:
            errors.append(f"{name} must be 0-10 (got {raw})")
        elif (value * 2) % 1 != 0:
            errors.append(f"{name} must use 0.5 increments (got {raw})")
        else:
            subscores[name] = value
    if len(subscores) != len(SUBSCORE_NAMES):
        errors.append(f"SUBSCORES must have all 4 values (got {len(subscores)})")
    return subscores


def _parse_key_claims(lines: list[str]) -> list[dict[str, str]]:
    claims = []
    for bullet in _bullets(lines):
        parts = [p.strip() for p in bullet.split("|")]
        if len(parts) >= 3:
            claims.append({
                "claim": parts[0],
                "support_level": parts[1].lower(),
                "why": parts[2],
            })
    return claims


def _parse_citations(lines: list[str]) -> list[dict[str, str]]:
    citations = []
    for bullet in _bullets(lines):
        parts = [p.strip() for p in bullet.split("|")]
        if len(parts) >= 2:
            citations.append({"title": parts[0], "url": parts[1]})
    return citations


def parse_report(text: str) -> ParseResult:
    content = unwrap_envelope(text or "")
    lines = [line.strip() for line in content.splitlines()]
    errors: list[str] = []

    sections, missing = _split_sections(lines, errors)
    if missing:
        return ParseResult(valid=False, errors=errors, missing_headers=missing, content=content)

    summary = " ".join(
        line for line in sections[SUMMARY] if line and not line.endswith(":")
    ).strip()
    if not summary:
        errors.append("SUMMARY section is empty")

    evidence = _bullets(sections[EVIDENCE])
    _check_count("EVIDENCE_BULLETS", evidence, EVIDENCE_RANGE, errors)

    subscores = _parse_subscores(sections[SUBSCORES], errors)

    key_claims = _parse_key_claims(sections[KEY_CLAIMS])
    _check_count("KEY_CLAIMS", key_claims, KEY_CLAIMS_RANGE, errors)

    red_flags = _bullets(sections[RED_FLAGS])
    _check_count("RED_FLAGS", red_flags, RED_FLAGS_RANGE, errors)

    citations = _parse_citations(sections[CITATIONS])

    if errors:
        return ParseResult(valid=False, errors=errors, content=content)

    return ParseResult(
        valid=True,
        report=ParsedReport(
            summary=summary,
            evidence_bullets=evidence,
            subscores=subscores,
            key_claims=key_claims,
            red_flags=red_flags,
            citations=citations,
        ),
        content=content,
    )
