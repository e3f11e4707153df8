"""
Primitive Extractor

Turns free text (the external report plus any fetched page content)
into eight category-agnostic risk primitives, each in [0, 1] where
higher means more claim risk.

Each primitive pits a set of "risk" indicators against a set of
"mitigating" indicators. Indicator sets are counted once per pattern
(a pattern either fires or it doesn't), except claim density which
counts every occurrence.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass


def _compile_all(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# ============================================================
# INDICATOR SETS
# ============================================================

CLAIM_INDICATORS = _compile_all(
    r"claims?\s+(?:that|to)",
    r"promises?",
    r"guarantees?",
    r"will\s+(?:help|improve|boost|enhance)",
    r"proven\s+to",
)

SPECIFIC_INDICATORS = _compile_all(
    r"\d+%",
    r"\d+\s*(?:mg|ml|oz|g)\b",
    r"\d+\s*(?:participants?|subjects?|people)",
    r"\d+\s*(?:days?|weeks?|months?)",
    r"study\s+(?:of|with)\s+\d+",
)

VAGUE_INDICATORS = _compile_all(
    r"may\s+help",
    r"could\s+(?:help|improve)",
    r"might\s+(?:help|work)",
    r"results\s+(?:may|will)\s+vary",
    r"individual\s+results",
)

VERIFIABLE_INDICATORS = _compile_all(
    r"peer.reviewed",
    r"published\s+in",
    r"journal",
    r"doi:",
    r"clinical\s+trial",
    r"randomized",
    r"double.blind",
    r"fda\s+(?:registered|cleared)",
    r"nsf\s+certified",
    r"usp\s+verified",
)

UNVERIFIABLE_INDICATORS = _compile_all(
    r"proprietary",
    r"secret\s+(?:formula|blend)",
    r"ancient\s+(?:remedy|secret)",
    r"only\s+testimonials",
    r"anecdotal",
)

STRONG_EVIDENCE_INDICATORS = _compile_all(
    r"\d+\s*(?:participants?|subjects?|patients?)",
    r"clinical\s+(?:study|trial)",
    r"randomized\s+controlled",
    r"peer.reviewed",
    r"published",
)

WEAK_EVIDENCE_INDICATORS = _compile_all(
    r"testimonials?\s+only",
    r"anecdotal",
    r"no\s+(?:clinical|scientific)\s+(?:studies|evidence)",
    r"not\s+(?:proven|verified|evaluated)",
)

TRANSPARENT_INDICATORS = _compile_all(
    r"full\s+(?:ingredient|dosage)",
    r"clear\s+(?:pricing|terms)",
    r"return\s+policy",
    r"money.back\s+guarantee",
    r"contact\s+(?:us|info)",
    r"\$\d+(?:\.\d{2})?",  # visible price
)

OPAQUE_INDICATORS = _compile_all(
    r"proprietary\s+blend",
    r"call\s+for\s+price",
    r"hidden\s+fees",
    r"fine\s+print",
    r"conditions\s+apply",
    r"hard\s+to\s+(?:cancel|contact)",
)

MANIPULATIVE_INDICATORS = _compile_all(
    r"limited\s+time",
    r"act\s+now",
    r"only\s+\d+\s+left",
    r"countdown",
    r"price\s+(?:going\s+up|increase)",
    r"exclusive\s+(?:deal|offer)",
    r"miracle",
    r"breakthrough",
    r"secret",
    r"revolutionary",
    r"don't\s+miss",
    r"once\s+in\s+a\s+lifetime",
)

AUTHORITY_INDICATORS = _compile_all(
    r"official\s+(?:site|website|store)",
    r"authorized\s+(?:dealer|reseller)",
    r"oem",
    r"manufacturer",
    r"established\s+(?:in|since)\s+\d{4}",
    r"bbb\s+(?:accredited|rating)",
    r"verified\s+(?:seller|business)",
)

LOW_AUTHORITY_INDICATORS = _compile_all(
    r"fake|counterfeit|knockoff",
    r"unauthorized",
    r"scam|fraud",
    r"no\s+(?:contact|address|phone)",
    r"anonymous",
)

HARM_INDICATORS = _compile_all(
    r"health|medical|supplement|drug|treatment",
    r"investment|financial|money|income",
    r"children|pregnancy|elderly",
)

# 15+ claim phrases saturate claim density
CLAIM_SATURATION = 15


# ============================================================
# EXTRACTION
# ============================================================

@dataclass(frozen=True)
class PrimitiveScores:
    claim_density: float = 0.5
    claim_specificity: float = 0.5
    verifiability: float = 0.5
    evidence_quality: float = 0.5
    transparency: float = 0.5
    presentation_risk: float = 0.5
    source_authority: float = 0.5
    harm_potential: float = 0.5

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def count_matches(patterns: tuple[re.Pattern, ...], text: str) -> int:
    """Number of patterns that fire at least once."""
    return sum(1 for p in patterns if p.search(text))


def count_occurrences(patterns: tuple[re.Pattern, ...], text: str) -> int:
    """Total number of non-overlapping hits across all patterns."""
    return sum(len(p.findall(text)) for p in patterns)


def extract_primitives(text: str, page_content: str = "") -> PrimitiveScores:
    combined = f"{text}\n{page_content}".lower()

    claim_density = min(1.0, count_occurrences(CLAIM_INDICATORS, combined) / CLAIM_SATURATION)

    specific = count_matches(SPECIFIC_INDICATORS, combined)
    vague = count_matches(VAGUE_INDICATORS, combined)
    if vague > specific:
        claim_specificity = min(1.0, 0.3 + vague * 0.15)
    else:
        claim_specificity = max(0.0, 0.5 - specific * 0.1)

    verifiable = count_matches(VERIFIABLE_INDICATORS, combined)
    unverifiable = count_matches(UNVERIFIABLE_INDICATORS, combined)
    if unverifiable > 0:
        verifiability = min(1.0, 0.4 + unverifiable * 0.2)
    else:
        verifiability = max(0.0, 0.5 - verifiable * 0.1)

    strong = count_matches(STRONG_EVIDENCE_INDICATORS, combined)
    weak = count_matches(WEAK_EVIDENCE_INDICATORS, combined)
    if weak > strong:
        evidence_quality = min(1.0, 0.4 + weak * 0.2)
    else:
        evidence_quality = max(0.0, 0.5 - strong * 0.12)

    transparent = count_matches(TRANSPARENT_INDICATORS, combined)
    opaque = count_matches(OPAQUE_INDICATORS, combined)
    if opaque > 0:
        transparency = min(1.0, 0.3 + opaque * 0.2)
    else:
        transparency = max(0.0, 0.5 - transparent * 0.08)

    presentation_risk = min(1.0, count_matches(MANIPULATIVE_INDICATORS, combined) * 0.15)

    authority = count_matches(AUTHORITY_INDICATORS, combined)
    low_authority = count_matches(LOW_AUTHORITY_INDICATORS, combined)
    if low_authority > 0:
        source_authority = min(1.0, 0.5 + low_authority * 0.25)
    else:
        source_authority = max(0.0, 0.5 - authority * 0.1)

    harm_potential = min(1.0, count_matches(HARM_INDICATORS, combined) * 0.2)

    return PrimitiveScores(
        claim_density=claim_density,
        claim_specificity=claim_specificity,
        verifiability=verifiability,
        evidence_quality=evidence_quality,
        transparency=transparency,
        presentation_risk=presentation_risk,
        source_authority=source_authority,
        harm_potential=harm_potential,
    )
