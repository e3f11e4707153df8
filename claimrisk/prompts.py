"""
Prompts — Text-Generation Requests

Builds the system instruction and the single user message for a full
analysis. The system instruction carries the BUNKD_V1 report protocol
and the scoring rubric; the user message carries the normalized input
and, for URLs, the fetched page text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from claimrisk.config import settings
from claimrisk.fetch import truncate_text

# Page text shorter than this is not worth constraining the research to
MIN_PAGE_CONTENT = 100


# ============================================================
# REPORT PROTOCOL
# ============================================================

REPORT_FORMAT = """## Output Format
Reply with a plain-text report in EXACTLY this layout. No markdown, no JSON, no text before BUNKD_V1.

BUNKD_V1
SUMMARY: <one paragraph, 2-4 sentences>
EVIDENCE_BULLETS:
- <5 to 10 bullets, one finding each>
SUBSCORES:
human_evidence=<0-10 in 0.5 steps>
authenticity_transparency=<0-10 in 0.5 steps>
marketing_overclaim=<0-10 in 0.5 steps>
pricing_value=<0-10 in 0.5 steps>
KEY_CLAIMS:
- <claim> | <supported|mixed|weak|unsupported> | <why>
RED_FLAGS:
- <3 to 8 bullets>
CITATIONS:
- <title> | <url>

Rules:
- Every header appears exactly once, on its own line, in the order shown.
- KEY_CLAIMS has 3 to 8 bullets, each with exactly three parts separated by " | ".
- Subscores run 0 (no concern) to 10 (maximum concern)."""


RUBRIC = """## Rubric
- human_evidence: are the claims backed by clinical studies, independent tests, or verified results? Missing or anecdotal evidence scores high.
- authenticity_transparency: is the seller identifiable, are ingredients/specs/terms disclosed, are reviews genuine? Hidden information scores high.
- marketing_overclaim: how far do the marketing promises exceed what the evidence shows? Miracle language, urgency and guarantees score high.
- pricing_value: is the price justified against comparable products? Hidden fees, subscriptions and inflated prices score high."""


SYSTEM_PROMPT_WITH_PAGE = """You are a thorough product and claims researcher helping consumers judge marketing claims before they buy.

IMPORTANT RULES:
1. For PRODUCT DETAILS (name, price, size, ingredients) use ONLY the page content provided. Do not substitute facts from other sources.
2. For CLAIM VERIFICATION (studies, independent reviews, regulatory actions) DO use external sources to confirm or debunk each claim.
3. If the page shows a price like "$79", report "$79".

Look for clinical studies with their sample sizes and results, independent reviews, expert opinions and misleading tactics. Give an honest, balanced assessment.

{rubric}

{report_format}"""


SYSTEM_PROMPT = """You are a thorough product and claims researcher helping consumers judge marketing claims before they buy.

Research and report on:
1. What claims does this product or person make?
2. What evidence supports or contradicts them (clinical studies, reviews, expert opinions)?
3. Who is behind it, and are they credible?
4. What do independent sources say, beyond the seller's own site?
5. Are there red flags (fake reviews, misleading claims, regulatory issues)?
6. How does the pricing compare to similar products?

Be specific and cite sources. Include sample sizes for any studies and mention complaints where they exist.

{rubric}

{report_format}"""


STRICT_SYSTEM_PROMPT = """You produce machine-readable BUNKD_V1 reports. Your previous reply could not be parsed.

Problems found in the previous reply:
{errors}

Follow the layout below character for character. The first line of your reply must be BUNKD_V1. Do not add commentary, headings, markdown, bold text or code fences. Count your bullets before replying: EVIDENCE_BULLETS 5-10, KEY_CLAIMS 3-8, RED_FLAGS 3-8. All four SUBSCORES lines are required.

{rubric}

{report_format}"""


# ============================================================
# USER MESSAGES
# ============================================================

URL_WITH_PAGE_PROMPT = """Analyze this product page for claim risk.

SOURCE URL: {url}

=== PAGE CONTENT (use this for product details) ===
{page_content}
=== END PAGE CONTENT ===

Based on the page content above:
1. What product is being sold (name, price, size, from the page only)?
2. What claims does it make?
3. Are those claims supported by evidence? Research external sources to verify.
4. Any red flags or concerns?
5. Your overall verdict."""

URL_PROMPT = """Research this product page and give a thorough claim-risk analysis: {url}

Cover what is being sold and what it claims, whether there is real evidence (studies, trials, verified results), any red flags, and your overall verdict."""

TEXT_PROMPT = """Analyze these product claims for claim risk:

{text}

Research whether the claims are supported by evidence: scientific studies or clinical trials, independent reviews or expert opinions, and red flags or misleading tactics."""

IMAGE_PROMPT = """Research and analyze the product shown at this image URL: {url}"""


@dataclass(frozen=True)
class AnalysisRequest:
    system_instruction: str
    prompt: str


def truncate_page_content(content: str, max_chars: Optional[int] = None) -> str:
    limit = max_chars if max_chars is not None else settings.FETCH_MAX_CHARS
    return truncate_text(content, limit)


def build_user_message(
    input_type: str,
    normalized_input: str,
    page_content: Optional[str] = None,
) -> str:
    if input_type == "url":
        if page_content and len(page_content) > MIN_PAGE_CONTENT:
            return URL_WITH_PAGE_PROMPT.format(
                url=normalized_input,
                page_content=truncate_page_content(page_content),
            )
        return URL_PROMPT.format(url=normalized_input)
    if input_type == "text":
        return TEXT_PROMPT.format(text=normalized_input)
    return IMAGE_PROMPT.format(url=normalized_input)


def build_analysis_request(
    input_type: str,
    normalized_input: str,
    page_content: Optional[str] = None,
) -> AnalysisRequest:
    has_page = bool(page_content) and len(page_content) > MIN_PAGE_CONTENT
    template = SYSTEM_PROMPT_WITH_PAGE if has_page else SYSTEM_PROMPT
    return AnalysisRequest(
        system_instruction=template.format(rubric=RUBRIC, report_format=REPORT_FORMAT),
        prompt=build_user_message(input_type, normalized_input, page_content),
    )


def build_strict_system_instruction(errors: list[str]) -> str:
    """Replacement instruction for the single re-ask after a malformed report."""
    listed = "\n".join(f"- {e}" for e in errors[:10]) or "- (unparseable reply)"
    return STRICT_SYSTEM_PROMPT.format(
        errors=listed, rubric=RUBRIC, report_format=REPORT_FORMAT,
    )
