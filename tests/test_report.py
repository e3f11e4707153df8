"""
Report Protocol Tests

Tests the BUNKD_V1 parser and the request builders:
  1. Valid report parsing
  2. Header presence, uniqueness and order
  3. Section counts and subscore rules
  4. Chat envelope unwrapping
  5. Analysis request and strict re-ask instruction
"""

from __future__ import annotations

import json

import pytest

from claimrisk.fetch import TRUNCATION_MARKER
from claimrisk.prompts import (
    MIN_PAGE_CONTENT,
    build_analysis_request,
    build_strict_system_instruction,
    truncate_page_content,
)
from claimrisk.report import RED_FLAGS, parse_report, unwrap_envelope

from tests.conftest import VALID_REPORT


def _replace(old: str, new: str) -> str:
    assert old in VALID_REPORT
    return VALID_REPORT.replace(old, new)


# ============================================================
# VALID REPORTS
# ============================================================

class TestValidReport:
    """A well-formed report parses into a ParsedReport."""

    def test_parses(self):
        result = parse_report(VALID_REPORT)
        assert result.valid is True
        assert result.errors == []
        r = result.report
        assert r.summary.startswith("The serum claims")
        assert len(r.evidence_bullets) == 5
        assert r.subscores == {
            "human_evidence": 7.5,
            "authenticity_transparency": 6.0,
            "marketing_overclaim": 8.0,
            "pricing_value": 5.5,
        }
        assert len(r.key_claims) == 3
        assert r.key_claims[0] == {
            "claim": "Erases wrinkles in 7 days",
            "support_level": "unsupported",
            "why": "No product-specific trial found",
        }
        assert len(r.red_flags) == 3
        assert r.citations[0]["url"] == "https://www.ftc.gov/health-claims"

    def test_summary_continuation_lines(self):
        text = _replace(
            "Independent evidence for that is thin.\n",
            "Independent evidence for that is thin.\nA second line of summary.\n",
        )
        result = parse_report(text)
        assert result.valid
        assert result.report.summary.endswith("A second line of summary.")

    def test_citations_may_be_empty(self):
        head = VALID_REPORT.split("CITATIONS:")[0]
        result = parse_report(head + "CITATIONS:\n")
        assert result.valid
        assert result.report.citations == []

    def test_to_dict_and_text(self):
        report = parse_report(VALID_REPORT).report
        d = report.to_dict()
        assert d["version"] == "bunkd_v1"
        assert "Erases wrinkles in 7 days" in report.as_text()


# ============================================================
# INVALID REPORTS
# ============================================================

class TestInvalidReport:
    """Every violation is reported; no report is returned."""

    def test_missing_red_flags_header(self):
        text = _replace("RED_FLAGS:\n", "")
        result = parse_report(text)
        assert result.valid is False
        assert result.report is None
        assert result.errors
        assert RED_FLAGS in result.missing_headers

    def test_missing_protocol_header(self):
        result = parse_report(VALID_REPORT.replace("BUNKD_V1\n", "", 1))
        assert not result.valid
        assert "BUNKD_V1" in result.missing_headers

    def test_duplicate_header(self):
        text = VALID_REPORT + "RED_FLAGS:\n- another\n"
        result = parse_report(text)
        assert not result.valid
        assert any("more than once" in e for e in result.errors)

    def test_out_of_order_headers(self):
        head, tail = VALID_REPORT.split("RED_FLAGS:\n")
        flags, citations = tail.split("CITATIONS:\n")
        text = head + "CITATIONS:\n" + citations + "RED_FLAGS:\n" + flags
        result = parse_report(text)
        assert not result.valid
        assert any("out of order" in e for e in result.errors)

    def test_header_must_be_on_own_line(self):
        text = _replace("RED_FLAGS:\n", "Notes RED_FLAGS:\n")
        assert not parse_report(text).valid

    def test_too_few_evidence_bullets(self):
        text = _replace("- Before and after photos are unverified\n", "")
        result = parse_report(text)
        assert not result.valid
        assert any("EVIDENCE_BULLETS" in e for e in result.errors)

    def test_too_few_key_claims(self):
        text = _replace("- Made with retinol | supported | Listed on the ingredient panel\n", "")
        assert not parse_report(text).valid

    def test_key_claim_needs_three_parts(self):
        text = _replace(
            "- Made with retinol | supported | Listed on the ingredient panel\n",
            "- Made with retinol | supported\n",
        )
        assert not parse_report(text).valid

    @pytest.mark.parametrize("value", ["7.3", "11", "-1", "high"])
    def test_bad_subscore(self, value):
        text = _replace("pricing_value=5.5", f"pricing_value={value}")
        result = parse_report(text)
        assert not result.valid
        assert any("pricing_value" in e for e in result.errors)

    def test_missing_subscore(self):
        text = _replace("pricing_value=5.5\n", "")
        result = parse_report(text)
        assert any("all 4" in e for e in result.errors)

    def test_duplicate_subscore(self):
        text = _replace("pricing_value=5.5\n", "pricing_value=5.5\npricing_value=9.0\n")
        result = parse_report(text)
        assert not result.valid
        assert "SUBSCORES: pricing_value given more than once" in result.errors

    def test_empty_summary(self):
        text = _replace(
            "SUMMARY: The serum claims to erase wrinkles in 7 days. Independent evidence for that is thin.",
            "SUMMARY:",
        )
        result = parse_report(text)
        assert any("SUMMARY" in e for e in result.errors)

    def test_errors_accumulate(self):
        text = _replace("pricing_value=5.5", "pricing_value=7.3")
        text = text.replace("- Before and after photos are unverified\n", "")
        assert len(parse_report(text).errors) >= 2

    @pytest.mark.parametrize("raw", ["", "   ", "I cannot help with that.", "{not json"])
    def test_garbage_never_raises(self, raw):
        result = parse_report(raw)
        assert result.valid is False
        assert result.report is None


# ============================================================
# ENVELOPE
# ============================================================

class TestEnvelope:
    """Chat-completion JSON wrappers are unwrapped before parsing."""

    def test_unwraps_choices(self):
        raw = json.dumps({"choices": [{"message": {"content": VALID_REPORT}}]})
        assert unwrap_envelope(raw) == VALID_REPORT
        assert parse_report(raw).valid

    def test_plain_text_untouched(self):
        assert unwrap_envelope("BUNKD_V1") == "BUNKD_V1"

    def test_json_without_choices_untouched(self):
        raw = json.dumps({"foo": "bar"})
        assert unwrap_envelope(raw) == raw


# ============================================================
# PROMPTS
# ============================================================

class TestPrompts:
    """System instruction and user message construction."""

    def test_text_request(self):
        req = build_analysis_request("text", "Erases wrinkles overnight")
        assert "BUNKD_V1" in req.system_instruction
        assert "Erases wrinkles overnight" in req.prompt

    def test_url_with_page_content(self):
        page = "Product page text. " * 20
        req = build_analysis_request("url", "https://example.com/p", page)
        assert "PAGE CONTENT" in req.prompt
        assert "use ONLY the page content" in req.system_instruction

    def test_url_with_short_page_falls_back(self):
        req = build_analysis_request("url", "https://example.com/p", "x" * MIN_PAGE_CONTENT)
        assert "PAGE CONTENT" not in req.prompt
        assert "https://example.com/p" in req.prompt

    def test_image_request(self):
        req = build_analysis_request("image", "https://cdn.example.com/a.png")
        assert "image URL" in req.prompt

    def test_page_truncation(self):
        out = truncate_page_content("a" * 60, max_chars=50)
        assert out == "a" * 50 + TRUNCATION_MARKER

    def test_strict_instruction_lists_errors(self):
        instr = build_strict_system_instruction(["RED_FLAGS must have 3-8 items (got 1)"])
        assert "could not be parsed" in instr
        assert "RED_FLAGS must have 3-8 items (got 1)" in instr
        assert "BUNKD_V1" in instr
