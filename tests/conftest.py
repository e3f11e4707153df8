"""
Shared fixtures: packaged catalog, temp job store, mock provider, reports.
"""

from __future__ import annotations

import json
import os
import tempfile

import pytest

from claimrisk.catalog import load_catalog
from claimrisk.jobs import JobStore
from claimrisk.llm import LLMProvider


# ============================================================
# MOCK LLM
# ============================================================

class MockLLM(LLMProvider):
    """Returns queued responses in order; raises any queued exception."""

    def __init__(self, responses=None, model: str = "mock-model"):
        self._responses = list(responses or [])
        self._model = model
        self.calls = []
        self.last_model = None

    async def generate(self, prompt, system_instruction=None, temperature=0.2, json_mode=False):
        self.calls.append({
            "prompt": prompt,
            "system_instruction": system_instruction,
            "json_mode": json_mode,
        })
        if not self._responses:
            raise AssertionError("MockLLM called more times than expected")
        response = self._responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, (dict, list)):
            response = json.dumps(response)
        self.last_model = self._model
        return response


# ============================================================
# REPORTS
# ============================================================

VALID_REPORT = """BUNKD_V1
SUMMARY: The serum claims to erase wrinkles in 7 days. Independent evidence for that is thin.
EVIDENCE_BULLETS:
- The product page cites no peer-reviewed studies
- Ingredient list is only partially disclosed
- Reviews appear mostly on the seller's own site
- Price is above comparable retinol serums
- Before and after photos are unverified
SUBSCORES:
human_evidence=7.5
authenticity_transparency=6
marketing_overclaim=8
pricing_value=5.5
KEY_CLAIMS:
- Erases wrinkles in 7 days | unsupported | No product-specific trial found
- Dermatologist recommended | weak | No named dermatologist is given
- Made with retinol | supported | Listed on the ingredient panel
RED_FLAGS:
- Instant results promised without product data
- Unverified before and after photos
- Reviews hosted only on the seller site
CITATIONS:
- FTC guidance on health claims | https://www.ftc.gov/health-claims
- Retinol overview | https://example.org/retinol
"""

BLAND_REPORT = """BUNKD_V1
SUMMARY: A plain ceramic mug sold with a listed price and a return policy.
EVIDENCE_BULLETS:
- The listing shows dimensions and capacity
- Price is listed as $18.00
- A 30 day return policy is stated
- The maker is named on the page
- No health or performance claims are made
SUBSCORES:
human_evidence=2
authenticity_transparency=1.5
marketing_overclaim=1
pricing_value=2.5
KEY_CLAIMS:
- Holds 350 ml | supported | Capacity matches the listed dimensions
- Dishwasher safe | mixed | Common for glazed stoneware
- Handmade | mixed | Photos show slight variations
RED_FLAGS:
- Glaze composition is not listed
- Shipping time is not stated
- Few reviews so far
CITATIONS:
- Maker profile | https://example.org/maker
- Listing | https://example.org/mug
"""


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture(scope="session")
def catalog():
    """The configuration data shipped with the package."""
    return load_catalog()


@pytest.fixture
def db_path():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(path + suffix):
            os.unlink(path + suffix)


@pytest.fixture
def store(db_path):
    """Fresh job store on a temp database."""
    return JobStore(db_path)
