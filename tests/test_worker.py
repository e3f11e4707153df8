"""
Worker Tests

Tests the claim → analyze → finish loop against a mock provider:
  1. Instant tiers never call the provider
  2. Full analysis with the one-shot strict re-ask
  3. Error classification into retryable and permanent failures
  4. Disambiguation and the tier 4 fallback
  5. URL inputs with and without fetched page text
"""

from __future__ import annotations

import pytest

from claimrisk.cache import TTLCache
from claimrisk.errors import ProviderError, TransientProviderError
from claimrisk.fetch import FetchResult
from claimrisk.worker import (
    MODEL_ARCHETYPE,
    MODEL_COMMODITY,
    MODEL_DISAMBIGUATION,
    MODEL_UNABLE,
    Worker,
)

from tests.conftest import BLAND_REPORT, VALID_REPORT, MockLLM

HEALTH_TEXT = "This herbal tea cures diabetes, treats arthritis and prevents cancer"
MUG_TEXT = "a blue ceramic mug with a sturdy handle"
PAGE_TEXT = "Handmade stoneware mug. Holds 350 ml. Ships in 5 days. " * 5


def _worker(store, catalog, llm, fetcher=None, max_attempts=3):
    kwargs = {}
    if fetcher is not None:
        kwargs["fetcher"] = fetcher
    return Worker(
        store, llm, catalog,
        poll_interval=0, max_attempts=max_attempts, stale_after=600,
        cache=TTLCache(), **kwargs,
    )


def _fake_fetcher(result: FetchResult):
    calls = []

    async def fetch(url):
        calls.append(url)
        return result

    fetch.calls = calls
    return fetch


async def _submit_and_run(worker, store, input_type, value):
    job = store.submit(input_type, value).job
    assert await worker.run_once() is True
    return store.get(job.id)


# ============================================================
# INSTANT TIERS
# ============================================================

class TestInstantTiers:
    """Tier 1 and 2 complete without a provider call."""

    @pytest.mark.asyncio
    async def test_commodity(self, store, catalog):
        llm = MockLLM()
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", "apple")
        assert job.status == "done"
        assert job.final_score == 0.0
        assert job.model_used == MODEL_COMMODITY
        assert job.result["analysis_mode"] == "commodity"
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_archetype(self, store, catalog):
        llm = MockLLM()
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", HEALTH_TEXT)
        assert job.status == "done"
        assert job.model_used == MODEL_ARCHETYPE
        assert job.final_score >= 8.0
        assert llm.calls == []


# ============================================================
# FULL ANALYSIS
# ============================================================

class TestFullAnalysis:
    """Tier 3 reports, validated and scored."""

    @pytest.mark.asyncio
    async def test_valid_report(self, store, catalog):
        llm = MockLLM([BLAND_REPORT])
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", MUG_TEXT)
        assert job.status == "done"
        assert job.model_used == "mock-model"
        assert 0.0 <= job.final_score <= 10.0
        assert job.result["score"] == job.final_score
        assert job.result["reported_subscores"]["pricing_value"] == 2.5
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_reask_recovers(self, store, catalog):
        llm = MockLLM(["I am not sure what you mean.", VALID_REPORT])
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", MUG_TEXT)
        assert job.status == "done"
        assert len(llm.calls) == 2
        assert "could not be parsed" in llm.calls[1]["system_instruction"]
        assert llm.calls[1]["prompt"] == llm.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_second_malformed_report_fails_permanently(self, store, catalog):
        llm = MockLLM(["garbage", "more garbage"])
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", MUG_TEXT)
        assert job.status == "failed"
        assert job.error_code == "REPORT_VALIDATION_FAILED"
        assert len(llm.calls) == 2
        assert await _worker(store, catalog, MockLLM()).run_once() is False


# ============================================================
# FAILURES
# ============================================================

class TestFailures:
    """Provider and unexpected errors are classified, not swallowed."""

    @pytest.mark.asyncio
    async def test_transient_error_requeues(self, store, catalog):
        llm = MockLLM([TransientProviderError("timed out")])
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", MUG_TEXT)
        assert job.status == "queued"
        assert job.attempts == 1
        assert job.error_code == "PROVIDER_TRANSIENT"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_unknown_and_retryable(self, store, catalog):
        llm = MockLLM([RuntimeError("boom")])
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", MUG_TEXT)
        assert job.status == "queued"
        assert job.error_code == "UNKNOWN"
        assert job.error_message == "boom"

    @pytest.mark.asyncio
    async def test_last_attempt_fails(self, store, catalog):
        llm = MockLLM([ProviderError("bad request")])
        worker = _worker(store, catalog, llm, max_attempts=1)
        job = await _submit_and_run(worker, store, "text", MUG_TEXT)
        assert job.status == "failed"
        assert job.error_code == "PROVIDER_ERROR"

    @pytest.mark.asyncio
    async def test_retry_then_success(self, store, catalog):
        llm = MockLLM([TransientProviderError("503 unavailable"), BLAND_REPORT])
        worker = _worker(store, catalog, llm)
        job = store.submit("text", MUG_TEXT).job
        assert await worker.run_once()
        assert await worker.run_once()
        done = store.get(job.id)
        assert done.status == "done"
        assert done.attempts == 2

    @pytest.mark.asyncio
    async def test_lost_claim(self, store, catalog):
        worker = _worker(store, catalog, MockLLM())
        store.submit("text", "apple")
        job = store.claim_next()
        store.complete(job.id, job.claim_id, {"score": 0.0}, 0.0)
        assert await worker.process(job) == "lost"

    @pytest.mark.asyncio
    async def test_empty_queue(self, store, catalog):
        assert await _worker(store, catalog, MockLLM()).run_once() is False


# ============================================================
# DISAMBIGUATION
# ============================================================

class TestDisambiguation:
    """Short ambiguous queries get candidates or an unable result."""

    @pytest.mark.asyncio
    async def test_candidates(self, store, catalog):
        llm = MockLLM([{"candidates": [
            {"id": "JOVS Device", "label": "JOVS beauty device", "category_hint": "beauty_personal_care", "confidence": 0.8},
            {"id": "jovs-other", "label": "Something else", "category_hint": "general", "confidence": 0.2},
        ]}])
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", "JOVS")
        assert job.status == "done"
        assert job.model_used == MODEL_DISAMBIGUATION
        assert job.final_score is None
        assert job.result["needs_disambiguation"] is True
        assert job.result["disambiguation_candidates"][0]["id"] == "jovs-device"
        assert llm.calls[0]["json_mode"] is True

    @pytest.mark.asyncio
    async def test_no_candidates_is_unable(self, store, catalog):
        llm = MockLLM([{"candidates": []}])
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", "JOVS")
        assert job.status == "done"
        assert job.model_used == MODEL_UNABLE
        assert job.result["unable_to_assess"] is True
        assert job.final_score is None

    @pytest.mark.asyncio
    async def test_provider_failure_is_unable(self, store, catalog):
        llm = MockLLM([TransientProviderError("timed out")])
        job = await _submit_and_run(_worker(store, catalog, llm), store, "text", "JOVS")
        assert job.status == "done"
        assert job.model_used == MODEL_UNABLE

    @pytest.mark.asyncio
    async def test_candidates_are_cached(self, store, catalog):
        cache = TTLCache()
        llm = MockLLM([{"candidates": [
            {"id": "jovs", "label": "JOVS", "category_hint": "general", "confidence": 0.9},
        ]}])
        worker = Worker(store, llm, catalog, poll_interval=0, cache=cache)
        await _submit_and_run(worker, store, "text", "JOVS")
        store.submit("text", "JOVS", force_refresh=True)
        assert await worker.run_once()
        assert len(llm.calls) == 1


# ============================================================
# URL INPUTS
# ============================================================

class TestUrlInput:
    """Fetched page text grounds the analysis; fetch failures do not fail the job."""

    @pytest.mark.asyncio
    async def test_page_content_in_prompt(self, store, catalog):
        fetcher = _fake_fetcher(FetchResult(success=True, content=PAGE_TEXT, status_code=200))
        llm = MockLLM([BLAND_REPORT])
        worker = _worker(store, catalog, llm, fetcher=fetcher)
        job = await _submit_and_run(worker, store, "url", "https://Shop.example.com/mug#top")
        assert job.status == "done"
        assert fetcher.calls == ["https://shop.example.com/mug"]
        assert "PAGE CONTENT" in llm.calls[0]["prompt"]
        assert job.result["analysis_mode"] == "seller_specific"

    @pytest.mark.asyncio
    async def test_fetch_failure_falls_back(self, store, catalog):
        fetcher = _fake_fetcher(FetchResult(success=False, error="HTTP 403", status_code=403))
        llm = MockLLM([BLAND_REPORT])
        worker = _worker(store, catalog, llm, fetcher=fetcher)
        job = await _submit_and_run(worker, store, "url", "https://shop.example.com/mug")
        assert job.status == "done"
        assert "PAGE CONTENT" not in llm.calls[0]["prompt"]
        assert "https://shop.example.com/mug" in llm.calls[0]["prompt"]
