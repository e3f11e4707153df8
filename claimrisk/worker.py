"""
Analysis Worker — claim, process, finish

A single-threaded asyncio polling loop. Any number of worker processes
may share one job store; the claim protocol keeps them from processing
the same job.

Per job:
  1. URL input: fetch the page text (failures fall back to URL-only)
  2. Route to a tier
  3. Tier 1/2/4: build the instant result, no provider call
  4. Tier 3: disambiguate short ambiguous text, or run the full analysis
     with one stricter re-ask on a malformed report
  5. complete() or fail() under the claim id

Two retry budgets are kept apart: the validation re-ask happens at most
once per processing run, while job attempts are persisted on the row.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from claimrisk.cache import TTLCache, disambiguation_cache
from claimrisk.catalog import Catalog
from claimrisk.config import settings
from claimrisk.disambiguation import get_candidates, is_ambiguous
from claimrisk.errors import ClaimRiskError, ReportValidationError
from claimrisk.fetch import fetch_page_text
from claimrisk.jobs import Job, JobStore
from claimrisk.llm import LLMProvider
from claimrisk.logging import get_logger
from claimrisk.prompts import build_analysis_request, build_strict_system_instruction
from claimrisk.report import ParsedReport, parse_report
from claimrisk.results import (
    build_archetype_result,
    build_commodity_result,
    build_disambiguation_result,
    build_full_result,
    build_unable_result,
)
from claimrisk.router import (
    TIER_INSTANT_HIGH,
    TIER_INSTANT_ZERO,
    TIER_UNSCORABLE,
    RoutingResult,
    route,
)

logger = get_logger("worker")

# Pause after each processed job so a busy queue does not starve the provider
POST_JOB_PAUSE = 0.5

MODEL_COMMODITY = "tier1-commodity"
MODEL_ARCHETYPE = "tier2-archetype"
MODEL_UNABLE = "tier4-unable-to-assess"
MODEL_DISAMBIGUATION = "disambiguation"


@dataclass(frozen=True)
class Outcome:
    """What analyze() produced for one job."""
    result: dict
    model_used: str
    latency_ms: int = 0

    @property
    def score(self) -> Optional[float]:
        return self.result.get("score")


class Worker:
    def __init__(
        self,
        store: JobStore,
        llm: LLMProvider,
        catalog: Catalog,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        stale_after: Optional[float] = None,
        cache: Optional[TTLCache] = disambiguation_cache,
        fetcher=fetch_page_text,
    ):
        self.store = store
        self.llm = llm
        self.catalog = catalog
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL
        self.max_attempts = max_attempts or settings.MAX_ATTEMPTS
        self.stale_after = stale_after if stale_after is not None else settings.STALE_AFTER_SECONDS
        self.cache = cache
        self.fetcher = fetcher
        self._stopping = False

    # --- Analysis ---

    async def analyze(self, job: Job) -> Outcome:
        """Produce the result for one claimed job. Raises ClaimRiskError on failure."""
        page_content = ""
        if job.input_type == "url":
            fetched = await self.fetcher(job.normalized_input)
            if fetched.success:
                page_content = fetched.content
            else:
                logger.info(
                    "Falling back to URL-only analysis",
                    extra={"job_id": job.id, "error": fetched.error},
                )

        routing = route(job.input_type, job.normalized_input, self.catalog)
        logger.info(
            "Job routed",
            extra={"job_id": job.id, "tier": routing.tier, "mode": routing.mode},
        )

        if routing.tier == TIER_INSTANT_ZERO:
            return Outcome(build_commodity_result(routing.commodity), MODEL_COMMODITY)
        if routing.tier == TIER_INSTANT_HIGH:
            return Outcome(
                build_archetype_result(routing.archetype_match, job.normalized_input),
                MODEL_ARCHETYPE,
            )
        if routing.tier == TIER_UNSCORABLE:
            return Outcome(build_unable_result(), MODEL_UNABLE)

        if job.input_type == "text" and is_ambiguous(job.normalized_input, self.catalog.commodities):
            candidates = await get_candidates(self.llm, job.normalized_input, self.cache)
            if candidates:
                return Outcome(
                    build_disambiguation_result(job.normalized_input, candidates),
                    MODEL_DISAMBIGUATION,
                )
            routing = route(
                job.input_type, job.normalized_input, self.catalog,
                disambiguation_failed=True,
            )
            if routing.tier == TIER_UNSCORABLE:
                logger.info("No disambiguation candidates", extra={"job_id": job.id})
                return Outcome(build_unable_result(), MODEL_UNABLE)

        return await self._full_analysis(job, routing, page_content)

    async def _full_analysis(self, job: Job, routing: RoutingResult, page_content: str) -> Outcome:
        start = time.monotonic()
        request = build_analysis_request(job.input_type, job.normalized_input, page_content)
        report = await self.generate_report(request.prompt, request.system_instruction, job.id)
        latency_ms = int((time.monotonic() - start) * 1000)

        result = build_full_result(
            report,
            self.catalog,
            source_url=job.normalized_input if job.input_type == "url" else None,
            page_content=page_content,
            mode=routing.mode,
            hint=routing.archetype_match,
        )
        return Outcome(result, self.llm.last_model or "unknown", latency_ms)

    async def generate_report(
        self,
        prompt: str,
        system_instruction: str,
        job_id: Optional[str] = None,
    ) -> ParsedReport:
        """Ask for a report; re-ask once with a stricter instruction if it is malformed."""
        raw = await self.llm.generate(prompt, system_instruction=system_instruction)
        parsed = parse_report(raw)
        if parsed.valid:
            return parsed.report

        logger.warning(
            "Report failed validation, re-asking",
            extra={"job_id": job_id, "errors": parsed.errors[:5]},
        )
        raw = await self.llm.generate(
            prompt,
            system_instruction=build_strict_system_instruction(parsed.errors),
            temperature=0.1,
        )
        parsed = parse_report(raw)
        if parsed.valid:
            return parsed.report
        raise ReportValidationError(parsed.errors)

    # --- Job lifecycle ---

    async def process(self, job: Job) -> str:
        """Run one claimed job to a terminal update. Returns the resulting status."""
        try:
            outcome = await self.analyze(job)
        except ClaimRiskError as e:
            return self._fail(job, e.code, e.message or str(e), e.retryable)
        except Exception as e:
            logger.exception("Unexpected error processing job", extra={"job_id": job.id})
            return self._fail(job, "UNKNOWN", str(e), True)

        completed = self.store.complete(
            job.id,
            job.claim_id,
            outcome.result,
            outcome.score,
            model_used=outcome.model_used,
            latency_ms=outcome.latency_ms,
        )
        if not completed:
            return "lost"
        logger.info(
            "Job completed",
            extra={
                "job_id": job.id,
                "score": outcome.score,
                "model": outcome.model_used,
                "duration_ms": outcome.latency_ms,
            },
        )
        return "done"

    def _fail(self, job: Job, code: str, message: str, retryable: bool) -> str:
        status = self.store.fail(
            job.id, job.claim_id, code, message,
            retryable=retryable, max_attempts=self.max_attempts,
        )
        logger.warning(
            "Job failed",
            extra={
                "job_id": job.id,
                "error_code": code,
                "attempts": job.attempts,
                "status": status,
            },
        )
        return status or "lost"

    async def run_once(self) -> bool:
        """Claim and process at most one job. Returns True if a job was processed."""
        job = self.store.claim_next(self.max_attempts, self.stale_after)
        if job is None:
            return False
        await self.process(job)
        return True

    async def run(self):
        logger.info(
            "Worker started",
            extra={
                "poll_interval": self.poll_interval,
                "max_attempts": self.max_attempts,
            },
        )
        while not self._stopping:
            try:
                processed = await self.run_once()
            except Exception:
                logger.exception("Worker loop error")
                processed = False
            await asyncio.sleep(POST_JOB_PAUSE if processed else self.poll_interval)
        logger.info("Worker stopped")

    def stop(self):
        self._stopping = True
