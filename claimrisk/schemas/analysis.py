"""
API Schemas — Request and Response Models

Pydantic models for the ClaimRisk API.
"""

from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


# ============================================================
# ANALYZE
# ============================================================

class AnalyzeRequest(BaseModel):
    """POST /analyze request body. Exactly one of url, text, image_url."""
    url: Optional[str] = Field(None, min_length=1, max_length=4_000,
                               description="Product or offer page to analyze.")
    text: Optional[str] = Field(None, min_length=1, max_length=50_000,
                                description="Product name or marketing claims.")
    image_url: Optional[str] = Field(None, min_length=1, max_length=4_000,
                                     description="URL of a product image.")
    force_refresh: bool = Field(False, description="Bypass the cached result and re-analyze.")

    model_config = {"json_schema_extra": {"examples": [
        {"text": "Doctors hate this! Cures diabetes naturally in 7 days."},
        {"url": "https://example.com/product/miracle-serum"},
    ]}}

    @field_validator("url", "text", "image_url", mode="before")
    @classmethod
    def _strip_blank(cls, v):
        # Whitespace-only inputs count as absent
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @model_validator(mode="after")
    def _exactly_one_input(self):
        given = [v for v in (self.url, self.text, self.image_url) if v]
        if len(given) != 1:
            raise ValueError("Provide exactly one of url, text, or image_url")
        return self

    @property
    def input(self) -> tuple[str, str]:
        """(input_type, value) pair for the job store."""
        if self.url:
            return "url", self.url
        if self.text:
            return "text", self.text
        return "image", self.image_url


class AnalyzeQueuedResponse(BaseModel):
    """202 response: the job was queued or is already in flight."""
    status: str
    job_id: str
    job_token: str


class AnalyzeCachedResponse(BaseModel):
    """200 response: a finished analysis already exists for this input."""
    status: str = "cached"
    job_id: str
    job_token: str
    final_score: Optional[float] = None
    result: Optional[dict[str, Any]] = None
    updated_at: Optional[str] = None


# ============================================================
# JOB STATUS
# ============================================================

class JobError(BaseModel):
    code: Optional[str] = None
    message: Optional[str] = None


class JobStatusResponse(BaseModel):
    """GET /job_status response body."""
    job_id: str
    status: str
    attempts: int
    updated_at: Optional[str] = None
    final_score: Optional[float] = None
    result: Optional[dict[str, Any]] = None
    model_used: Optional[str] = None
    latency_ms: Optional[int] = None
    error: Optional[JobError] = None
    last_error: Optional[JobError] = None


# ============================================================
# HEALTH
# ============================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    engine_version: str
    llm_provider: str
    queue: dict[str, int]
