"""
ClaimRisk API — Main Application

POST /analyze      — Queue a URL, text, or image for claim-risk analysis
GET  /job_status   — Poll a job with its id and token
GET  /health       — Health check and queue counts

Analysis itself runs in separate worker processes (run_worker.py) that
share the job store with this API.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from claimrisk.config import settings
from claimrisk.errors import JobNotFound, JobTokenMismatch
from claimrisk.jobs import JobStore, status_view
from claimrisk.logging import get_logger, setup_logging
from claimrisk.schemas.analysis import (
    AnalyzeCachedResponse,
    AnalyzeQueuedResponse,
    AnalyzeRequest,
    HealthResponse,
    JobStatusResponse,
)

logger = get_logger("api")

API_VERSION = "1.0.0"


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

_store: Optional[JobStore] = None


def get_store() -> JobStore:
    global _store
    if _store is None:
        _store = JobStore(settings.DB_PATH)
    return _store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire up dependencies on startup."""
    setup_logging()
    logger.info(
        "ClaimRisk API starting",
        extra={"path": settings.DB_PATH, "model": settings.GEMINI_MODEL},
    )
    yield
    logger.info("ClaimRisk API shutting down")


app = FastAPI(
    title="ClaimRisk API",
    description="Claim-risk scoring for product pages, marketing text and images",
    version=f"{API_VERSION} (engine {settings.ENGINE_VERSION})",
    lifespan=lifespan,
)

# CORS: set CLAIMRISK_CORS_ORIGINS in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=False,
)


# ============================================================
# ERROR HANDLERS
# ============================================================

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [e.get("msg", "invalid") for e in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request.", "errors": errors},
    )


@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions — return structured error, don't leak internals."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. The request could not be completed."},
    )


# ============================================================
# ROUTES
# ============================================================

@app.post(
    "/analyze",
    status_code=202,
    response_model=AnalyzeQueuedResponse,
    responses={200: {"model": AnalyzeCachedResponse}},
)
async def analyze(request: AnalyzeRequest, store: JobStore = Depends(get_store)):
    """Queue an input for analysis, or return the finished result for it."""
    input_type, value = request.input
    submission = store.submit(input_type, value, force_refresh=request.force_refresh)
    job = submission.job

    if submission.status == "cached":
        logger.info(
            "Cached result returned",
            extra={"job_id": job.id, "input_type": input_type, "score": job.final_score},
        )
        view = status_view(job)
        return JSONResponse(
            status_code=200,
            content={
                "status": "cached",
                "job_id": job.id,
                "job_token": job.token,
                "final_score": job.final_score,
                "result": job.result,
                "updated_at": view["updated_at"],
            },
        )

    return {"status": submission.status, "job_id": job.id, "job_token": job.token}


@app.get("/job_status", response_model=JobStatusResponse, response_model_exclude_none=True)
async def job_status(
    job_id: Optional[str] = Query(None),
    job_token: Optional[str] = Query(None),
    store: JobStore = Depends(get_store),
):
    """Status of one job. The token returned by /analyze is required."""
    if not job_id or not job_token:
        raise HTTPException(400, "job_id and job_token are required")
    try:
        return store.get_status(job_id, job_token)
    except JobNotFound:
        raise HTTPException(404, "Job not found")
    except JobTokenMismatch:
        raise HTTPException(403, "Invalid job token")


@app.get("/health", response_model=HealthResponse)
async def health(store: JobStore = Depends(get_store)):
    """Health check — no auth required."""
    return {
        "status": "operational",
        "version": API_VERSION,
        "engine_version": settings.ENGINE_VERSION,
        "llm_provider": settings.LLM_PROVIDER,
        "queue": store.counts(),
    }


# --- Security + Version Headers Middleware ---
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security and version headers to all responses."""
    response = await call_next(request)
    # Version headers
    response.headers["X-ClaimRisk-Version"] = API_VERSION
    response.headers["X-Engine-Version"] = settings.ENGINE_VERSION
    # Security headers
    response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# --- Body Size Limit Middleware ---
_MAX_BODY_BYTES = 262_144  # 256 KB


@app.middleware("http")
async def enforce_body_size_limit(request: Request, call_next):
    """Reject requests over the limit, by Content-Length and by actual body size."""
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > _MAX_BODY_BYTES:
                return JSONResponse(
                    status_code=413,
                    content={"detail": "Request body too large."},
                )
        except ValueError:
            pass  # Malformed content-length; let the framework handle it

    # Chunked bodies carry no Content-Length
    if request.method == "POST":
        body = await request.body()
        if len(body) > _MAX_BODY_BYTES:
            return JSONResponse(
                status_code=413,
                content={"detail": "Request body too large."},
            )

    return await call_next(request)


# --- Request Logging Middleware ---
# Clients poll /job_status every few seconds; successful polls log at DEBUG
_POLL_PATHS = frozenset({"/job_status"})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with method, path, status, duration."""
    path = request.url.path
    if path == "/health":
        return await call_next(request)

    start = time.monotonic()
    response = await call_next(request)
    duration_ms = round((time.monotonic() - start) * 1000, 1)

    level = logging.INFO
    if path in _POLL_PATHS and response.status_code < 400:
        level = logging.DEBUG
    elif response.status_code >= 500:
        level = logging.ERROR

    logger.log(
        level,
        f"{request.method} {path} → {response.status_code} ({duration_ms}ms)",
        extra={
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "job_id": request.query_params.get("job_id"),
        },
    )
    return response
