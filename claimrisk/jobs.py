"""
Job Store — SQLite-backed analysis queue

One row per unit of work. Rows are written in exactly three places:

  - submit()      insert, or reset a failed duplicate to queued
  - claim_next()  queued/stale → running, inside BEGIN IMMEDIATE
  - complete() /
    fail()        terminal update, guarded by the claim id

BEGIN IMMEDIATE takes SQLite's write lock before the SELECT, so the
read-modify-write of a claim is atomic across threads and processes:
two workers can never walk away with the same row. A worker whose claim
went stale and was taken over can no longer complete or fail the row,
because its claim id no longer matches.

Status lifecycle:
    queued → running → done
                    ↘ queued (retryable, attempts left)
                    ↘ failed → queued (duplicate submission, one more attempt)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import sqlite3
import time
import uuid
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from urllib.parse import urlsplit, urlunsplit

from claimrisk.config import settings
from claimrisk.errors import JobNotFound, JobTokenMismatch
from claimrisk.logging import get_logger

logger = get_logger("jobs")

DEDUP_VERSION = "v1"

STATUS_QUEUED = "queued"
STATUS_RUNNING = "running"
STATUS_DONE = "done"
STATUS_FAILED = "failed"
STATUSES = (STATUS_QUEUED, STATUS_RUNNING, STATUS_DONE, STATUS_FAILED)

STALE_EXHAUSTED = "STALE_CLAIM_EXHAUSTED"


# ============================================================
# INPUT NORMALIZATION
# ============================================================

def normalize_url(value: str) -> str:
    """Lowercase host, drop fragment, drop trailing slash except on the root path."""
    raw = value.strip()
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw.lower()
    if not parts.scheme or not parts.netloc:
        return raw.lower()
    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def normalize_input(input_type: str, value: str) -> str:
    if input_type == "url":
        return normalize_url(value)
    return value.strip()


def dedup_key(
    input_type: str,
    normalized: str,
    force_refresh: bool = False,
    now: Optional[float] = None,
) -> str:
    """Content hash of the input; force-refresh keys get a millisecond suffix."""
    key = hashlib.sha256(f"{input_type}:{normalized}:{DEDUP_VERSION}".encode()).hexdigest()
    if force_refresh:
        ts = time.time() if now is None else now
        key = f"{key}_{int(ts * 1000)}"
    return key


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class Job:
    id: str
    status: str
    input_type: str
    input_value: str
    normalized_input: str
    dedup_key: str
    token: str
    attempts: int
    created_at: float
    updated_at: float
    claimed_at: Optional[float] = None
    claim_id: Optional[str] = None
    final_score: Optional[float] = None
    result: Optional[dict] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    model_used: Optional[str] = None
    latency_ms: Optional[int] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Job":
        data = dict(row)
        data.pop("seq", None)
        raw = data.pop("result_json", None)
        data["result"] = json.loads(raw) if raw else None
        return cls(**data)


@dataclass(frozen=True)
class Submission:
    """Outcome of submit(): queued (new or reset), an existing live job, or cached."""
    status: str
    job: Job
    created: bool = False


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


# ============================================================
# STORE
# ============================================================

class JobStore:
    """Analysis job queue on a single SQLite file, shared by API and workers."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = db_path or settings.DB_PATH
        self._clock = clock
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly with BEGIN IMMEDIATE
        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        with closing(self._get_conn()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS analysis_jobs (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL DEFAULT 'queued'
                        CHECK (status IN ('queued', 'running', 'done', 'failed')),
                    input_type TEXT NOT NULL
                        CHECK (input_type IN ('url', 'text', 'image')),
                    input_value TEXT NOT NULL,
                    normalized_input TEXT NOT NULL,
                    dedup_key TEXT NOT NULL,
                    token TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    claimed_at REAL,
                    claim_id TEXT,
                    final_score REAL,
                    result_json TEXT,
                    error_code TEXT,
                    error_message TEXT,
                    model_used TEXT,
                    latency_ms INTEGER
                )
            """)
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_dedup_key
                ON analysis_jobs(dedup_key)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_status_created
                ON analysis_jobs(status, created_at)
            """)

    @staticmethod
    def _fetch(conn: sqlite3.Connection, where: str, params: tuple) -> Optional[Job]:
        row = conn.execute(f"SELECT * FROM analysis_jobs WHERE {where}", params).fetchone()
        return Job.from_row(row) if row else None

    def get(self, job_id: str) -> Optional[Job]:
        with closing(self._get_conn()) as conn:
            return self._fetch(conn, "id = ?", (job_id,))

    # --- Submission ---

    def submit(
        self,
        input_type: str,
        input_value: str,
        force_refresh: bool = False,
        max_attempts: Optional[int] = None,
    ) -> Submission:
        """Enqueue an input, or resolve it to the existing job for the same key."""
        max_attempts = max_attempts or settings.MAX_ATTEMPTS
        normalized = normalize_input(input_type, input_value)
        now = self._clock()
        key = dedup_key(input_type, normalized, force_refresh, now=now)

        with closing(self._get_conn()) as conn:
            if not force_refresh:
                cached = self._fetch(
                    conn, "dedup_key = ? AND status = 'done' AND result_json IS NOT NULL", (key,),
                )
                if cached is not None:
                    return Submission(status="cached", job=cached)

            job_id = str(uuid.uuid4())
            try:
                conn.execute(
                    """INSERT INTO analysis_jobs
                       (id, status, input_type, input_value, normalized_input,
                        dedup_key, token, attempts, created_at, updated_at)
                       VALUES (?, 'queued', ?, ?, ?, ?, ?, 0, ?, ?)""",
                    (job_id, input_type, input_value, normalized, key,
                     str(uuid.uuid4()), now, now),
                )
            except sqlite3.IntegrityError:
                return self._resolve_duplicate(conn, key, max_attempts)

            job = self._fetch(conn, "id = ?", (job_id,))
            logger.info(
                "Job queued",
                extra={"job_id": job_id, "input_type": input_type},
            )
            return Submission(status=STATUS_QUEUED, job=job, created=True)

    def _resolve_duplicate(
        self, conn: sqlite3.Connection, key: str, max_attempts: int,
    ) -> Submission:
        conn.execute("BEGIN IMMEDIATE")
        try:
            existing = self._fetch(conn, "dedup_key = ?", (key,))
            if existing.status == STATUS_FAILED:
                conn.execute(
                    """UPDATE analysis_jobs
                       SET status = 'queued', attempts = ?, claimed_at = NULL,
                           claim_id = NULL, error_code = NULL, error_message = NULL,
                           updated_at = ?
                       WHERE id = ?""",
                    (max(0, max_attempts - 1), self._clock(), existing.id),
                )
                existing = self._fetch(conn, "id = ?", (existing.id,))
                logger.info(
                    "Failed duplicate reset to queued",
                    extra={"job_id": existing.id, "attempts": existing.attempts},
                )
            conn.execute("COMMIT")
        except BaseException:
            conn.execute("ROLLBACK")
            raise

        status = "cached" if existing.status == STATUS_DONE else existing.status
        return Submission(status=status, job=existing)

    # --- Claim ---

    def claim_next(
        self,
        max_attempts: Optional[int] = None,
        stale_after: Optional[float] = None,
    ) -> Optional[Job]:
        """Atomically claim the oldest claimable job, or return None."""
        max_attempts = max_attempts or settings.MAX_ATTEMPTS
        stale_after = settings.STALE_AFTER_SECONDS if stale_after is None else stale_after

        with closing(self._get_conn()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                now = self._clock()
                cutoff = now - stale_after

                # Stale claims with no attempts left would otherwise stay running forever
                conn.execute(
                    """UPDATE analysis_jobs
                       SET status = 'failed', error_code = ?, error_message = ?,
                           claim_id = NULL, updated_at = ?
                       WHERE status = 'running' AND claimed_at < ? AND attempts >= ?""",
                    (STALE_EXHAUSTED, "Claim went stale with no attempts remaining",
                     now, cutoff, max_attempts),
                )

                row = conn.execute(
                    """SELECT id FROM analysis_jobs
                       WHERE attempts < ?
                         AND (status = 'queued'
                              OR (status = 'running' AND claimed_at < ?))
                       ORDER BY created_at ASC, seq ASC
                       LIMIT 1""",
                    (max_attempts, cutoff),
                ).fetchone()
                if row is None:
                    conn.execute("COMMIT")
                    return None

                claim_id = str(uuid.uuid4())
                conn.execute(
                    """UPDATE analysis_jobs
                       SET status = 'running', claim_id = ?, claimed_at = ?,
                           attempts = attempts + 1, updated_at = ?
                       WHERE id = ?""",
                    (claim_id, now, now, row["id"]),
                )
                job = self._fetch(conn, "id = ?", (row["id"],))
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

        logger.info(
            "Job claimed",
            extra={"job_id": job.id, "claim_id": claim_id, "attempts": job.attempts},
        )
        return job

    # --- Terminal updates ---

    def complete(
        self,
        job_id: str,
        claim_id: str,
        result: dict,
        score: Optional[float],
        model_used: Optional[str] = None,
        latency_ms: Optional[int] = None,
    ) -> bool:
        """Mark done. False when the claim was lost to another worker."""
        with closing(self._get_conn()) as conn:
            cur = conn.execute(
                """UPDATE analysis_jobs
                   SET status = 'done', result_json = ?, final_score = ?,
                       model_used = ?, latency_ms = ?, error_code = NULL,
                       error_message = NULL, updated_at = ?
                   WHERE id = ? AND claim_id = ? AND status = 'running'""",
                (json.dumps(result, default=str), score, model_used, latency_ms,
                 self._clock(), job_id, claim_id),
            )
            updated = cur.rowcount == 1
        if not updated:
            logger.warning(
                "Completion ignored, claim no longer held",
                extra={"job_id": job_id, "claim_id": claim_id},
            )
        return updated

    def fail(
        self,
        job_id: str,
        claim_id: str,
        code: str,
        message: str,
        retryable: bool = True,
        max_attempts: Optional[int] = None,
    ) -> Optional[str]:
        """Requeue or permanently fail. Returns the new status, None if the claim was lost."""
        max_attempts = max_attempts or settings.MAX_ATTEMPTS
        with closing(self._get_conn()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                job = self._fetch(
                    conn, "id = ? AND claim_id = ? AND status = 'running'", (job_id, claim_id),
                )
                if job is None:
                    conn.execute("COMMIT")
                    logger.warning(
                        "Failure ignored, claim no longer held",
                        extra={"job_id": job_id, "claim_id": claim_id},
                    )
                    return None
                new_status = (
                    STATUS_QUEUED if retryable and job.attempts < max_attempts
                    else STATUS_FAILED
                )
                conn.execute(
                    """UPDATE analysis_jobs
                       SET status = ?, error_code = ?, error_message = ?, updated_at = ?
                       WHERE id = ?""",
                    (new_status, code, message, self._clock(), job_id),
                )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        return new_status

    # --- Reads ---

    def get_status(self, job_id: str, token: str) -> dict[str, Any]:
        """Caller-facing status view. The token authorizes polling."""
        job = self.get(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")
        if not hmac.compare_digest(job.token, token or ""):
            raise JobTokenMismatch("Job token does not match")
        return status_view(job)

    def counts(self) -> dict[str, int]:
        with closing(self._get_conn()) as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM analysis_jobs GROUP BY status"
            ).fetchall()
        counts = {s: 0 for s in STATUSES}
        counts.update({r["status"]: r["n"] for r in rows})
        return counts


def status_view(job: Job) -> dict[str, Any]:
    view: dict[str, Any] = {
        "job_id": job.id,
        "status": job.status,
        "attempts": job.attempts,
        "updated_at": _iso(job.updated_at),
    }
    if job.status == STATUS_DONE:
        view["final_score"] = job.final_score
        view["result"] = job.result
        view["model_used"] = job.model_used
        view["latency_ms"] = job.latency_ms
    elif job.status == STATUS_FAILED:
        view["error"] = {"code": job.error_code, "message": job.error_message}
    elif job.error_code:
        # Requeued after a retryable failure
        view["last_error"] = {"code": job.error_code, "message": job.error_message}
    return view
