#!/usr/bin/env python3
"""
run_worker.py — Run an analysis worker against the job store.

Usage:
    python run_worker.py                       # Poll forever
    python run_worker.py --once                # Process at most one job, then exit
    python run_worker.py --poll-interval 3     # Slower polling
    python run_worker.py --db path/jobs.db     # Alternate job store

Start as many workers as the provider quota allows; they coordinate
through the store.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from claimrisk.catalog import get_catalog
from claimrisk.config import settings
from claimrisk.jobs import JobStore
from claimrisk.llm.factory import get_provider
from claimrisk.logging import get_logger, setup_logging
from claimrisk.worker import Worker

logger = get_logger("run_worker")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ClaimRisk Analysis Worker")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Claim and process at most one job, then exit",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=settings.POLL_INTERVAL,
        help=f"Seconds between polls when the queue is empty (default: {settings.POLL_INTERVAL})",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=settings.MAX_ATTEMPTS,
        help=f"Attempts per job before it fails permanently (default: {settings.MAX_ATTEMPTS})",
    )
    parser.add_argument(
        "--db",
        default=settings.DB_PATH,
        help=f"Path to the SQLite job store (default: {settings.DB_PATH})",
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("worker")

    worker = Worker(
        store=JobStore(args.db),
        llm=get_provider(),
        catalog=get_catalog(),
        poll_interval=args.poll_interval,
        max_attempts=args.max_attempts,
    )

    if args.once:
        processed = asyncio.run(worker.run_once())
        logger.info("Single pass finished", extra={"status": "processed" if processed else "idle"})
        return 0

    try:
        asyncio.run(worker.run())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
