#!/usr/bin/env python3
"""
Requeue permanently failed escrow event jobs.

Jobs that exhausted their retries stay `failed` in the ledger. This
script resets them to `queued` and sends them to the queue again.

Usage:
    python scripts/requeue_failed_jobs.py --dry-run
    python scripts/requeue_failed_jobs.py
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from escrow_indexer.config.database import create_engine, create_session_maker
from escrow_indexer.models.enums import JobStatus
from escrow_indexer.repositories.queue_job_repository import QueueJobRepository
from escrow_indexer.services.event_dispatcher import EventDispatcher
from jobs.tasks.escrow_events import process_escrow_event

# Configure logger
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def requeue_failed_jobs(dry_run: bool = True) -> int:
    """
    Reset failed jobs and re-send them.

    Args:
        dry_run: Only report what would be requeued

    Returns:
        Number of jobs reset
    """
    engine = create_engine()
    session_maker = create_session_maker(engine)

    try:
        async with session_maker() as session:
            repo = QueueJobRepository(session)
            counts = await repo.count_by_status()
            failed = await repo.find_by_status([JobStatus.FAILED], limit=20)

        logger.info(f"Job ledger: {counts}")
        for job in failed:
            logger.info(
                f"  ({job.block_number}, {job.log_index}) {job.event_type} "
                f"{job.escrow_address} attempts={job.attempts}: {job.last_error}"
            )
        if counts[JobStatus.FAILED.value] > len(failed):
            logger.info(f"  ... and {counts[JobStatus.FAILED.value] - len(failed)} more")

        if dry_run:
            logger.info("DRY RUN: nothing changed. Run without --dry-run to requeue.")
            return 0

        dispatcher = EventDispatcher(session_maker, process_escrow_event.send)
        reset = await dispatcher.requeue_failed()
        logger.success(f"Requeued {reset} failed jobs")
        return reset
    finally:
        await engine.dispose()
        process_escrow_event.broker.close()


def main():
    parser = argparse.ArgumentParser(
        description="Reset failed escrow event jobs and send them to the queue again"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list failed jobs",
    )
    args = parser.parse_args()

    asyncio.run(requeue_failed_jobs(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
