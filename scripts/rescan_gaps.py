#!/usr/bin/env python3
"""
Rescan blocks recorded as scan gaps.

A block that failed on SCAN_MAX_BLOCK_FAILURES consecutive passes is
written to scan_gaps and the cursor moves past it. Once the cause is
fixed (RPC node back, archive node configured), this script scans each
gap again, dispatches its events and removes the gaps that succeed.

Usage:
    python scripts/rescan_gaps.py --dry-run
    python scripts/rescan_gaps.py --limit 100
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from escrow_indexer.config.database import create_engine, create_session_maker
from escrow_indexer.config.settings import settings
from escrow_indexer.repositories.scan_gap_repository import ScanGapRepository
from escrow_indexer.services.blockchain import ChainClient
from escrow_indexer.services.event_classifier import EventRegistry
from escrow_indexer.services.event_dispatcher import EventDispatcher
from escrow_indexer.services.range_scanner import RangeScanner
from escrow_indexer.services.scan_coordinator import ScanCoordinator
from jobs.tasks.escrow_events import process_escrow_event

# Configure logger
logger.remove()
logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level} | {message}")


async def rescan_gaps(dry_run: bool = True, limit: int | None = None) -> int:
    """
    Scan gap blocks again and dispatch their events.

    Args:
        dry_run: Only list the gaps
        limit: Max number of gaps to try

    Returns:
        Number of gaps closed
    """
    engine = create_engine()
    session_maker = create_session_maker(engine)
    chain = ChainClient.from_url(
        settings.rpc_url, request_timeout=settings.rpc_timeout_seconds
    )

    try:
        async with session_maker() as session:
            gaps = await ScanGapRepository(session).find_gaps(limit=limit)

        logger.info(f"Scan gaps: {len(gaps)}")
        for gap in gaps:
            logger.info(
                f"  block {gap.block_number} failures={gap.failures}: {gap.last_error}"
            )

        if dry_run:
            logger.info("DRY RUN: nothing changed. Run without --dry-run to rescan.")
            return 0

        dispatcher = EventDispatcher(session_maker, process_escrow_event.send)
        scanner = RangeScanner(
            chain,
            session_maker,
            EventRegistry(),
            dispatch=dispatcher.dispatch,
            seed_addresses=settings.get_seed_escrow_addresses(),
        )
        coordinator = ScanCoordinator(scanner, session_maker)
        closed = await coordinator.rescan_gaps(limit=limit)
        logger.success(f"Closed {closed} of {len(gaps)} gaps")
        return closed
    finally:
        chain.close()
        await engine.dispose()
        process_escrow_event.broker.close()


def main():
    parser = argparse.ArgumentParser(
        description="Rescan blocks skipped after repeated scan failures"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list gaps",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Max number of gaps to rescan",
    )
    args = parser.parse_args()

    asyncio.run(rescan_gaps(dry_run=args.dry_run, limit=args.limit))


if __name__ == "__main__":
    main()
