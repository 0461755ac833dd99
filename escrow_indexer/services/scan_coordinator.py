"""
Scan Coordinator.

Single writer of the scan cursor. The push listener and the poller
only post "scan up to head N" requests; one task drains them in order,
so concurrent triggers can cause extra rescans but never a lost or
out-of-order cursor write.
"""

import asyncio

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from escrow_indexer.config.constants import SCAN_CHUNK_SIZE, SCAN_MAX_BLOCK_FAILURES
from escrow_indexer.repositories.indexing_state_repository import (
    IndexingStateRepository,
)
from escrow_indexer.repositories.scan_gap_repository import ScanGapRepository
from escrow_indexer.services.range_scanner import RangeScanner, ScanResult


class ScanCoordinator:
    """Serializes scan requests and owns the cursor."""

    def __init__(
        self,
        scanner: RangeScanner,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        start_block: int = 0,
        confirmations: int = 0,
        chunk_size: int = SCAN_CHUNK_SIZE,
        max_block_failures: int = SCAN_MAX_BLOCK_FAILURES,
    ) -> None:
        """
        Initialize coordinator.

        Args:
            scanner: Range scanner
            session_maker: Session factory for cursor reads/writes
            start_block: First block when no cursor is stored
            confirmations: Blocks to stay behind the requested head
            chunk_size: Blocks per cursor advance
            max_block_failures: Consecutive failed passes before a block
                is recorded as a gap and skipped
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if max_block_failures <= 0:
            raise ValueError("max_block_failures must be positive")
        self.scanner = scanner
        self.session_maker = session_maker
        self.start_block = start_block
        self.confirmations = confirmations
        self.chunk_size = chunk_size
        self.max_block_failures = max_block_failures

        self.cursor: int | None = None
        self.last_head: int | None = None
        self._requests: asyncio.Queue[int] = asyncio.Queue()
        self._failures: dict[int, int] = {}  # block -> consecutive failed passes

    async def load_cursor(self) -> int | None:
        """
        Read the persisted cursor.

        Returns:
            Last processed block, or None on first run
        """
        async with self.session_maker() as session:
            self.cursor = await IndexingStateRepository(session).get_cursor()
        logger.info(f"[Coordinator] Resuming from cursor={self.cursor}")
        return self.cursor

    def request_scan(self, head: int) -> None:
        """Ask for everything up to head to be scanned."""
        self._requests.put_nowait(head)

    @property
    def pending_requests(self) -> int:
        """Number of queued scan requests."""
        return self._requests.qsize()

    async def run(self) -> None:
        """Drain scan requests until cancelled."""
        while True:
            head = await self._requests.get()
            # Coalesce bursts into the highest head
            while not self._requests.empty():
                head = max(head, self._requests.get_nowait())

            try:
                await self.scan_to(head)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"[Coordinator] Scan to head {head} failed: {e}")

    async def scan_to(self, head: int) -> int | None:
        """
        Scan from the cursor up to head minus confirmations.

        The cursor advances after each chunk, and only as far as the
        last block before the first failed one. A block that fails on
        max_block_failures consecutive passes is recorded as a gap and
        no longer holds the cursor.

        Args:
            head: Chain head reported by a trigger

        Returns:
            Cursor after the pass
        """
        self.last_head = max(head, self.last_head or 0)
        target = head - self.confirmations
        from_block = self.start_block if self.cursor is None else self.cursor + 1

        if target < from_block:
            return self.cursor

        stalled = False
        chunk_from = from_block
        while chunk_from <= target:
            chunk_to = min(chunk_from + self.chunk_size - 1, target)
            result = await self.scanner.scan(chunk_from, chunk_to)
            blocking = await self._track_failures(result)

            if not stalled:
                last = min(blocking) - 1 if blocking else chunk_to
                if last >= chunk_from:
                    await self._advance(last)
                if blocking:
                    stalled = True
                    logger.warning(
                        f"[Coordinator] Cursor held at {self.cursor}: "
                        f"blocks {blocking} will be rescanned"
                    )

            chunk_from = chunk_to + 1

        return self.cursor

    async def _track_failures(self, result: ScanResult) -> list[int]:
        """
        Update per-block failure counts for a scanned chunk.

        Returns:
            Failed blocks that still hold the cursor
        """
        failed = set(result.failed_blocks)
        for block_number in [
            b for b in self._failures
            if result.from_block <= b <= result.to_block and b not in failed
        ]:
            del self._failures[block_number]

        blocking: list[int] = []
        for block_number in sorted(failed):
            failures = self._failures.get(block_number, 0) + 1
            if failures < self.max_block_failures:
                self._failures[block_number] = failures
                blocking.append(block_number)
                continue

            self._failures.pop(block_number, None)
            error = result.errors.get(block_number)
            async with self.session_maker() as session:
                await ScanGapRepository(session).record_gap(block_number, failures, error)
                await session.commit()
            logger.error(
                f"[Coordinator] Block {block_number} failed {failures} passes in a row, "
                f"recorded as scan gap and skipped: {error}"
            )

        return blocking

    async def rescan_gaps(self, limit: int | None = None) -> int:
        """
        Scan recorded gap blocks again.

        Gaps that scan cleanly are removed; the rest get their failure
        count and error refreshed. The cursor is not touched.

        Args:
            limit: Max number of gaps to try

        Returns:
            Number of gaps closed
        """
        async with self.session_maker() as session:
            gaps = await ScanGapRepository(session).find_gaps(limit=limit)

        closed = 0
        for gap in gaps:
            result = await self.scanner.scan(gap.block_number, gap.block_number)
            async with self.session_maker() as session:
                repo = ScanGapRepository(session)
                if result.failed_blocks:
                    await repo.record_gap(
                        gap.block_number,
                        gap.failures + 1,
                        result.errors.get(gap.block_number),
                    )
                else:
                    await repo.delete_gap(gap.block_number)
                    closed += 1
                await session.commit()

        logger.info(f"[Coordinator] Rescanned {len(gaps)} gaps, closed {closed}")
        return closed

    async def _advance(self, block_number: int) -> None:
        async with self.session_maker() as session:
            await IndexingStateRepository(session).advance_cursor(block_number)
            await session.commit()

        if self.cursor is None or block_number > self.cursor:
            self.cursor = block_number
        logger.debug(f"[Coordinator] Cursor advanced to {self.cursor}")
