"""
Tests for the scan coordinator and the persisted cursor.
"""

import asyncio

import pytest

from escrow_indexer.repositories.indexing_state_repository import (
    IndexingStateRepository,
)
from escrow_indexer.repositories.scan_gap_repository import ScanGapRepository
from escrow_indexer.services.range_scanner import RangeScanner, ScanResult
from escrow_indexer.services.scan_coordinator import ScanCoordinator


async def stored_cursor(session_maker):
    async with session_maker() as session:
        return await IndexingStateRepository(session).get_cursor()


@pytest.fixture
def scanner(fake_chain, session_maker, registry):
    return RangeScanner(fake_chain, session_maker, registry)


class TestCursorRepository:
    """Monotone cursor writes."""

    @pytest.mark.asyncio
    async def test_no_cursor_initially(self, session_maker):
        """Fresh store has no cursor."""
        assert await stored_cursor(session_maker) is None

    @pytest.mark.asyncio
    async def test_cursor_never_moves_back(self, session_maker):
        """A lower write after a higher one is ignored."""
        async with session_maker() as session:
            repo = IndexingStateRepository(session)
            await repo.advance_cursor(50)
            await repo.advance_cursor(40)
            await repo.advance_cursor(50)
            await session.commit()

        assert await stored_cursor(session_maker) == 50

    @pytest.mark.asyncio
    async def test_negative_cursor_rejected(self, session_maker):
        """Block numbers are non-negative."""
        async with session_maker() as session:
            with pytest.raises(ValueError):
                await IndexingStateRepository(session).advance_cursor(-1)


class TestScanTo:
    """Scan passes."""

    @pytest.mark.asyncio
    async def test_first_pass_starts_at_start_block(self, fake_chain, scanner, session_maker):
        """Without a cursor scanning begins at start_block."""
        coordinator = ScanCoordinator(scanner, session_maker, start_block=95)

        cursor = await coordinator.scan_to(100)

        assert fake_chain.block_calls == [95, 96, 97, 98, 99, 100]
        assert cursor == 100
        assert await stored_cursor(session_maker) == 100

    @pytest.mark.asyncio
    async def test_resumes_after_stored_cursor(self, fake_chain, scanner, session_maker):
        """A restarted coordinator continues at cursor + 1."""
        await ScanCoordinator(scanner, session_maker, start_block=98).scan_to(100)
        fake_chain.block_calls.clear()

        coordinator = ScanCoordinator(scanner, session_maker, start_block=0)
        assert await coordinator.load_cursor() == 100
        await coordinator.scan_to(103)

        assert fake_chain.block_calls == [101, 102, 103]

    @pytest.mark.asyncio
    async def test_head_behind_cursor_is_noop(self, fake_chain, scanner, session_maker):
        """A stale head does not rescan or lower the cursor."""
        coordinator = ScanCoordinator(scanner, session_maker, start_block=100)
        await coordinator.scan_to(105)
        fake_chain.block_calls.clear()

        assert await coordinator.scan_to(102) == 105
        assert fake_chain.block_calls == []
        assert await stored_cursor(session_maker) == 105

    @pytest.mark.asyncio
    async def test_confirmations_hold_back_target(self, fake_chain, scanner, session_maker):
        """The scan stops confirmations blocks behind the head."""
        coordinator = ScanCoordinator(
            scanner, session_maker, start_block=100, confirmations=3
        )

        await coordinator.scan_to(105)

        assert fake_chain.block_calls == [100, 101, 102]
        assert coordinator.cursor == 102

    @pytest.mark.asyncio
    async def test_chunks_advance_cursor(self, fake_chain, scanner, session_maker):
        """Each chunk persists the cursor before the next one starts."""
        cursors = []

        class RecordingScanner:
            async def scan(self, from_block, to_block):
                cursors.append(await stored_cursor(session_maker))
                return await scanner.scan(from_block, to_block)

        coordinator = ScanCoordinator(
            RecordingScanner(), session_maker, start_block=0, chunk_size=4
        )

        await coordinator.scan_to(9)

        assert cursors == [None, 3, 7]
        assert await stored_cursor(session_maker) == 9

    @pytest.mark.asyncio
    async def test_failed_block_holds_cursor(self, fake_chain, scanner, session_maker):
        """The cursor stops before a failed block and the next pass retries it."""
        fake_chain.failing_blocks.add(103)
        coordinator = ScanCoordinator(
            scanner, session_maker, start_block=100, chunk_size=2
        )

        await coordinator.scan_to(107)

        assert coordinator.cursor == 102
        assert await stored_cursor(session_maker) == 102
        # Later chunks were still scanned
        assert fake_chain.block_calls[-1] == 107

        fake_chain.failing_blocks.clear()
        fake_chain.block_calls.clear()
        await coordinator.scan_to(107)

        assert fake_chain.block_calls == [103, 104, 105, 106, 107]
        assert coordinator.cursor == 107

    @pytest.mark.asyncio
    async def test_first_block_failure_keeps_no_cursor(self, fake_chain, scanner, session_maker):
        """Nothing is persisted when the very first block fails."""
        fake_chain.failing_blocks.add(100)
        coordinator = ScanCoordinator(scanner, session_maker, start_block=100)

        await coordinator.scan_to(101)

        assert coordinator.cursor is None
        assert await stored_cursor(session_maker) is None

    def test_invalid_chunk_size(self, scanner, session_maker):
        """chunk_size must be positive."""
        with pytest.raises(ValueError):
            ScanCoordinator(scanner, session_maker, chunk_size=0)


class TestRequests:
    """Request queue."""

    @pytest.mark.asyncio
    async def test_requests_coalesce_to_highest_head(self, fake_chain, session_maker):
        """Queued requests collapse into one pass to the max head."""
        targets = []

        class RecordingScanner:
            async def scan(self, from_block, to_block):
                targets.append((from_block, to_block))
                return ScanResult(from_block, to_block)

        coordinator = ScanCoordinator(RecordingScanner(), session_maker, start_block=10)
        for head in (12, 15, 11):
            coordinator.request_scan(head)
        assert coordinator.pending_requests == 3

        task = asyncio.create_task(coordinator.run())
        for _ in range(50):
            if coordinator.cursor == 15:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert targets == [(10, 15)]
        assert coordinator.pending_requests == 0

    @pytest.mark.asyncio
    async def test_run_survives_scan_errors(self, session_maker):
        """An exception in one pass does not stop the loop."""
        calls = []

        class FlakyScanner:
            async def scan(self, from_block, to_block):
                calls.append((from_block, to_block))
                if len(calls) == 1:
                    raise RuntimeError("boom")
                return ScanResult(from_block, to_block)

        coordinator = ScanCoordinator(FlakyScanner(), session_maker, start_block=0)
        task = asyncio.create_task(coordinator.run())

        coordinator.request_scan(5)
        for _ in range(50):
            if calls:
                break
            await asyncio.sleep(0.01)
        coordinator.request_scan(6)
        for _ in range(50):
            if coordinator.cursor == 6:
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert calls == [(0, 5), (0, 6)]
        assert coordinator.cursor == 6


async def stored_gaps(session_maker):
    async with session_maker() as session:
        return await ScanGapRepository(session).find_gaps()


class TestScanGaps:
    """Blocks that keep failing."""

    @pytest.mark.asyncio
    async def test_block_skipped_after_max_failures(self, fake_chain, scanner, session_maker):
        """After max_block_failures passes the block is recorded and the cursor moves on."""
        fake_chain.failing_blocks.add(103)
        coordinator = ScanCoordinator(
            scanner, session_maker, start_block=100, chunk_size=2, max_block_failures=3
        )

        assert await coordinator.scan_to(107) == 102
        assert await coordinator.scan_to(107) == 102
        assert await stored_gaps(session_maker) == []

        assert await coordinator.scan_to(107) == 107

        gaps = await stored_gaps(session_maker)
        assert [(g.block_number, g.failures) for g in gaps] == [(103, 3)]
        assert "103" in gaps[0].last_error
        assert await stored_cursor(session_maker) == 107

        fake_chain.block_calls.clear()
        await coordinator.scan_to(109)
        assert fake_chain.block_calls == [108, 109]

    @pytest.mark.asyncio
    async def test_tail_rescans_are_bounded(self, fake_chain, scanner, session_maker):
        """A permanently failing block stops being rescanned once skipped."""
        fake_chain.failing_blocks.add(103)
        coordinator = ScanCoordinator(
            scanner, session_maker, start_block=100, max_block_failures=2
        )

        for head in (200, 300, 400, 500):
            await coordinator.scan_to(head)

        assert coordinator.cursor == 500
        assert fake_chain.block_calls.count(103) == 2
        assert fake_chain.block_calls.count(150) == 2

    @pytest.mark.asyncio
    async def test_only_consecutive_failures_count(self, fake_chain, scanner, session_maker):
        """A block that recovers between passes is not recorded."""
        fake_chain.failing_blocks.update({104, 106})
        coordinator = ScanCoordinator(
            scanner, session_maker, start_block=100, max_block_failures=2
        )

        await coordinator.scan_to(107)
        assert coordinator.cursor == 103

        fake_chain.failing_blocks.discard(106)
        await coordinator.scan_to(107)

        gaps = await stored_gaps(session_maker)
        assert [g.block_number for g in gaps] == [104]
        assert coordinator.cursor == 107

    @pytest.mark.asyncio
    async def test_single_failure_limit_skips_immediately(self, fake_chain, scanner, session_maker):
        """max_block_failures=1 skips a failed block in the same pass."""
        fake_chain.failing_blocks.add(101)
        coordinator = ScanCoordinator(
            scanner, session_maker, start_block=100, max_block_failures=1
        )

        assert await coordinator.scan_to(103) == 103
        assert [g.block_number for g in await stored_gaps(session_maker)] == [101]

    def test_invalid_max_block_failures(self, scanner, session_maker):
        """max_block_failures must be positive."""
        with pytest.raises(ValueError):
            ScanCoordinator(scanner, session_maker, max_block_failures=0)


class TestRescanGaps:
    """Operator rescan of recorded gaps."""

    @pytest.mark.asyncio
    async def test_recovered_gap_removed(self, fake_chain, scanner, session_maker):
        """A gap that now scans cleanly is deleted; the cursor is unchanged."""
        fake_chain.failing_blocks.add(101)
        coordinator = ScanCoordinator(
            scanner, session_maker, start_block=100, max_block_failures=1
        )
        await coordinator.scan_to(103)
        fake_chain.failing_blocks.clear()
        fake_chain.block_calls.clear()

        closed = await coordinator.rescan_gaps()

        assert closed == 1
        assert fake_chain.block_calls == [101]
        assert await stored_gaps(session_maker) == []
        assert await stored_cursor(session_maker) == 103

    @pytest.mark.asyncio
    async def test_still_failing_gap_kept(self, fake_chain, scanner, session_maker):
        """A gap that fails again stays with a higher failure count."""
        fake_chain.failing_blocks.add(101)
        coordinator = ScanCoordinator(
            scanner, session_maker, start_block=100, max_block_failures=1
        )
        await coordinator.scan_to(103)

        closed = await coordinator.rescan_gaps()

        gaps = await stored_gaps(session_maker)
        assert closed == 0
        assert [(g.block_number, g.failures) for g in gaps] == [(101, 2)]
