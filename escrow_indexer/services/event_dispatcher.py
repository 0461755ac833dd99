"""
Event Dispatcher.

Ledger-first enqueue: a candidate is committed to the job ledger
before it is sent to the queue, and only newly recorded jobs are
sent. Ledger rows that never reached a worker are re-sent by the
recovery sweep.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from escrow_indexer.config.constants import RECOVERY_SWEEP_BATCH_SIZE
from escrow_indexer.models.enums import EscrowEventType, JobStatus
from escrow_indexer.models.queue_job import QueueJob
from escrow_indexer.repositories.queue_job_repository import QueueJobRepository
from escrow_indexer.services.range_scanner import CandidateEvent

Send = Callable[[dict[str, Any]], Any]


def job_message(job: QueueJob) -> dict[str, Any]:
    """Rebuild the queue payload from a ledger row."""
    return CandidateEvent(
        event_type=EscrowEventType(job.event_type),
        escrow_address=job.escrow_address,
        block_number=job.block_number,
        log_index=job.log_index,
        transaction_hash=job.transaction_hash,
        raw_data=job.raw_data,
    ).to_message()


class EventDispatcher:
    """Records candidate events in the ledger and sends them to the queue."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        send: Send,
    ) -> None:
        """
        Initialize dispatcher.

        Args:
            session_maker: Session factory
            send: Queue send function (dramatiq Actor.send)
        """
        self.session_maker = session_maker
        self.send = send

    async def dispatch(self, candidate: CandidateEvent) -> bool:
        """
        Record and enqueue a candidate event.

        A second call for the same (block_number, log_index) is a no-op.

        Args:
            candidate: Event found by the scanner

        Returns:
            True if the job was newly recorded
        """
        async with self.session_maker() as session:
            repo = QueueJobRepository(session)
            inserted = await repo.insert_if_absent(
                block_number=candidate.block_number,
                log_index=candidate.log_index,
                event_type=candidate.event_type.value,
                escrow_address=candidate.escrow_address,
                raw_data=candidate.raw_data,
                transaction_hash=candidate.transaction_hash,
            )
            await session.commit()

        if not inserted:
            logger.debug(
                f"[Dispatcher] Job {candidate.key} already recorded, not re-sent"
            )
            return False

        await self._send(candidate.to_message())
        logger.info(
            f"[Dispatcher] Queued {candidate.event_type.value} for "
            f"{candidate.escrow_address} at {candidate.key}"
        )
        return True

    async def recover_pending(self, batch_size: int = RECOVERY_SWEEP_BATCH_SIZE) -> int:
        """
        Re-send every ledger row that has not finished.

        Covers a crash between ledger commit and enqueue and jobs
        abandoned mid-processing at shutdown. Duplicates are safe
        because the job handler is idempotent.

        Args:
            batch_size: Rows per page

        Returns:
            Number of jobs re-sent
        """
        sent = 0
        after: tuple[int, int] | None = None

        while True:
            async with self.session_maker() as session:
                jobs = await QueueJobRepository(session).find_by_status(
                    [JobStatus.QUEUED, JobStatus.PROCESSING],
                    limit=batch_size,
                    after=after,
                )
            if not jobs:
                break

            for job in jobs:
                await self._send(job_message(job))
                sent += 1
            after = (jobs[-1].block_number, jobs[-1].log_index)

        if sent:
            logger.info(f"[Dispatcher] Recovery sweep re-sent {sent} jobs")
        return sent

    async def requeue_failed(self) -> int:
        """
        Put permanently failed jobs back on the queue.

        Returns:
            Number of jobs reset to queued
        """
        async with self.session_maker() as session:
            reset = await QueueJobRepository(session).requeue_failed()
            await session.commit()

        logger.info(f"[Dispatcher] Reset {reset} failed jobs to queued")
        if reset:
            await self.recover_pending()
        return reset

    async def _send(self, message: dict[str, Any]) -> None:
        # The ledger row is already committed; the recovery sweep
        # re-sends it on next startup if the broker is unreachable now.
        # The broker client is blocking, so it runs off the event loop.
        try:
            await asyncio.to_thread(self.send, message)
        except Exception as e:
            logger.error(
                f"[Dispatcher] Failed to enqueue job "
                f"({message['block_number']}, {message['log_index']}): {e}"
            )
