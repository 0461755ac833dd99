"""
Queue Job repository.

Data access layer for the job ledger.
"""

from datetime import UTC, datetime

from sqlalchemy import func, select, tuple_, update
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_indexer.models.enums import JobStatus
from escrow_indexer.models.queue_job import QueueJob
from escrow_indexer.repositories.base import BaseRepository

# Longest error text kept on the ledger row
_MAX_ERROR_LENGTH = 2000


class QueueJobRepository(BaseRepository[QueueJob]):
    """Repository for dispatched event jobs."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(QueueJob, session)

    async def get_job(self, block_number: int, log_index: int) -> QueueJob | None:
        """Get ledger row by natural key."""
        return await self.get((block_number, log_index))

    async def insert_if_absent(
        self,
        block_number: int,
        log_index: int,
        event_type: str,
        escrow_address: str,
        raw_data: str,
        transaction_hash: str | None = None,
    ) -> bool:
        """
        Insert a queued ledger row unless the key already exists.

        Args:
            block_number: Block of the log
            log_index: Log index within the block
            event_type: Classified event type
            escrow_address: Emitting escrow contract
            raw_data: JSON payload
            transaction_hash: Emitting transaction

        Returns:
            True if this call created the row
        """
        now = datetime.now(UTC)
        stmt = (
            self.insert()
            .values(
                block_number=block_number,
                log_index=log_index,
                event_type=event_type,
                escrow_address=escrow_address.lower(),
                transaction_hash=transaction_hash,
                raw_data=raw_data,
                status=JobStatus.QUEUED.value,
                attempts=0,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(
                index_elements=[QueueJob.block_number, QueueJob.log_index]
            )
            .returning(QueueJob.block_number)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def mark_processing(self, block_number: int, log_index: int) -> bool:
        """
        Move a job into processing and count the attempt.

        Completed jobs are never touched.

        Returns:
            True if the row exists and is not completed
        """
        result = await self.session.execute(
            update(QueueJob)
            .execution_options(synchronize_session=False)
            .where(
                QueueJob.block_number == block_number,
                QueueJob.log_index == log_index,
                QueueJob.status != JobStatus.COMPLETED.value,
            )
            .values(
                status=JobStatus.PROCESSING.value,
                attempts=QueueJob.attempts + 1,
                updated_at=datetime.now(UTC),
            )
        )
        return result.rowcount > 0

    async def mark_completed(self, block_number: int, log_index: int) -> None:
        """Mark job as completed and clear the last error."""
        await self.session.execute(
            update(QueueJob)
            .execution_options(synchronize_session=False)
            .where(
                QueueJob.block_number == block_number,
                QueueJob.log_index == log_index,
            )
            .values(
                status=JobStatus.COMPLETED.value,
                last_error=None,
                updated_at=datetime.now(UTC),
            )
        )

    async def mark_failed(
        self, block_number: int, log_index: int, error: str
    ) -> None:
        """
        Mark job as failed.

        A completed job stays completed even if a stale delivery fails.
        """
        await self.session.execute(
            update(QueueJob)
            .execution_options(synchronize_session=False)
            .where(
                QueueJob.block_number == block_number,
                QueueJob.log_index == log_index,
                QueueJob.status != JobStatus.COMPLETED.value,
            )
            .values(
                status=JobStatus.FAILED.value,
                last_error=error[:_MAX_ERROR_LENGTH],
                updated_at=datetime.now(UTC),
            )
        )

    async def find_by_status(
        self,
        statuses: list[JobStatus],
        limit: int,
        after: tuple[int, int] | None = None,
    ) -> list[QueueJob]:
        """
        Page through jobs in the given statuses in chain order.

        Args:
            statuses: Statuses to include
            limit: Page size
            after: Last (block_number, log_index) of the previous page

        Returns:
            Jobs ordered by (block_number, log_index)
        """
        stmt = select(QueueJob).where(
            QueueJob.status.in_([s.value for s in statuses])
        )
        if after is not None:
            stmt = stmt.where(
                tuple_(QueueJob.block_number, QueueJob.log_index) > tuple_(*after)
            )
        stmt = stmt.order_by(QueueJob.block_number, QueueJob.log_index).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def requeue_failed(self) -> int:
        """
        Reset all failed jobs to queued.

        Returns:
            Number of rows reset
        """
        result = await self.session.execute(
            update(QueueJob)
            .execution_options(synchronize_session=False)
            .where(QueueJob.status == JobStatus.FAILED.value)
            .values(status=JobStatus.QUEUED.value, updated_at=datetime.now(UTC))
        )
        return result.rowcount

    async def count_by_status(self) -> dict[str, int]:
        """
        Count jobs per status.

        Returns:
            Dict of status -> count (all statuses present)
        """
        result = await self.session.execute(
            select(QueueJob.status, func.count()).group_by(QueueJob.status)
        )
        counts = {status.value: 0 for status in JobStatus}
        for status, total in result.all():
            counts[status] = total
        return counts
