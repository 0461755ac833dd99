"""
Scan Gap repository.

Records blocks skipped after repeated scan failures.
"""

from datetime import UTC, datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_indexer.models.scan_gap import ScanGap
from escrow_indexer.repositories.base import BaseRepository


class ScanGapRepository(BaseRepository[ScanGap]):
    """Repository for skipped blocks."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(ScanGap, session)

    async def record_gap(
        self, block_number: int, failures: int, last_error: str | None = None
    ) -> None:
        """
        Insert or refresh a gap row.

        Args:
            block_number: Skipped block
            failures: Consecutive failed passes
            last_error: Error from the last pass
        """
        now = datetime.now(UTC)
        stmt = self.insert().values(
            block_number=block_number,
            failures=failures,
            last_error=last_error,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ScanGap.block_number],
            set_={
                "failures": stmt.excluded.failures,
                "last_error": stmt.excluded.last_error,
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)

    async def find_gaps(self, limit: int | None = None) -> list[ScanGap]:
        """
        List skipped blocks, lowest first.

        Args:
            limit: Max number of rows

        Returns:
            Gap rows ordered by block number
        """
        stmt = select(ScanGap).order_by(ScanGap.block_number)
        if limit:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_gap(self, block_number: int) -> None:
        """Remove a gap after the block was scanned."""
        await self.session.execute(
            delete(ScanGap).where(ScanGap.block_number == block_number)
        )
