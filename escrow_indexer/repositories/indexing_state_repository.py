"""
Indexing State repository.

Reads and advances the scan cursor.
"""

from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from escrow_indexer.config.constants import INDEXING_STATE_ID
from escrow_indexer.models.indexing_state import IndexingState
from escrow_indexer.repositories.base import BaseRepository


class IndexingStateRepository(BaseRepository[IndexingState]):
    """Repository for the singleton scan cursor."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(IndexingState, session)

    async def get_cursor(self) -> int | None:
        """
        Get last fully scanned block.

        Returns:
            Block number, or None if nothing was scanned yet
        """
        state = await self.get(INDEXING_STATE_ID)
        if state is None:
            return None
        return state.last_processed_block

    async def advance_cursor(self, block_number: int) -> None:
        """
        Raise the cursor to block_number.

        The conflict branch only fires when the stored value is lower,
        so a late writer can never move the cursor backwards.

        Args:
            block_number: Last block of a fully scanned range
        """
        if block_number < 0:
            raise ValueError("block_number must be non-negative")

        now = datetime.now(UTC)
        stmt = self.insert().values(
            id=INDEXING_STATE_ID,
            last_processed_block=block_number,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[IndexingState.id],
            set_={
                "last_processed_block": stmt.excluded.last_processed_block,
                "updated_at": now,
            },
            where=IndexingState.last_processed_block < stmt.excluded.last_processed_block,
        )
        await self.session.execute(stmt)
