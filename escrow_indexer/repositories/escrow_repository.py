"""
Escrow repository.

Data access layer for projected escrow state.
"""

from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_indexer.models.enums import EscrowStatus
from escrow_indexer.models.escrow import Escrow
from escrow_indexer.repositories.base import BaseRepository


class EscrowRepository(BaseRepository[Escrow]):
    """Repository for escrow entities."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository."""
        super().__init__(Escrow, session)

    async def get_by_address(self, address: str) -> Escrow | None:
        """
        Get escrow by contract address.

        Args:
            address: Contract address (any case)

        Returns:
            Escrow or None
        """
        return await self.get(address.lower())

    async def get_status(self, address: str) -> EscrowStatus | None:
        """
        Read the stored status without loading the entity.

        Args:
            address: Contract address (any case)

        Returns:
            Current status, or None if the escrow is not stored
        """
        result = await self.session.execute(
            select(Escrow.status).where(Escrow.address == address.lower())
        )
        status = result.scalar_one_or_none()
        return EscrowStatus(status) if status is not None else None

    async def find_known_addresses(self, addresses: Iterable[str]) -> set[str]:
        """
        Filter addresses down to stored escrows.

        Args:
            addresses: Candidate contract addresses

        Returns:
            Lower-case addresses that have an escrow row
        """
        normalized = {addr.lower() for addr in addresses}
        if not normalized:
            return set()

        result = await self.session.execute(
            select(Escrow.address).where(Escrow.address.in_(normalized))
        )
        return set(result.scalars().all())

    async def upsert_created(
        self,
        address: str,
        seller: str,
        buyer: str,
        token: str,
        amount: str,
        timeout: int,
    ) -> None:
        """
        Create escrow or fill in its fields from an EscrowCreated event.

        A new row starts Pending. An existing row (placeholder or
        earlier delivery) keeps its status, so a late EscrowCreated
        never moves a Funded or finished escrow back to Pending.

        Args:
            address: Contract address
            seller: Seller address
            buyer: Buyer address
            token: Token contract address
            amount: uint256 amount as decimal string
            timeout: Timeout timestamp
        """
        now = datetime.now(UTC)
        values = {
            "seller": seller.lower(),
            "buyer": buyer.lower(),
            "token": token.lower(),
            "amount": amount,
            "timeout": timeout,
            "updated_at": now,
        }
        stmt = self.insert().values(
            address=address.lower(),
            status=EscrowStatus.PENDING.value,
            created_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Escrow.address],
            set_=values,
        )
        await self.session.execute(stmt)

    async def set_status(
        self,
        address: str,
        status: EscrowStatus,
        allowed_from: Iterable[EscrowStatus] | None = None,
    ) -> bool:
        """
        Set escrow status in a single conditional UPDATE.

        Args:
            address: Contract address
            status: New status
            allowed_from: Current statuses the update may start from
                (None: any)

        Returns:
            True if a row matched and was updated
        """
        stmt = (
            update(Escrow)
            .execution_options(synchronize_session=False)
            .where(Escrow.address == address.lower())
        )
        if allowed_from is not None:
            stmt = stmt.where(Escrow.status.in_([s.value for s in allowed_from]))

        result = await self.session.execute(
            stmt.values(status=status.value, updated_at=datetime.now(UTC))
        )
        return result.rowcount > 0

    async def register_placeholder(self, address: str) -> bool:
        """
        Register an address as a known escrow without event data.

        Existing rows are left untouched.

        Args:
            address: Contract address

        Returns:
            True if a new row was created
        """
        zero = "0x" + "0" * 40
        now = datetime.now(UTC)
        stmt = (
            self.insert()
            .values(
                address=address.lower(),
                seller=zero,
                buyer=zero,
                token=zero,
                amount="0",
                timeout=0,
                status=EscrowStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[Escrow.address])
            .returning(Escrow.address)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None
