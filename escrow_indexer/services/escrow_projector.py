"""
Escrow Projector.

Applies a classified event to the persisted escrow state.

Transitions:
- EscrowCreated: upsert escrow from payload, status Pending on insert
- Funded: status Funded
- ConfirmedBySeller: status Confirmed
- CancelledBySeller: status Cancelled
- TimedOut: status TimedOut
- Unknown: no-op

Status only moves forward: Pending -> Funded -> one of the final
statuses (Confirmed, Cancelled, TimedOut), which may also be reached
straight from Pending. A redelivered event that would move an escrow
backwards, or from one final status to another, leaves it unchanged.

Every effect is a "set to value" write, so applying the same event
twice leaves the same state as applying it once.
"""

from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_indexer.exceptions import ApplicationError, EscrowNotFoundError
from escrow_indexer.models.enums import EscrowEventType, EscrowStatus
from escrow_indexer.repositories.escrow_repository import EscrowRepository

STATUS_TRANSITIONS: dict[EscrowEventType, EscrowStatus] = {
    EscrowEventType.FUNDED: EscrowStatus.FUNDED,
    EscrowEventType.CONFIRMED_BY_SELLER: EscrowStatus.CONFIRMED,
    EscrowEventType.CANCELLED_BY_SELLER: EscrowStatus.CANCELLED,
    EscrowEventType.TIMED_OUT: EscrowStatus.TIMED_OUT,
}

# Statuses each target may be entered from (itself included, so replays match)
ALLOWED_FROM: dict[EscrowStatus, frozenset[EscrowStatus]] = {
    EscrowStatus.FUNDED: frozenset({EscrowStatus.PENDING, EscrowStatus.FUNDED}),
    EscrowStatus.CONFIRMED: frozenset(
        {EscrowStatus.PENDING, EscrowStatus.FUNDED, EscrowStatus.CONFIRMED}
    ),
    EscrowStatus.CANCELLED: frozenset(
        {EscrowStatus.PENDING, EscrowStatus.FUNDED, EscrowStatus.CANCELLED}
    ),
    EscrowStatus.TIMED_OUT: frozenset(
        {EscrowStatus.PENDING, EscrowStatus.FUNDED, EscrowStatus.TIMED_OUT}
    ),
}

_CREATED_FIELDS = ("seller", "buyer", "token", "amount", "timeout")


class EscrowProjector:
    """Escrow state machine over the store."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize projector.

        Args:
            session: Database session (caller commits)
        """
        self.session = session
        self.escrow_repo = EscrowRepository(session)

    async def apply(
        self,
        event_type: EscrowEventType,
        escrow_address: str,
        payload: dict[str, Any],
    ) -> None:
        """
        Apply one event.

        Args:
            event_type: Classified event type
            escrow_address: Target escrow
            payload: Decoded event payload

        Raises:
            EscrowNotFoundError: If a transition targets a missing escrow
            ApplicationError: If an EscrowCreated payload is incomplete
        """
        if event_type == EscrowEventType.UNKNOWN:
            logger.debug(f"[Projector] Ignoring unknown event for {escrow_address}")
            return

        if event_type == EscrowEventType.ESCROW_CREATED:
            await self._apply_created(escrow_address, payload)
            return

        status = STATUS_TRANSITIONS[event_type]
        updated = await self.escrow_repo.set_status(
            escrow_address, status, allowed_from=ALLOWED_FROM[status]
        )
        if updated:
            logger.info(f"[Projector] Escrow {escrow_address} -> {status.value}")
            return

        current = await self.escrow_repo.get_status(escrow_address)
        if current is None:
            raise EscrowNotFoundError(escrow_address, event_type.value)

        logger.info(
            f"[Projector] Escrow {escrow_address} already {current.value}, "
            f"ignoring {event_type.value}"
        )

    async def _apply_created(self, escrow_address: str, payload: dict[str, Any]) -> None:
        missing = [name for name in _CREATED_FIELDS if payload.get(name) is None]
        if missing:
            raise ApplicationError(
                f"EscrowCreated payload for {escrow_address} is missing {missing}"
            )

        try:
            amount = str(int(payload["amount"]))
            timeout = int(payload["timeout"])
        except (TypeError, ValueError) as e:
            raise ApplicationError(
                f"EscrowCreated payload for {escrow_address} is malformed: {e}"
            ) from e

        await self.escrow_repo.upsert_created(
            address=escrow_address,
            seller=payload["seller"],
            buyer=payload["buyer"],
            token=payload["token"],
            amount=amount,
            timeout=timeout,
        )
        logger.info(f"[Projector] Escrow {escrow_address} created")
