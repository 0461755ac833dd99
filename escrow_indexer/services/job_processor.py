"""
Job Processor.

Worker-side handling of one queued escrow event: keeps the job ledger
in step with delivery attempts and applies the effect through the
projector.
"""

import json
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from escrow_indexer.exceptions import ApplicationError
from escrow_indexer.models.enums import EscrowEventType
from escrow_indexer.repositories.queue_job_repository import QueueJobRepository
from escrow_indexer.services.escrow_projector import EscrowProjector
from escrow_indexer.services.event_classifier import decode_payload


def parse_message(message: dict[str, Any]) -> tuple[int, int, EscrowEventType, str, dict[str, Any]]:
    """
    Validate a queue payload.

    Returns:
        (block_number, log_index, event_type, escrow_address, payload)

    Raises:
        ApplicationError: If the message is malformed
    """
    try:
        block_number = int(message["block_number"])
        log_index = int(message["log_index"])
        event_type = EscrowEventType(message["event_type"])
        escrow_address = str(message["escrow_address"]).lower()
        payload = decode_payload(message["raw_data"])
    except (KeyError, TypeError, ValueError, json.JSONDecodeError) as e:
        raise ApplicationError(f"Malformed job message: {e}") from e
    return block_number, log_index, event_type, escrow_address, payload


class JobProcessor:
    """
    Applies queued jobs.

    Contract:
    - a job whose ledger row is completed is skipped
    - otherwise the row goes to processing and the attempt is counted
    - the effect and the completed mark commit in one transaction
    - on any error the row is marked failed and the error is re-raised
      so the queue's retry policy decides on redelivery
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.session_maker = session_maker

    async def process(self, message: dict[str, Any]) -> bool:
        """
        Process one job message.

        Args:
            message: Queue payload (see CandidateEvent.to_message)

        Returns:
            True if the effect was applied, False if already completed

        Raises:
            ApplicationError: If the effect cannot be applied
        """
        block_number, log_index, event_type, escrow_address, payload = parse_message(message)
        key = (block_number, log_index)

        async with self.session_maker() as session:
            repo = QueueJobRepository(session)

            job = await repo.get_job(block_number, log_index)
            if job is not None and job.is_completed:
                logger.debug(f"[Worker] Job {key} already completed, skipping")
                return False

            if not await repo.mark_processing(block_number, log_index):
                logger.warning(f"[Worker] Job {key} has no ledger row")
            await session.commit()

            logger.info(
                f"[Worker] Processing {event_type.value} for {escrow_address} "
                f"at block {block_number}"
            )

            try:
                await EscrowProjector(session).apply(event_type, escrow_address, payload)
                await repo.mark_completed(block_number, log_index)
                await session.commit()
            except Exception as e:
                await session.rollback()
                await repo.mark_failed(block_number, log_index, f"{type(e).__name__}: {e}")
                await session.commit()
                logger.warning(f"[Worker] Job {key} failed: {e}")
                raise

        return True
