"""
Escrow event tasks.

Applies queued escrow events to the store. Retries with exponential
backoff come from the Retries middleware; once they are exhausted the
on_failure callback records the permanent failure.
"""

import dramatiq
from loguru import logger

from escrow_indexer.config.settings import settings
from escrow_indexer.exceptions import is_retryable
from escrow_indexer.services.job_processor import JobProcessor
from jobs.async_runner import local_session_maker, run_async
from jobs.broker import broker  # noqa: F401  (registers the default broker)


def should_retry(retries_so_far: int, exception: Exception) -> bool:
    """Retry policy for escrow event jobs."""
    return retries_so_far < settings.job_max_retries and is_retryable(exception)


@dramatiq.actor(queue_name=settings.queue_name, max_retries=0)
def on_escrow_event_failed(message_data: dict, exception_data: dict) -> None:
    """
    Log a job that exhausted its retries.

    The ledger row is already marked failed by the worker; it stays
    that way until scripts/requeue_failed_jobs.py puts it back.
    """
    args = message_data.get("args") or [{}]
    payload = args[0] if args else {}
    logger.error(
        f"[Worker] Job ({payload.get('block_number')}, {payload.get('log_index')}) "
        f"{payload.get('event_type')} for {payload.get('escrow_address')} "
        f"failed permanently after {message_data.get('options', {}).get('retries', 0)} retries: "
        f"{exception_data.get('type')}: {exception_data.get('message')}"
    )


@dramatiq.actor(
    queue_name=settings.queue_name,
    max_retries=settings.job_max_retries,
    min_backoff=settings.job_min_backoff_ms,
    max_backoff=settings.job_max_backoff_ms,
    time_limit=settings.job_time_limit_ms,
    retry_when=should_retry,
    on_failure=on_escrow_event_failed.actor_name,
)
def process_escrow_event(message: dict) -> bool:
    """
    Apply one escrow event.

    Raises on failure so the Retries middleware schedules redelivery.

    Args:
        message: Job payload (see CandidateEvent.to_message)

    Returns:
        True if the effect was applied, False if the job was already completed
    """
    return run_async(_process_escrow_event_async(message))


async def _process_escrow_event_async(message: dict) -> bool:
    """Async implementation of escrow event processing."""
    async with local_session_maker() as session_maker:
        return await JobProcessor(session_maker).process(message)
