"""
Dramatiq broker configuration.

Redis-based message broker for the escrow event queue.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import (
    AgeLimit,
    Callbacks,
    CurrentMessage,
    Retries,
    ShutdownNotifications,
    TimeLimit,
)
from loguru import logger

from escrow_indexer.config.settings import settings


def build_middleware() -> list:
    """
    Build the middleware stack.

    Retries must stay last: after-hooks run in reverse order, so the
    message is marked failed before Callbacks looks for on_failure.
    """
    return [
        AgeLimit(),
        TimeLimit(),
        ShutdownNotifications(),
        Callbacks(),
        CurrentMessage(),
        Retries(
            max_retries=settings.job_max_retries,
            min_backoff=settings.job_min_backoff_ms,
            max_backoff=settings.job_max_backoff_ms,
        ),
    ]


if settings.is_testing:
    broker = StubBroker(middleware=build_middleware())
    broker.emit_after("process_boot")
else:
    # Failed messages stay in the dead-letter set for dead_message_ttl
    broker = RedisBroker(
        url=settings.redis_url,
        middleware=build_middleware(),
        dead_message_ttl=settings.queue_dead_message_ttl_ms,
    )

# Set as default broker
dramatiq.set_broker(broker)

logger.info(
    f"Dramatiq broker initialized: {type(broker).__name__}, "
    f"retries={settings.job_max_retries}, "
    f"backoff={settings.job_min_backoff_ms}..{settings.job_max_backoff_ms}ms"
)
