"""
Indexer exceptions.

Defines categorized exception types for proper error handling:
chain reads are skipped and retried on a later pass, application
errors go back to the queue for retry, config errors stop the process.
"""


class IndexerError(Exception):
    """Base exception for indexer errors."""
    pass


class FatalConfigError(IndexerError):
    """Raised when required configuration is missing or invalid."""
    pass


class TransientChainError(IndexerError):
    """Raised when a block or receipt cannot be read from the RPC node."""

    def __init__(self, message: str, block_number: int | None = None) -> None:
        super().__init__(message)
        self.block_number = block_number


class ApplicationError(IndexerError):
    """Raised when a queued event cannot be applied to the store."""
    pass


class EscrowNotFoundError(ApplicationError):
    """Raised when a transition targets an escrow that is not stored yet."""

    def __init__(self, address: str, event_type: str) -> None:
        super().__init__(
            f"Escrow {address} not found while applying {event_type}"
        )
        self.address = address
        self.event_type = event_type


def is_retryable(exc: Exception) -> bool:
    """
    Check if exception should be retried by the queue.

    Config errors are never retried; everything else raised while
    applying a job is.

    Args:
        exc: Exception to check

    Returns:
        True if the job should be redelivered
    """
    return not isinstance(exc, FatalConfigError)
