"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from escrow_indexer.config.constants import (
    BLOCKCHAIN_RPC_TIMEOUT,
    JOB_MAX_BACKOFF_MS,
    JOB_MAX_RETRIES,
    JOB_MIN_BACKOFF_MS,
    JOB_TIME_LIMIT_MS,
    POLL_INTERVAL_SECONDS,
    QUEUE_DEAD_MESSAGE_TTL_MS,
    QUEUE_NAME,
    SCAN_CHUNK_SIZE,
    SCAN_MAX_BLOCK_FAILURES,
)
from escrow_indexer.exceptions import FatalConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (Dramatiq broker)
    redis_url: str

    # Blockchain RPC
    rpc_url: str  # HTTP JSON-RPC endpoint
    ws_url: str  # WebSocket endpoint for newHeads subscription
    rpc_timeout_seconds: int = Field(
        default=BLOCKCHAIN_RPC_TIMEOUT, ge=1, description="HTTP provider timeout"
    )

    # Scanning
    start_block: int = Field(
        default=0, ge=0, description="First block to scan when no cursor is stored"
    )
    confirmations: int = Field(
        default=0, ge=0, description="Blocks to stay behind the chain head"
    )
    scan_chunk_size: int = Field(
        default=SCAN_CHUNK_SIZE, ge=1, description="Blocks per cursor advance"
    )
    scan_max_block_failures: int = Field(
        default=SCAN_MAX_BLOCK_FAILURES,
        ge=1,
        description="Failed passes before a block is skipped as a gap",
    )
    poll_interval_seconds: int = Field(
        default=POLL_INTERVAL_SECONDS, ge=1, description="Gap poller interval"
    )
    seed_escrow_addresses: str = ""  # Comma-separated list

    # Queue
    queue_name: str = QUEUE_NAME
    job_max_retries: int = Field(default=JOB_MAX_RETRIES, ge=0)
    job_min_backoff_ms: int = Field(default=JOB_MIN_BACKOFF_MS, ge=1)
    job_max_backoff_ms: int = Field(default=JOB_MAX_BACKOFF_MS, ge=1)
    job_time_limit_ms: int = Field(default=JOB_TIME_LIMIT_MS, ge=1)
    queue_dead_message_ttl_ms: int = Field(default=QUEUE_DEAD_MESSAGE_TTL_MS, ge=1)

    # Workers
    run_workers: bool = True
    worker_threads: int = Field(default=4, ge=1)

    # Application
    environment: str = "production"
    log_level: str = "INFO"
    log_file: str | None = None
    health_check_port: int = Field(
        default=8080, ge=0, le=65535, description="Health check HTTP port (0 disables)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url", "redis_url", "rpc_url", "ws_url")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty connection strings."""
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return level

    def get_seed_escrow_addresses(self) -> set[str]:
        """
        Get configured escrow addresses as a lower-case set.

        These are treated as known escrows even before the store has a row.

        Returns:
            Set of normalized addresses
        """
        if not self.seed_escrow_addresses:
            return set()
        return {
            addr.strip().lower()
            for addr in self.seed_escrow_addresses.split(",")
            if addr.strip()
        }

    @property
    def is_testing(self) -> bool:
        """Check if running under the test suite."""
        return self.environment.lower() == "testing"


def load_settings(**overrides) -> Settings:
    """
    Load settings, failing fast on missing or invalid configuration.

    Args:
        **overrides: Explicit values (take precedence over environment)

    Returns:
        Validated settings

    Raises:
        FatalConfigError: If a required value is missing or invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc']).upper()}: {err['msg']}"
            for err in e.errors()
        )
        raise FatalConfigError(f"Invalid configuration: {problems}") from e


settings = load_settings()
