"""
Indexer constants.

Centralized defaults for the scan, queue and chain layers.
Values that operators tune per deployment live in settings.py.
"""

# ========================================================================
# INDEXING STATE
# ========================================================================

# Primary key of the singleton cursor row
INDEXING_STATE_ID = "main"

# ========================================================================
# BLOCKCHAIN CONSTANTS
# ========================================================================

# RPC timeouts (in seconds)
BLOCKCHAIN_RPC_TIMEOUT = 30  # HTTP provider request timeout
BLOCKCHAIN_EXECUTOR_TIMEOUT = 20.0  # Timeout for run_in_executor operations

# Thread pool used for sync web3 calls
BLOCKCHAIN_EXECUTOR_WORKERS = 8

# Blocks per scan chunk (cursor is persisted after each chunk)
SCAN_CHUNK_SIZE = 2000

# Consecutive failed passes before a block is recorded as a gap and skipped
SCAN_MAX_BLOCK_FAILURES = 10

# WebSocket head subscription
WS_PING_INTERVAL = 20  # seconds
WS_PING_TIMEOUT = 20  # seconds
WS_SUBSCRIPTION_TIMEOUT = 10.0  # seconds to wait for eth_subscribe confirmation
WS_RECONNECT_BASE_DELAY = 1.0  # seconds, doubled per failed attempt
WS_RECONNECT_MAX_DELAY = 60.0  # seconds
WS_JITTER_MAX = 1.0  # seconds

# ========================================================================
# QUEUE CONSTANTS
# ========================================================================

QUEUE_NAME = "escrow-events"

# Retry policy for event jobs (milliseconds, dramatiq units)
JOB_MAX_RETRIES = 3
JOB_MIN_BACKOFF_MS = 5_000  # base delay, doubled per retry
JOB_MAX_BACKOFF_MS = 300_000  # 5 min ceiling
JOB_TIME_LIMIT_MS = 60_000  # 1 min per attempt

# Failed (dead-lettered) messages stay visible in Redis this long
QUEUE_DEAD_MESSAGE_TTL_MS = 7 * 24 * 60 * 60 * 1000

# Ledger rows re-sent by the startup recovery sweep, per batch
RECOVERY_SWEEP_BATCH_SIZE = 500

# ========================================================================
# SCHEDULER CONSTANTS
# ========================================================================

POLL_INTERVAL_SECONDS = 30

# In-process worker: how long stop() waits for in-flight jobs (milliseconds)
WORKER_STOP_TIMEOUT_MS = 1_000

# ========================================================================
# HEALTH CHECK CONSTANTS
# ========================================================================

HEALTH_CHECK_HOST = "0.0.0.0"
