"""
Application constants.

Centralized operational constants (timeouts, retries, batch sizes).
Business rules live in business_constants.py.
"""

# ========================================================================
# PAYOUT CONSTANTS
# ========================================================================

# Retry attempts before a failed commission requires manual review
PAYOUT_MAX_RETRIES = 3

# External transfer call timeout (in seconds)
TRANSFER_TIMEOUT_SECONDS = 30.0

# Idempotency key prefix sent with every transfer
TRANSFER_KEY_PREFIX = "payout"

# ========================================================================
# NETWORK CONSTANTS
# ========================================================================

# Fresh BFS attempts after losing a slot claim race
PLACEMENT_MAX_CLAIM_ATTEMPTS = 5

# ========================================================================
# LOCK CONSTANTS
# ========================================================================

# Distributed lock settings
DISTRIBUTED_LOCK_TIMEOUT = 30  # Lock TTL in seconds
DISTRIBUTED_LOCK_BLOCKING_TIMEOUT = 10.0  # Time to wait for lock acquisition
DISTRIBUTED_LOCK_POLL_INTERVAL = 0.05

# Payout lock TTL as a multiple of the effective transfer timeout
PAYOUT_LOCK_TIMEOUT_FACTOR = 2

# ========================================================================
# PAYMENT INTENT CONSTANTS
# ========================================================================

DEFAULT_INTENT_TTL_MINUTES = 60
INTENT_MONITOR_BATCH_LIMIT = 50

# ========================================================================
# JOB CONSTANTS
# ========================================================================

JOB_TIME_LIMIT_MS = 300_000  # 5 minutes
PAYOUT_JOB_TIME_LIMIT_MS = 1_800_000  # 30 minutes
