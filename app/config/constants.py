"""
Application constants.

Centralized constants for the retry worker.
"""

# ========================================================================
# SCHEDULE CONSTANTS
# ========================================================================

# Cron cadences (fixed at deploy time)
WEBHOOK_RETRY_CRON = "*/5 * * * *"  # Every 5 minutes
PAYOUT_RETRY_CRON = "*/15 * * * *"  # Every 15 minutes

# Dramatiq actor time limit in milliseconds
DRAMATIQ_TIME_LIMIT_STANDARD = 300_000  # 5 minutes

# ========================================================================
# BACKOFF CONSTANTS
# ========================================================================

# Defaults applied when a retry config omits a field (milliseconds)
DEFAULT_BASE_DELAY_MS = 60_000  # 1 minute
DEFAULT_MAX_DELAY_MS = 3_600_000  # 1 hour
DEFAULT_BACKOFF_MULTIPLIER = 2

# Upper bound of the jitter fraction added on top of a delay
JITTER_FRACTION = 0.1

# Webhook events: 1s, 2s, 4s ... capped at 5 minutes
WEBHOOK_BASE_DELAY_MS = 1_000
WEBHOOK_MAX_DELAY_MS = 300_000
DEFAULT_WEBHOOK_MAX_RETRIES = 3

# Payouts
DEFAULT_PAYOUT_MAX_RETRIES = 3

# ========================================================================
# PAYMENT SPLIT
# ========================================================================

INSTRUCTOR_SHARE = 0.8  # 80% to the instructor, the platform keeps the rest

# ========================================================================
# LOGGING
# ========================================================================

LOG_FILE_PATH = "logs/retry_worker.log"
LOG_ROTATION = "1 day"
LOG_RETENTION = "7 days"
