"""Constants for the retrying request layer."""

# AI reply polling answers 202 until the reply is ready
HTTP_STATUS_ACCEPTED = 202

# Status codes treated as transient by default
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Default retry policy values
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 120_000  # 2 minutes
DEFAULT_EXPONENTIAL_BASE = 2.0
DEFAULT_JITTER_FACTOR = 0.1
DEFAULT_TIMEOUT_SECONDS = 30.0

# Per-operation timeouts
UPLOAD_TIMEOUT_SECONDS = 60.0
AI_REPLY_TIMEOUT_SECONDS = 5 * 60.0
AI_REPLY_MAX_RETRIES = 1
