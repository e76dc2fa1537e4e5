"""Constants for the persistent connection layer."""

# Default pub/sub hub
DEFAULT_PUBSUB_HOST = "https://pubsub.codicent.com/hub"

# Event names delivered by the hub
NEW_MESSAGE_EVENT = "NewMessage"

# Reconnect policy defaults
DEFAULT_MAX_CONNECTION_ATTEMPTS = 5
RECONNECT_BASE_DELAY_MS = 10_000
RECONNECT_EXPONENTIAL_BASE = 2.0
RECONNECT_MAX_EXPONENT = 6
RECONNECT_JITTER_FACTOR = 0.3
RECONNECT_MAX_DELAY_MS = 120_000  # 2 minutes

# Delay before the first reconnect after the hub closes the connection
CLOSE_RECONNECT_DELAY_MS = 1_000

# Substrings identifying cross-origin / network failures
NETWORK_ERROR_MARKERS = ("CORS", "Failed to fetch", "NetworkError")
