"""
Application constants.

Centralized constants for the relay.
"""

# ========================================================================
# PROVIDER CONSTANTS
# ========================================================================

# Outbound provider HTTP timeout (in seconds)
PROVIDER_TIMEOUT = 60.0

# Page size for providers that page through funding history
PROVIDER_PAGE_SIZE = 20

# Default API key accepted by ethplorer without registration
ETHPLORER_FREE_KEY = "freekey"

# ========================================================================
# RATE LIMITER CONSTANTS
# ========================================================================

# Tier windows in seconds: second, minute, hour, day, week
TIER_WINDOWS = (1.0, 60.0, 3600.0, 86400.0, 604800.0)
TIER_NAMES = ("sec", "min", "hour", "day", "week")

# History retention (longest window)
RATE_HISTORY_RETENTION = TIER_WINDOWS[-1]

# Default cooldown for keyless explorers (in seconds)
DEFAULT_COOL_TIME = 10.0

# ========================================================================
# LEDGER CONSTANTS
# ========================================================================

# Payment session id length in random bytes (hex encoded: 64 chars)
TX_ID_BYTES = 32

# Allocation attempts before giving up on repeated index clashes
ALLOCATION_MAX_ATTEMPTS = 3

# Gaussian jitter standard deviation relative to the growth factor
BACKOFF_JITTER_RATIO = 0.25

# Smallest stored coin amount (scale of MoneyType)
AMOUNT_QUANTUM = "0.00000001"

# ========================================================================
# PROVIDER DEFAULTS
# ========================================================================

# Provider name -> ProviderConfig fields
DEFAULT_PROVIDER_CONFIGS: dict[str, dict] = {
    "blockchain.info": {"cool_time": DEFAULT_COOL_TIME},
    "ethplorer": {"rate_limits": [2, 30, 0, 0, 0]},
    "blockscout": {"rate_limits": [5, 0, 0, 0, 0]},
    "zcha.in": {"rate_limits": [1, 0, 0, 0, 0]},
    "blockchair": {"rate_limits": [0, 30, 0, 1440, 0]},
    "cryptoid": {"cool_time": DEFAULT_COOL_TIME},
}

# Coin symbol -> (provider name, provider-side coin key)
DEFAULT_COIN_PROVIDERS: dict[str, tuple[str, str | None]] = {
    "btc": ("blockchain.info", None),
    "eth": ("ethplorer", None),
    "etc": ("blockscout", None),
    "zec": ("zcha.in", None),
    "bch": ("blockchair", "bitcoin-cash"),
    "dash": ("blockchair", "dash"),
    "doge": ("blockchair", "dogecoin"),
    "ltc": ("blockchair", "litecoin"),
    "dgb": ("cryptoid", "dgb"),
    "nmc": ("cryptoid", "nmc"),
    "vtc": ("cryptoid", "vtc"),
}

# ========================================================================
# SERVICE CONSTANTS
# ========================================================================

# Health server cleanup timeout (in seconds)
HEALTH_SERVER_STOP_TIMEOUT = 5

# Worker drain timeout on shutdown (in seconds)
WORKER_STOP_TIMEOUT = 30.0
