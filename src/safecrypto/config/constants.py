"""Global configuration constants for the SafeCrypto dashboard.

These values are free of any presentation concerns so they can be reused
by services, the console dashboard, and tests.
"""

from __future__ import annotations

# API endpoints
BACKEND_URL = "http://localhost:8080"
MARKET_DATA_URL = "https://api.coingecko.com/api/v3"

# Seconds; matches the timeout the web client used for both roots
HTTP_TIMEOUT = 15.0

# Refresh interval (seconds) per consuming view
REFRESH_INTERVALS = {
    "portfolio": 10.0,
    "overview": 30.0,
    "markets": 30.0,
}
DEFAULT_VIEW = "portfolio"

# Ticker symbol -> CoinGecko id, for snapshot keys stored as symbols
COINGECKO_ASSET_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "ADA": "cardano",
    "SOL": "solana",
    "XRP": "ripple",
    "DOT": "polkadot",
    "DOGE": "dogecoin",
    "MATIC": "matic-network",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "ATOM": "cosmos",
    "LTC": "litecoin",
    "ALGO": "algorand",
    "USDT": "tether",
    "USDC": "usd-coin",
}

# Market list defaults (CoinGecko /coins/markets)
MARKETS_PER_PAGE = 20
MARKETS_ORDER = "market_cap_desc"
VS_CURRENCY = "usd"

# Chart ranges: label -> (days, monthly buckets kept or None for daily points)
CHART_RANGES = {
    "1M": (30, None),
    "6M": (180, 6),
    "1Y": (365, 12),
}
# Days of history used for the single-asset price fallback
FALLBACK_CHART_DAYS = 1

# Trade kinds: BUY/SELL move coins; DEPOSIT/WITHDRAW move USD only
TRADE_KINDS = ["BUY", "SELL", "DEPOSIT", "WITHDRAW"]
TRADE_KINDS_COIN = ["BUY", "SELL"]
TRADE_KINDS_CASH = ["DEPOSIT", "WITHDRAW"]

TRADE_STATUSES = ["Completed", "Pending", "Failed"]
STATUS_COMPLETED = "Completed"
HISTORY_FILTERS = ["All"] + TRADE_STATUSES

# Cycle status exposed to the presentation layer
STATUS_LOADING = "loading"
STATUS_ERROR = "error"
STATUS_READY = "ready"

# Tolerance for treating a float as zero (quantities, values)
EPSILON = 1e-12

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
