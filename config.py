"""Constants and environment-driven settings."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _get_int(key: str, default: int) -> int:
    """Read an integer setting from the environment, falling back on bad values."""
    raw = os.environ.get(key, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


DB_PATH = os.environ.get(
    "PORTFOLIO_DB_PATH",
    os.path.join(os.path.dirname(__file__), "data", "portfolio.db"),
)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

# Symbol used for transactions that don't reference a security
PLACEHOLDER_SYMBOL = "--"

# Position rows with these symbols are cash sitting in the account, not holdings
CASH_SYMBOLS = {"cash", PLACEHOLDER_SYMBOL}

JSON_EXTENSIONS = (".json",)

# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

QUOTE_CACHE_TTL_SECONDS = _get_int("QUOTE_CACHE_TTL_SECONDS", 300)

# Cap per request so one dashboard refresh can't fan out unbounded
MAX_QUOTE_SYMBOLS = _get_int("MAX_QUOTE_SYMBOLS", 50)

# Chart range key -> (yfinance period, interval)
CANDLE_RANGES = {
    "1D": ("1d", "5m"),
    "1W": ("5d", "30m"),
    "1M": ("1mo", "1d"),
    "3M": ("3mo", "1d"),
    "6M": ("6mo", "1d"),
    "1Y": ("1y", "1d"),
    "5Y": ("5y", "1wk"),
}

DEFAULT_CANDLE_RANGE = "1M"
