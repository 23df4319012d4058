"""Live quotes and price history via yfinance.

Quote lookups go through an explicit ``QuoteCache`` that callers build once
and pass around, so there is no module-level cache state.
Provider failures return None / an empty DataFrame instead of raising.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

import pandas as pd
import yfinance as yf

from config import (
    CANDLE_RANGES, DEFAULT_CANDLE_RANGE, MAX_QUOTE_SYMBOLS, QUOTE_CACHE_TTL_SECONDS,
)
from models import Quote

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]


class QuoteCache:
    """Per-symbol quote cache with a TTL and an injectable clock."""

    def __init__(self, ttl_seconds: float = QUOTE_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Quote, float]] = {}

    def get(self, symbol: str) -> Optional[Quote]:
        key = symbol.upper()
        entry = self._entries.get(key)
        if entry is None:
            return None
        quote, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return quote

    def set(self, symbol: str, quote: Quote):
        self._entries[symbol.upper()] = (quote, self._clock())

    def clear(self):
        self._entries.clear()

    def stats(self) -> dict:
        return {"size": len(self._entries), "symbols": list(self._entries)}

    def __len__(self) -> int:
        return len(self._entries)


def _strip_tz(hist: pd.DataFrame) -> pd.DataFrame:
    if getattr(hist.index, "tz", None) is not None:
        hist.index = hist.index.tz_localize(None)
    return hist


def fetch_quote(symbol: str) -> Optional[Quote]:
    """Build a quote from the most recent daily bars.

    Returns None when the provider fails or has no data for the symbol.
    """
    try:
        hist = yf.Ticker(symbol).history(period="5d")
        if hist.empty:
            logger.warning("No quote data for %s", symbol)
            return None
        hist = _strip_tz(hist)

        last = hist.iloc[-1]
        current = float(last["Close"])
        previous_close = float(hist["Close"].iloc[-2]) if len(hist) >= 2 else float(last["Open"])
        # Both zero means an unknown symbol
        if current == 0 and previous_close == 0:
            logger.warning("No quote data for %s", symbol)
            return None

        change = current - previous_close
        return Quote(
            symbol=symbol,
            current_price=current,
            change=change,
            change_percent=(change / previous_close * 100) if previous_close else 0.0,
            high=float(last["High"]),
            low=float(last["Low"]),
            open=float(last["Open"]),
            previous_close=previous_close,
            timestamp=hist.index[-1].to_pydatetime(),
        )
    except Exception:
        logger.warning("Failed to fetch quote for %s", symbol, exc_info=True)
        return None


def get_quote(symbol: str, cache: Optional[QuoteCache] = None) -> Optional[Quote]:
    """Cached quote lookup (read-through)."""
    symbol = symbol.strip().upper()
    if cache is not None:
        cached = cache.get(symbol)
        if cached is not None:
            return cached

    quote = fetch_quote(symbol)
    if quote is not None and cache is not None:
        cache.set(symbol, quote)
    return quote


def get_quotes(symbols: Iterable[str], cache: Optional[QuoteCache] = None,
               limit: int = MAX_QUOTE_SYMBOLS) -> dict[str, Quote]:
    """Quotes for up to ``limit`` unique symbols. Symbols with no data are left out."""
    unique = list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))
    if len(unique) > limit:
        logger.info("Quote request capped at %d of %d symbols", limit, len(unique))
        unique = unique[:limit]

    results = {}
    for symbol in unique:
        quote = get_quote(symbol, cache)
        if quote is not None:
            results[symbol] = quote
    return results


def fetch_candles(symbol: str, range_key: str = DEFAULT_CANDLE_RANGE) -> pd.DataFrame:
    """Fetch OHLCV history for a chart range like '1M' or '1Y'.

    Unknown ranges fall back to the default. Returns an empty DataFrame on failure.
    """
    key = (range_key or "").upper()
    if key not in CANDLE_RANGES:
        key = DEFAULT_CANDLE_RANGE
    period, interval = CANDLE_RANGES[key]

    try:
        hist = yf.Ticker(symbol.upper()).history(period=period, interval=interval)
        if hist.empty:
            return pd.DataFrame()
        hist = _strip_tz(hist)
        return hist[OHLCV_COLUMNS].copy()
    except Exception:
        logger.warning("Failed to fetch %s candles for %s", key, symbol, exc_info=True)
        return pd.DataFrame()
