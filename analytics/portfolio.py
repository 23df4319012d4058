"""Portfolio totals and live-quote repricing."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Mapping, Optional

from models import Holding, PortfolioSnapshot, Quote, Transaction


def calculate_portfolio_totals(holdings: Iterable[Holding],
                               transactions: Iterable[Transaction],
                               as_of: Optional[datetime] = None) -> PortfolioSnapshot:
    """Build a snapshot whose totals derive purely from the holdings."""
    holdings = list(holdings)
    total_value = sum(h.market_value for h in holdings)
    total_cost = sum(h.cost_per_share * h.quantity for h in holdings)
    total_gain_loss = total_value - total_cost
    total_gain_loss_percent = (total_gain_loss / total_cost * 100) if total_cost > 0 else 0.0

    return PortfolioSnapshot(
        holdings=holdings,
        transactions=list(transactions),
        total_value=total_value,
        total_cost=total_cost,
        total_gain_loss=total_gain_loss,
        total_gain_loss_percent=total_gain_loss_percent,
        cash_balance=0.0,  # no cash-position source in the exports
        last_updated=as_of or datetime.now(),
    )


def apply_live_quotes(holdings: Iterable[Holding],
                      quotes: Mapping[str, Quote]) -> list[Holding]:
    """Return holdings repriced at live quotes. Holdings without a quote are kept as-is."""
    repriced = []
    for h in holdings:
        quote = quotes.get(h.symbol)
        if quote is None:
            repriced.append(h)
            continue
        market_value = h.quantity * quote.current_price
        cost = h.quantity * h.cost_per_share
        gain_loss = market_value - cost
        repriced.append(replace(
            h,
            current_price=quote.current_price,
            market_value=market_value,
            gain_loss=gain_loss,
            gain_loss_percent=(gain_loss / cost * 100) if cost > 0 else 0.0,
        ))
    return repriced


def todays_change(holdings: Iterable[Holding],
                  quotes: Mapping[str, Quote]) -> tuple[float, float]:
    """Portfolio change since previous close as (dollars, percent)."""
    change = 0.0
    previous_value = 0.0
    for h in holdings:
        quote = quotes.get(h.symbol)
        if quote is None:
            continue
        change += h.quantity * quote.change
        previous_value += h.quantity * quote.previous_close
    percent = (change / previous_value * 100) if previous_value > 0 else 0.0
    return change, percent


def allocation(holdings: Iterable[Holding], limit: Optional[int] = 10) -> list[dict]:
    """Largest positions by market value with their share of the portfolio.

    Returns up to ``limit`` rows of symbol, name, value and percent, biggest
    first. Percent is 0 when the portfolio has no value.
    """
    ranked = sorted(holdings, key=lambda h: h.market_value, reverse=True)
    total_value = sum(h.market_value for h in ranked)
    if limit is not None:
        ranked = ranked[:limit]
    return [
        {
            "symbol": h.symbol,
            "name": h.name,
            "value": h.market_value,
            "percent": (h.market_value / total_value * 100) if total_value > 0 else 0.0,
        }
        for h in ranked
    ]
