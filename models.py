"""Data models for portfolio ingestion."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class TransactionAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Holding:
    """A current position in a single security."""
    symbol: str
    name: str
    quantity: float
    cost_per_share: float
    current_price: float
    market_value: float
    gain_loss: float
    gain_loss_percent: float

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "quantity": self.quantity,
            "costPerShare": self.cost_per_share,
            "currentPrice": self.current_price,
            "marketValue": self.market_value,
            "gainLoss": self.gain_loss,
            "gainLossPercent": self.gain_loss_percent,
        }


@dataclass(frozen=True)
class Transaction:
    """A historical ledger entry: trade, dividend, or cash movement."""
    date: str  # YYYY-MM-DD
    action: TransactionAction
    symbol: str  # "--" for non-security entries
    description: str
    quantity: float  # always >= 0, direction is in action + amount sign
    price: float
    fees: float
    amount: float  # negative = cash outflow

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "action": self.action.value,
            "symbol": self.symbol,
            "description": self.description,
            "quantity": self.quantity,
            "price": self.price,
            "fees": self.fees,
            "amount": self.amount,
        }


@dataclass
class PortfolioSnapshot:
    """Holdings, transactions and totals for one user at one point in time."""
    holdings: list[Holding] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    total_value: float = 0.0
    total_cost: float = 0.0
    total_gain_loss: float = 0.0
    total_gain_loss_percent: float = 0.0
    cash_balance: float = 0.0
    last_updated: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "holdings": [h.to_dict() for h in self.holdings],
            "transactions": [t.to_dict() for t in self.transactions],
            "totalValue": self.total_value,
            "totalCost": self.total_cost,
            "totalGainLoss": self.total_gain_loss,
            "totalGainLossPercent": self.total_gain_loss_percent,
            "cashBalance": self.cash_balance,
            "lastUpdated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class RowIssue:
    """Why a source row was skipped or only partially understood."""
    line: int  # 1-based line in the file, or 1-based entry index for JSON
    reason: str
    raw: str = ""


@dataclass(frozen=True)
class Quote:
    """Live quote for a symbol."""
    symbol: str
    current_price: float
    change: float
    change_percent: float
    high: float
    low: float
    open: float
    previous_close: float
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "currentPrice": self.current_price,
            "change": self.change,
            "changePercent": self.change_percent,
            "high": self.high,
            "low": self.low,
            "open": self.open,
            "previousClose": self.previous_close,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }
