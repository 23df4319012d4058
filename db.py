"""SQLite schema and portfolio persistence."""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime

import pandas as pd

from config import DB_PATH
from models import Holding, PortfolioSnapshot, Transaction, TransactionAction

logger = logging.getLogger(__name__)


def get_connection() -> sqlite3.Connection:
    db_dir = os.path.dirname(DB_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db():
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def init_db():
    """Create all tables if they don't exist."""
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS portfolios (
                user_id TEXT PRIMARY KEY,
                total_value REAL NOT NULL DEFAULT 0,
                total_cost REAL NOT NULL DEFAULT 0,
                total_gain_loss REAL NOT NULL DEFAULT 0,
                total_gain_loss_percent REAL NOT NULL DEFAULT 0,
                cash_balance REAL NOT NULL DEFAULT 0,
                last_updated TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS holdings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL REFERENCES portfolios(user_id) ON DELETE CASCADE,
                symbol TEXT NOT NULL,
                name TEXT NOT NULL,
                quantity REAL NOT NULL,
                cost_per_share REAL NOT NULL,
                current_price REAL NOT NULL,
                market_value REAL NOT NULL,
                gain_loss REAL NOT NULL,
                gain_loss_percent REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL REFERENCES portfolios(user_id) ON DELETE CASCADE,
                trade_date TEXT NOT NULL,
                action TEXT NOT NULL,
                symbol TEXT NOT NULL,
                description TEXT,
                quantity REAL NOT NULL,
                price REAL NOT NULL,
                fees REAL NOT NULL,
                amount REAL NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_holdings_user_id ON holdings(user_id);
            CREATE INDEX IF NOT EXISTS idx_transactions_user_id ON transactions(user_id);
            CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(user_id, trade_date);
        """)


# ---------------------------------------------------------------------------
# Portfolio snapshot
# ---------------------------------------------------------------------------

def save_portfolio(user_id: str, snapshot: PortfolioSnapshot):
    """Store a snapshot as one transaction.

    Holdings are replaced, totals upserted, and only transactions beyond the
    already-stored count are appended. Any failure leaves the prior state.
    """
    with get_db() as conn:
        # Take the write lock before counting so concurrent saves serialize
        conn.execute("BEGIN IMMEDIATE")
        conn.execute(
            """INSERT INTO portfolios
               (user_id, total_value, total_cost, total_gain_loss,
                total_gain_loss_percent, cash_balance, last_updated)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                 total_value=excluded.total_value,
                 total_cost=excluded.total_cost,
                 total_gain_loss=excluded.total_gain_loss,
                 total_gain_loss_percent=excluded.total_gain_loss_percent,
                 cash_balance=excluded.cash_balance,
                 last_updated=excluded.last_updated""",
            (user_id, snapshot.total_value, snapshot.total_cost, snapshot.total_gain_loss,
             snapshot.total_gain_loss_percent, snapshot.cash_balance,
             snapshot.last_updated.isoformat()),
        )

        conn.execute("DELETE FROM holdings WHERE user_id=?", (user_id,))
        conn.executemany(
            """INSERT INTO holdings
               (user_id, symbol, name, quantity, cost_per_share, current_price,
                market_value, gain_loss, gain_loss_percent)
               VALUES (?,?,?,?,?,?,?,?,?)""",
            [(user_id, h.symbol, h.name, h.quantity, h.cost_per_share, h.current_price,
              h.market_value, h.gain_loss, h.gain_loss_percent)
             for h in snapshot.holdings],
        )

        existing = conn.execute(
            "SELECT COUNT(*) FROM transactions WHERE user_id=?", (user_id,),
        ).fetchone()[0]
        new_transactions = snapshot.transactions[existing:]
        conn.executemany(
            """INSERT INTO transactions
               (user_id, trade_date, action, symbol, description, quantity, price, fees, amount)
               VALUES (?,?,?,?,?,?,?,?,?)""",
            [(user_id, t.date, t.action.value, t.symbol, t.description, t.quantity,
              t.price, t.fees, t.amount)
             for t in new_transactions],
        )

    logger.info("Saved portfolio for %s: %d holdings, %d new transactions",
                user_id, len(snapshot.holdings), len(new_transactions))


def load_portfolio(user_id: str) -> PortfolioSnapshot:
    """Load a user's stored snapshot, or an empty one if nothing is stored."""
    with get_db() as conn:
        portfolio = conn.execute(
            "SELECT * FROM portfolios WHERE user_id=?", (user_id,),
        ).fetchone()
        if portfolio is None:
            return PortfolioSnapshot()

        holding_rows = conn.execute(
            "SELECT * FROM holdings WHERE user_id=? ORDER BY id", (user_id,),
        ).fetchall()
        transaction_rows = conn.execute(
            "SELECT * FROM transactions WHERE user_id=? ORDER BY trade_date DESC, id",
            (user_id,),
        ).fetchall()

    holdings = [
        Holding(
            symbol=r["symbol"],
            name=r["name"],
            quantity=r["quantity"],
            cost_per_share=r["cost_per_share"],
            current_price=r["current_price"],
            market_value=r["market_value"],
            gain_loss=r["gain_loss"],
            gain_loss_percent=r["gain_loss_percent"],
        )
        for r in holding_rows
    ]
    transactions = [
        Transaction(
            date=r["trade_date"],
            action=TransactionAction(r["action"]),
            symbol=r["symbol"],
            description=r["description"] or "",
            quantity=r["quantity"],
            price=r["price"],
            fees=r["fees"],
            amount=r["amount"],
        )
        for r in transaction_rows
    ]

    return PortfolioSnapshot(
        holdings=holdings,
        transactions=transactions,
        total_value=portfolio["total_value"],
        total_cost=portfolio["total_cost"],
        total_gain_loss=portfolio["total_gain_loss"],
        total_gain_loss_percent=portfolio["total_gain_loss_percent"],
        cash_balance=portfolio["cash_balance"],
        last_updated=datetime.fromisoformat(portfolio["last_updated"]),
    )


def clear_portfolio(user_id: str):
    """Delete a user's totals, holdings and transactions."""
    with get_db() as conn:
        conn.execute("DELETE FROM transactions WHERE user_id=?", (user_id,))
        conn.execute("DELETE FROM holdings WHERE user_id=?", (user_id,))
        conn.execute("DELETE FROM portfolios WHERE user_id=?", (user_id,))
    logger.info("Cleared portfolio for %s", user_id)


def has_portfolio(user_id: str) -> bool:
    with get_db() as conn:
        row = conn.execute(
            "SELECT 1 FROM portfolios WHERE user_id=?", (user_id,),
        ).fetchone()
        return row is not None


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def get_holdings_df(user_id: str) -> pd.DataFrame:
    with get_db() as conn:
        return pd.read_sql_query(
            """SELECT symbol, name, quantity, cost_per_share, current_price,
                      market_value, gain_loss, gain_loss_percent
               FROM holdings WHERE user_id=? ORDER BY market_value DESC""",
            conn,
            params=[user_id],
        )


def get_transactions_df(user_id: str) -> pd.DataFrame:
    with get_db() as conn:
        df = pd.read_sql_query(
            """SELECT trade_date, action, symbol, description, quantity, price, fees, amount
               FROM transactions WHERE user_id=? ORDER BY trade_date DESC, id""",
            conn,
            params=[user_id],
        )
        if not df.empty:
            df["trade_date"] = pd.to_datetime(df["trade_date"])
        return df
