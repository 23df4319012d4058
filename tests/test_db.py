"""Tests for portfolio persistence: replace holdings, append transactions, atomic save."""

from __future__ import annotations

from datetime import datetime

import pytest

import db
from analytics.portfolio import calculate_portfolio_totals
from models import Holding, Transaction, TransactionAction


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def tmp_db(tmp_path, monkeypatch):
    """Point the module at a fresh SQLite file with the full schema."""
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))
    db.init_db()
    return db


def _holding(symbol: str, quantity: float = 10, price: float = 150, cost: float = 100) -> Holding:
    return Holding(symbol, f"{symbol} Inc.", quantity, cost, price, quantity * price,
                   quantity * (price - cost), (price - cost) / cost * 100)


def _txn(day: int, symbol: str = "AAPL", action=TransactionAction.BUY, amount: float = -150) -> Transaction:
    return Transaction(f"2026-01-{day:02d}", action, symbol, f"{symbol} trade", 1, 150, 0, amount)


def _snapshot(holdings, transactions=()):
    return calculate_portfolio_totals(holdings, transactions, as_of=datetime(2026, 1, 27, 9, 30))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestLoad:
    def test_missing_user_gets_empty_snapshot(self, tmp_db):
        snap = tmp_db.load_portfolio("nobody")
        assert snap.holdings == []
        assert snap.transactions == []
        assert snap.total_value == 0
        assert tmp_db.has_portfolio("nobody") is False


class TestSave:
    def test_round_trip(self, tmp_db):
        holdings = [_holding("AAPL"), _holding("MSFT", quantity=5, price=400, cost=500)]
        txns = [_txn(5), _txn(6, "MSFT", TransactionAction.DIVIDEND, 12.5)]
        tmp_db.save_portfolio("alice", _snapshot(holdings, txns))

        snap = tmp_db.load_portfolio("alice")
        assert snap.holdings == holdings
        assert snap.total_value == pytest.approx(1500 + 2000)
        assert snap.total_cost == pytest.approx(1000 + 2500)
        assert snap.last_updated == datetime(2026, 1, 27, 9, 30)
        assert {t.action for t in snap.transactions} == {
            TransactionAction.BUY, TransactionAction.DIVIDEND,
        }
        assert tmp_db.has_portfolio("alice") is True

    def test_holdings_replaced_not_merged(self, tmp_db):
        tmp_db.save_portfolio("alice", _snapshot([_holding("AAPL")]))
        tmp_db.save_portfolio("alice", _snapshot([_holding("MSFT")]))
        assert [h.symbol for h in tmp_db.load_portfolio("alice").holdings] == ["MSFT"]

    def test_only_transactions_beyond_stored_count_appended(self, tmp_db):
        t1, t2, t3 = _txn(1), _txn(2), _txn(3)
        tmp_db.save_portfolio("alice", _snapshot([], [t1, t2]))
        tmp_db.save_portfolio("alice", _snapshot([], [t1, t2, t3]))
        tmp_db.save_portfolio("alice", _snapshot([], [t1]))

        stored = tmp_db.load_portfolio("alice").transactions
        assert len(stored) == 3

    def test_transactions_loaded_newest_first(self, tmp_db):
        tmp_db.save_portfolio("alice", _snapshot([], [_txn(1), _txn(20), _txn(9)]))
        dates = [t.date for t in tmp_db.load_portfolio("alice").transactions]
        assert dates == ["2026-01-20", "2026-01-09", "2026-01-01"]

    def test_users_are_isolated(self, tmp_db):
        tmp_db.save_portfolio("alice", _snapshot([_holding("AAPL")], [_txn(1)]))
        tmp_db.save_portfolio("bob", _snapshot([_holding("TSLA")], [_txn(1), _txn(2)]))
        assert [h.symbol for h in tmp_db.load_portfolio("alice").holdings] == ["AAPL"]
        assert len(tmp_db.load_portfolio("alice").transactions) == 1
        assert len(tmp_db.load_portfolio("bob").transactions) == 2

    def test_failed_save_leaves_previous_snapshot(self, tmp_db):
        tmp_db.save_portfolio("alice", _snapshot([_holding("AAPL")]))

        # action without .value blows up after holdings were already deleted
        bad = Transaction("2026-01-05", "BUY", "MSFT", "", 1, 1, 0, -1)
        with pytest.raises(AttributeError):
            tmp_db.save_portfolio("alice", _snapshot([_holding("MSFT")], [bad]))

        snap = tmp_db.load_portfolio("alice")
        assert [h.symbol for h in snap.holdings] == ["AAPL"]
        assert snap.total_value == pytest.approx(1500)
        assert snap.transactions == []


class TestClear:
    def test_clear_removes_everything_for_user(self, tmp_db):
        tmp_db.save_portfolio("alice", _snapshot([_holding("AAPL")], [_txn(1)]))
        tmp_db.save_portfolio("bob", _snapshot([_holding("TSLA")]))

        tmp_db.clear_portfolio("alice")

        assert tmp_db.has_portfolio("alice") is False
        assert tmp_db.load_portfolio("alice").transactions == []
        assert tmp_db.has_portfolio("bob") is True

    def test_clear_then_save_appends_from_scratch(self, tmp_db):
        tmp_db.save_portfolio("alice", _snapshot([], [_txn(1), _txn(2)]))
        tmp_db.clear_portfolio("alice")
        tmp_db.save_portfolio("alice", _snapshot([], [_txn(3)]))
        assert [t.date for t in tmp_db.load_portfolio("alice").transactions] == ["2026-01-03"]


class TestDataFrames:
    def test_holdings_df_sorted_by_value(self, tmp_db):
        tmp_db.save_portfolio("alice", _snapshot([
            _holding("AAPL", quantity=1), _holding("MSFT", quantity=5, price=400, cost=500),
        ]))
        df = tmp_db.get_holdings_df("alice")
        assert df["symbol"].tolist() == ["MSFT", "AAPL"]

    def test_transactions_df_parses_dates(self, tmp_db):
        tmp_db.save_portfolio("alice", _snapshot([], [_txn(1), _txn(2)]))
        df = tmp_db.get_transactions_df("alice")
        assert len(df) == 2
        assert str(df["trade_date"].dtype).startswith("datetime64")

    def test_empty_df_for_unknown_user(self, tmp_db):
        assert tmp_db.get_holdings_df("nobody").empty
