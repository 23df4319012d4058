"""Tests for the import command: parse + aggregate + save, and the CLI."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

import db
import ingest
from models import Quote, TransactionAction


POSITIONS = (
    '"Positions for account Individual ...123 as of 01/26/2026"\n'
    '"Symbol","Description","Quantity","Price","Market Value","Cost Basis"\n'
    '"AAPL","APPLE INC","10","$150.00","$1,500.00","$1,000.00"\n'
    '"MSFT","MICROSOFT CORP","5","$400.00","$2,000.00","$2,500.00"\n'
    '"Account Total","","","","$3,500.00","$3,500.00"\n'
)

TRANSACTIONS_JSON = json.dumps({"BrokerageTransactions": [
    {"Date": "01/26/2026", "Action": "Buy", "Symbol": "AAPL", "Quantity": "10",
     "Price": "$150.00", "Amount": "-$1,500.00"},
    {"Date": "01/20/2026", "Action": "Qualified Dividend", "Symbol": "MSFT",
     "Amount": "$12.34"},
]})


@pytest.fixture()
def tmp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(db, "DB_PATH", str(tmp_path / "test.db"))
    db.init_db()
    return db


@pytest.fixture()
def exports(tmp_path):
    positions = tmp_path / "positions.csv"
    positions.write_text(POSITIONS, encoding="utf-8")
    transactions = tmp_path / "history.json"
    transactions.write_text(TRANSACTIONS_JSON, encoding="utf-8")
    return positions, transactions


# ---------------------------------------------------------------------------
# build_snapshot / import_portfolio
# ---------------------------------------------------------------------------

class TestBuildSnapshot:
    def test_positions_only(self):
        snap, issues = ingest.build_snapshot(POSITIONS)
        assert [h.symbol for h in snap.holdings] == ["AAPL", "MSFT"]
        assert snap.transactions == []
        assert snap.total_value == pytest.approx(3500)
        assert snap.total_gain_loss == pytest.approx(0)
        assert [i.reason for i in issues] == ["summary row"]

    def test_with_json_transactions(self):
        snap, issues = ingest.build_snapshot(POSITIONS, TRANSACTIONS_JSON)
        assert [t.action for t in snap.transactions] == [
            TransactionAction.BUY, TransactionAction.DIVIDEND,
        ]
        assert snap.transactions[1].amount == pytest.approx(12.34)

    def test_filename_selects_json_path(self):
        snap, issues = ingest.build_snapshot(POSITIONS, "not json", "history.json")
        assert snap.transactions == []
        assert any(i.reason.startswith("malformed JSON") for i in issues)


class TestImportPortfolio:
    def test_saves_snapshot(self, tmp_db, exports):
        positions, transactions = exports
        ingest.import_portfolio("alice", positions, transactions)
        stored = tmp_db.load_portfolio("alice")
        assert [h.symbol for h in stored.holdings] == ["AAPL", "MSFT"]
        assert len(stored.transactions) == 2

    def test_dry_run_does_not_save(self, tmp_db, exports):
        positions, _ = exports
        snap, _ = ingest.import_portfolio("alice", positions, dry_run=True)
        assert len(snap.holdings) == 2
        assert tmp_db.has_portfolio("alice") is False

    def test_reimport_appends_only_new_transactions(self, tmp_db, exports):
        positions, transactions = exports
        ingest.import_portfolio("alice", positions, transactions)
        ingest.import_portfolio("alice", positions, transactions)
        assert len(tmp_db.load_portfolio("alice").transactions) == 2

    def test_bom_is_ignored(self, tmp_db, tmp_path):
        path = tmp_path / "bom.csv"
        path.write_text("Symbol,Quantity,Price\nAAPL,1,150\n", encoding="utf-8-sig")
        snap, _ = ingest.import_portfolio("alice", path, dry_run=True)
        assert [h.symbol for h in snap.holdings] == ["AAPL"]


class TestFormatSnapshot:
    def test_empty(self):
        snap, _ = ingest.build_snapshot("")
        out = ingest.format_snapshot(snap)
        assert "No holdings." in out
        assert "Total value:  $0.00" in out

    def test_holdings_table(self):
        snap, _ = ingest.build_snapshot(POSITIONS)
        out = ingest.format_snapshot(snap)
        assert "AAPL" in out and "MSFT" in out
        assert "Total value:  $3,500.00" in out
        assert "Transactions: 0" in out


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

class TestMain:
    def test_import_then_show(self, tmp_db, exports, capsys):
        positions, transactions = exports
        assert ingest.main(["--user", "alice", "--positions", str(positions),
                            "--transactions", str(transactions)]) == 0
        assert tmp_db.has_portfolio("alice")

        assert ingest.main(["--user", "alice", "--show"]) == 0
        out = capsys.readouterr().out
        assert "Total value:  $3,500.00" in out
        assert "Transactions: 2" in out

    def test_dry_run_prints_summary(self, tmp_db, exports, capsys):
        positions, _ = exports
        assert ingest.main(["--user", "alice", "--positions", str(positions), "--dry-run"]) == 0
        assert "Total value" in capsys.readouterr().out
        assert not tmp_db.has_portfolio("alice")

    def test_missing_file_returns_error(self, tmp_db, tmp_path):
        assert ingest.main(["--user", "alice", "--positions", str(tmp_path / "nope.csv")]) == 1

    def test_non_utf8_file_returns_error(self, tmp_db, tmp_path):
        path = tmp_path / "latin1.csv"
        path.write_bytes("Symbol,Description,Quantity\nNESN,Nestlé SA,5\n".encode("latin-1"))
        assert ingest.main(["--user", "alice", "--positions", str(path)]) == 1
        assert not tmp_db.has_portfolio("alice")

    def test_nothing_to_do(self, tmp_db):
        with pytest.raises(SystemExit) as exc:
            ingest.main(["--user", "alice"])
        assert exc.value.code == 2

    def test_transactions_need_positions(self, tmp_db, exports):
        _, transactions = exports
        with pytest.raises(SystemExit):
            ingest.main(["--user", "alice", "--transactions", str(transactions)])

    def test_clear(self, tmp_db, exports):
        positions, _ = exports
        ingest.main(["--user", "alice", "--positions", str(positions)])
        assert ingest.main(["--user", "alice", "--clear"]) == 0
        assert not tmp_db.has_portfolio("alice")

    def test_show_with_quotes(self, tmp_db, exports, capsys):
        positions, _ = exports
        ingest.main(["--user", "alice", "--positions", str(positions)])
        quote = Quote("AAPL", 160.0, 2.0, 1.27, 161.0, 158.0, 158.5, 158.0)
        with patch("ingest.get_quotes", return_value={"AAPL": quote}) as mock_quotes:
            assert ingest.main(["--user", "alice", "--show", "--quotes"]) == 0
        mock_quotes.assert_called_once()
        out = capsys.readouterr().out
        # AAPL repriced 10 x 160, MSFT unchanged at 2000
        assert "Total value:  $3,600.00" in out
        assert "Today:        $20.00" in out
