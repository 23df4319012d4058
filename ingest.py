"""Brokerage export import: parse, aggregate, save.

Usage:
    python ingest.py --user alice --positions positions.csv
    python ingest.py --user alice --positions positions.csv --transactions history.json
    python ingest.py --user alice --positions positions.csv --dry-run
    python ingest.py --user alice --show [--quotes]
    python ingest.py --user alice --clear
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

from analytics.market_data import QuoteCache, get_quotes
from analytics.portfolio import apply_live_quotes, calculate_portfolio_totals, todays_change
from config import LOG_LEVEL
from db import clear_portfolio, init_db, load_portfolio, save_portfolio
from models import PortfolioSnapshot, RowIssue
from parsers.parser_positions import parse_positions_csv_with_report
from parsers.parser_transactions import parse_transactions_with_report

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("ingest")


def read_export(path: str | Path) -> str:
    """Read an uploaded export; brokerage CSVs often start with a BOM."""
    return Path(path).read_text(encoding="utf-8-sig")


def build_snapshot(positions_text: str,
                   transactions_text: Optional[str] = None,
                   transactions_filename: Optional[str] = None,
                   ) -> tuple[PortfolioSnapshot, list[RowIssue]]:
    """Parse a positions export (and optional transactions export) into a snapshot.

    Returns the snapshot plus every row the parsers skipped or flagged.
    """
    holdings, issues = parse_positions_csv_with_report(positions_text)

    transactions = []
    if transactions_text is not None:
        transactions, tx_issues = parse_transactions_with_report(
            transactions_text, transactions_filename,
        )
        issues = issues + tx_issues

    return calculate_portfolio_totals(holdings, transactions), issues


def import_portfolio(user_id: str, positions_path: str | Path,
                     transactions_path: Optional[str | Path] = None,
                     dry_run: bool = False) -> tuple[PortfolioSnapshot, list[RowIssue]]:
    """Read, parse and (unless dry_run) store a user's brokerage exports."""
    positions_text = read_export(positions_path)
    transactions_text = read_export(transactions_path) if transactions_path else None
    transactions_name = Path(transactions_path).name if transactions_path else None

    snapshot, issues = build_snapshot(positions_text, transactions_text, transactions_name)
    for issue in issues:
        logger.info("Skipped/flagged row %d: %s", issue.line, issue.reason)
    logger.info("Parsed %d holdings and %d transactions (%d rows flagged)",
                len(snapshot.holdings), len(snapshot.transactions), len(issues))

    if not dry_run:
        save_portfolio(user_id, snapshot)
    return snapshot, issues


def reprice_portfolio(snapshot: PortfolioSnapshot, cache: QuoteCache
                      ) -> tuple[PortfolioSnapshot, tuple[float, float]]:
    """Reprice a stored snapshot at live quotes. Returns it with today's change."""
    quotes = get_quotes([h.symbol for h in snapshot.holdings], cache)
    holdings = apply_live_quotes(snapshot.holdings, quotes)
    repriced = calculate_portfolio_totals(holdings, snapshot.transactions)
    return repriced, todays_change(snapshot.holdings, quotes)


def format_snapshot(snapshot: PortfolioSnapshot) -> str:
    """Plain-text holdings table plus totals."""
    lines = []
    if snapshot.holdings:
        df = pd.DataFrame([h.to_dict() for h in snapshot.holdings])
        lines.append(df.to_string(index=False, float_format=lambda v: f"{v:,.2f}"))
    else:
        lines.append("No holdings.")
    lines.append("")
    lines.append(f"Total value:  ${snapshot.total_value:,.2f}")
    lines.append(f"Total cost:   ${snapshot.total_cost:,.2f}")
    lines.append(f"Gain/loss:    ${snapshot.total_gain_loss:,.2f} "
                 f"({snapshot.total_gain_loss_percent:+.2f}%)")
    lines.append(f"Transactions: {len(snapshot.transactions)}")
    lines.append(f"Updated:      {snapshot.last_updated.isoformat(timespec='seconds')}")
    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Import brokerage positions/transactions exports")
    parser.add_argument("--user", required=True, help="Member id the portfolio belongs to")
    parser.add_argument("--positions", help="Positions CSV export")
    parser.add_argument("--transactions", help="Transactions CSV or JSON export")
    parser.add_argument("--dry-run", action="store_true",
                        help="Parse and summarize without saving")
    parser.add_argument("--show", action="store_true", help="Print the stored portfolio")
    parser.add_argument("--quotes", action="store_true",
                        help="With --show, reprice holdings at live quotes")
    parser.add_argument("--clear", action="store_true", help="Delete the stored portfolio")
    args = parser.parse_args(argv)

    if args.transactions and not args.positions:
        parser.error("--transactions requires --positions")
    if not (args.positions or args.show or args.clear):
        parser.error("nothing to do: pass --positions, --show or --clear")

    init_db()

    if args.clear:
        clear_portfolio(args.user)

    if args.positions:
        try:
            snapshot, _ = import_portfolio(args.user, args.positions, args.transactions,
                                           dry_run=args.dry_run)
        except FileNotFoundError as e:
            logger.error("File not found: %s", e.filename)
            return 1
        except UnicodeDecodeError as e:
            logger.error("Export is not UTF-8 text: %s", e)
            return 1
        if args.dry_run:
            print(format_snapshot(snapshot))

    if args.show:
        snapshot = load_portfolio(args.user)
        if args.quotes and snapshot.holdings:
            snapshot, (change, change_pct) = reprice_portfolio(snapshot, QuoteCache())
            print(format_snapshot(snapshot))
            print(f"Today:        ${change:,.2f} ({change_pct:+.2f}%)")
        else:
            print(format_snapshot(snapshot))

    return 0


if __name__ == "__main__":
    sys.exit(main())
