"""Parser for brokerage transaction history exports (CSV or JSON)."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from config import JSON_EXTENSIONS, PLACEHOLDER_SYMBOL
from models import RowIssue, Transaction, TransactionAction
from parsers.base import (
    cell, find_header_row, map_columns, parse_brokerage_date_checked, parse_number,
    split_csv_line, split_lines,
)

logger = logging.getLogger(__name__)

HEADER_REQUIRED = ("date", "action")

TRANSACTION_COLUMNS = {
    "date": ("date", "trade date"),
    "action": ("action", "type", "transaction type"),
    "symbol": ("symbol", "ticker"),
    "description": ("description", "name", "security"),
    "quantity": ("quantity", "shares", "qty"),
    "price": ("price",),
    "fees": ("fees & comm", "fees", "commission", "fees & commission"),
    "amount": ("amount", "total", "net amount"),
}

# Ordered: first keyword found in the action text wins
ACTION_KEYWORDS = [
    (("buy",), TransactionAction.BUY),
    (("sell",), TransactionAction.SELL),
    (("dividend", "div"), TransactionAction.DIVIDEND),
    (("deposit", "transfer in"), TransactionAction.DEPOSIT),
    (("withdraw", "transfer out"), TransactionAction.WITHDRAWAL),
]

# JSON exports label dividend reinvestments without the word "dividend"
REINVEST_KEYWORDS = (("reinvest",), TransactionAction.DIVIDEND)

# Arrays of entries, looked up in this order
JSON_ARRAY_KEYS = ("BrokerageTransactions", "transactions")

JSON_FIELDS = {
    "date": ("Date", "TradeDate", "date", "tradeDate"),
    "action": ("Action", "Type", "TransactionType", "action", "type"),
    "symbol": ("Symbol", "Ticker", "symbol", "ticker"),
    "description": ("Description", "Name", "description"),
    "quantity": ("Quantity", "Qty", "Shares", "quantity"),
    "price": ("Price", "price"),
    "fees": ("Fees & Comm", "FeesAndComm", "Fees", "Commission", "fees"),
    "amount": ("Amount", "NetAmount", "amount"),
}


def classify_action(text: str, include_reinvest: bool = False) -> TransactionAction:
    """Map free-text action labels like 'Buy to Open' onto the action taxonomy."""
    lowered = (text or "").lower()
    rules = ACTION_KEYWORDS + [REINVEST_KEYWORDS] if include_reinvest else ACTION_KEYWORDS
    for keywords, action in rules:
        if any(k in lowered for k in keywords):
            return action
    return TransactionAction.OTHER


def is_json_export(text: str, filename: Optional[str] = None) -> bool:
    stripped = text.lstrip("\ufeff").strip()
    if stripped.startswith(("{", "[")):
        return True
    return bool(filename) and filename.lower().endswith(JSON_EXTENSIONS)


def _symbol_or_placeholder(raw: str) -> str:
    return raw.strip().upper() or PLACEHOLDER_SYMBOL


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def parse_transactions_csv_with_report(text: str) -> tuple[list[Transaction], list[RowIssue]]:
    lines = split_lines(text)
    if len(lines) < 2:
        return [], []

    header_index = find_header_row(lines, HEADER_REQUIRED)
    cols = map_columns(split_csv_line(lines[header_index]), TRANSACTION_COLUMNS)

    transactions: list[Transaction] = []
    issues: list[RowIssue] = []

    for i in range(header_index + 1, len(lines)):
        line = lines[i].strip()
        line_no = i + 1

        if not line:
            continue
        if line.startswith('""'):
            issues.append(RowIssue(line_no, "separator row", line))
            continue

        values = split_csv_line(line)
        raw_date = cell(values, cols["date"])
        if not raw_date:
            issues.append(RowIssue(line_no, "missing date", line))
            continue

        iso_date, fell_back = parse_brokerage_date_checked(raw_date)
        if fell_back:
            issues.append(RowIssue(line_no, f"unparseable date {raw_date!r}, used today", line))

        transactions.append(Transaction(
            date=iso_date,
            action=classify_action(cell(values, cols["action"])),
            symbol=_symbol_or_placeholder(cell(values, cols["symbol"])),
            description=cell(values, cols["description"]),
            quantity=abs(parse_number(cell(values, cols["quantity"]))),
            price=parse_number(cell(values, cols["price"])),
            fees=parse_number(cell(values, cols["fees"])),
            amount=parse_number(cell(values, cols["amount"])),
        ))

    logger.debug("Parsed %d CSV transactions (%d rows flagged)", len(transactions), len(issues))
    return transactions, issues


def parse_transactions_csv(text: str) -> list[Transaction]:
    return parse_transactions_csv_with_report(text)[0]


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def _json_value(entry: dict, field: str) -> Any:
    """First present, non-empty value among the field's known key names."""
    for key in JSON_FIELDS[field]:
        value = entry.get(key)
        if value is not None and value != "":
            return value
    return None


def _json_text(entry: dict, field: str) -> str:
    value = _json_value(entry, field)
    return str(value).strip() if value is not None else ""


def _json_entries(document: Any) -> Optional[list]:
    if isinstance(document, list):
        return document
    if isinstance(document, dict):
        for key in JSON_ARRAY_KEYS:
            entries = document.get(key)
            if isinstance(entries, list):
                return entries
    return None


def parse_transactions_json_with_report(text: str) -> tuple[list[Transaction], list[RowIssue]]:
    try:
        document = json.loads(text.lstrip("\ufeff"))
    except (ValueError, RecursionError) as e:
        logger.warning("Malformed transactions JSON: %s", e)
        return [], [RowIssue(0, f"malformed JSON: {e}")]

    entries = _json_entries(document)
    if entries is None:
        logger.warning("No transactions array found in JSON (looked for %s)",
                       ", ".join(JSON_ARRAY_KEYS))
        return [], [RowIssue(0, "no transactions array found")]

    transactions: list[Transaction] = []
    issues: list[RowIssue] = []

    for idx, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            issues.append(RowIssue(idx, "entry is not an object", str(entry)[:200]))
            continue

        raw_date = _json_text(entry, "date")
        iso_date, fell_back = parse_brokerage_date_checked(raw_date)
        if fell_back:
            reason = f"unparseable date {raw_date!r}, used today" if raw_date else "missing date, used today"
            issues.append(RowIssue(idx, reason, json.dumps(entry)[:200]))

        transactions.append(Transaction(
            date=iso_date,
            action=classify_action(_json_text(entry, "action"), include_reinvest=True),
            symbol=_symbol_or_placeholder(_json_text(entry, "symbol")),
            description=_json_text(entry, "description"),
            quantity=abs(parse_number(_json_value(entry, "quantity"))),
            price=parse_number(_json_value(entry, "price")),
            fees=parse_number(_json_value(entry, "fees")),
            amount=parse_number(_json_value(entry, "amount")),
        ))

    logger.debug("Parsed %d JSON transactions (%d entries flagged)", len(transactions), len(issues))
    return transactions, issues


def parse_transactions_json(text: str) -> list[Transaction]:
    return parse_transactions_json_with_report(text)[0]


# ---------------------------------------------------------------------------
# Auto-detect
# ---------------------------------------------------------------------------

def parse_transactions_with_report(text: str, filename: Optional[str] = None
                                   ) -> tuple[list[Transaction], list[RowIssue]]:
    """Parse a transactions export, detecting JSON vs CSV from content or filename."""
    if is_json_export(text, filename):
        return parse_transactions_json_with_report(text)
    return parse_transactions_csv_with_report(text)


def parse_transactions(text: str, filename: Optional[str] = None) -> list[Transaction]:
    return parse_transactions_with_report(text, filename)[0]
