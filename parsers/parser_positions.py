"""Parser for brokerage positions CSV exports."""

from __future__ import annotations

import logging

from config import CASH_SYMBOLS
from models import Holding, RowIssue
from parsers.base import (
    cell, find_header_row, map_columns, parse_number, split_csv_line, split_lines,
)

logger = logging.getLogger(__name__)

# Header row must mention the symbol plus a quantity-like column
HEADER_REQUIRED = ("symbol",)
HEADER_ANY_OF = ("quantity", "shares")

# Semantic field -> header substrings, in match priority order
POSITION_COLUMNS = {
    "symbol": ("symbol", "ticker"),
    "name": ("description", "name", "security"),
    "quantity": ("quantity", "shares", "qty"),
    "price": ("price", "current price", "last price", "market price"),
    "market_value": ("market value", "value", "total value"),
    "cost_basis": ("cost basis", "cost", "total cost", "book cost"),
    "cost_per_share": ("cost/share", "avg cost", "average cost", "cost per share"),
    "gain_loss": ("gain/loss", "gain loss", "unrealized gain", "unrealized gain/loss"),
    "gain_loss_percent": ("gain/loss %", "gain loss %", "% gain/loss", "unrealized gain %"),
}


def _build_holding(symbol: str, values: list[str], cols: dict[str, int]) -> Holding:
    """Derive a Holding from one row; source values win over derived ones."""
    quantity = parse_number(cell(values, cols["quantity"]))
    current_price = parse_number(cell(values, cols["price"]))
    market_value = parse_number(cell(values, cols["market_value"])) or quantity * current_price

    cost_basis = parse_number(cell(values, cols["cost_basis"]))
    cost_per_share = parse_number(cell(values, cols["cost_per_share"]))
    if not cost_per_share and quantity:
        cost_per_share = cost_basis / quantity
    if not cost_basis:
        cost_basis = cost_per_share * quantity

    gain_loss = parse_number(cell(values, cols["gain_loss"])) or (market_value - cost_basis)
    gain_loss_percent = parse_number(cell(values, cols["gain_loss_percent"])) or (
        gain_loss / cost_basis * 100 if cost_basis > 0 else 0.0
    )

    return Holding(
        symbol=symbol.upper(),
        name=cell(values, cols["name"]) or symbol,
        quantity=quantity,
        cost_per_share=cost_per_share,
        current_price=current_price,
        market_value=market_value,
        gain_loss=gain_loss,
        gain_loss_percent=gain_loss_percent,
    )


def parse_positions_csv_with_report(text: str) -> tuple[list[Holding], list[RowIssue]]:
    """Parse a positions export, returning holdings plus the rows that were skipped."""
    lines = split_lines(text)
    if len(lines) < 2:
        return [], []

    header_index = find_header_row(lines, HEADER_REQUIRED, HEADER_ANY_OF)
    cols = map_columns(split_csv_line(lines[header_index]), POSITION_COLUMNS)

    holdings: list[Holding] = []
    issues: list[RowIssue] = []

    for i in range(header_index + 1, len(lines)):
        line = lines[i].strip()
        line_no = i + 1

        if not line:
            continue
        if line.startswith('""'):
            issues.append(RowIssue(line_no, "separator row", line))
            continue
        if "total" in line.lower():
            issues.append(RowIssue(line_no, "summary row", line))
            continue

        values = split_csv_line(line)
        symbol = cell(values, cols["symbol"])
        if not symbol:
            issues.append(RowIssue(line_no, "missing symbol", line))
            continue
        if symbol.lower() in CASH_SYMBOLS:
            issues.append(RowIssue(line_no, "cash position", line))
            continue

        holding = _build_holding(symbol, values, cols)
        if holding.quantity <= 0:
            issues.append(RowIssue(line_no, "non-positive quantity", line))
            continue
        holdings.append(holding)

    logger.debug("Parsed %d holdings (%d rows skipped)", len(holdings), len(issues))
    return holdings, issues


def parse_positions_csv(text: str) -> list[Holding]:
    """Parse a positions export into Holdings."""
    return parse_positions_csv_with_report(text)[0]
