"""Common CSV tokenizing, column detection and value normalization."""

from __future__ import annotations

import math
import re
import warnings
from datetime import date
from typing import Any, Mapping, Optional, Sequence

import pandas as pd

# Characters removed before reading a number: currency symbols, thousands
# separators and whitespace
_NUMBER_NOISE_RE = re.compile(r"[$€£¥₹,\s]")
_PAREN_NEGATIVE_RE = re.compile(r"^\((.+)\)$")
# Leading numeric prefix, so '50.00%' reads as 50
_NUMBER_PREFIX_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

_US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def split_lines(text: str) -> list[str]:
    """Split raw file text into lines, dropping leading/trailing blank space."""
    return text.strip().split("\n")


def split_csv_line(line: str) -> list[str]:
    """Split one CSV line into trimmed fields.

    Quotes toggle an in-quotes state and are dropped; commas inside quotes
    don't split. Doubled quotes are not treated as escapes. Always returns
    at least one field.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())
    return fields


def find_header_row(lines: Sequence[str], required: Sequence[str],
                    any_of: Sequence[str] = ()) -> int:
    """Return the index of the first line that looks like the header row.

    A line qualifies when its lower-cased text contains every ``required``
    keyword and, if ``any_of`` is given, at least one of those. Falls back
    to 0 since some exports have no metadata rows above the header.
    """
    for i, line in enumerate(lines):
        lowered = line.lower()
        if not all(k in lowered for k in required):
            continue
        if any_of and not any(k in lowered for k in any_of):
            continue
        return i
    return 0


def find_column(headers: Sequence[str], candidates: Sequence[str]) -> int:
    """Index of the first header containing a candidate, tried in candidate order."""
    for name in candidates:
        for i, header in enumerate(headers):
            if name in header:
                return i
    return -1


def map_columns(headers: Sequence[str],
                candidates: Mapping[str, Sequence[str]]) -> dict[str, int]:
    """Resolve each semantic field to a column index (-1 when absent)."""
    normalized = [h.lower().strip() for h in headers]
    return {field: find_column(normalized, names) for field, names in candidates.items()}


def cell(values: Sequence[str], index: int) -> str:
    """Value at ``index`` with surrounding quotes removed, or '' if absent."""
    if index < 0 or index >= len(values):
        return ""
    return re.sub(r'^"|"$', "", values[index].strip()).strip()


def parse_number(value: Any) -> float:
    """Parse a brokerage number like '$1,234.56', '(500)' or '12.5%'.

    Returns 0.0 for anything that isn't a number. Never raises.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        try:
            num = float(value)
        except OverflowError:
            # int too large for a float
            return 0.0
        return num if math.isfinite(num) else 0.0
    s = _NUMBER_NOISE_RE.sub("", str(value))
    if not s:
        return 0.0
    # Accounting notation: (1,234.56) -> -1234.56
    s = _PAREN_NEGATIVE_RE.sub(r"-\1", s)
    m = _NUMBER_PREFIX_RE.match(s)
    if not m:
        return 0.0
    num = float(m.group(0))
    return num if math.isfinite(num) else 0.0


def parse_brokerage_date_checked(value: Any, today: Optional[date] = None) -> tuple[str, bool]:
    """Normalize a brokerage date to YYYY-MM-DD.

    Returns (iso_date, fell_back) where fell_back is True when nothing could
    be parsed and today's date was used instead.
    """
    s = str(value).strip() if value is not None else ""

    # MM/DD/YYYY first: general parsers don't reliably read it as US order
    m = _US_DATE_RE.match(s)
    if m:
        month, day, year = (int(g) for g in m.groups())
        try:
            return date(year, month, day).isoformat(), False
        except ValueError:
            pass

    if _ISO_DATE_RE.match(s):
        return s[:10], False

    if s:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                parsed = pd.to_datetime(s, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            parsed = pd.NaT
        if not pd.isna(parsed):
            return parsed.strftime("%Y-%m-%d"), False

    return (today or date.today()).isoformat(), True


def parse_brokerage_date(value: Any, today: Optional[date] = None) -> str:
    """Normalize a brokerage date to YYYY-MM-DD, falling back to today."""
    return parse_brokerage_date_checked(value, today)[0]
