"""Profit & Loss statement parsing.

Accepts a cash-basis P&L pasted or uploaded as CSV/TSV with account labels
in the first column and one column per month.  Parsing never raises: every
problem is reported through the ``warnings`` list of the returned
:class:`ParsedStatement` and an empty ``rows`` or ``months`` list is the
caller's signal that the import failed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import pandas as pd

from . import config
from .normalize import (
    normalize_month,
    month_sort_key,
    parse_currency,
    select_delimiter,
    split_delimited,
)

logger = logging.getLogger(__name__)

INFLOW = 'inflow'
OUTFLOW = 'outflow'

MIN_MONTH_COLUMNS = 3
GENERIC_PARSE_ERROR = 'Unable to parse statement. Please check the format and try again.'

# Subtotal and summary lines; excluded so nothing is counted twice.
AGGREGATE_ROW_PATTERNS = [
    re.compile(r'^total\b'),
    re.compile(r'(net|gross) (income|profit|loss)'),
    re.compile(r'operating (income|profit)'),
    re.compile(r'^income total$'),
    re.compile(r'^expenses? total$'),
    re.compile(r'^total other (income|expense)'),
    re.compile(r'^total expenses$'),
    re.compile(r'^total operating expenses$'),
]


@dataclass
class ParsedRow:
    name: str
    monthly: Dict[str, float]
    total: float


@dataclass
class ParsedStatement:
    """Normalized statement: ordered month keys, account rows and warnings."""
    months: List[str] = field(default_factory=list)
    rows: List[ParsedRow] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return not self.rows or not self.months

    def error_message(self) -> Optional[str]:
        """Message to show when the parse failed, ``None`` otherwise."""
        if not self.failed:
            return None
        return self.warnings[0] if self.warnings else GENERIC_PARSE_ERROR

    def to_frame(self) -> pd.DataFrame:
        """Rows as a DataFrame indexed by account label with one column per month."""
        if self.failed:
            return pd.DataFrame(columns=self.months + ['Total'])
        frame = pd.DataFrame(
            [[row.monthly.get(ym, 0.0) for ym in self.months] + [row.total] for row in self.rows],
            columns=self.months + ['Total'],
            index=pd.Index([row.name for row in self.rows], name='Account'),
        )
        return frame


def is_aggregate_row(name: str) -> bool:
    normalized = (name or '').strip().lower()
    if not normalized:
        return True
    return any(pattern.search(normalized) for pattern in AGGREGATE_ROW_PATTERNS)


def parse_statement(raw: str) -> ParsedStatement:
    """Parse raw delimited text into months, rows and warnings."""
    result = ParsedStatement()
    trimmed = (raw or '').strip()
    if not trimmed:
        return result

    lines = [ln for ln in re.split(r'\r?\n', trimmed) if ln.strip()]
    if len(lines) < 2:
        result.warnings.append('The uploaded statement does not contain any rows.')
        return result

    header_index = -1
    delimiter = ','
    raw_month_headers: List[str] = []
    month_headers: List[Optional[str]] = []

    for idx, line in enumerate(lines):
        candidate = select_delimiter(line)
        parts = [part.strip() for part in split_delimited(line, candidate)]
        if len(parts) < 2:
            continue
        normalized = [normalize_month(part) for part in parts[1:]]
        if sum(1 for m in normalized if m) >= MIN_MONTH_COLUMNS:
            header_index = idx
            delimiter = candidate
            raw_month_headers = parts[1:]
            month_headers = normalized
            break

    if header_index == -1:
        result.warnings.append(
            'Could not find a header row with monthly columns. '
            'Please ensure the report includes month headings.'
        )
        return result

    if header_index > 0:
        result.warnings.append(f'Skipped {header_index} heading row(s) before the data table.')

    valid_headers = [m for m in month_headers if m]
    dropped = len(raw_month_headers) - len(valid_headers)
    if dropped:
        result.warnings.append(
            f'Skipped {dropped} column(s) because the month could not be understood.'
        )

    months: List[str] = []
    for ym in valid_headers:
        if ym not in months:
            months.append(ym)

    limit = config.MAX_STATEMENT_MONTHS
    if len(months) > limit:
        result.warnings.append(
            f'More than {limit} months detected. Using the most recent {limit}.'
        )
    kept = sorted(months, key=month_sort_key)[-limit:]
    kept_set = set(kept)

    for line in lines[header_index + 1:]:
        parts = split_delimited(line, delimiter)
        name = parts[0].strip() if parts else ''
        if not name:
            continue

        monthly: Dict[str, float] = {}
        for idx, value in enumerate(parts[1:]):
            if idx >= len(month_headers):
                break
            ym = month_headers[idx]
            if not ym or ym not in kept_set:
                continue
            amount = parse_currency(value)
            if amount is None:
                continue
            # Duplicate month columns: first occurrence wins.
            monthly.setdefault(ym, amount)

        if not monthly:
            continue
        if is_aggregate_row(name):
            logger.debug("Excluded aggregate row %r", name)
            continue

        total = sum(monthly.get(ym, 0.0) for ym in kept)
        result.rows.append(ParsedRow(name=name, monthly=monthly, total=total))

    result.months = kept
    if not result.rows:
        result.warnings.append('No account rows with values were detected.')

    logger.info(
        "Parsed statement: %d months, %d rows, %d warnings",
        len(result.months), len(result.rows), len(result.warnings),
    )
    return result


def normalize_value(value: Optional[float], kind: str) -> float:
    """Sign an amount by direction: inflows positive, outflows negative."""
    safe = float(value or 0.0)
    if safe != safe:
        return 0.0
    return -abs(safe) if kind == OUTFLOW else abs(safe)


def row_kind(row: ParsedRow, kinds: Optional[Mapping[str, str]] = None) -> str:
    if kinds and row.name in kinds:
        return kinds[row.name]
    return INFLOW if row.total >= 0 else OUTFLOW


def build_assignment_matrix(
    statement: ParsedStatement,
    assignments: Mapping[str, str],
    kinds: Optional[Mapping[str, str]] = None,
) -> Dict[str, Dict[str, float]]:
    """Sum assigned rows into ``{slug: {month: amount}}``.

    Rows without an assignment are left out.  Each row is signed by its
    direction (explicit in ``kinds`` or inferred from the sign of its total).
    """
    matrix: Dict[str, Dict[str, float]] = {}
    for row in statement.rows:
        slug = assignments.get(row.name)
        if not slug:
            continue
        kind = row_kind(row, kinds)
        bucket = matrix.setdefault(slug, {})
        for ym in statement.months:
            bucket[ym] = bucket.get(ym, 0.0) + normalize_value(row.monthly.get(ym), kind)
    return matrix
