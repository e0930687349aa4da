"""Currency, date and period-key normalization helpers.

Statement exports arrive with inconsistent month headings and money
formatting.  The helpers in this module coerce those values into the
canonical forms used throughout the package:

* money strings become floats (``"(1,234.50)"`` -> ``-1234.5``)
* month headings become ``YYYY-MM`` keys
* dates become monthly (``YYYY-MM``) or weekly
  (``YYYY-MM-DD — YYYY-MM-DD``, Monday anchored) period keys
"""

from __future__ import annotations

import calendar
import csv
import re
from datetime import date, datetime, timedelta
from typing import Any, List, Optional, Tuple

from dateutil import parser as dup
from dateutil.relativedelta import relativedelta

MONTHLY = 'monthly'
WEEKLY = 'weekly'
GRANULARITIES = {MONTHLY, WEEKLY}

WEEK_SEPARATOR = ' — '
MIN_YEAR = 2000
MAX_YEAR = 2100

_ISO_MONTH_RE = re.compile(r'^(\d{4})[-/.](\d{1,2})$')
_AMOUNT_RE = re.compile(r'^\(?[-+]?\$?[\d,]*\.?\d*\)?-?$')
# Headings without a year fall back to 1900 and are rejected.
_DEFAULT_DATE = datetime(1900, 1, 1)


def parse_currency(value: Any) -> Optional[float]:
    """Convert a currency-like cell into a float.

    Blank cells count as zero.  Parenthesized values and values with a
    trailing hyphen are negative.  Returns ``None`` when the text is not a
    number at all so the caller can skip the cell.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if number == number and abs(number) != float('inf') else None
    raw = str(value).strip()
    if not raw:
        return 0.0
    negative_by_parens = raw.startswith('(') and raw.endswith(')')
    negative_by_suffix = raw.endswith('-')
    cleaned = re.sub(r'[\s,$]', '', raw).replace('(', '').replace(')', '')
    if negative_by_suffix:
        cleaned = cleaned[:-1]
    if cleaned in ('', '-', '.'):
        return 0.0
    try:
        number = float(cleaned)
    except ValueError:
        return None
    if number != number or abs(number) == float('inf'):
        return None
    if negative_by_parens or negative_by_suffix:
        number = -abs(number)
    return number


def normalize_month(value: Any) -> Optional[str]:
    """Normalize a month heading into a ``YYYY-MM`` key.

    Accepts ``YYYY-MM``, ``YYYY/MM`` and ``YYYY.MM`` as well as anything
    dateutil can read (``Jan 2024``, ``2024-01-31``, ``1/31/2024``).  Years
    outside 2000-2100 are rejected.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    match = _ISO_MONTH_RE.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if 1 <= month <= 12 and MIN_YEAR <= year <= MAX_YEAR:
            return f"{year:04d}-{month:02d}"

    # Bare amounts are never month headings.
    if _AMOUNT_RE.match(text):
        return None

    try:
        parsed = dup.parse(text, default=_DEFAULT_DATE)
    except (ValueError, OverflowError):
        return None
    if MIN_YEAR <= parsed.year <= MAX_YEAR:
        return f"{parsed.year:04d}-{parsed.month:02d}"
    return None


def parse_date(value: Any) -> Optional[date]:
    """Parse a date-ish value, returning ``None`` when it cannot be read."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if hasattr(value, 'to_pydatetime'):
        return value.to_pydatetime().date()
    try:
        return dup.parse(str(value).strip()).date()
    except (ValueError, OverflowError):
        return None


def parse_ym(ym: str) -> Tuple[int, int]:
    year, month = ym.split('-')[:2]
    return int(year), int(month)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_start(ym: str) -> date:
    year, month = parse_ym(ym)
    return date(year, month, 1)


def month_end(ym: str) -> date:
    year, month = parse_ym(ym)
    return date(year, month, calendar.monthrange(year, month)[1])


def month_sort_key(ym: str) -> int:
    year, month = parse_ym(ym)
    return year * 12 + (month - 1)


def week_start(d: date) -> date:
    """Monday of the Monday-Sunday week containing ``d``."""
    return d - timedelta(days=d.weekday())


def week_key(d: date) -> str:
    monday = week_start(d)
    sunday = monday + timedelta(days=6)
    return f"{monday.isoformat()}{WEEK_SEPARATOR}{sunday.isoformat()}"


def is_week_key(key: str) -> bool:
    return WEEK_SEPARATOR in key


def week_key_start(key: str) -> date:
    return date.fromisoformat(key.split(WEEK_SEPARATOR)[0].strip())


def period_key(d: date, granularity: str = MONTHLY) -> str:
    """Key of the monthly or weekly period containing ``d``."""
    if granularity == WEEKLY:
        return week_key(d)
    return month_key(d)


def period_sort_key(key: str) -> int:
    """Calendar ordering for monthly and weekly period keys."""
    if is_week_key(key):
        return week_key_start(key).toordinal()
    return month_sort_key(key)


def sort_periods(keys) -> List[str]:
    return sorted(keys, key=period_sort_key)


def build_future_months(last_ym: str, count: int) -> List[str]:
    """Month keys for the ``count`` months after ``last_ym``."""
    start = month_start(last_ym)
    return [month_key(start + relativedelta(months=i)) for i in range(1, count + 1)]


def weeks_in_month(year: int, month: int) -> List[date]:
    """Mondays that fall inside the given calendar month.

    Each Monday anchors one weekly period; a week belongs to the month its
    Monday falls in.
    """
    first = date(year, month, 1)
    monday = first + timedelta(days=(7 - first.weekday()) % 7)
    mondays = []
    while monday.month == month:
        mondays.append(monday)
        monday += timedelta(days=7)
    return mondays


def window_bounds(start_ym: str, months: int) -> Tuple[date, date]:
    """First and last day of the ``months``-month window starting at ``start_ym``."""
    start = month_start(start_ym)
    last_month = start + relativedelta(months=max(1, months) - 1)
    return start, month_end(month_key(last_month))


def build_periods(granularity: str, start_ym: str, months: int) -> List[str]:
    """Ordered period keys covering ``months`` calendar months from ``start_ym``.

    Weekly grids include every Monday-Sunday week that overlaps the window,
    so the first week may begin in the month before ``start_ym``.
    """
    if months <= 0:
        return []
    start, end = window_bounds(start_ym, months)
    if granularity != WEEKLY:
        return [month_key(start + relativedelta(months=i)) for i in range(months)]
    periods: List[str] = []
    monday = week_start(start)
    while monday <= end:
        periods.append(week_key(monday))
        monday += timedelta(days=7)
    return periods


def split_delimited(line: str, delimiter: str) -> List[str]:
    """Fields of one delimited line; quoted fields may contain the delimiter."""
    return next(csv.reader([line], delimiter=delimiter), None) or ['']


def select_delimiter(line: str) -> str:
    """Pick tab when it splits the line into more fields than comma does."""
    tab = len(split_delimited(line, '\t'))
    return '\t' if tab > len(split_delimited(line, ',')) else ','
