"""Expansion of recurring projection lines into dated occurrences.

A projection line ("Monthly retainer, $4,000, every month from March") is
turned into the concrete occurrence dates that fall inside a forecast
window, and each occurrence is added to the monthly or weekly period that
contains it.  The expander does not know what a bucket means; each line
already carries the bucket its amounts are attributed to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from dateutil.relativedelta import relativedelta

from . import config
from .normalize import (
    MONTHLY,
    WEEKLY,
    build_periods,
    period_key,
    sort_periods,
    window_bounds,
)

logger = logging.getLogger(__name__)

ONE_OFF = 'one_off'
CUSTOM_CADENCE = 'custom'

# cadence -> (unit, length of one step in that unit)
CADENCE_STEPS: Dict[str, tuple] = {
    'daily': ('days', 1),
    'weekly': ('days', 7),
    'biweekly': ('days', 14),
    'monthly': ('months', 1),
    'quarterly': ('months', 3),
    'semiannual': ('months', 6),
    'annual': ('months', 12),
}
CADENCES = {ONE_OFF, CUSTOM_CADENCE, *CADENCE_STEPS}

ESCALATION_INTERVALS = {'weeks', 'months'}


@dataclass(frozen=True)
class Escalation:
    """Compounding increase: ``pct`` (fraction) every ``every`` weeks or months."""
    pct: float
    interval: str = 'months'
    every: int = 12

    def factor(self, start: date, when: date) -> float:
        if self.interval not in ESCALATION_INTERVALS or self.every <= 0 or when <= start:
            return 1.0
        if self.interval == 'weeks':
            elapsed = (when - start).days // 7
        else:
            delta = relativedelta(when, start)
            elapsed = delta.years * 12 + delta.months
        return (1.0 + self.pct) ** (elapsed // self.every)


@dataclass(frozen=True)
class ProjectionLine:
    """A recurring or one-off projected transaction attributed to one bucket."""
    bucket: str
    amount: float
    start_date: date
    cadence: str = 'monthly'
    every_n: int = 1
    end_date: Optional[date] = None
    kind: str = 'inflow'
    name: str = ''
    escalation: Optional[Escalation] = None

    @property
    def step(self) -> int:
        return self.every_n if self.every_n and self.every_n > 0 else 1

    def amount_on(self, when: date) -> float:
        if self.escalation is None:
            return float(self.amount)
        return float(self.amount) * self.escalation.factor(self.start_date, when)


@dataclass(frozen=True)
class Occurrence:
    when: date
    period: str
    bucket: str
    amount: float
    name: str = ''
    kind: str = 'inflow'


@dataclass
class ExpansionResult:
    """Per-period per-bucket totals plus the occurrences behind them."""
    periods: List[str]
    totals: Dict[str, Dict[str, float]] = field(default_factory=dict)
    occurrences: List[Occurrence] = field(default_factory=list)
    truncated: List[str] = field(default_factory=list)

    def add(self, occurrence: Occurrence) -> None:
        bucket_totals = self.totals.setdefault(occurrence.period, {})
        bucket_totals[occurrence.bucket] = bucket_totals.get(occurrence.bucket, 0.0) + occurrence.amount
        self.occurrences.append(occurrence)

    def to_frame(self) -> pd.DataFrame:
        """Periods (calendar order) by buckets, zero filled."""
        keys = sort_periods(set(self.periods) | set(self.totals))
        frame = pd.DataFrame.from_dict(
            {key: self.totals.get(key, {}) for key in keys}, orient='index'
        )
        return frame.reindex(keys).fillna(0.0)


def _nth(start: date, unit: str, length: int, k: int) -> date:
    if unit == 'days':
        return start + timedelta(days=length * k)
    # Offsets from the start date avoid day-of-month drift (Jan 31 -> Feb 28 -> Mar 31).
    return start + relativedelta(months=length * k)


def _first_index(start: date, window_start: date, unit: str, length: int) -> int:
    """Index of the first occurrence on or after ``window_start``."""
    if start >= window_start:
        return 0
    if unit == 'days':
        gap = (window_start - start).days
        return -(-gap // length)
    months = (window_start.year - start.year) * 12 + (window_start.month - start.month)
    k = max(0, months // length - 1)
    while _nth(start, unit, length, k) < window_start:
        k += 1
    return k


def occurrence_dates(
    line: ProjectionLine,
    window_start: date,
    window_end: date,
    guard: Optional[int] = None,
) -> Tuple[List[date], bool]:
    """Occurrence dates of ``line`` inside ``[window_start, window_end]``.

    Returns the dates and whether the iteration cap cut the list short.
    """
    guard = config.EXPANSION_GUARD if guard is None else guard
    if line.cadence == ONE_OFF:
        if window_start <= line.start_date <= window_end:
            return [line.start_date], False
        return [], False

    stop = min(line.end_date, window_end) if line.end_date else window_end
    if line.start_date > stop:
        return [], False

    if line.cadence not in CADENCE_STEPS:
        # Unknown cadences do not advance; emit the first date once.
        logger.warning(
            "Projection line %r has unsupported cadence %r; using its start date only",
            line.name, line.cadence,
        )
        if line.start_date >= window_start:
            return [line.start_date], False
        return [], False

    unit, base = CADENCE_STEPS[line.cadence]
    length = base * line.step
    k = _first_index(line.start_date, window_start, unit, length)
    dates: List[date] = []
    current = _nth(line.start_date, unit, length, k)
    while current <= stop:
        if len(dates) >= guard:
            return dates, True
        dates.append(current)
        k += 1
        current = _nth(line.start_date, unit, length, k)
    return dates, False


def expand_line(
    line: ProjectionLine,
    granularity: str,
    window_start: date,
    window_end: date,
    guard: Optional[int] = None,
) -> Tuple[List[Occurrence], bool]:
    """Occurrences of one line and whether expansion hit the iteration cap."""
    dates, truncated = occurrence_dates(line, window_start, window_end, guard)
    occurrences = [
        Occurrence(
            when=when,
            period=period_key(when, granularity),
            bucket=line.bucket,
            amount=line.amount_on(when),
            name=line.name,
            kind=line.kind,
        )
        for when in dates
    ]
    return occurrences, truncated


def expand(
    lines: Sequence[ProjectionLine],
    granularity: str = MONTHLY,
    start_ym: str = '',
    months: int = 0,
    guard: Optional[int] = None,
) -> ExpansionResult:
    """Expand ``lines`` over ``months`` calendar months starting at ``start_ym``."""
    if granularity not in (MONTHLY, WEEKLY):
        logger.warning("Unknown granularity %r; using monthly", granularity)
        granularity = MONTHLY
    periods = build_periods(granularity, start_ym, months) if start_ym and months > 0 else []
    result = ExpansionResult(periods=periods)
    for key in periods:
        result.totals.setdefault(key, {})
    if not periods:
        return result

    window_start, window_end = window_bounds(start_ym, months)
    for line in lines:
        occurrences, truncated = expand_line(line, granularity, window_start, window_end, guard)
        for occurrence in occurrences:
            result.add(occurrence)
        if truncated:
            label = line.name or line.bucket
            result.truncated.append(label)
            logger.warning(
                "Stopped expanding %r after %d occurrences; later dates in the window are missing",
                label, config.EXPANSION_GUARD if guard is None else guard,
            )
    return result
