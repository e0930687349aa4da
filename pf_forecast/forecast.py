"""Allocation roll-forward: bucket balances walked period by period.

Each period, real revenue (income less direct costs, never negative) is
split across the allocation buckets by percentage.  The operating bucket
also pays every cost and expense of the period.  A bucket's ending balance
becomes its beginning balance for the next period.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from . import config
from .accounts import OPERATING_SLUG, REAL_REVENUE_SLUG
from .aggregate import DIRECT_COST_GROUPS, EXPENSE, LOAN_DEBT, PeriodTotals, real_revenue
from .defaults import get_forecast_config

logger = logging.getLogger(__name__)

OPERATING_OUTFLOW_GROUPS = DIRECT_COST_GROUPS + (EXPENSE, LOAN_DEBT)


@dataclass(frozen=True)
class BalanceSnapshot:
    begin: float
    inflows: float
    outflows: float
    end: float


@dataclass
class ForecastResult:
    """Roll-forward output for every bucket across the requested periods."""
    periods: List[str]
    buckets: List[str]
    real_revenue: Dict[str, float] = field(default_factory=dict)
    allocations: Dict[str, Dict[str, float]] = field(default_factory=dict)
    snapshots: Dict[str, Dict[str, BalanceSnapshot]] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def series(self, slug: str) -> List[BalanceSnapshot]:
        """Ordered snapshots for one bucket."""
        return [self.snapshots[period][slug] for period in self.periods]

    def ending_balances(self, period: Optional[str] = None) -> Dict[str, float]:
        if not self.periods:
            return {}
        key = period or self.periods[-1]
        return {slug: snap.end for slug, snap in self.snapshots[key].items()}

    def to_frame(self) -> pd.DataFrame:
        """Real revenue and each bucket's ending balance, one row per period."""
        rows = []
        for period in self.periods:
            row = {'Period': period, REAL_REVENUE_SLUG: self.real_revenue.get(period, 0.0)}
            row.update({slug: self.snapshots[period][slug].end for slug in self.buckets})
            rows.append(row)
        frame = pd.DataFrame(rows, columns=['Period', REAL_REVENUE_SLUG] + self.buckets)
        return frame.set_index('Period')

    def snapshot_frame(self) -> pd.DataFrame:
        """Long table of begin/inflows/outflows/end per period and bucket."""
        rows = [
            {
                'Period': period,
                'Bucket': slug,
                'Begin': snap.begin,
                'Inflows': snap.inflows,
                'Outflows': snap.outflows,
                'End': snap.end,
            }
            for period in self.periods
            for slug, snap in self.snapshots[period].items()
        ]
        return pd.DataFrame(rows, columns=['Period', 'Bucket', 'Begin', 'Inflows', 'Outflows', 'End'])


def _finite(value: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def default_allocations() -> Dict[str, float]:
    return dict(get_forecast_config()['default_allocations'])


def allocation_total(allocations: Mapping[str, float]) -> float:
    return sum(_finite(pct) for pct in allocations.values())


def allocations_balanced(allocations: Mapping[str, float], epsilon: float = config.ALLOCATION_EPSILON) -> bool:
    """True when the percentages sum to 1.0 within ``epsilon``."""
    return abs(allocation_total(allocations) - 1.0) <= epsilon


def allocation_warning(allocations: Mapping[str, float]) -> Optional[str]:
    if allocations_balanced(allocations):
        return None
    return f"Allocations total {allocation_total(allocations) * 100:.1f}% instead of 100%."


def allocations_as_of(targets: Iterable, as_of: Optional[date] = None) -> Dict[str, float]:
    """Allocation mix in effect on ``as_of``: the latest effective date not after it.

    ``targets`` are records with ``slug``, ``effective_date`` and ``pct``.
    With no ``as_of`` the latest effective date overall is used.
    """
    targets = list(targets)
    dates = sorted({t.effective_date for t in targets if as_of is None or t.effective_date <= as_of})
    if not dates:
        return {}
    effective = dates[-1]
    return {t.slug: float(t.pct) for t in targets if t.effective_date == effective}


def operating_outflow(totals: Optional[Mapping[str, float]]) -> float:
    if not totals:
        return 0.0
    return sum(_finite(totals.get(group, 0.0)) for group in OPERATING_OUTFLOW_GROUPS)


def run_forecast(
    per_totals: PeriodTotals,
    periods: Sequence[str],
    allocations: Mapping[str, float],
    start_balances: Optional[Mapping[str, float]] = None,
) -> ForecastResult:
    """Walk ``periods`` in order and roll every bucket forward.

    Args:
        per_totals: ``{period: {group_or_slug: amount}}``; missing periods count as zero.
        periods: period keys in calendar order.
        allocations: ``{slug: fraction of real revenue}``.  Not normalized.
        start_balances: opening balance per bucket (default 0).

    Amounts keyed by a bucket slug rather than a ledger group are draws on
    that bucket whatever the line's kind; money only enters a bucket
    through its share of real revenue.
    """
    start_balances = start_balances or {}
    buckets: List[str] = [OPERATING_SLUG]
    for slug in list(allocations) + list(start_balances):
        if slug not in buckets:
            buckets.append(slug)

    result = ForecastResult(periods=list(periods), buckets=buckets)
    warning = allocation_warning(allocations)
    if warning:
        result.warnings.append(warning)
        logger.warning(warning)

    balances = {slug: _finite(start_balances.get(slug, 0.0)) for slug in buckets}
    for period in periods:
        totals = per_totals.get(period) or {}
        revenue = _finite(real_revenue(totals))
        result.real_revenue[period] = revenue
        result.allocations[period] = {
            slug: _finite(revenue * _finite(allocations.get(slug, 0.0))) for slug in buckets
        }

        period_snaps: Dict[str, BalanceSnapshot] = {}
        for slug in buckets:
            begin = balances[slug]
            inflows = result.allocations[period][slug]
            if slug == OPERATING_SLUG:
                outflows = operating_outflow(totals)
            else:
                # Amounts keyed by the bucket itself are always draws.
                outflows = _finite(totals.get(slug, 0.0))
            end = _finite(begin + inflows - outflows)
            period_snaps[slug] = BalanceSnapshot(begin=begin, inflows=inflows, outflows=outflows, end=end)
            balances[slug] = end
        result.snapshots[period] = period_snaps

    return result
