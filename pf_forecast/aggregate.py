"""Per-period bucket totals and the derived buckets computed from them.

Derived buckets are never stored.  They are evaluated through a fixed
two-level graph:

    actual groups -> direct_costs_total -> real_revenue

so there is no generic recursive lookup that could fail to terminate.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from .accounts import DIRECT_COSTS_TOTAL_SLUG, INCOME_SLUG, REAL_REVENUE_SLUG
from .normalize import parse_ym, sort_periods, week_key, weeks_in_month

PeriodTotals = Mapping[str, Mapping[str, float]]

# Chart-of-accounts groups feeding the forecast
MATERIALS = 'materials'
DIRECT_WAGES = 'direct_wages'
DIRECT_SUBS = 'direct_subs'
COGS = 'cogs'
EXPENSE = 'expense'
LOAN_DEBT = 'loan_debt'

DIRECT_COST_GROUPS = (MATERIALS, DIRECT_WAGES, DIRECT_SUBS, COGS)
ACTUAL_GROUPS = (INCOME_SLUG,) + DIRECT_COST_GROUPS + (EXPENSE, LOAN_DEBT)
DERIVED_SLUGS = (DIRECT_COSTS_TOTAL_SLUG, REAL_REVENUE_SLUG)

GROUP_LABELS = {
    INCOME_SLUG: 'Income',
    MATERIALS: 'Materials',
    DIRECT_SUBS: 'Direct Subcontractors',
    DIRECT_WAGES: 'Direct Wages',
    COGS: 'Cost of Goods Sold',
    EXPENSE: 'Operating Expenses',
    LOAN_DEBT: 'Loan/Debt',
}


def _value(totals: Optional[Mapping[str, float]], slug: str) -> float:
    if not totals:
        return 0.0
    value = totals.get(slug, 0.0)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if number == number else 0.0


def direct_costs_total(totals: Optional[Mapping[str, float]]) -> float:
    """Materials + direct wages + direct subcontractors + COGS for one period."""
    return sum(_value(totals, group) for group in DIRECT_COST_GROUPS)


def real_revenue(totals: Optional[Mapping[str, float]]) -> float:
    """Income less direct costs, never below zero."""
    return max(0.0, _value(totals, INCOME_SLUG) - direct_costs_total(totals))


def derived_value(totals: Optional[Mapping[str, float]], slug: str) -> float:
    """Value of ``slug`` for one period, computing derived buckets live."""
    if slug == REAL_REVENUE_SLUG:
        return real_revenue(totals)
    if slug == DIRECT_COSTS_TOTAL_SLUG:
        return direct_costs_total(totals)
    return _value(totals, slug)


def merge_period_totals(*tables: Optional[PeriodTotals]) -> Dict[str, Dict[str, float]]:
    """Add several ``{period: {bucket: amount}}`` tables together."""
    merged: Dict[str, Dict[str, float]] = {}
    for table in tables:
        for period, buckets in (table or {}).items():
            target = merged.setdefault(period, {})
            for slug in buckets or {}:
                target[slug] = target.get(slug, 0.0) + _value(buckets, slug)
    return merged


def aggregate(
    per_totals: PeriodTotals,
    periods: Optional[Sequence[str]] = None,
    buckets: Optional[Iterable[str]] = None,
) -> Dict[str, Dict[str, float]]:
    """Period table with every actual group plus the derived buckets filled in."""
    keys = list(periods) if periods is not None else sort_periods(per_totals.keys())
    extra = set()
    for period in keys:
        extra.update((per_totals.get(period) or {}).keys())
    slugs: List[str] = list(ACTUAL_GROUPS)
    slugs += sorted(extra.union(buckets or ()) - set(ACTUAL_GROUPS) - set(DERIVED_SLUGS))

    table: Dict[str, Dict[str, float]] = {}
    for period in keys:
        totals = per_totals.get(period) or {}
        row = {slug: _value(totals, slug) for slug in slugs}
        row[DIRECT_COSTS_TOTAL_SLUG] = direct_costs_total(totals)
        row[REAL_REVENUE_SLUG] = real_revenue(totals)
        table[period] = row
    return table


def aggregate_table(
    per_totals: PeriodTotals,
    periods: Optional[Sequence[str]] = None,
    buckets: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """:func:`aggregate` as a DataFrame indexed by period."""
    table = aggregate(per_totals, periods, buckets)
    frame = pd.DataFrame.from_dict(table, orient='index')
    frame.index.name = 'Period'
    return frame.fillna(0.0)


def estimate_weekly_balance(
    ending_balance: float,
    net_movement: float,
    week_index: int,
    weeks_in_month_count: int,
) -> float:
    """Linear estimate of a balance partway through a month.

    Assumes the month's net movement is spread evenly over its weeks:
    ``(ending - net) + net * min(week_index + 1, weeks) / weeks``.
    """
    if weeks_in_month_count <= 0:
        return float(ending_balance)
    progress = min(week_index + 1, weeks_in_month_count) / weeks_in_month_count
    if progress >= 1:
        return float(ending_balance)
    start = float(ending_balance) - float(net_movement)
    return start + float(net_movement) * progress


def _actual_weekly_estimates(
    balances: PeriodTotals,
    activity: PeriodTotals,
    slug: str,
    months: Sequence[str],
) -> Dict[str, float]:
    estimates: Dict[str, float] = {}
    for ym in months:
        year, month = parse_ym(ym)
        mondays = weeks_in_month(year, month)
        ending = _value(balances.get(ym), slug)
        net = _value(activity.get(ym), slug)
        for idx, monday in enumerate(mondays):
            estimates[week_key(monday)] = estimate_weekly_balance(ending, net, idx, len(mondays))
    return estimates


def weekly_estimates(
    balances: PeriodTotals,
    activity: PeriodTotals,
    slug: str,
    months: Optional[Sequence[str]] = None,
) -> Dict[str, float]:
    """Estimated weekly balances for ``slug`` across the given months.

    ``balances`` and ``activity`` are ``{YYYY-MM: {slug: amount}}`` tables of
    month-end balances and net monthly movement.  Derived buckets are built
    from the weekly estimates of the groups they depend on.
    """
    month_keys = list(months) if months is not None else sort_periods(set(balances) | set(activity))
    if slug not in DERIVED_SLUGS:
        return _actual_weekly_estimates(balances, activity, slug, month_keys)

    groups = (INCOME_SLUG,) + DIRECT_COST_GROUPS
    per_group = {
        group: _actual_weekly_estimates(balances, activity, group, month_keys) for group in groups
    }
    weeks = per_group[INCOME_SLUG].keys()
    return {
        key: derived_value({group: per_group[group].get(key, 0.0) for group in groups}, slug)
        for key in weeks
    }
