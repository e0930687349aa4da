"""Allocation schedule, tax set-aside and profit distribution helpers."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .defaults import get_config_value

WEEKLY_CADENCE = 'weekly'
SEMI_MONTHLY_CADENCE = 'semi_monthly'
MONTHLY_CADENCE = 'monthly'

TAX_MODE_CALCULATION = 'calculation'
TAX_MODE_FLAT = 'flat'
QUARTERS_PER_YEAR = 4


def ordinal(n: int) -> str:
    suffixes = ['th', 'st', 'nd', 'rd']
    v = n % 100
    if 10 < v < 14:
        return f"{n}th"
    return f"{n}{suffixes[v % 10] if v % 10 < 4 else 'th'}"


def describe_allocation_cadence(settings: Optional[Mapping[str, Any]] = None) -> str:
    """Human readable allocation schedule ("Weekly on Friday", ...)."""
    if settings is None:
        settings = get_config_value('forecast', 'planning', 'allocation_cadence', default={})
    cadence = settings.get('cadence', MONTHLY_CADENCE)
    if cadence == WEEKLY_CADENCE:
        day = str(settings.get('week_day', 'friday'))
        return f"Weekly on {day[:1].upper()}{day[1:]}"
    if cadence == SEMI_MONTHLY_CADENCE:
        days = list(settings.get('semi_monthly_days') or [10, 25])
        first = int(days[0])
        second = int(days[1]) if len(days) > 1 else first
        return f"Semi-monthly on the {ordinal(first)} & {ordinal(second)}"
    return f"Monthly on the {ordinal(int(settings.get('monthly_day', 1)))}"


def quarterly_tax_estimate(
    real_revenue: float,
    mode: str = TAX_MODE_CALCULATION,
    tax_rate: float = 0.0,
    estimated_paid: float = 0.0,
    flat_amount: float = 0.0,
) -> float:
    """Amount to set aside for one quarterly estimate.

    ``calculation`` mode applies ``tax_rate`` (fraction) to the quarter's
    real revenue less any estimate already paid; ``flat`` mode splits an
    annual amount evenly across four quarters.
    """
    if mode == TAX_MODE_FLAT:
        return max(0.0, float(flat_amount or 0.0)) / QUARTERS_PER_YEAR
    return max(0.0, float(real_revenue or 0.0) * float(tax_rate or 0.0) - float(estimated_paid or 0.0))


def tax_summary_label(
    mode: str = TAX_MODE_CALCULATION,
    tax_rate: float = 0.0,
    estimated_paid: float = 0.0,
    flat_amount: float = 0.0,
) -> str:
    if mode == TAX_MODE_FLAT:
        return f"Flat ${float(flat_amount or 0):,.2f} split quarterly"
    return f"Calculated at {float(tax_rate or 0) * 100:.1f}% less ${float(estimated_paid or 0):,.2f} paid"


def profit_distribution(
    profit_balance: float,
    bonus_pct: float = 50.0,
    vault_pct: float = 50.0,
) -> Dict[str, float]:
    """Split a profit bucket balance into owner bonus and vault transfer.

    Percentages are in percent units and are applied to the positive
    balance; whatever they leave unassigned stays in the profit bucket.
    """
    available = max(0.0, float(profit_balance or 0.0))
    bonus = available * max(0.0, float(bonus_pct or 0.0)) / 100
    vault = available * max(0.0, float(vault_pct or 0.0)) / 100
    if bonus + vault > available and bonus + vault > 0:
        scale = available / (bonus + vault)
        bonus *= scale
        vault *= scale
    return {'bonus': bonus, 'vault': vault, 'retained': available - bonus - vault}
