"""Quarterly rollout from the current allocation mix to the target mix.

Rows hold percent strings (``"12.5"``, ``"30"``) because they are edited
directly by users; all arithmetic is done on plain floats and the result
is formatted back to one decimal place.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import config

PercentMap = Dict[str, str]


@dataclass
class RolloutRow:
    quarter: int
    values: PercentMap = field(default_factory=dict)

    def copy(self) -> 'RolloutRow':
        return RolloutRow(quarter=self.quarter, values=dict(self.values))

    def total(self) -> float:
        return sum(percent_to_number(value) for value in self.values.values())


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def format_percent(value: float) -> str:
    """One decimal place, ``.0`` dropped, clamped to 0-100."""
    if value is None or not math.isfinite(value):
        return ''
    rounded = math.floor(clamp_percent(value) * 10 + 0.5) / 10
    if abs(rounded - round(rounded)) < 0.0001:
        return str(int(round(rounded)))
    return f"{rounded:.1f}"


def percent_to_number(value: Optional[str]) -> float:
    if value is None or value == '':
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return clamp_percent(number) if math.isfinite(number) else 0.0


def percent_to_decimal(value: Optional[str]) -> float:
    return percent_to_number(value) / 100


def decimal_to_percent(decimal: Optional[float]) -> str:
    if decimal is None:
        return ''
    return format_percent(float(decimal) * 100)


def generate_rollout_rows(
    current: Mapping[str, float],
    target: Mapping[str, float],
    quarters: int,
    slugs: Sequence[str],
) -> List[RolloutRow]:
    """Straight-line glide from ``current`` to ``target`` (both in percent units).

    Quarter ``q`` gets ``current + (target - current) * q / quarters``, so the
    final quarter lands exactly on the target.
    """
    total = max(1, int(quarters))
    rows: List[RolloutRow] = []
    for idx in range(1, total + 1):
        values: PercentMap = {}
        for slug in slugs:
            start = float(current.get(slug, 0.0))
            end = float(target.get(slug, 0.0))
            values[slug] = format_percent(start + (end - start) * idx / total)
        rows.append(RolloutRow(quarter=idx, values=values))
    return rows


def recalc_rollout_rows(
    rows: Sequence[RolloutRow],
    changed_index: int,
    slug: str,
    target: Mapping[str, float],
) -> List[RolloutRow]:
    """Re-interpolate one bucket after the user edits ``rows[changed_index]``.

    Quarters up to and including the edited one are kept.  Later quarters
    glide linearly from the edited value to the target, and the last
    quarter is always pinned to the target.
    """
    updated = [row.copy() for row in rows]
    if not 0 <= changed_index < len(updated):
        return updated
    total = len(updated)
    changed_value = percent_to_number(updated[changed_index].values.get(slug))
    target_value = float(target.get(slug, changed_value))
    remaining = total - (changed_index + 1)
    for idx in range(changed_index + 1, total):
        progress = idx - changed_index
        updated[idx].values[slug] = format_percent(
            changed_value + (target_value - changed_value) * progress / remaining
        )
    updated[-1].values[slug] = format_percent(target_value)
    return updated


def edit_rollout_cell(
    rows: Sequence[RolloutRow],
    quarter_index: int,
    slug: str,
    value: str,
    target: Mapping[str, float],
) -> List[RolloutRow]:
    """Set one cell and propagate the change to later quarters."""
    updated = [row.copy() for row in rows]
    if not 0 <= quarter_index < len(updated):
        return updated
    updated[quarter_index].values[slug] = value
    return recalc_rollout_rows(updated, quarter_index, slug, target)


def rollout_totals(rows: Iterable[RolloutRow]) -> List[float]:
    return [row.total() for row in rows]


def rollout_validity(rows: Iterable[RolloutRow], tolerance: float = config.ROLLOUT_TOLERANCE) -> List[bool]:
    """Whether each quarter's percentages add up to 100."""
    return [abs(total - 100) < tolerance for total in rollout_totals(rows)]


def rollout_has_error(rows: Iterable[RolloutRow]) -> bool:
    return not all(rollout_validity(rows))


def rows_from_steps(
    steps: Iterable[Tuple[int, str, float]],
    slugs: Sequence[str],
) -> List[RolloutRow]:
    """Rebuild rows from stored ``(quarter_index, slug, pct_decimal)`` steps."""
    grouped: Dict[int, PercentMap] = {}
    for quarter, slug, pct in steps:
        grouped.setdefault(int(quarter), {})[slug] = decimal_to_percent(pct)
    rows = []
    for quarter in sorted(grouped):
        values = {slug: grouped[quarter].get(slug, '0') for slug in slugs}
        rows.append(RolloutRow(quarter=quarter, values=values))
    return rows


def rows_to_steps(rows: Iterable[RolloutRow]) -> List[Tuple[int, str, float]]:
    """Flatten rows into ``(quarter_index, slug, pct_decimal)`` steps for storage."""
    return [
        (row.quarter, slug, percent_to_decimal(value))
        for row in rows
        for slug, value in row.values.items()
    ]
