"""Typed rows read from the external store.

Each store view gets its own record type with required fields.  Rows that
are missing fields or carry unreadable values raise :class:`RecordError`
from ``from_mapping``; :func:`coerce_records` catches that at the boundary,
logs the row and skips it so loosely typed data never reaches the engine.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar, Union

import pandas as pd

from .errors import RecordError
from .normalize import month_key, parse_currency, parse_date
from .recurrence import CADENCES, Escalation, ProjectionLine

logger = logging.getLogger(__name__)

_YM_RE = re.compile(r'^\d{4}-\d{2}$')
KINDS = {'inflow', 'outflow'}
LINE_KINDS = {'income': 'inflow', 'expense': 'outflow', 'inflow': 'inflow', 'outflow': 'outflow'}

T = TypeVar('T')


def _present(value: Any) -> bool:
    """False for ``None``, blank strings and NaN (pandas' NULL in numeric columns)."""
    if value is None:
        return False
    if isinstance(value, float) and value != value:
        return False
    return not (isinstance(value, str) and not value.strip())


def _required(row: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        value = row.get(name)
        if _present(value):
            return value
    raise RecordError(f"missing {names[0]!r}")


def _optional_int(row: Mapping[str, Any], name: str, default: int) -> int:
    value = row.get(name)
    if not _present(value):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise RecordError(f"bad {name} {value!r}") from None


def _ym(value: Any) -> str:
    text = str(value).strip()
    if not _YM_RE.match(text):
        raise RecordError(f"bad period {value!r}")
    month = int(text[5:7])
    if not 1 <= month <= 12:
        raise RecordError(f"bad period {value!r}")
    return text


def _amount(value: Any, name: str) -> float:
    number = parse_currency(value)
    if number is None:
        raise RecordError(f"bad {name} {value!r}")
    return number


def _date(value: Any, name: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise RecordError(f"bad {name} {value!r}")
    return parsed


@dataclass(frozen=True)
class ActivityRow:
    """Net movement of one bucket in one month."""
    ym: str
    slug: str
    net_amount: float

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> 'ActivityRow':
        return cls(
            ym=_ym(_required(row, 'ym')),
            slug=str(_required(row, 'pf_slug', 'slug')).strip(),
            net_amount=_amount(_required(row, 'net_amount'), 'net_amount'),
        )


@dataclass(frozen=True)
class BalanceRow:
    """Ending balance of one bucket at the end of one month."""
    ym: str
    slug: str
    ending_balance: float

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> 'BalanceRow':
        return cls(
            ym=_ym(_required(row, 'ym')),
            slug=str(_required(row, 'pf_slug', 'slug')).strip(),
            ending_balance=_amount(_required(row, 'ending_balance'), 'ending_balance'),
        )


@dataclass(frozen=True)
class OccurrenceRow:
    """One projected occurrence as stored for drill-down."""
    month_start: date
    coa_account_id: str
    kind: str
    name: str
    amount: float

    @property
    def ym(self) -> str:
        return month_key(self.month_start)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> 'OccurrenceRow':
        kind = str(_required(row, 'kind')).strip().lower()
        if kind not in KINDS:
            raise RecordError(f"bad kind {kind!r}")
        return cls(
            month_start=_date(_required(row, 'month_start'), 'month_start'),
            coa_account_id=str(_required(row, 'coa_account_id')),
            kind=kind,
            name=str(row.get('name') or ''),
            amount=_amount(_required(row, 'amount'), 'amount'),
        )


@dataclass(frozen=True)
class AllocationTarget:
    slug: str
    effective_date: date
    pct: float

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> 'AllocationTarget':
        pct = _amount(_required(row, 'pct'), 'pct')
        if pct < 0:
            raise RecordError(f"negative pct {pct!r}")
        # Percent-input form (e.g. 30 for 30%) is stored as a fraction.
        if pct > 1:
            pct = pct / 100
        return cls(
            slug=str(_required(row, 'pf_slug', 'slug')).strip(),
            effective_date=_date(_required(row, 'effective_date'), 'effective_date'),
            pct=pct,
        )


@dataclass(frozen=True)
class CoaMapping:
    coa_account_id: str
    slug: str

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> 'CoaMapping':
        return cls(
            coa_account_id=str(_required(row, 'coa_account_id')),
            slug=str(_required(row, 'pf_slug', 'slug')).strip(),
        )


def projection_line_from_mapping(row: Mapping[str, Any]) -> ProjectionLine:
    """Build a :class:`ProjectionLine` from a stored line joined with its account group."""
    cadence = str(_required(row, 'recurrence', 'cadence')).strip().lower()
    if cadence not in CADENCES:
        raise RecordError(f"unknown cadence {cadence!r}")
    kind = LINE_KINDS.get(str(row.get('kind') or 'income').strip().lower())
    if kind is None:
        raise RecordError(f"bad kind {row.get('kind')!r}")
    end_raw = row.get('end_date')
    end_date = _date(end_raw, 'end_date') if _present(end_raw) else None
    every_n = _optional_int(row, 'every_n', 1)

    escalation = None
    increase = row.get('increase_pct')
    if _present(increase):
        interval = row.get('increase_interval')
        escalation = Escalation(
            pct=_amount(increase, 'increase_pct'),
            interval=str(interval).strip().lower() if _present(interval) else 'months',
            every=_optional_int(row, 'increase_every', 12),
        )

    return ProjectionLine(
        bucket=str(_required(row, 'group_key', 'pf_slug', 'bucket')).strip(),
        amount=_amount(_required(row, 'amount'), 'amount'),
        start_date=_date(_required(row, 'start_date'), 'start_date'),
        cadence=cadence,
        every_n=max(1, every_n),
        end_date=end_date,
        kind=kind,
        name=str(row.get('name') or ''),
        escalation=escalation,
    )


RowSource = Union[pd.DataFrame, Iterable[Mapping[str, Any]], None]


def _iter_rows(rows: RowSource) -> Iterable[Mapping[str, Any]]:
    if rows is None:
        return []
    if isinstance(rows, pd.DataFrame):
        return rows.to_dict('records')
    return rows


def coerce_records(rows: RowSource, build: Callable[[Mapping[str, Any]], T]) -> Tuple[List[T], int]:
    """Convert raw rows with ``build``, skipping (and logging) malformed ones.

    Returns the records and the number of rows skipped.
    """
    records: List[T] = []
    skipped = 0
    for row in _iter_rows(rows):
        try:
            records.append(build(row))
        except RecordError as exc:
            skipped += 1
            logger.warning("Skipping malformed row %r: %s", dict(row), exc)
    return records, skipped


def pivot(records: Iterable[Any], value_attr: str) -> Dict[str, Dict[str, float]]:
    """``{ym: {slug: value}}`` from activity or balance records."""
    table: Dict[str, Dict[str, float]] = {}
    for record in records:
        bucket = table.setdefault(record.ym, {})
        bucket[record.slug] = bucket.get(record.slug, 0.0) + float(getattr(record, value_attr))
    return table


def occurrences_for(
    occurrences: Iterable[OccurrenceRow],
    mappings: Iterable[CoaMapping],
    slug: str,
    ym: Optional[str] = None,
) -> List[OccurrenceRow]:
    """Occurrences whose ledger account maps to ``slug`` (optionally within one month)."""
    accounts = {m.coa_account_id for m in mappings if m.slug == slug}
    return [
        occ for occ in occurrences
        if occ.coa_account_id in accounts and (ym is None or occ.ym == ym)
    ]
