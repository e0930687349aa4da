"""Glue between the store and the forecast engine.

:class:`ForecastService` reads typed records from an injected store,
hands plain tables to the engine modules and writes user changes back.
Everything below it is pure computation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from . import config
from .accounts import (
    Account,
    allocation_accounts,
    build_default_accounts,
    build_display_accounts,
    create_custom_account,
    default_slug_for,
    merge_account_lists,
    suggest_account_slug,
)
from .aggregate import aggregate, weekly_estimates
from .db import SQLiteStore
from .defaults import get_config_value
from .forecast import ForecastResult, allocations_as_of, default_allocations, run_forecast
from .normalize import MONTHLY, month_key, month_start, sort_periods
from .records import OccurrenceRow, occurrences_for, pivot
from .recurrence import ExpansionResult, expand
from .rollout import (
    RolloutRow,
    generate_rollout_rows,
    rollout_has_error,
    rows_from_steps,
    rows_to_steps,
)
from .statement import ParsedStatement, build_assignment_matrix, parse_statement, row_kind
from .trend import project_matrix

logger = logging.getLogger(__name__)


@dataclass
class StatementImport:
    """A parsed statement with a suggested bucket for each row."""
    statement: ParsedStatement
    suggestions: Dict[str, Optional[str]] = field(default_factory=dict)
    kinds: Dict[str, str] = field(default_factory=dict)

    def matrix(self, assignments: Optional[Mapping[str, str]] = None) -> Dict[str, Dict[str, float]]:
        chosen = dict(self.suggestions)
        chosen.update(assignments or {})
        return build_assignment_matrix(
            self.statement, {k: v for k, v in chosen.items() if v}, self.kinds
        )

    def projection(
        self,
        future_count: int = config.PROJECTION_MONTHS,
        assignments: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[Tuple[str, str], float]] = None,
    ) -> Dict[str, Dict[str, float]]:
        return project_matrix(self.matrix(assignments), self.statement.months, future_count, overrides)


def import_statement(raw: str, catalog: Optional[Sequence[Account]] = None) -> StatementImport:
    """Parse pasted statement text and suggest a bucket for every row."""
    statement = parse_statement(raw)
    options = merge_account_lists(build_default_accounts(), catalog or [])
    result = StatementImport(statement=statement)
    for row in statement.rows:
        kind = row_kind(row)
        result.kinds[row.name] = kind
        result.suggestions[row.name] = (
            suggest_account_slug(row.name, kind, options) or default_slug_for(kind, options)
        )
    return result


class ForecastService:
    """Client-level forecast operations over an injected store."""

    def __init__(self, store: SQLiteStore):
        self.store = store

    # ---------------- buckets ----------------
    def accounts(self, client_id: str) -> List[Account]:
        return build_display_accounts(self.store.fetch_accounts(client_id))

    def add_custom_account(self, client_id: str, name: str, color: Optional[str] = None) -> Account:
        account = create_custom_account(name, self.accounts(client_id), color)
        self.store.upsert_account(client_id, account)
        logger.info("Created custom bucket %s for client %s", account.slug, client_id)
        return account

    # ---------------- allocations ----------------
    def allocations(self, client_id: str, as_of: Optional[date] = None) -> Dict[str, float]:
        """Allocation mix in effect on ``as_of``, or the default mix if none is stored."""
        mix = allocations_as_of(self.store.fetch_allocation_targets(client_id), as_of)
        if not mix:
            return default_allocations()
        return mix

    def save_allocations(
        self,
        client_id: str,
        allocations: Mapping[str, float],
        effective_date: Optional[date] = None,
    ) -> None:
        self.store.save_allocation_targets(client_id, effective_date or date.today(), allocations)

    # ---------------- projections ----------------
    def projections(
        self,
        client_id: str,
        start_ym: str,
        months: int = config.DEFAULT_HORIZON_MONTHS,
        granularity: str = MONTHLY,
    ) -> ExpansionResult:
        lines = self.store.fetch_projection_lines(client_id)
        return expand(lines, granularity, start_ym, months)

    def actual_totals(
        self,
        client_id: str,
        start_ym: Optional[str] = None,
        end_ym: Optional[str] = None,
    ) -> Dict[str, Dict[str, float]]:
        return pivot(self.store.fetch_monthly_activity(client_id, start_ym, end_ym), 'net_amount')

    def period_table(
        self,
        client_id: str,
        start_ym: str,
        months: int = config.DEFAULT_HORIZON_MONTHS,
        granularity: str = MONTHLY,
    ) -> Tuple[Dict[str, Dict[str, float]], ExpansionResult]:
        """Per-period group totals from the client's projection lines.

        Recorded activity is kept per bucket, not per ledger group, so it
        never enters this table; recorded history reaches the forecast only
        through :meth:`opening_balances`.
        """
        expansion = self.projections(client_id, start_ym, months, granularity)
        return aggregate(expansion.totals, expansion.periods), expansion

    def opening_balances(self, client_id: str, start_ym: str) -> Dict[str, float]:
        """Latest recorded ending balance per bucket before ``start_ym``."""
        balances: Dict[str, float] = {}
        for row in self.store.fetch_monthly_balances(client_id):
            if row.ym < start_ym:
                balances[row.slug] = row.ending_balance
        return balances

    def run(
        self,
        client_id: str,
        start_ym: Optional[str] = None,
        months: int = config.DEFAULT_HORIZON_MONTHS,
        granularity: str = MONTHLY,
        allocations: Optional[Mapping[str, float]] = None,
    ) -> ForecastResult:
        """Roll every allocation bucket forward from the client's stored data."""
        start_ym = start_ym or month_key(date.today())
        per_totals, expansion = self.period_table(client_id, start_ym, months, granularity)
        mix = dict(allocations) if allocations is not None else self.allocations(client_id, month_start(start_ym))
        slugs = {acc.slug for acc in allocation_accounts(self.accounts(client_id))}
        missing = sorted(slug for slug in mix if slug not in slugs)
        if missing:
            logger.info("Allocation mix names buckets outside the catalog: %s", ', '.join(missing))

        result = run_forecast(per_totals, expansion.periods, mix, self.opening_balances(client_id, start_ym))
        for label in expansion.truncated:
            result.warnings.append(f"Projection line {label!r} hit the expansion limit; later dates are missing.")
        return result

    def weekly_balances(self, client_id: str, slug: str, months: Sequence[str]) -> Dict[str, float]:
        """Estimated weekly balances of ``slug`` from recorded month-end data."""
        months = sort_periods(months)
        if not months:
            return {}
        balances = pivot(self.store.fetch_monthly_balances(client_id, months[0], months[-1]), 'ending_balance')
        activity = self.actual_totals(client_id, months[0], months[-1])
        return weekly_estimates(balances, activity, slug, months)

    def drill_down(self, client_id: str, slug: str, ym: Optional[str] = None) -> List[OccurrenceRow]:
        return occurrences_for(
            self.store.fetch_occurrences(client_id), self.store.fetch_coa_map(client_id), slug, ym
        )

    # ---------------- rollout ----------------
    def rollout(
        self,
        client_id: str,
        target: Mapping[str, float],
        quarters: Optional[int] = None,
    ) -> List[RolloutRow]:
        """Stored rollout plan, or a fresh glide from the current mix to ``target``.

        ``target`` is in percent units like the rows themselves.
        """
        slugs = [acc.slug for acc in allocation_accounts(self.accounts(client_id))]
        stored = self.store.fetch_rollout_steps(client_id)
        if stored:
            return rows_from_steps(stored, slugs)
        quarters = quarters or int(get_config_value('forecast', 'rollout', 'default_quarters', default=4))
        current = {slug: pct * 100 for slug, pct in self.allocations(client_id).items()}
        return generate_rollout_rows(current, target, quarters, slugs)

    def save_rollout(self, client_id: str, rows: Sequence[RolloutRow]) -> int:
        if rollout_has_error(rows):
            logger.warning("Saving rollout for client %s with quarters that do not total 100%%", client_id)
        return self.store.save_rollout_steps(client_id, rows_to_steps(rows))


__all__ = ['ForecastService', 'StatementImport', 'import_statement']
