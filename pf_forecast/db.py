"""SQLite-backed store for clients, buckets, allocation targets and ledger views.

The computation core never talks to the store; :class:`SQLiteStore` is
handed to :class:`pf_forecast.service.ForecastService`, which reads typed
records from it and passes plain data into the engine.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import pandas as pd

from . import config
from .accounts import Account, normalize_account
from .records import (
    ActivityRow,
    AllocationTarget,
    BalanceRow,
    CoaMapping,
    OccurrenceRow,
    coerce_records,
    projection_line_from_mapping,
)
from .recurrence import ProjectionLine

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS clients (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS pf_accounts (
    client_id TEXT NOT NULL,
    slug TEXT NOT NULL,
    name TEXT NOT NULL,
    color TEXT,
    sort_order INTEGER,
    created_at TEXT,
    PRIMARY KEY (client_id, slug)
);

CREATE TABLE IF NOT EXISTS allocation_targets (
    client_id TEXT NOT NULL,
    effective_date TEXT NOT NULL,
    pf_slug TEXT NOT NULL,
    pct REAL NOT NULL DEFAULT 0,
    updated_at TEXT,
    PRIMARY KEY (client_id, effective_date, pf_slug)
);

CREATE TABLE IF NOT EXISTS allocation_rollout_steps (
    client_id TEXT NOT NULL,
    quarter_index INTEGER NOT NULL,
    pf_slug TEXT NOT NULL,
    pct REAL NOT NULL DEFAULT 0,
    PRIMARY KEY (client_id, quarter_index, pf_slug)
);

CREATE TABLE IF NOT EXISTS coa_accounts (
    id TEXT PRIMARY KEY,
    client_id TEXT NOT NULL,
    name TEXT NOT NULL,
    number TEXT,
    group_key TEXT NOT NULL DEFAULT 'expense'
);

CREATE TABLE IF NOT EXISTS coa_to_pf_map (
    client_id TEXT NOT NULL,
    coa_account_id TEXT NOT NULL,
    pf_slug TEXT NOT NULL,
    PRIMARY KEY (client_id, coa_account_id)
);

CREATE TABLE IF NOT EXISTS pf_monthly_activity (
    client_id TEXT NOT NULL,
    ym TEXT NOT NULL,
    pf_slug TEXT NOT NULL,
    net_amount REAL NOT NULL DEFAULT 0,
    PRIMARY KEY (client_id, ym, pf_slug)
);

CREATE TABLE IF NOT EXISTS pf_monthly_balances (
    client_id TEXT NOT NULL,
    ym TEXT NOT NULL,
    pf_slug TEXT NOT NULL,
    ending_balance REAL NOT NULL DEFAULT 0,
    PRIMARY KEY (client_id, ym, pf_slug)
);

CREATE TABLE IF NOT EXISTS projected_occurrences (
    id TEXT PRIMARY KEY,
    client_id TEXT NOT NULL,
    month_start TEXT NOT NULL,
    coa_account_id TEXT NOT NULL,
    kind TEXT NOT NULL CHECK (kind IN ('inflow', 'outflow')),
    name TEXT NOT NULL,
    amount REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS proj_lines (
    id TEXT PRIMARY KEY,
    client_id TEXT NOT NULL,
    coa_account_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    name TEXT NOT NULL,
    amount REAL NOT NULL,
    recurrence TEXT NOT NULL,
    every_n INTEGER,
    start_date TEXT NOT NULL,
    end_date TEXT,
    increase_pct REAL,
    increase_interval TEXT,
    increase_every INTEGER
);

CREATE INDEX IF NOT EXISTS ix_activity_client ON pf_monthly_activity (client_id, ym);
CREATE INDEX IF NOT EXISTS ix_balances_client ON pf_monthly_balances (client_id, ym);
CREATE INDEX IF NOT EXISTS ix_coa_map_client ON coa_to_pf_map (client_id, pf_slug);
"""


def _iso(value: Union[date, datetime, str, None]) -> Optional[str]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStore:
    """Forecast store backed by a single SQLite file."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path is not None else Path(config.get_db_path())
        self.init_db()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def _query(self, sql: str, params: Iterable[Any] = ()) -> pd.DataFrame:
        with self.connect() as conn:
            return pd.read_sql_query(sql, conn, params=list(params))

    def _execute_many(self, sql: str, rows: List[Tuple]) -> int:
        if not rows:
            return 0
        with self.connect() as conn:
            before = conn.total_changes
            conn.executemany(sql, rows)
            conn.commit()
            return conn.total_changes - before

    # ---------------- clients ----------------
    def add_client(self, name: str, client_id: Optional[str] = None) -> str:
        client_id = client_id or _new_id()
        self._execute_many(
            "INSERT OR IGNORE INTO clients (id, name, created_at) VALUES (?, ?, ?)",
            [(client_id, name, _now())],
        )
        return client_id

    def fetch_clients(self) -> pd.DataFrame:
        return self._query("SELECT id, name FROM clients ORDER BY name")

    # ---------------- bucket catalog ----------------
    def fetch_accounts(self, client_id: str) -> List[Account]:
        df = self._query(
            "SELECT slug, name, color, sort_order FROM pf_accounts WHERE client_id = ? "
            "ORDER BY sort_order, name",
            [client_id],
        )
        accounts = []
        for row in df.to_dict('records'):
            if pd.isna(row.get('sort_order')):
                row['sort_order'] = None
            if pd.isna(row.get('color')):
                row['color'] = None
            account = normalize_account(row)
            if account is None:
                logger.warning("Skipping bucket without a name or slug: %r", row)
                continue
            accounts.append(account)
        return accounts

    def upsert_account(self, client_id: str, account: Account) -> None:
        self._execute_many(
            "INSERT INTO pf_accounts (client_id, slug, name, color, sort_order, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (client_id, slug) DO UPDATE SET name = excluded.name, "
            "color = excluded.color, sort_order = excluded.sort_order",
            [(client_id, account.slug, account.name, account.color, account.sort_order,
              _now())],
        )

    def delete_account(self, client_id: str, slug: str) -> None:
        """Remove a bucket together with its allocation and rollout entries."""
        with self.connect() as conn:
            for table in ('pf_accounts', 'allocation_targets', 'allocation_rollout_steps'):
                column = 'slug' if table == 'pf_accounts' else 'pf_slug'
                conn.execute(f"DELETE FROM {table} WHERE client_id = ? AND {column} = ?", (client_id, slug))
            conn.commit()

    # ---------------- allocations ----------------
    def fetch_allocation_targets(self, client_id: str) -> List[AllocationTarget]:
        df = self._query(
            "SELECT effective_date, pf_slug, pct FROM allocation_targets WHERE client_id = ? "
            "ORDER BY effective_date",
            [client_id],
        )
        records, _ = coerce_records(df, AllocationTarget.from_mapping)
        return records

    def save_allocation_targets(
        self,
        client_id: str,
        effective_date: Union[date, str],
        allocations: Mapping[str, float],
    ) -> int:
        stamp = _now()
        rows = [
            (client_id, _iso(effective_date), slug, float(pct), stamp)
            for slug, pct in allocations.items()
        ]
        return self._execute_many(
            "INSERT INTO allocation_targets (client_id, effective_date, pf_slug, pct, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT (client_id, effective_date, pf_slug) DO UPDATE SET pct = excluded.pct, "
            "updated_at = excluded.updated_at",
            rows,
        )

    def fetch_rollout_steps(self, client_id: str) -> List[Tuple[int, str, float]]:
        df = self._query(
            "SELECT quarter_index, pf_slug, pct FROM allocation_rollout_steps WHERE client_id = ? "
            "ORDER BY quarter_index",
            [client_id],
        )
        return [(int(r.quarter_index), str(r.pf_slug), float(r.pct)) for r in df.itertuples(index=False)]

    def save_rollout_steps(self, client_id: str, steps: Iterable[Tuple[int, str, float]]) -> int:
        """Replace the client's stored rollout plan."""
        rows = [(client_id, int(q), slug, float(pct)) for q, slug, pct in steps]
        with self.connect() as conn:
            conn.execute("DELETE FROM allocation_rollout_steps WHERE client_id = ?", (client_id,))
            conn.executemany(
                "INSERT INTO allocation_rollout_steps (client_id, quarter_index, pf_slug, pct) "
                "VALUES (?, ?, ?, ?)",
                rows,
            )
            conn.commit()
        return len(rows)

    # ---------------- chart of accounts ----------------
    def add_coa_account(
        self,
        client_id: str,
        name: str,
        group_key: str,
        number: Optional[str] = None,
        coa_id: Optional[str] = None,
    ) -> str:
        coa_id = coa_id or _new_id()
        self._execute_many(
            "INSERT INTO coa_accounts (id, client_id, name, number, group_key) VALUES (?, ?, ?, ?, ?)",
            [(coa_id, client_id, name, number, group_key)],
        )
        return coa_id

    def map_coa_account(self, client_id: str, coa_account_id: str, slug: str) -> None:
        self._execute_many(
            "INSERT INTO coa_to_pf_map (client_id, coa_account_id, pf_slug) VALUES (?, ?, ?) "
            "ON CONFLICT (client_id, coa_account_id) DO UPDATE SET pf_slug = excluded.pf_slug",
            [(client_id, coa_account_id, slug)],
        )

    def fetch_coa_map(self, client_id: str) -> List[CoaMapping]:
        df = self._query(
            "SELECT coa_account_id, pf_slug FROM coa_to_pf_map WHERE client_id = ?",
            [client_id],
        )
        records, _ = coerce_records(df, CoaMapping.from_mapping)
        return records

    # ---------------- projection lines ----------------
    def add_projection_line(self, client_id: str, coa_account_id: str, line: Mapping[str, Any]) -> str:
        line_id = line.get('id') or _new_id()
        self._execute_many(
            "INSERT INTO proj_lines (id, client_id, coa_account_id, kind, name, amount, recurrence, "
            "every_n, start_date, end_date, increase_pct, increase_interval, increase_every) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [(
                line_id,
                client_id,
                coa_account_id,
                line.get('kind', 'income'),
                line.get('name', ''),
                float(line['amount']),
                line.get('recurrence', 'monthly'),
                line.get('every_n', 1),
                _iso(line['start_date']),
                _iso(line.get('end_date')),
                line.get('increase_pct'),
                line.get('increase_interval'),
                line.get('increase_every'),
            )],
        )
        return line_id

    def fetch_projection_lines(self, client_id: str) -> List[ProjectionLine]:
        """Projection lines joined with the group of their chart-of-accounts entry."""
        df = self._query(
            "SELECT l.id, l.kind, l.name, l.amount, l.recurrence, l.every_n, l.start_date, l.end_date, "
            "l.increase_pct, l.increase_interval, l.increase_every, c.group_key "
            "FROM proj_lines l JOIN coa_accounts c ON c.id = l.coa_account_id "
            "WHERE l.client_id = ? ORDER BY l.start_date",
            [client_id],
        )
        records, skipped = coerce_records(df, projection_line_from_mapping)
        if skipped:
            logger.info("Skipped %d malformed projection line(s) for client %s", skipped, client_id)
        return records

    # ---------------- ledger views ----------------
    def upsert_monthly_activity(self, client_id: str, rows: Iterable[ActivityRow]) -> int:
        return self._execute_many(
            "INSERT INTO pf_monthly_activity (client_id, ym, pf_slug, net_amount) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (client_id, ym, pf_slug) DO UPDATE SET net_amount = excluded.net_amount",
            [(client_id, r.ym, r.slug, r.net_amount) for r in rows],
        )

    def upsert_monthly_balances(self, client_id: str, rows: Iterable[BalanceRow]) -> int:
        return self._execute_many(
            "INSERT INTO pf_monthly_balances (client_id, ym, pf_slug, ending_balance) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (client_id, ym, pf_slug) DO UPDATE SET ending_balance = excluded.ending_balance",
            [(client_id, r.ym, r.slug, r.ending_balance) for r in rows],
        )

    def fetch_monthly_activity(
        self,
        client_id: str,
        start_ym: Optional[str] = None,
        end_ym: Optional[str] = None,
    ) -> List[ActivityRow]:
        sql, params = self._ym_filter(
            "SELECT ym, pf_slug, net_amount FROM pf_monthly_activity WHERE client_id = ?",
            client_id, start_ym, end_ym,
        )
        records, _ = coerce_records(self._query(sql, params), ActivityRow.from_mapping)
        return records

    def fetch_monthly_balances(
        self,
        client_id: str,
        start_ym: Optional[str] = None,
        end_ym: Optional[str] = None,
    ) -> List[BalanceRow]:
        sql, params = self._ym_filter(
            "SELECT ym, pf_slug, ending_balance FROM pf_monthly_balances WHERE client_id = ?",
            client_id, start_ym, end_ym,
        )
        records, _ = coerce_records(self._query(sql, params), BalanceRow.from_mapping)
        return records

    @staticmethod
    def _ym_filter(
        sql: str,
        client_id: str,
        start_ym: Optional[str],
        end_ym: Optional[str],
    ) -> Tuple[str, List[Any]]:
        params: List[Any] = [client_id]
        if start_ym:
            sql += " AND ym >= ?"
            params.append(start_ym)
        if end_ym:
            sql += " AND ym <= ?"
            params.append(end_ym)
        return sql + " ORDER BY ym", params

    def add_occurrence(
        self,
        client_id: str,
        month_start: Union[date, str],
        coa_account_id: str,
        kind: str,
        name: str,
        amount: float,
    ) -> str:
        occ_id = _new_id()
        self._execute_many(
            "INSERT INTO projected_occurrences (id, client_id, month_start, coa_account_id, kind, name, amount) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [(occ_id, client_id, _iso(month_start), coa_account_id, kind, name, float(amount))],
        )
        return occ_id

    def fetch_occurrences(self, client_id: str) -> List[OccurrenceRow]:
        df = self._query(
            "SELECT month_start, coa_account_id, kind, name, amount FROM projected_occurrences "
            "WHERE client_id = ? ORDER BY month_start",
            [client_id],
        )
        records, _ = coerce_records(df, OccurrenceRow.from_mapping)
        return records

    def summary(self, client_id: str) -> Dict[str, int]:
        """Row counts per table for one client."""
        counts: Dict[str, int] = {}
        with self.connect() as conn:
            for table in ('pf_accounts', 'allocation_targets', 'proj_lines',
                          'pf_monthly_activity', 'pf_monthly_balances', 'projected_occurrences'):
                counts[table] = conn.execute(
                    f"SELECT COUNT(*) FROM {table} WHERE client_id = ?", (client_id,)
                ).fetchone()[0]
        return counts
