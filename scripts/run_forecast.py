#!/usr/bin/env python3
"""Run a bucket balance forecast for one client from the SQLite store."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pf_forecast import config
from pf_forecast.db import SQLiteStore
from pf_forecast.normalize import MONTHLY, WEEKLY
from pf_forecast.service import ForecastService


def main(
    client_id: str,
    start_ym: Optional[str] = None,
    months: int = config.DEFAULT_HORIZON_MONTHS,
    granularity: str = MONTHLY,
    db_path: Optional[Path] = None,
    detail: bool = False,
) -> int:
    store = SQLiteStore(db_path)
    counts = store.summary(client_id)
    if not any(counts.values()):
        print(f"No data stored for client {client_id}")
        return 1

    service = ForecastService(store)
    result = service.run(client_id, start_ym, months, granularity)
    for warning in result.warnings:
        print(f"warning: {warning}")
    if not result.periods:
        print("Nothing to forecast.")
        return 1

    print(result.to_frame().round(2).to_string())
    if detail:
        print("\nRoll-forward detail:")
        print(result.snapshot_frame().round(2).to_string(index=False))
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Forecast Profit First bucket balances.')
    parser.add_argument('--client', required=True, help='Client id in the store')
    parser.add_argument('--start', default=None, help='First month (YYYY-MM); defaults to this month')
    parser.add_argument('--months', type=int, default=config.DEFAULT_HORIZON_MONTHS,
                        help='Horizon in calendar months')
    parser.add_argument('--weekly', action='store_true', help='Use weekly periods')
    parser.add_argument('--db', type=Path, default=Path(config.get_db_path()),
                        help='SQLite file (default: %(default)s)')
    parser.add_argument('--detail', action='store_true', help='Print begin/inflow/outflow/end per bucket')
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    raise SystemExit(main(
        args.client,
        start_ym=args.start,
        months=args.months,
        granularity=WEEKLY if args.weekly else MONTHLY,
        db_path=args.db,
        detail=args.detail,
    ))
