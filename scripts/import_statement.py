#!/usr/bin/env python3
"""Parse a P&L statement export and show bucket suggestions and a trend projection."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pf_forecast import config
from pf_forecast.service import import_statement


def main(path: Path, months: int = config.PROJECTION_MONTHS) -> int:
    raw = path.read_text(encoding='utf-8', errors='replace')
    result = import_statement(raw)
    for warning in result.statement.warnings:
        print(f"warning: {warning}")
    if result.statement.failed:
        print(result.statement.error_message())
        return 1

    print(f"Months: {', '.join(result.statement.months)}")
    print("\nRows:")
    print(result.statement.to_frame().to_string())

    print("\nSuggested buckets:")
    for name, slug in result.suggestions.items():
        print(f"  {name:<40} {result.kinds[name]:<8} -> {slug or '(unassigned)'}")

    projection = result.projection(months)
    if projection:
        print(f"\nProjection ({months} months):")
        print(pd.DataFrame(projection).T.round(2).to_string())
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Parse a statement and suggest buckets.')
    parser.add_argument('path', type=Path, help='CSV or TSV statement export')
    parser.add_argument('--months', type=int, default=config.PROJECTION_MONTHS,
                        help='How many months to project past the statement')
    parser.add_argument('--verbose', action='store_true', help='Show debug logging')
    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s %(name)s: %(message)s')
    raise SystemExit(main(args.path, months=args.months))
