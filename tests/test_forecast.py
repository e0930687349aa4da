from datetime import date

import pytest

from pf_forecast.forecast import (
    allocation_warning,
    allocations_as_of,
    allocations_balanced,
    default_allocations,
    run_forecast,
)
from pf_forecast.records import AllocationTarget
from pf_forecast.recurrence import ProjectionLine, expand

PER_TOTALS = {
    '2024-01': {'income': 1000.0, 'materials': 200.0, 'expense': 300.0},
    '2024-02': {'income': 500.0},
}
PERIODS = ['2024-01', '2024-02']


def test_roll_forward_balances():
    result = run_forecast(PER_TOTALS, PERIODS, {'profit': 0.1, 'operating': 0.9}, {'profit': 50.0})

    assert result.buckets == ['operating', 'profit']
    assert result.real_revenue == {'2024-01': 800.0, '2024-02': 500.0}
    jan_profit = result.snapshots['2024-01']['profit']
    assert jan_profit.begin == 50.0
    assert jan_profit.inflows == pytest.approx(80.0)
    assert jan_profit.end == pytest.approx(130.0)
    assert result.snapshots['2024-01']['operating'].outflows == 500.0
    assert result.ending_balances() == pytest.approx({'operating': 670.0, 'profit': 180.0})
    assert result.warnings == []


def test_roll_forward_continuity():
    result = run_forecast(PER_TOTALS, PERIODS, {'profit': 0.1, 'operating': 0.9})

    for slug in result.buckets:
        series = result.series(slug)
        for snap in series:
            assert snap.end == pytest.approx(snap.begin + snap.inflows - snap.outflows)
        for prev, nxt in zip(series, series[1:]):
            assert nxt.begin == prev.end


def test_negative_real_revenue_allocates_nothing():
    result = run_forecast({'2024-01': {'income': 100.0, 'materials': 500.0}}, ['2024-01'], {'profit': 1.0})

    assert result.real_revenue['2024-01'] == 0.0
    assert result.snapshots['2024-01']['profit'].inflows == 0.0
    assert result.snapshots['2024-01']['operating'].end == -500.0


def test_lines_aimed_at_a_bucket_draw_it_down_whatever_their_kind():
    lines = [
        ProjectionLine(bucket='income', amount=1000.0, start_date=date(2024, 1, 1)),
        ProjectionLine(bucket='profit', amount=30.0, start_date=date(2024, 1, 10), kind='inflow'),
    ]
    expansion = expand(lines, 'monthly', '2024-01', 1)

    result = run_forecast(expansion.totals, expansion.periods, {'profit': 0.1, 'operating': 0.9})

    profit = result.snapshots['2024-01']['profit']
    assert profit.inflows == pytest.approx(100.0)
    assert profit.outflows == 30.0
    assert profit.end == pytest.approx(70.0)


def test_unbalanced_mix_is_flagged_not_normalized():
    result = run_forecast(PER_TOTALS, PERIODS, {'profit': 0.5})

    assert result.warnings == ['Allocations total 50.0% instead of 100%.']
    assert result.allocations['2024-01']['profit'] == pytest.approx(400.0)


def test_default_allocations_are_balanced():
    assert allocations_balanced(default_allocations())
    assert allocation_warning(default_allocations()) is None


def test_allocations_as_of_picks_latest_effective_date():
    targets = [
        AllocationTarget(slug='profit', effective_date=date(2024, 1, 1), pct=0.05),
        AllocationTarget(slug='operating', effective_date=date(2024, 1, 1), pct=0.95),
        AllocationTarget(slug='profit', effective_date=date(2024, 6, 1), pct=0.10),
    ]

    assert allocations_as_of(targets, date(2024, 3, 1)) == {'profit': 0.05, 'operating': 0.95}
    assert allocations_as_of(targets) == {'profit': 0.10}
    assert allocations_as_of(targets, date(2023, 1, 1)) == {}


def test_frames():
    result = run_forecast(PER_TOTALS, PERIODS, {'profit': 0.1, 'operating': 0.9})

    frame = result.to_frame()
    assert list(frame.columns) == ['real_revenue', 'operating', 'profit']
    assert list(frame.index) == PERIODS
    assert len(result.snapshot_frame()) == 4


def test_empty_periods():
    result = run_forecast({}, [], {'profit': 1.0})
    assert result.ending_balances() == {}
