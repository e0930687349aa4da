import logging
from datetime import date

import pytest

from pf_forecast.normalize import MONTHLY, WEEKLY
from pf_forecast.recurrence import (
    Escalation,
    ProjectionLine,
    expand,
    occurrence_dates,
)


def _line(**overrides):
    values = dict(bucket='income', amount=100.0, start_date=date(2024, 1, 1), cadence='monthly', name='Retainer')
    values.update(overrides)
    return ProjectionLine(**values)


def test_monthly_keeps_day_of_month():
    dates, truncated = occurrence_dates(
        _line(start_date=date(2024, 1, 31)), date(2024, 1, 1), date(2024, 4, 30)
    )

    assert dates == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]
    assert not truncated


def test_start_before_window_fast_forwards():
    dates, _ = occurrence_dates(_line(start_date=date(2023, 6, 15)), date(2024, 1, 1), date(2024, 3, 31))
    assert dates == [date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15)]


def test_every_n_multiplies_step():
    dates, _ = occurrence_dates(
        _line(cadence='weekly', every_n=2), date(2024, 1, 1), date(2024, 1, 31)
    )
    assert dates == [date(2024, 1, 1), date(2024, 1, 15), date(2024, 1, 29)]


def test_end_date_stops_expansion():
    dates, _ = occurrence_dates(
        _line(start_date=date(2024, 1, 10), end_date=date(2024, 2, 20)), date(2024, 1, 1), date(2024, 6, 30)
    )
    assert dates == [date(2024, 1, 10), date(2024, 2, 10)]


def test_one_off_inside_and_outside_window():
    inside, _ = occurrence_dates(_line(cadence='one_off', start_date=date(2024, 2, 5)), date(2024, 1, 1), date(2024, 3, 31))
    outside, _ = occurrence_dates(_line(cadence='one_off', start_date=date(2023, 2, 5)), date(2024, 1, 1), date(2024, 3, 31))

    assert inside == [date(2024, 2, 5)]
    assert outside == []


def test_custom_cadence_emits_start_once(caplog):
    with caplog.at_level(logging.WARNING):
        dates, truncated = occurrence_dates(
            _line(cadence='custom', start_date=date(2024, 1, 10)), date(2024, 1, 1), date(2024, 3, 31)
        )

    assert dates == [date(2024, 1, 10)]
    assert not truncated
    assert 'unsupported cadence' in caplog.text


def test_weekly_line_summed_into_month():
    result = expand([_line(cadence='weekly', amount=50.0)], MONTHLY, '2024-01', 1)

    assert result.periods == ['2024-01']
    assert result.totals['2024-01']['income'] == pytest.approx(250.0)
    assert len(result.occurrences) == 5


def test_weekly_granularity_places_occurrence_in_its_week():
    result = expand([_line(start_date=date(2024, 1, 10))], WEEKLY, '2024-01', 1)

    assert len(result.periods) == 5
    assert result.totals['2024-01-08 — 2024-01-14'] == {'income': 100.0}
    assert result.totals['2024-01-01 — 2024-01-07'] == {}


def test_guard_truncates_and_reports(caplog):
    with caplog.at_level(logging.WARNING):
        result = expand([_line(cadence='daily', name='Daily')], MONTHLY, '2024-01', 3, guard=10)

    assert len(result.occurrences) == 10
    assert result.truncated == ['Daily']
    assert 'Stopped expanding' in caplog.text


def test_guard_exactly_reached_is_not_truncation():
    dates, truncated = occurrence_dates(_line(cadence='daily'), date(2024, 1, 1), date(2024, 1, 31), guard=31)

    assert len(dates) == 31
    assert not truncated


def test_escalation_compounds_per_interval():
    line = _line(escalation=Escalation(pct=0.1, interval='months', every=12))

    assert line.amount_on(date(2024, 12, 1)) == pytest.approx(100.0)
    assert line.amount_on(date(2025, 1, 1)) == pytest.approx(110.0)
    assert line.amount_on(date(2026, 1, 1)) == pytest.approx(121.0)


def test_expand_frame_is_zero_filled():
    frame = expand([_line(start_date=date(2024, 2, 1), cadence='one_off')], MONTHLY, '2024-01', 3).to_frame()

    assert list(frame.index) == ['2024-01', '2024-02', '2024-03']
    assert frame.loc['2024-01', 'income'] == 0.0
    assert frame.loc['2024-02', 'income'] == 100.0
