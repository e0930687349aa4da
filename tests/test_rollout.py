import pytest

from pf_forecast.rollout import (
    RolloutRow,
    decimal_to_percent,
    edit_rollout_cell,
    format_percent,
    generate_rollout_rows,
    percent_to_number,
    rollout_has_error,
    rollout_validity,
    rows_from_steps,
    rows_to_steps,
)

SLUGS = ['profit', 'operating']
CURRENT = {'profit': 5.0, 'operating': 95.0}
TARGET = {'profit': 10.0, 'operating': 90.0}


def _rows():
    return generate_rollout_rows(CURRENT, TARGET, 4, SLUGS)


def test_generate_glides_to_target():
    rows = _rows()

    assert [row.quarter for row in rows] == [1, 2, 3, 4]
    assert [row.values['profit'] for row in rows] == ['6.3', '7.5', '8.8', '10']
    assert rows[-1].values == {'profit': '10', 'operating': '90'}


def test_generate_with_zero_quarters_uses_one():
    rows = generate_rollout_rows(CURRENT, TARGET, 0, SLUGS)
    assert len(rows) == 1
    assert rows[0].values == {'profit': '10', 'operating': '90'}


def test_edit_propagates_to_later_quarters():
    rows = edit_rollout_cell(_rows(), 0, 'profit', '8', TARGET)

    assert [row.values['profit'] for row in rows] == ['8', '8.7', '9.3', '10']
    assert [row.values['operating'] for row in rows] == [row.values['operating'] for row in _rows()]


def test_last_quarter_stays_pinned():
    rows = edit_rollout_cell(_rows(), 3, 'profit', '12', TARGET)
    assert rows[-1].values['profit'] == '10'


def test_edit_out_of_range_changes_nothing():
    original = _rows()
    rows = edit_rollout_cell(original, 7, 'profit', '50', TARGET)
    assert [row.values for row in rows] == [row.values for row in original]


@pytest.mark.parametrize('value, expected', [
    (12.25, '12.3'),
    (12.0, '12'),
    (150.0, '100'),
    (-5.0, '0'),
    (float('nan'), ''),
])
def test_format_percent(value, expected):
    assert format_percent(value) == expected


def test_percent_parsing():
    assert percent_to_number('abc') == 0.0
    assert percent_to_number('') == 0.0
    assert percent_to_number('120') == 100.0
    assert decimal_to_percent(0.05) == '5'
    assert decimal_to_percent(None) == ''


def test_validity_flags_quarters_off_100():
    rows = [
        RolloutRow(quarter=1, values={'a': '50', 'b': '50'}),
        RolloutRow(quarter=2, values={'a': '50', 'b': '40'}),
    ]

    assert rollout_validity(rows) == [True, False]
    assert rollout_has_error(rows)
    assert not rollout_has_error(rows[:1])


def test_steps_round_trip_fills_missing_slugs():
    steps = [(1, 'profit', 0.05), (1, 'operating', 0.95)]
    rows = rows_from_steps(steps, ['profit', 'operating', 'vault'])

    assert rows[0].values == {'profit': '5', 'operating': '95', 'vault': '0'}
    assert rows_to_steps(rows)[0] == (1, 'profit', pytest.approx(0.05))
