import pytest

from pf_forecast.trend import project_matrix, trend_series


def test_flat_series_projects_flat():
    assert trend_series([5, 5, 5], 3) == pytest.approx([5.0, 5.0, 5.0])


def test_linear_series_continues_line():
    assert trend_series([10, 20, 30], 3) == pytest.approx([40.0, 50.0, 60.0])


def test_empty_history_projects_zero():
    assert trend_series([], 2) == [0.0, 0.0]


def test_single_point_projects_flat():
    assert trend_series([7], 2) == pytest.approx([7.0, 7.0])


def test_no_future_points():
    assert trend_series([1, 2, 3], 0) == []


def test_project_matrix_uses_future_month_keys_and_overrides():
    matrix = {
        'income': {'2024-01': 100.0, '2024-02': 200.0},
        'materials': {'2024-02': -50.0},
    }
    projected = project_matrix(matrix, ['2024-01', '2024-02'], 2, overrides={('income', '2024-04'): 999.0})

    assert list(projected['income']) == ['2024-03', '2024-04']
    assert projected['income']['2024-03'] == pytest.approx(300.0)
    assert projected['income']['2024-04'] == 999.0
    # Missing months count as zero: 0, -50 -> -100, -150
    assert projected['materials']['2024-03'] == pytest.approx(-100.0)


def test_project_matrix_without_history():
    assert project_matrix({'income': {}}, [], 3) == {}
