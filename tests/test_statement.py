import pytest

from pf_forecast.statement import (
    GENERIC_PARSE_ERROR,
    INFLOW,
    OUTFLOW,
    build_assignment_matrix,
    is_aggregate_row,
    parse_statement,
)

SAMPLE = "\n".join([
    "Acme Co",
    "Profit and Loss",
    "Account,Jan 2024,Feb 2024,Mar 2024,Total",
    'Sales,"1,000.00","1,200.00","1,100.00","3,300.00"',
    "Materials,(200.00),(250.00),(300.00),(750.00)",
    'Total Income,"1,000.00","1,200.00","1,100.00","3,300.00"',
    "Net Income,800,950,800,2550",
    "Rent,500,500,500,1500",
])


def test_parses_months_and_rows():
    parsed = parse_statement(SAMPLE)

    assert parsed.months == ['2024-01', '2024-02', '2024-03']
    assert [row.name for row in parsed.rows] == ['Sales', 'Materials', 'Rent']
    sales = parsed.rows[0]
    assert sales.monthly == {'2024-01': 1000.0, '2024-02': 1200.0, '2024-03': 1100.0}
    assert sales.total == pytest.approx(3300.0)
    assert not parsed.failed
    assert parsed.error_message() is None


def test_reports_skipped_headings_and_columns():
    parsed = parse_statement(SAMPLE)

    assert 'Skipped 2 heading row(s) before the data table.' in parsed.warnings
    assert any('Skipped 1 column(s)' in w for w in parsed.warnings)


def test_aggregate_rows_are_excluded():
    parsed = parse_statement(SAMPLE)
    names = {row.name for row in parsed.rows}

    assert 'Total Income' not in names
    assert 'Net Income' not in names
    assert is_aggregate_row('Total Operating Expenses')
    assert is_aggregate_row('Gross Profit')
    assert not is_aggregate_row('Office Supplies')


def test_parenthesized_values_are_negative():
    parsed = parse_statement(SAMPLE)
    materials = next(row for row in parsed.rows if row.name == 'Materials')

    assert materials.monthly['2024-02'] == -250.0
    assert materials.total == pytest.approx(-750.0)


def test_keeps_most_recent_twelve_months():
    months = [f"2023-{m:02d}" for m in range(1, 13)] + ['2024-01']
    values = [str(i) for i in range(1, 14)]
    raw = "Account," + ",".join(months) + "\nSales," + ",".join(values)

    parsed = parse_statement(raw)

    assert len(parsed.months) == 12
    assert parsed.months[0] == '2023-02'
    assert parsed.months[-1] == '2024-01'
    assert '2023-01' not in parsed.rows[0].monthly
    assert parsed.rows[0].total == pytest.approx(sum(range(2, 14)))
    assert 'More than 12 months detected. Using the most recent 12.' in parsed.warnings


def test_tab_delimited_input():
    raw = "Account\t2024-01\t2024-02\t2024-03\nSales\t1\t2\t3"
    parsed = parse_statement(raw)

    assert parsed.months == ['2024-01', '2024-02', '2024-03']
    assert parsed.rows[0].total == 6.0


def test_duplicate_month_first_value_wins():
    raw = "Account,2024-01,2024-01,2024-02,2024-03\nConsulting,10,20,30,40"
    parsed = parse_statement(raw)

    assert parsed.months == ['2024-01', '2024-02', '2024-03']
    assert parsed.rows[0].monthly['2024-01'] == 10.0
    assert parsed.rows[0].total == 80.0


def test_unreadable_cells_are_skipped():
    raw = "Account,2024-01,2024-02,2024-03\nConsulting,abc,5,6\nNotes,n/a,n/a,n/a"
    parsed = parse_statement(raw)

    assert [row.name for row in parsed.rows] == ['Consulting']
    assert parsed.rows[0].monthly == {'2024-02': 5.0, '2024-03': 6.0}


def test_empty_input_fails_with_generic_message():
    parsed = parse_statement('   ')

    assert parsed.failed
    assert parsed.warnings == []
    assert parsed.error_message() == GENERIC_PARSE_ERROR


def test_single_line_input():
    parsed = parse_statement('Account,Jan 2024,Feb 2024,Mar 2024')

    assert parsed.failed
    assert parsed.warnings == ['The uploaded statement does not contain any rows.']


def test_missing_month_header():
    parsed = parse_statement('name,value\nSales,100')

    assert parsed.failed
    assert parsed.error_message().startswith('Could not find a header row')


def test_only_aggregate_rows_warns():
    parsed = parse_statement('Account,2024-01,2024-02,2024-03\nTotal Income,1,2,3')

    assert parsed.rows == []
    assert 'No account rows with values were detected.' in parsed.warnings


def test_to_frame_shape():
    frame = parse_statement(SAMPLE).to_frame()

    assert frame.shape == (3, 4)
    assert frame.index.name == 'Account'
    assert frame.loc['Rent', 'Total'] == 1500.0


def test_assignment_matrix_signs_by_direction():
    parsed = parse_statement(SAMPLE)
    matrix = build_assignment_matrix(parsed, {'Sales': 'income', 'Materials': 'materials', 'Rent': 'operating'},
                                     kinds={'Rent': OUTFLOW})

    assert matrix['income']['2024-01'] == 1000.0
    assert matrix['materials']['2024-01'] == -200.0
    assert matrix['operating']['2024-03'] == -500.0


def test_assignment_matrix_leaves_unassigned_rows_out():
    parsed = parse_statement(SAMPLE)
    matrix = build_assignment_matrix(parsed, {'Sales': 'income'}, kinds={'Sales': INFLOW})

    assert list(matrix) == ['income']
