import pytest

from pf_forecast import config
from pf_forecast.accounts import (
    CORE,
    CUSTOM,
    DERIVED,
    Account,
    allocation_accounts,
    build_default_accounts,
    build_display_accounts,
    canonical_name,
    core_slugs,
    create_custom_account,
    custom_accounts_remaining,
    default_slug_for,
    ensure_unique_slug,
    merge_account_lists,
    resolve_suggested_slug,
    slugify,
    suggest_account_slug,
)
from pf_forecast.errors import AccountLimitError, InvalidAccountName
from pf_forecast.statement import INFLOW, OUTFLOW


def test_slugify_and_canonical_name():
    assert slugify("Owner's Pay") == 'owner_s_pay'
    assert slugify('  Fuel & Oil!! ') == 'fuel_oil'
    assert canonical_name("Owner's Pay") == canonical_name('owners pay')
    assert canonical_name('Operating Expenses') == canonical_name('operating expense')
    assert canonical_name('Business') == 'business'


def test_ensure_unique_slug_appends_counter():
    assert ensure_unique_slug('truck', []) == 'truck'
    assert ensure_unique_slug('truck', ['truck']) == 'truck_2'
    assert ensure_unique_slug('truck', ['truck', 'truck_2']) == 'truck_3'
    assert ensure_unique_slug('', []) == 'account'


@pytest.mark.parametrize('label, kind, expected', [
    ('Job Materials', OUTFLOW, 'materials'),
    ('Payroll - Crew', OUTFLOW, 'direct_labor'),
    ('Consulting Fees', INFLOW, 'income'),
    ('Office Rent', OUTFLOW, 'operating_expenses'),
    ('Owner Draw', OUTFLOW, 'owner_s_pay'),
    ('IRS Payment', OUTFLOW, 'tax'),
])
def test_suggestions_against_default_catalog(label, kind, expected):
    assert suggest_account_slug(label, kind, build_default_accounts()) == expected


def test_rule_direction_must_match():
    # "Sales" only suggests Income for inflows.
    assert suggest_account_slug('Sales Returns', OUTFLOW, build_default_accounts()) != 'income'


def test_unresolved_rule_falls_through_to_next():
    catalog = [Account(slug='operating_expenses', name='Operating Expenses')]
    assert suggest_account_slug('Materials & Supplies', OUTFLOW, catalog) == 'operating_expenses'


def test_no_match_uses_default_for_direction():
    catalog = build_default_accounts()
    assert suggest_account_slug('Mystery', INFLOW, catalog) is None
    assert default_slug_for(INFLOW, catalog) == 'income'
    assert default_slug_for(OUTFLOW, catalog) == 'operating_expenses'


def test_resolve_by_canonical_name():
    catalog = [Account(slug='owners_pay', name="Owner's Pay")]
    assert resolve_suggested_slug('owner_s_pay', catalog) == 'owners_pay'
    assert resolve_suggested_slug('vault', catalog) is None


def test_merge_account_lists_skips_duplicates():
    merged = merge_account_lists(build_default_accounts(), [{'name': 'Materials'}, {'name': 'Fuel'}, {'name': ''}])
    names = [acc.name for acc in merged]

    assert names.count('Materials') == 1
    assert 'Fuel' in names
    assert names == sorted(names, key=str.lower)


def test_display_accounts_core_layout():
    display = build_display_accounts([])

    assert [acc.slug for acc in display] == core_slugs()
    sources = {acc.slug: acc.source for acc in display}
    assert sources['real_revenue'] == DERIVED
    assert sources['profit'] == CORE
    profit = next(acc for acc in display if acc.slug == 'profit')
    assert not profit.configured


def test_display_accounts_merge_persisted_and_custom():
    display = build_display_accounts([
        {'slug': 'profit', 'name': 'Profit Account'},
        {'slug': 'truck', 'name': 'Truck'},
    ])
    by_slug = {acc.slug: acc for acc in display}

    assert by_slug['profit'].name == 'Profit Account'
    assert by_slug['profit'].configured
    assert by_slug['truck'].source == CUSTOM
    assert by_slug['truck'].color == '#64748b'
    assert display[-1].slug == 'truck'


def test_allocation_accounts_exclude_income_and_derived():
    slugs = [acc.slug for acc in allocation_accounts(build_display_accounts([]))]
    assert slugs == ['profit', 'owners_pay', 'tax', 'operating', 'vault']


def test_create_custom_account_unique_slug():
    display = build_display_accounts([{'slug': 'truck', 'name': 'Truck'}])

    account = create_custom_account('Truck', display)

    assert account.slug == 'truck_2'
    assert account.name == 'Truck'
    assert account.source == CUSTOM


def test_create_custom_account_rejects_empty_name():
    with pytest.raises(InvalidAccountName):
        create_custom_account('!!!', build_display_accounts([]))


def test_create_custom_account_enforces_limit():
    persisted = [{'slug': f'bucket_{i}', 'name': f'Bucket {i}'} for i in range(config.CUSTOM_ACCOUNT_LIMIT)]
    display = build_display_accounts(persisted)

    assert custom_accounts_remaining(display) == 0
    with pytest.raises(AccountLimitError):
        create_custom_account('One More', display)
