"""Bucket catalog management and label-to-bucket suggestions.

Statement rows carry free-text labels ("Job Materials", "Payroll - Crew")
that need to land in one of the client's Profit First buckets.  Suggestions
come from an ordered rule table: the first rule whose pattern matches the
label (and whose direction, when set, matches the row) and whose target
resolves against the client's catalog wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from . import config
from .defaults import get_forecast_config
from .errors import AccountLimitError, InvalidAccountName
from .statement import INFLOW, OUTFLOW

logger = logging.getLogger(__name__)

CORE = 'core'
DERIVED = 'derived'
CUSTOM = 'custom'

INCOME_SLUG = 'income'
OPERATING_SLUG = 'operating'
DIRECT_COSTS_TOTAL_SLUG = 'direct_costs_total'
REAL_REVENUE_SLUG = 'real_revenue'

CUSTOM_SORT_OFFSET = 100


@dataclass(frozen=True)
class Account:
    """A Profit First bucket as shown to the user."""
    slug: str
    name: str
    color: Optional[str] = None
    sort_order: int = 0
    source: str = CUSTOM
    configured: bool = True

    @property
    def is_derived(self) -> bool:
        return self.source == DERIVED


@dataclass(frozen=True)
class SuggestionRule:
    pattern: re.Pattern
    target: str
    kind: Optional[str] = None

    def matches(self, label: str, kind: str) -> bool:
        if self.kind and self.kind != kind:
            return False
        return bool(self.pattern.search(label))


def slugify(value: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to ``_`` and trim underscores."""
    slug = re.sub(r'[^a-z0-9]+', '_', (value or '').lower())
    return slug.strip('_')


def canonical_name(value: str) -> str:
    """Loose comparison key for bucket names ("Owner's Pay" == "owners pay")."""
    text = (value or '').lower().replace('&', 'and')
    text = re.sub(r'[^a-z0-9]+', ' ', text)
    # "owner s" -> "owners" after the apostrophe is stripped
    text = re.sub(r'\b([a-z]+) s\b', r'\1s', text)
    text = re.sub(r'\s+', ' ', text).strip()
    if not text:
        return ''
    return ' '.join(_singular(word) for word in text.split(' '))


def _singular(word: str) -> str:
    # "expenses" and "expense" compare equal; "business" is left alone.
    if len(word) > 3 and word.endswith('s') and not word.endswith('ss'):
        return word[:-1]
    return word


SUGGESTION_RULES: List[SuggestionRule] = [
    SuggestionRule(re.compile(r'(income|revenue|sales|fees|receipt|deposit)', re.I), slugify('Income'), INFLOW),
    SuggestionRule(
        re.compile(r'(material|inventory|cogs|cost of goods|suppl(ies|y)|parts?)', re.I),
        slugify('Materials'), OUTFLOW,
    ),
    SuggestionRule(
        re.compile(r'(labor|payroll|wages|contractor|subcontract|technician|crew|staff)', re.I),
        slugify('Direct Labor'), OUTFLOW,
    ),
    SuggestionRule(
        re.compile(r'(owner|member|partner|draw|distribution|equity)', re.I),
        slugify("Owner's Pay"), OUTFLOW,
    ),
    SuggestionRule(re.compile(r'(tax|irs)', re.I), slugify('Tax')),
    SuggestionRule(re.compile(r'(profit|retained)', re.I), slugify('Profit'), INFLOW),
    SuggestionRule(
        re.compile(
            r'(rent|utilit|insurance|office|subscription|software|marketing|travel|expense|maintenance|suppl(ies|y))',
            re.I,
        ),
        slugify('Operating Expenses'), OUTFLOW,
    ),
]


def resolve_suggested_slug(preferred_slug: str, options: Sequence[Account]) -> Optional[str]:
    """Find ``preferred_slug`` in the catalog by slug, canonical slug, then canonical name."""
    canonical_preferred = canonical_name(preferred_slug)
    for option in options:
        if option.slug == preferred_slug:
            return option.slug
    for option in options:
        if canonical_name(option.slug) == canonical_preferred:
            return option.slug
    for option in options:
        if canonical_name(option.name) == canonical_preferred:
            return option.slug
    return None


def suggest_account_slug(
    row_name: str,
    kind: str,
    options: Sequence[Account],
    rules: Sequence[SuggestionRule] = SUGGESTION_RULES,
) -> Optional[str]:
    """Suggest a bucket slug for a statement row label, or ``None``."""
    for rule in rules:
        if not rule.matches(row_name or '', kind):
            continue
        match = resolve_suggested_slug(rule.target, options)
        if match:
            return match
    return None


def default_slug_for(kind: str, options: Sequence[Account]) -> Optional[str]:
    """Fallback bucket when no rule matches: Income for inflows, Operating Expenses for outflows."""
    preferred = slugify('Income') if kind == INFLOW else slugify('Operating Expenses')
    return resolve_suggested_slug(preferred, options)


def _field(entry: Union[Account, Mapping[str, Any]], name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


def normalize_account(entry: Union[Account, Mapping[str, Any]]) -> Optional[Account]:
    """Build an :class:`Account` from a catalog entry; ``None`` when it has no usable name."""
    raw_name = str(_field(entry, 'name') or '').strip()
    raw_slug = str(_field(entry, 'slug') or '').strip()
    name = raw_name or raw_slug
    if not name:
        return None
    slug = slugify(raw_slug or name)
    if not slug:
        return None
    sort_order = _field(entry, 'sort_order')
    configured = _field(entry, 'configured')
    return Account(
        slug=slug,
        name=name,
        color=_field(entry, 'color') or None,
        sort_order=int(sort_order) if sort_order is not None else 0,
        source=_field(entry, 'source') or CUSTOM,
        configured=True if configured is None else bool(configured),
    )


def merge_account_lists(*lists: Optional[Iterable[Union[Account, Mapping[str, Any]]]]) -> List[Account]:
    """Merge catalogs in priority order without name or slug collisions, sorted by name."""
    result: List[Account] = []
    seen_canonical = set()
    seen_slug = set()
    for entries in lists:
        for entry in entries or []:
            account = normalize_account(entry)
            if account is None:
                continue
            canonical = canonical_name(account.name)
            if canonical in seen_canonical or account.slug in seen_slug:
                continue
            result.append(account)
            seen_canonical.add(canonical)
            seen_slug.add(account.slug)
    return sorted(result, key=lambda acc: acc.name.lower())


def build_default_accounts() -> List[Account]:
    """Built-in importer catalog (Income, Materials, Direct Labor, ...)."""
    names = get_forecast_config()['importer_accounts']
    return [Account(slug=slugify(name), name=name, source=CORE) for name in names]


def ensure_unique_slug(base: str, existing: Iterable[Union[Account, str]]) -> str:
    """Append ``_2``, ``_3``, ... to ``base`` until it is unused."""
    safe_base = base or 'account'
    used = {item if isinstance(item, str) else item.slug for item in existing}
    candidate = safe_base
    i = 2
    while candidate in used:
        candidate = f"{safe_base}_{i}"
        i += 1
    return candidate


def core_layout() -> List[Dict[str, Any]]:
    return list(get_forecast_config()['core_accounts'])


def core_slugs() -> List[str]:
    return [core['slug'] for core in core_layout()]


def build_display_accounts(persisted: Iterable[Union[Account, Mapping[str, Any]]]) -> List[Account]:
    """Core layout (with persisted names/colors) followed by the client's custom buckets."""
    cfg = get_forecast_config()
    by_slug: Dict[str, Account] = {}
    for entry in persisted:
        account = normalize_account(entry)
        if account is not None:
            by_slug.setdefault(account.slug, account)

    layout = cfg['core_accounts']
    core_slug_set = {core['slug'] for core in layout}
    display: List[Account] = []
    for idx, core in enumerate(layout):
        actual = by_slug.get(core['slug'])
        derived = core['kind'] == DERIVED
        display.append(Account(
            slug=core['slug'],
            name=actual.name if actual else core['name'],
            color=(actual.color if actual and actual.color else core['color']),
            sort_order=idx,
            source=DERIVED if derived else CORE,
            configured=True if derived else actual is not None,
        ))

    customs = [acc for slug, acc in by_slug.items() if slug not in core_slug_set]
    for idx, acc in enumerate(customs):
        display.append(replace(
            acc,
            color=acc.color or cfg['custom_account_color'],
            sort_order=CUSTOM_SORT_OFFSET + idx,
            source=CUSTOM,
            configured=True,
        ))
    return sorted(display, key=lambda acc: acc.sort_order)


def allocation_accounts(display: Iterable[Account]) -> List[Account]:
    """Buckets that take a share of real revenue (no derived buckets, no income)."""
    return [acc for acc in display if not acc.is_derived and acc.slug != INCOME_SLUG]


def custom_accounts(display: Iterable[Account]) -> List[Account]:
    return [acc for acc in display if acc.source == CUSTOM]


def custom_accounts_remaining(display: Iterable[Account]) -> int:
    return max(0, config.CUSTOM_ACCOUNT_LIMIT - len(custom_accounts(display)))


def create_custom_account(
    name: str,
    catalog: Sequence[Account],
    color: Optional[str] = None,
) -> Account:
    """Create a new custom bucket with a unique slug.

    Raises:
        InvalidAccountName: if ``name`` produces an empty slug
        AccountLimitError: if the client already has the maximum custom buckets
    """
    clean = (name or '').strip()
    base = slugify(clean)
    if not base:
        raise InvalidAccountName(f"Account name {name!r} has no letters or digits")
    customs = custom_accounts(catalog)
    if len(customs) >= config.CUSTOM_ACCOUNT_LIMIT:
        raise AccountLimitError(
            f"A client can have at most {config.CUSTOM_ACCOUNT_LIMIT} custom accounts"
        )
    slug = ensure_unique_slug(base, catalog)
    account = Account(
        slug=slug,
        name=clean,
        color=color or get_forecast_config()['custom_account_color'],
        sort_order=CUSTOM_SORT_OFFSET + len(customs),
        source=CUSTOM,
        configured=True,
    )
    logger.info("Created custom account %s (%s)", account.slug, account.name)
    return account
