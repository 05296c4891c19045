"""Data-quality checks run over one fiscal-year snapshot of freee data.

Every function here is pure: it takes parsed deals (plus lookups) and returns
result objects. Missing fields were already normalised to zero/empty when the
records were parsed, so no check raises on odd input.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from freee_link.models import (
    NO_DESCRIPTION,
    UNKNOWN_ACCOUNT,
    Deal,
    NameLookup,
    TrialBalance,
)

# A month is suspicious when it has fewer deals than this share of the mean.
LOW_ACTIVITY_RATIO = Decimal("0.3")


@dataclass(frozen=True)
class FlaggedLine:
    """One deal (or deal line) reported by a check."""

    deal_id: int | None
    date: str
    amount: int
    account: str | None = None
    account_item_id: int | None = None
    description: str | None = None


@dataclass
class Finding:
    count: int = 0
    items: list[FlaggedLine] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.count == 0


@dataclass
class DuplicateFinding:
    """Lines sharing date, amount and account item. ``count`` is the number of groups."""

    groups: list[list[FlaggedLine]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.groups)

    @property
    def ok(self) -> bool:
        return not self.groups


@dataclass
class MonthBucket:
    count: int = 0
    income: int = 0
    expense: int = 0


@dataclass(frozen=True)
class TrendWarning:
    month: str
    count: int
    average: int


@dataclass
class MonthlyTrend:
    months: dict[str, MonthBucket] = field(default_factory=dict)
    warnings: list[TrendWarning] = field(default_factory=list)

    def is_flagged(self, month: str) -> bool:
        return any(w.month == month for w in self.warnings)

    @property
    def ok(self) -> bool:
        return not self.warnings


@dataclass
class AccountTotals:
    income: int = 0
    expense: int = 0
    count: int = 0

    @property
    def volume(self) -> int:
        return self.income + self.expense


@dataclass(frozen=True)
class TrialBalanceCategories:
    """Account category ids summed on the report side of the trial-balance check."""

    income_ids: frozenset[int] = frozenset({9, 13})
    expense_ids: frozenset[int] = frozenset({11, 12, 14})


@dataclass(frozen=True)
class TrialBalanceComparison:
    deal_income: int
    deal_expense: int
    report_income: int
    report_expense: int

    @property
    def income_diff(self) -> int:
        return abs(self.deal_income - self.report_income)

    @property
    def expense_diff(self) -> int:
        return abs(self.deal_expense - self.report_expense)

    @property
    def matches(self) -> bool:
        return self.income_diff == 0 and self.expense_diff == 0


@dataclass
class AuditResults:
    unsettled: Finding
    missing_description: Finding
    missing_partner: Finding
    duplicates: DuplicateFinding
    monthly_trend: MonthlyTrend
    account_summary: dict[str, AccountTotals]
    trial_balance: TrialBalanceComparison


def check_unsettled(deals: Iterable[Deal], accounts: NameLookup) -> Finding:
    """Deals still waiting for payment, described by their first line."""
    finding = Finding()
    for deal in deals:
        if not deal.is_unsettled:
            continue
        detail = deal.first_detail
        finding.items.append(
            FlaggedLine(
                deal_id=deal.id,
                date=deal.issue_date,
                amount=detail.amount,
                account=accounts.name_or(detail.account_item_id, UNKNOWN_ACCOUNT),
                account_item_id=detail.account_item_id,
                description=detail.description or NO_DESCRIPTION,
            )
        )
    finding.count = len(finding.items)
    return finding


def check_missing_description(deals: Iterable[Deal], accounts: NameLookup) -> Finding:
    """Every line whose description is empty or whitespace. Counts lines, not deals."""
    finding = Finding()
    for deal in deals:
        for detail in deal.details:
            if detail.has_description:
                continue
            finding.items.append(
                FlaggedLine(
                    deal_id=deal.id,
                    date=deal.issue_date,
                    amount=detail.amount,
                    account=accounts.name_or(detail.account_item_id, UNKNOWN_ACCOUNT),
                    account_item_id=detail.account_item_id,
                )
            )
    finding.count = len(finding.items)
    return finding


def check_missing_partner(deals: Iterable[Deal]) -> Finding:
    finding = Finding()
    for deal in deals:
        if deal.partner_id:
            continue
        detail = deal.first_detail
        finding.items.append(
            FlaggedLine(
                deal_id=deal.id,
                date=deal.issue_date,
                amount=detail.amount,
                account_item_id=detail.account_item_id,
                description=detail.description or NO_DESCRIPTION,
            )
        )
    finding.count = len(finding.items)
    return finding


def check_duplicates(deals: Iterable[Deal]) -> DuplicateFinding:
    """Group lines by (issue date, amount, account item) and keep groups of two or more."""
    groups: dict[tuple[str, int, int | None], list[FlaggedLine]] = {}
    for deal in deals:
        for detail in deal.details:
            key = (deal.issue_date, detail.amount, detail.account_item_id)
            groups.setdefault(key, []).append(
                FlaggedLine(
                    deal_id=deal.id,
                    date=deal.issue_date,
                    amount=detail.amount,
                    account_item_id=detail.account_item_id,
                    description=detail.description or NO_DESCRIPTION,
                )
            )
    return DuplicateFinding(groups=[group for group in groups.values() if len(group) >= 2])


def month_keys(start: date, end: date) -> list[str]:
    """``YYYY-MM`` for every calendar month from start's month through end's month."""
    keys = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        keys.append(f"{year:04d}-{month:02d}")
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return keys


def _add_deal(bucket: MonthBucket | AccountTotals, deal: Deal, amount: int) -> None:
    if deal.is_income:
        bucket.income += amount
    else:
        bucket.expense += amount


def check_monthly_trend(deals: Iterable[Deal], start: date, end: date) -> MonthlyTrend:
    """Per-month counts and totals, warning on months far below the mean.

    Only months between ``start`` and ``end`` are counted; deals dated outside
    the range are ignored. A month with zero deals is never warned.
    """
    trend = MonthlyTrend(months={key: MonthBucket() for key in month_keys(start, end)})

    for deal in deals:
        bucket = trend.months.get(deal.month or "")
        if bucket is None:
            continue
        bucket.count += 1
        for detail in deal.details:
            _add_deal(bucket, deal, detail.amount)

    counts = [bucket.count for bucket in trend.months.values()]
    average = Decimal(sum(counts)) / Decimal(max(len(counts), 1))
    threshold = average * LOW_ACTIVITY_RATIO
    rounded = int(average.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    for month, bucket in trend.months.items():
        if 0 < bucket.count < threshold:
            trend.warnings.append(TrendWarning(month=month, count=bucket.count, average=rounded))

    return trend


def aggregate_by_account(deals: Iterable[Deal], accounts: NameLookup) -> dict[str, AccountTotals]:
    """Income, expense and line count per account name, in first-seen order."""
    summary: dict[str, AccountTotals] = {}
    for deal in deals:
        for detail in deal.details:
            totals = summary.setdefault(
                accounts.name_or_id(detail.account_item_id), AccountTotals()
            )
            _add_deal(totals, deal, detail.amount)
            totals.count += 1
    return summary


def sum_by_type(deals: Iterable[Deal]) -> tuple[int, int]:
    """Return ``(income, expense)`` summed over every deal line."""
    income = expense = 0
    for deal in deals:
        if deal.is_income:
            income += deal.total_amount
        else:
            expense += deal.total_amount
    return income, expense


def summarize_by_month(deals: Iterable[Deal]) -> dict[str, MonthBucket]:
    """Month totals over whatever months the deals cover, sorted by month."""
    months: dict[str, MonthBucket] = {}
    for deal in deals:
        bucket = months.setdefault(deal.month or "unknown", MonthBucket())
        bucket.count += 1
        _add_deal(bucket, deal, deal.total_amount)
    return dict(sorted(months.items()))


def check_trial_balance(
    deals: Sequence[Deal],
    report: TrialBalance,
    categories: TrialBalanceCategories = TrialBalanceCategories(),
) -> TrialBalanceComparison:
    """Compare deal totals with the trial-balance report.

    Report income is the credit side of income categories; report expense is
    the debit side of expense categories. Other categories are ignored.
    """
    deal_income, deal_expense = sum_by_type(deals)
    report_income = report_expense = 0
    for row in report.rows:
        if row.account_category_id in categories.income_ids:
            report_income += row.credit_amount
        elif row.account_category_id in categories.expense_ids:
            report_expense += row.debit_amount
    return TrialBalanceComparison(
        deal_income=deal_income,
        deal_expense=deal_expense,
        report_income=report_income,
        report_expense=report_expense,
    )


def run_checks(
    deals: Sequence[Deal],
    accounts: NameLookup,
    trial_balance: TrialBalance,
    start: date,
    end: date,
    categories: TrialBalanceCategories = TrialBalanceCategories(),
) -> AuditResults:
    """Run every check over the same snapshot."""
    return AuditResults(
        unsettled=check_unsettled(deals, accounts),
        missing_description=check_missing_description(deals, accounts),
        missing_partner=check_missing_partner(deals),
        duplicates=check_duplicates(deals),
        monthly_trend=check_monthly_trend(deals, start, end),
        account_summary=aggregate_by_account(deals, accounts),
        trial_balance=check_trial_balance(deals, trial_balance, categories),
    )
