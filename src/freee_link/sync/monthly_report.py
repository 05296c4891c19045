"""Monthly expense report: one month of deals summarised into a sheet."""

import asyncio
import calendar
import re
from collections.abc import Callable, Iterable
from datetime import date

import structlog

from freee_link.audit.checks import AccountTotals, aggregate_by_account, sum_by_type
from freee_link.clients.freee import FreeeClient
from freee_link.clients.google import SheetsClient, SheetTable
from freee_link.models import NO_PARTNER, Deal, NameLookup

logger = structlog.get_logger(__name__)

MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
REPORT_HEADERS = ["Item", "Amount / expense", "Income", "Lines"]


def resolve_month(value: str | None, today: date) -> tuple[int, int]:
    """Parse ``YYYY-MM``; no value means the month containing ``today``."""
    if not value:
        return today.year, today.month
    match = MONTH_PATTERN.match(value.strip())
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValueError(f"Month must be YYYY-MM, got '{value}'")
    return int(match.group(1)), int(match.group(2))


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def partner_label(deal: Deal, partners: NameLookup) -> str:
    if deal.partner_id and deal.partner_id in partners:
        return partners[deal.partner_id]
    return deal.receipt_partner_name or NO_PARTNER


def aggregate_by_partner(deals: Iterable[Deal], partners: NameLookup) -> dict[str, AccountTotals]:
    """Income, expense and line count per partner name."""
    summary: dict[str, AccountTotals] = {}
    for deal in deals:
        totals = summary.setdefault(partner_label(deal, partners), AccountTotals())
        for detail in deal.details:
            if deal.is_income:
                totals.income += detail.amount
            else:
                totals.expense += detail.amount
            totals.count += 1
    return summary


def _by_expense(summary: dict[str, AccountTotals]) -> list[tuple[str, AccountTotals]]:
    return sorted(summary.items(), key=lambda entry: entry[1].expense, reverse=True)


def build_report_table(
    deals: list[Deal],
    accounts: NameLookup,
    partners: NameLookup,
    start: date,
    end: date,
) -> SheetTable:
    income, expense = sum_by_type(deals)
    rows: list[list[object]] = [
        ["[Monthly summary]", "", "", ""],
        ["Period", f"{start.isoformat()}..{end.isoformat()}", "", ""],
        ["Deals", len(deals), "", ""],
        ["Total expense", expense, "", ""],
        ["Total income", income, "", ""],
        ["Net (income - expense)", income - expense, "", ""],
        ["", "", "", ""],
        ["[By account item]", "", "", ""],
        ["Account item", "Expense", "Income", "Lines"],
    ]
    for name, totals in _by_expense(aggregate_by_account(deals, accounts)):
        rows.append([name, totals.expense, totals.income, totals.count])

    rows += [["", "", "", ""], ["[By partner]", "", "", ""], ["Partner", "Expense", "Income", "Lines"]]
    for name, totals in _by_expense(aggregate_by_partner(deals, partners)):
        rows.append([name, totals.expense, totals.income, totals.count])

    return SheetTable(
        title=f"Expense report {start.year}-{start.month:02d}",
        headers=list(REPORT_HEADERS),
        rows=rows,
    )


async def run_monthly_report(
    freee: FreeeClient,
    sheets: SheetsClient,
    year: int,
    month: int,
    out: Callable[[str], object] = print,
) -> SheetTable:
    start, end = month_bounds(year, month)
    deals, account_items, partners = await asyncio.gather(
        freee.fetch_deals(start, end),
        freee.fetch_account_items(),
        freee.fetch_partners(),
    )
    table = build_report_table(
        deals,
        NameLookup.from_records(account_items),
        NameLookup.from_records(partners),
        start,
        end,
    )
    income, expense = sum_by_type(deals)
    out(f"Period {start}..{end}: {len(deals)} deals")
    out(f"  expense ¥{expense:,}  income ¥{income:,}  net ¥{income - expense:,}")

    sheets.write_table(table)
    out(f"Sheet '{table.title}' written: {sheets.url}")
    return table
