"""Fetch a fiscal-year snapshot, run the checks and publish the report."""

import asyncio
from collections.abc import Callable

import structlog

from freee_link.audit.checks import AuditResults, TrialBalanceCategories, run_checks
from freee_link.audit.render import render_console, render_sheet_rows, summary_card_lines
from freee_link.clients.freee import FreeeClient
from freee_link.clients.google import SheetsClient
from freee_link.clients.lark import LarkClient, build_summary_card
from freee_link.config.mappings import Mappings
from freee_link.config.settings import ConfigurationError
from freee_link.models import FiscalYear, NameLookup

logger = structlog.get_logger(__name__)


def categories_from(mappings: Mappings) -> TrialBalanceCategories:
    return TrialBalanceCategories(
        income_ids=mappings.income_category_ids,
        expense_ids=mappings.expense_category_ids,
    )


def select_fiscal_year(fiscal_years: list[FiscalYear], year: int | None = None) -> FiscalYear:
    """The fiscal year starting in ``year``, or the latest one when no year is given."""
    if not fiscal_years:
        raise ConfigurationError("The company has no fiscal years")
    if year is None:
        return max(fiscal_years, key=lambda fy: fy.start_date)
    for fy in fiscal_years:
        if fy.start_date.year == year:
            return fy
    raise ConfigurationError(f"No fiscal year starting in {year}")


async def run_audit(
    freee: FreeeClient,
    *,
    categories: TrialBalanceCategories = TrialBalanceCategories(),
    year: int | None = None,
    sheets: SheetsClient | None = None,
    lark: LarkClient | None = None,
    notify_chat_id: str | None = None,
    out: Callable[[str], object] = print,
) -> AuditResults:
    fiscal_year = select_fiscal_year(await freee.fiscal_years(), year)
    logger.info("audit_started", fiscal_year=fiscal_year.label)

    # All four reads must succeed; the first failure aborts the audit.
    deals, account_items, partners, trial_pl = await asyncio.gather(
        freee.fetch_deals(fiscal_year.start_date, fiscal_year.end_date),
        freee.fetch_account_items(),
        freee.fetch_partners(),
        freee.fetch_trial_pl(fiscal_year.start_date, fiscal_year.end_date),
    )
    logger.info(
        "audit_snapshot_loaded",
        deals=len(deals),
        account_items=len(account_items),
        partners=len(partners),
        trial_rows=len(trial_pl.rows),
    )

    results = run_checks(
        deals,
        NameLookup.from_records(account_items),
        trial_pl,
        fiscal_year.start_date,
        fiscal_year.end_date,
        categories,
    )
    out(render_console(results, fiscal_year.label))

    if sheets is not None:
        table = render_sheet_rows(results, f"Data quality audit {fiscal_year.label}")
        sheets.write_table(table)
        out(f"Sheet written: {sheets.url}")

    if lark is not None and notify_chat_id:
        card = build_summary_card(
            "Data quality audit", summary_card_lines(results, fiscal_year.label)
        )
        await lark.send_card(notify_chat_id, card)
        logger.info("audit_notification_sent", chat_id=notify_chat_id)

    return results
