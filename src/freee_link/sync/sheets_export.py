"""Export freee master data, deals and trial balances to Google Sheets."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

import structlog
from googleapiclient.errors import HttpError

from freee_link.clients.freee import FreeeAPIError, FreeeClient
from freee_link.clients.google import SheetsClient, SheetTable
from freee_link.config.mappings import Mappings
from freee_link.models import AccountItem, Deal, NameLookup, Partner, TrialBalance

logger = structlog.get_logger(__name__)

DEALS_SHEET = "Deals"
ACCOUNT_ITEMS_SHEET = "Account items"
PARTNERS_SHEET = "Partners"
TRIAL_PL_SHEET = "Profit and loss"
TRIAL_BS_SHEET = "Balance sheet"


def deal_partner_name(deal: Deal, partners: NameLookup) -> str:
    """Partner name from the partner record, else from receipt metadata, else empty."""
    if deal.partner_id and deal.partner_id in partners:
        return partners[deal.partner_id]
    return deal.receipt_partner_name or ""


def transform_deals(
    deals: list[Deal], accounts: NameLookup, partners: NameLookup, mappings: Mappings
) -> SheetTable:
    """One row per deal line."""
    table = SheetTable(
        title=DEALS_SHEET,
        headers=[
            "Deal ID",
            "Issue date",
            "Type",
            "Partner",
            "Amount",
            "VAT",
            "Account item",
            "Tax code",
            "Description",
            "Status",
        ],
    )
    for deal in deals:
        kind = "Income" if deal.is_income else "Expense"
        status = "Settled" if deal.status == "settled" else "Unsettled"
        partner = deal_partner_name(deal, partners)
        for detail in deal.details:
            table.rows.append(
                [
                    deal.id,
                    deal.issue_date,
                    kind,
                    partner,
                    detail.amount,
                    detail.vat,
                    accounts.name_or_id(detail.account_item_id),
                    mappings.tax_name(detail.tax_code),
                    detail.description or "",
                    status,
                ]
            )
    return table


def transform_account_items(items: list[AccountItem]) -> SheetTable:
    return SheetTable(
        title=ACCOUNT_ITEMS_SHEET,
        headers=[
            "Account item ID",
            "Name",
            "Shortcut",
            "Category",
            "Tax",
            "Balance side",
            "Corresponding income",
            "Searchable",
        ],
        rows=[
            [
                item.id,
                item.name,
                item.shortcut or "",
                item.account_category or "",
                item.tax_name or "",
                item.dc_balance or "",
                item.corresponding_income_name or "",
                "Yes" if item.searchable else "No",
            ]
            for item in items
        ],
    )


def transform_partners(partners: list[Partner]) -> SheetTable:
    return SheetTable(
        title=PARTNERS_SHEET,
        headers=["Partner ID", "Name", "Code", "Kind", "Phone", "Email", "Address"],
        rows=[
            [
                p.id,
                p.name,
                p.code or "",
                "Corporation" if p.is_corporation else "Individual",
                p.phone or "",
                p.email or "",
                p.address,
            ]
            for p in partners
        ],
    )


def transform_trial_report(report: TrialBalance, kind: Literal["PL", "BS"]) -> SheetTable:
    if kind == "PL":
        return SheetTable(
            title=TRIAL_PL_SHEET,
            headers=["Account item", "Category", "Debit", "Credit", "Debit total", "Credit total"],
            rows=[
                [
                    r.account_item_name,
                    r.account_category_name,
                    r.debit_amount,
                    r.credit_amount,
                    r.debit_total,
                    r.credit_total,
                ]
                for r in report.rows
            ],
        )
    return SheetTable(
        title=TRIAL_BS_SHEET,
        headers=["Account item", "Category", "Opening", "Debit", "Credit", "Closing"],
        rows=[
            [
                r.account_item_name,
                r.account_category_name,
                r.opening_balance,
                r.debit_amount,
                r.credit_amount,
                r.closing_balance,
            ]
            for r in report.rows
        ],
    )


@dataclass
class ExportSummary:
    written: dict[str, int] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)
    skipped_reports: bool = False


async def run_export(
    freee: FreeeClient,
    sheets: SheetsClient,
    mappings: Mappings,
    fiscal_year: int,
    out: Callable[[str], object] = print,
) -> ExportSummary:
    """Write deals, account items, partners and (when available) trial PL/BS."""
    deals, account_items, partners = await asyncio.gather(
        freee.fetch_deals(),
        freee.fetch_account_items(),
        freee.fetch_partners(),
    )
    out(f"Fetched {len(deals)} deals, {len(account_items)} account items, {len(partners)} partners")

    tables = [
        transform_deals(
            deals,
            NameLookup.from_records(account_items),
            NameLookup.from_records(partners),
            mappings,
        ),
        transform_account_items(account_items),
        transform_partners(partners),
    ]

    summary = ExportSummary()
    try:
        trial_pl, trial_bs = await asyncio.gather(
            freee.get_trial_pl(fiscal_year=fiscal_year),
            freee.get_trial_bs(fiscal_year=fiscal_year),
        )
    except FreeeAPIError as e:
        # Trial reports need an accounting plan that not every company has.
        logger.warning("trial_reports_skipped", error=str(e))
        out(f"Skipping trial balance sheets: {e}")
        summary.skipped_reports = True
    else:
        tables.append(transform_trial_report(TrialBalance.from_api(trial_pl), "PL"))
        tables.append(transform_trial_report(TrialBalance.from_api(trial_bs), "BS"))

    for table in tables:
        try:
            summary.written[table.title] = sheets.write_table(table)
        except HttpError as e:
            logger.error("sheet_export_failed", title=table.title, error=str(e))
            summary.failed.append(table.title)
            out(f"  FAILED {table.title}: {e}")
        else:
            out(f"  {table.title}: {summary.written[table.title]} rows")

    out(f"Spreadsheet: {sheets.url}")
    return summary
