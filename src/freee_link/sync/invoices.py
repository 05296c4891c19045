"""Invoices between Sheets and freee.

Import turns rows of the ``Invoices`` sheet into income deals. Export writes
the freee invoice list to ``Invoice list``.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from freee_link.clients.freee import FreeeAPIError, FreeeClient
from freee_link.clients.google import SheetsClient, SheetTable
from freee_link.config.mappings import Mappings
from freee_link.models import NameLookup, to_int, to_optional_int
from freee_link.sync.sheets_import import (
    STATUS_PENDING,
    STATUS_PROCESSED,
    ImportRowError,
    ImportSummary,
    normalize_date,
)

logger = structlog.get_logger(__name__)

INVOICE_SHEET = "Invoices"
INVOICE_LIST_SHEET = "Invoice list"
STATUS_COLUMN = "I"
ERROR_MESSAGE_LIMIT = 50

INVOICE_HEADERS = [
    "Issue date",
    "Partner",
    "Subject",
    "Amount (excl. tax)",
    "Tax rate (%)",
    "VAT",
    "Total",
    "Notes",
    "Status",
]

SAMPLE_ROWS: list[list[Any]] = [
    ["2026-02-01", "Example Corp.", "Website build", 100000, 10, 10000, 110000, "February", STATUS_PENDING],
    ["2026-02-15", "Sample LLC", "Consulting", 50000, 10, 5000, 55000, "", STATUS_PENDING],
]

INVOICE_STATUS_LABELS = {
    "draft": "Draft",
    "applying": "Awaiting approval",
    "remanded": "Sent back",
    "rejected": "Rejected",
    "approved": "Approved",
    "issued": "Issued",
    "unsubmitted": "Not sent",
}

PAYMENT_STATUS_LABELS = {
    "empty": "Not set",
    "unsettled": "Unpaid",
    "settled": "Paid",
}


@dataclass(frozen=True)
class InvoiceRow:
    row_number: int
    issue_date: str
    partner_name: str
    subject: str
    amount: int
    tax_rate: int | None
    vat: int
    total: int
    description: str

    @property
    def deal_description(self) -> str:
        if self.subject and self.description:
            return f"{self.subject} / {self.description}"
        return self.subject or self.description


def _cell(row: list[Any], index: int) -> str:
    return str(row[index]).strip() if index < len(row) and row[index] is not None else ""


def parse_invoice_rows(rows: list[list[Any]]) -> list[InvoiceRow]:
    records = []
    for index, row in enumerate(rows[1:], start=2):
        if not _cell(row, 0):
            continue
        if (_cell(row, 8) or STATUS_PENDING) == STATUS_PROCESSED:
            continue
        records.append(
            InvoiceRow(
                row_number=index,
                issue_date=normalize_date(_cell(row, 0)),
                partner_name=_cell(row, 1),
                subject=_cell(row, 2),
                amount=to_int(_cell(row, 3)),
                tax_rate=to_optional_int(_cell(row, 4) or "10"),
                vat=to_int(_cell(row, 5)),
                total=to_int(_cell(row, 6)),
                description=_cell(row, 7),
            )
        )
    return records


def build_income_deal(record: InvoiceRow, company_id: int, mappings: Mappings) -> dict[str, Any]:
    account_item_id = mappings.account_item_id(mappings.income_account_item)
    if account_item_id is None:
        raise ImportRowError(f"Unknown income account item '{mappings.income_account_item}'")
    return {
        "company_id": company_id,
        "issue_date": record.issue_date,
        "type": "income",
        "details": [
            {
                "account_item_id": account_item_id,
                "tax_code": mappings.income_tax_code_for(record.tax_rate),
                "amount": record.total,
                "description": record.deal_description,
            }
        ],
    }


def ensure_invoice_template(sheets: SheetsClient) -> bool:
    """Create the invoice sheet with sample rows unless it exists. Returns True if created."""
    if sheets.sheet_id(INVOICE_SHEET) is not None:
        return False
    sheets.write_table(
        SheetTable(title=INVOICE_SHEET, headers=list(INVOICE_HEADERS), rows=list(SAMPLE_ROWS))
    )
    logger.info("invoice_template_created", title=INVOICE_SHEET)
    return True


async def run_invoice_import(
    freee: FreeeClient,
    sheets: SheetsClient,
    mappings: Mappings,
    out: Callable[[str], object] = print,
) -> ImportSummary:
    if ensure_invoice_template(sheets):
        out(f"Created template sheet '{INVOICE_SHEET}'")

    records = parse_invoice_rows(sheets.read_rows(f"'{INVOICE_SHEET}'!A:I"))
    out(f"{len(records)} pending invoices")

    summary = ImportSummary()
    for record in records:
        status_cell = f"'{INVOICE_SHEET}'!{STATUS_COLUMN}{record.row_number}"
        try:
            deal = await freee.create_deal(build_income_deal(record, freee.company_id, mappings))
        except (ImportRowError, FreeeAPIError) as e:
            logger.warning("invoice_import_failed", row=record.row_number, error=str(e))
            sheets.update_cell(status_cell, f"Error: {str(e)[:ERROR_MESSAGE_LIMIT]}")
            summary.failed += 1
            out(f"  row {record.row_number}: FAILED {e}")
            continue

        sheets.update_cell(status_cell, STATUS_PROCESSED)
        summary.succeeded += 1
        logger.info("invoice_imported", row=record.row_number, deal_id=deal.get("id"))
        out(f"  row {record.row_number}: {record.partner_name} ¥{record.total:,}")

    out(f"Succeeded: {summary.succeeded}  Failed: {summary.failed}  Total: {summary.total}")
    return summary


def transform_invoices(invoices: list[dict[str, Any]], partners: NameLookup) -> SheetTable:
    table = SheetTable(
        title=INVOICE_LIST_SHEET,
        headers=[
            "Invoice ID",
            "Invoice number",
            "Issue date",
            "Due date",
            "Partner",
            "Title",
            "Subtotal",
            "VAT",
            "Total",
            "Status",
            "Payment status",
        ],
    )
    for inv in invoices:
        partner_id = to_optional_int(inv.get("partner_id"))
        status = inv.get("invoice_status") or ""
        payment = inv.get("payment_status") or ""
        table.rows.append(
            [
                inv.get("id"),
                inv.get("invoice_number") or "",
                inv.get("issue_date") or "",
                inv.get("due_date") or "",
                partners.name_or(partner_id, str(partner_id) if partner_id else ""),
                inv.get("title") or "",
                to_int(inv.get("sub_total")),
                to_int(inv.get("total_vat")),
                to_int(inv.get("total_amount")),
                INVOICE_STATUS_LABELS.get(status, status),
                PAYMENT_STATUS_LABELS.get(payment, payment),
            ]
        )
    return table


async def run_invoice_export(
    freee: FreeeClient,
    sheets: SheetsClient,
    out: Callable[[str], object] = print,
) -> int:
    invoices, partners = await asyncio.gather(freee.fetch_all_invoices(), freee.fetch_partners())
    out(f"Fetched {len(invoices)} invoices")
    if not invoices:
        return 0

    table = transform_invoices(invoices, NameLookup.from_records(partners))
    count = sheets.write_table(table)
    out(f"Sheet '{table.title}' written with {count} invoices: {sheets.url}")
    return count
