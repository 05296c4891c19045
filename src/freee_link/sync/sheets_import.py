"""Register expense deals in freee from rows of the import sheet."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from freee_link.clients.freee import FreeeAPIError, FreeeClient
from freee_link.clients.google import SheetsClient
from freee_link.config.mappings import Mappings
from freee_link.models import to_int

logger = structlog.get_logger(__name__)

STATUS_PROCESSED = "Processed"
STATUS_PENDING = "Pending"
STATUS_COLUMN = "H"


class ImportRowError(ValueError):
    """A sheet row cannot be turned into a deal."""


@dataclass(frozen=True)
class ImportRow:
    """One data row of the import sheet (columns A to H)."""

    row_number: int
    date: str
    account_item: str
    amount: int
    partner: str = ""
    description: str = ""
    tax_type: str = ""
    section: str = ""
    status: str = STATUS_PENDING


def _cell(row: list[Any], index: int) -> str:
    return str(row[index]).strip() if index < len(row) and row[index] is not None else ""


def parse_import_rows(rows: list[list[Any]]) -> list[ImportRow]:
    """Rows still to import; skips the header, rows without a date and processed rows."""
    records = []
    for index, row in enumerate(rows[1:], start=2):
        if not _cell(row, 0):
            continue
        record = ImportRow(
            row_number=index,
            date=_cell(row, 0),
            account_item=_cell(row, 1),
            amount=to_int(_cell(row, 2)),
            partner=_cell(row, 3),
            description=_cell(row, 4),
            tax_type=_cell(row, 5),
            section=_cell(row, 6),
            status=_cell(row, 7) or STATUS_PENDING,
        )
        if record.status != STATUS_PROCESSED:
            records.append(record)
    return records


def normalize_date(value: str) -> str:
    return value.strip().replace("/", "-")


def build_expense_deal(row: ImportRow, company_id: int, mappings: Mappings) -> dict[str, Any]:
    account_item_id = mappings.account_item_id(row.account_item)
    if account_item_id is None:
        raise ImportRowError(f"Unknown account item '{row.account_item}'")

    description = f"{row.partner} - {row.description}" if row.partner else row.description
    return {
        "company_id": company_id,
        "issue_date": normalize_date(row.date),
        "type": "expense",
        "details": [
            {
                "account_item_id": account_item_id,
                "tax_code": mappings.tax_code_for(row.tax_type),
                "amount": row.amount,
                "description": description,
            }
        ],
    }


@dataclass
class ImportSummary:
    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


async def run_import(
    freee: FreeeClient,
    sheets: SheetsClient,
    sheet_name: str,
    mappings: Mappings,
    out: Callable[[str], object] = print,
) -> ImportSummary:
    """Post every pending row as a deal and record the outcome in the status column.

    A failing row is marked with its error and the remaining rows still run.
    """
    records = parse_import_rows(sheets.read_rows(f"'{sheet_name}'!A:H"))
    out(f"{len(records)} pending rows in '{sheet_name}'")

    summary = ImportSummary()
    for record in records:
        status_cell = f"'{sheet_name}'!{STATUS_COLUMN}{record.row_number}"
        try:
            payload = build_expense_deal(record, freee.company_id, mappings)
            deal = await freee.create_deal(payload)
        except (ImportRowError, FreeeAPIError) as e:
            logger.warning("import_row_failed", row=record.row_number, error=str(e))
            sheets.update_cell(status_cell, f"Error: {e}")
            summary.failed += 1
            out(f"  row {record.row_number}: FAILED {e}")
            continue

        sheets.update_cell(status_cell, STATUS_PROCESSED)
        summary.succeeded += 1
        logger.info("deal_imported", row=record.row_number, deal_id=deal.get("id"))
        out(f"  row {record.row_number}: {record.date} {record.account_item} ¥{record.amount:,}")

    out(f"Succeeded: {summary.succeeded}  Failed: {summary.failed}  Total: {summary.total}")
    return summary
