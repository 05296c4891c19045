"""Sync drivers between freee, Google Sheets and Drive, and Lark Base."""

from freee_link.sync.invoices import run_invoice_export, run_invoice_import
from freee_link.sync.monthly_report import run_monthly_report
from freee_link.sync.receipts import inspect_drive, upload_receipts
from freee_link.sync.sheets_export import run_export
from freee_link.sync.sheets_import import run_import
from freee_link.sync.state import BaseConfig, BaseConfigStore, ProcessedLedger
from freee_link.sync.workspace import (
    base_status,
    init_base,
    sync_deals,
    sync_monthly_summary,
    sync_wallet_txns,
)

__all__ = [
    # Sheets
    "run_export",
    "run_import",
    "run_monthly_report",
    "run_invoice_import",
    "run_invoice_export",
    # Drive
    "inspect_drive",
    "upload_receipts",
    # Lark Base
    "init_base",
    "sync_deals",
    "sync_wallet_txns",
    "sync_monthly_summary",
    "base_status",
    # State
    "BaseConfig",
    "BaseConfigStore",
    "ProcessedLedger",
]
