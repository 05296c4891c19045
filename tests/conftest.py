"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("FREEE_ACCESS_TOKEN", "access-token-123")
os.environ.setdefault("FREEE_REFRESH_TOKEN", "refresh-token-123")
os.environ.setdefault("FREEE_CLIENT_ID", "client-id")
os.environ.setdefault("FREEE_CLIENT_SECRET", "client-secret")
os.environ.setdefault("FREEE_COMPANY_ID", "1234")
os.environ.setdefault("LARK_APP_ID", "cli_test")
os.environ.setdefault("LARK_APP_SECRET", "lark-secret")

from freee_link.clients.freee import FreeeAPIError  # noqa: E402
from freee_link.clients.google import SheetsClient  # noqa: E402
from freee_link.config.mappings import load_mappings  # noqa: E402
from freee_link.config.settings import Settings  # noqa: E402
from freee_link.models import (  # noqa: E402
    AccountItem,
    Deal,
    FiscalYear,
    Partner,
    TrialBalance,
)


def build_deal(
    deal_id: int,
    issue_date: str = "2025-06-01",
    amount: int = 1000,
    account_item_id: int | None = 100,
    *,
    type: str = "expense",
    status: str = "settled",
    partner_id: int | None = 10,
    description: str | None = "note",
    details: list[dict[str, Any]] | None = None,
) -> Deal:
    """Build a parsed deal the way the API would return it."""
    raw: dict[str, Any] = {
        "id": deal_id,
        "issue_date": issue_date,
        "type": type,
        "status": status,
        "partner_id": partner_id,
        "details": details
        if details is not None
        else [
            {
                "amount": amount,
                "account_item_id": account_item_id,
                "tax_code": 136,
                "description": description,
                "vat": 0,
            }
        ],
    }
    return Deal.from_api(raw)


@pytest.fixture
def make_deal():
    """Factory for parsed deals."""
    return build_deal


@pytest.fixture
def settings(tmp_path):
    """Settings with file paths inside a temporary directory."""
    return Settings(
        _env_file=None,
        FREEE_ACCESS_TOKEN="access-token-123",
        FREEE_REFRESH_TOKEN="refresh-token-123",
        FREEE_CLIENT_ID="client-id",
        FREEE_CLIENT_SECRET="client-secret",
        FREEE_COMPANY_ID=1234,
        FREEE_TOKENS_FILE=tmp_path / "tokens.json",
        LARK_APP_ID="cli_test",
        LARK_APP_SECRET="lark-secret",
        LARK_BASE_CONFIG_FILE=tmp_path / "base.json",
        LARK_WRITE_DELAY=0,
        RECEIPT_LEDGER_FILE=tmp_path / "ledger.json",
    )


@pytest.fixture
def mappings():
    """Bundled account and tax-code mappings."""
    return load_mappings()


@pytest.fixture
def mock_deals_response():
    """Mock deals list response."""
    return {
        "deals": [
            {
                "id": 1,
                "issue_date": "2025-06-01",
                "type": "expense",
                "status": "unsettled",
                "partner_id": 10,
                "details": [
                    {
                        "amount": 5000,
                        "account_item_id": 994283703,
                        "tax_code": 136,
                        "description": "Printer paper",
                        "vat": 454,
                    }
                ],
            },
            {
                "id": 2,
                "issue_date": "2025-06-15",
                "type": "income",
                "status": "settled",
                "partner_id": None,
                "receipts": [{"receipt_metadatum": {"partner_name": "Walk-in"}}],
                "details": [
                    {
                        "amount": 110000,
                        "account_item_id": 994283672,
                        "tax_code": 2,
                        "description": "",
                        "vat": 10000,
                    }
                ],
            },
        ]
    }


class FakeFreeeClient:
    """In-memory stand-in for FreeeClient used by the sync and audit drivers."""

    company_id = 1234

    def __init__(self):
        self.deals: list[Deal] = []
        self.account_items: list[AccountItem] = []
        self.partners: list[Partner] = []
        self.invoices: list[dict[str, Any]] = []
        self.walletables: list[dict[str, Any]] = []
        self.wallet_txns: dict[int, list[dict[str, Any]]] = {}
        self.trial_pl: dict[str, Any] = {"balances": []}
        self.trial_bs: dict[str, Any] = {"balances": []}
        self.years: list[FiscalYear] = []
        self.trial_error: Exception | None = None
        self.fail_when: Callable[[dict[str, Any]], bool] = lambda payload: False

        self.deal_ranges: list[tuple[Any, Any]] = []
        self.created: list[dict[str, Any]] = []
        self.uploaded: list[tuple[str, bytes, str]] = []

    async def fetch_deals(self, start_issue_date=None, end_issue_date=None) -> list[Deal]:
        self.deal_ranges.append((start_issue_date, end_issue_date))
        return list(self.deals)

    async def fetch_account_items(self) -> list[AccountItem]:
        return list(self.account_items)

    async def fetch_partners(self) -> list[Partner]:
        return list(self.partners)

    async def fetch_all_invoices(self) -> list[dict[str, Any]]:
        return list(self.invoices)

    async def list_walletables(self) -> list[dict[str, Any]]:
        return list(self.walletables)

    async def fetch_all_wallet_txns(self, walletable_id, walletable_type) -> list[dict[str, Any]]:
        return list(self.wallet_txns.get(walletable_id, []))

    async def get_trial_pl(self, start_date=None, end_date=None, fiscal_year=None):
        if self.trial_error:
            raise self.trial_error
        return self.trial_pl

    async def get_trial_bs(self, fiscal_year=None):
        if self.trial_error:
            raise self.trial_error
        return self.trial_bs

    async def fetch_trial_pl(self, start_date, end_date) -> TrialBalance:
        return TrialBalance.from_api(await self.get_trial_pl(start_date, end_date))

    async def fiscal_years(self) -> list[FiscalYear]:
        return list(self.years)

    async def create_deal(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.fail_when(payload):
            raise FreeeAPIError("API error 400", status_code=400, details={"message": "rejected"})
        self.created.append(payload)
        return {"id": 1000 + len(self.created)}

    async def upload_receipt(self, filename: str, content: bytes, mime_type: str):
        if self.fail_when({"filename": filename}):
            raise FreeeAPIError("API error 400", status_code=400)
        self.uploaded.append((filename, content, mime_type))
        return {"id": 500 + len(self.uploaded)}


@pytest.fixture
def fake_freee():
    """In-memory freee client."""
    return FakeFreeeClient()


@pytest.fixture
def sheets():
    """Mock SheetsClient that records written tables."""
    mock = MagicMock(spec=SheetsClient)
    mock.url = "https://docs.google.com/spreadsheets/d/sheet-1"
    mock.write_table.side_effect = lambda table: len(table.rows)
    mock.read_rows.return_value = []
    mock.sheet_id.return_value = 0
    return mock
