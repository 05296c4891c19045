"""Tests for the freee -> Sheets export."""

from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from freee_link.clients.freee import FreeeAPIError
from freee_link.models import AccountItem, Deal, NameLookup, Partner, TrialBalance
from freee_link.sync.sheets_export import (
    ACCOUNT_ITEMS_SHEET,
    DEALS_SHEET,
    PARTNERS_SHEET,
    TRIAL_BS_SHEET,
    TRIAL_PL_SHEET,
    deal_partner_name,
    run_export,
    transform_account_items,
    transform_deals,
    transform_partners,
    transform_trial_report,
)


def http_error(status=500):
    return HttpError(MagicMock(status=status, reason="Server error"), b"{}")


class TestTransforms:
    """Tests for the table builders."""

    def test_deals_one_row_per_line(self, make_deal, mappings):
        deal = make_deal(
            7,
            type="income",
            status="unsettled",
            details=[
                {"amount": 100, "account_item_id": 1, "tax_code": 2, "description": "a", "vat": 9},
                {"amount": 50, "account_item_id": 2, "tax_code": 999},
            ],
        )

        table = transform_deals(
            [deal], NameLookup({1: "Sales"}), NameLookup({10: "Example Corp."}), mappings
        )

        assert table.title == DEALS_SHEET
        assert len(table.headers) == 10
        assert table.rows[0] == [
            7,
            "2025-06-01",
            "Income",
            "Example Corp.",
            100,
            9,
            "Sales",
            "課税売上 10%",
            "a",
            "Unsettled",
        ]
        assert table.rows[1][6] == "2"
        assert table.rows[1][7] == "999"
        assert table.rows[1][8] == ""

    def test_partner_name_falls_back_to_receipt(self, mock_deals_response):
        deal = Deal.from_api(mock_deals_response["deals"][1])

        assert deal_partner_name(deal, NameLookup()) == "Walk-in"

    def test_account_items(self):
        table = transform_account_items(
            [AccountItem(id=1, name="Cash", account_category="現金・預金", searchable=True)]
        )

        assert table.title == ACCOUNT_ITEMS_SHEET
        assert table.rows == [[1, "Cash", "", "現金・預金", "", "", "", "Yes"]]

    def test_partners(self):
        table = transform_partners(
            [Partner(id=3, name="Solo", org_code=2), Partner(id=4, name="Person")]
        )

        assert table.title == PARTNERS_SHEET
        assert table.rows[0][3] == "Corporation"
        assert table.rows[1][3] == "Individual"

    def test_trial_reports(self):
        report = TrialBalance.from_api(
            {
                "balances": [
                    {
                        "account_item_name": "Cash",
                        "account_category_name": "Assets",
                        "opening_balance": 5,
                        "debit_amount": 1,
                        "credit_amount": 2,
                        "closing_balance": 4,
                    }
                ]
            }
        )

        pl = transform_trial_report(report, "PL")
        bs = transform_trial_report(report, "BS")

        assert pl.title == TRIAL_PL_SHEET
        assert bs.title == TRIAL_BS_SHEET
        assert bs.rows == [["Cash", "Assets", 5, 1, 2, 4]]


class TestRunExport:
    """Tests for run_export."""

    @pytest.mark.asyncio
    async def test_writes_all_sheets(self, fake_freee, sheets, mappings, make_deal):
        fake_freee.deals = [make_deal(1), make_deal(2)]
        fake_freee.account_items = [AccountItem(id=100, name="Supplies")]

        summary = await run_export(fake_freee, sheets, mappings, 2025, out=lambda line: None)

        titles = [call.args[0].title for call in sheets.write_table.call_args_list]
        assert titles == [
            DEALS_SHEET,
            ACCOUNT_ITEMS_SHEET,
            PARTNERS_SHEET,
            TRIAL_PL_SHEET,
            TRIAL_BS_SHEET,
        ]
        assert summary.written[DEALS_SHEET] == 2
        assert not summary.skipped_reports

    @pytest.mark.asyncio
    async def test_missing_trial_reports_are_skipped(self, fake_freee, sheets, mappings):
        """Test that a company without reports still gets the other sheets."""
        fake_freee.trial_error = FreeeAPIError("API error 403", status_code=403)

        summary = await run_export(fake_freee, sheets, mappings, 2025, out=lambda line: None)

        assert summary.skipped_reports
        assert set(summary.written) == {DEALS_SHEET, ACCOUNT_ITEMS_SHEET, PARTNERS_SHEET}

    @pytest.mark.asyncio
    async def test_failing_sheet_does_not_stop_others(self, fake_freee, sheets, mappings):
        def write(table):
            if table.title == PARTNERS_SHEET:
                raise http_error()
            return len(table.rows)

        sheets.write_table.side_effect = write

        summary = await run_export(fake_freee, sheets, mappings, 2025, out=lambda line: None)

        assert summary.failed == [PARTNERS_SHEET]
        assert TRIAL_BS_SHEET in summary.written
