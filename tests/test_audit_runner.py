"""Tests for the audit driver."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from freee_link.audit.runner import categories_from, run_audit, select_fiscal_year
from freee_link.clients.lark import LarkClient
from freee_link.config.settings import ConfigurationError
from freee_link.models import FiscalYear

FY2024 = FiscalYear(start_date=date(2024, 4, 1), end_date=date(2025, 3, 31))
FY2025 = FiscalYear(start_date=date(2025, 4, 1), end_date=date(2026, 3, 31))


class TestSelectFiscalYear:
    def test_latest_by_default(self):
        assert select_fiscal_year([FY2025, FY2024]) == FY2025

    def test_by_start_year(self):
        assert select_fiscal_year([FY2024, FY2025], 2024) == FY2024

    def test_unknown_year(self):
        with pytest.raises(ConfigurationError, match="2019"):
            select_fiscal_year([FY2024], 2019)

    def test_no_years(self):
        with pytest.raises(ConfigurationError):
            select_fiscal_year([])


def test_categories_from_mappings(mappings):
    categories = categories_from(mappings)

    assert categories.income_ids == frozenset({9, 13})
    assert categories.expense_ids == frozenset({11, 12, 14})


class TestRunAudit:
    """Tests for run_audit."""

    @pytest.mark.asyncio
    async def test_fetches_selected_year_and_reports(self, fake_freee, sheets, make_deal):
        fake_freee.years = [FY2024, FY2025]
        fake_freee.deals = [
            make_deal(1, "2025-05-01", 5000, status="unsettled"),
            make_deal(2, "2025-05-01", 5000),
            make_deal(3, "2025-06-01", 700, description=""),
        ]
        lines = []

        results = await run_audit(fake_freee, year=2025, sheets=sheets, out=lines.append)

        assert fake_freee.deal_ranges == [(FY2025.start_date, FY2025.end_date)]
        assert results.unsettled.count == 1
        assert results.missing_description.count == 1
        assert results.duplicates.count == 1
        assert len(results.monthly_trend.months) == 12
        assert "2025-04-01..2026-03-31" in lines[0]
        table = sheets.write_table.call_args.args[0]
        assert table.title == "Data quality audit 2025-04-01..2026-03-31"

    @pytest.mark.asyncio
    async def test_sends_card_when_chat_given(self, fake_freee):
        fake_freee.years = [FY2025]
        lark = MagicMock(spec=LarkClient)
        lark.send_card = AsyncMock(return_value={})

        await run_audit(fake_freee, lark=lark, notify_chat_id="oc_1", out=lambda line: None)

        chat_id, card = lark.send_card.call_args.args
        assert chat_id == "oc_1"
        assert card["header"]["title"]["content"] == "Data quality audit"

    @pytest.mark.asyncio
    async def test_no_card_without_chat(self, fake_freee):
        fake_freee.years = [FY2025]
        lark = MagicMock(spec=LarkClient)
        lark.send_card = AsyncMock()

        await run_audit(fake_freee, lark=lark, out=lambda line: None)

        lark.send_card.assert_not_called()
