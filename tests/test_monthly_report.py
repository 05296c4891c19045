"""Tests for the monthly expense report."""

from datetime import date

import pytest

from freee_link.models import NO_PARTNER, Deal, NameLookup
from freee_link.sync.monthly_report import (
    aggregate_by_partner,
    build_report_table,
    month_bounds,
    resolve_month,
    run_monthly_report,
)


class TestResolveMonth:
    def test_default_is_current_month(self):
        assert resolve_month(None, date(2026, 2, 14)) == (2026, 2)

    def test_parses_value(self):
        assert resolve_month("2025-12", date(2026, 2, 14)) == (2025, 12)

    @pytest.mark.parametrize("value", ["2025-13", "2025/01", "January", "2025-1"])
    def test_rejects_bad_values(self, value):
        with pytest.raises(ValueError, match="YYYY-MM"):
            resolve_month(value, date(2026, 2, 14))


def test_month_bounds_handles_leap_year():
    assert month_bounds(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))
    assert month_bounds(2025, 12) == (date(2025, 12, 1), date(2025, 12, 31))


class TestAggregation:
    def test_by_partner_uses_fallbacks(self, make_deal, mock_deals_response):
        deals = [
            make_deal(1, amount=100, partner_id=10),
            make_deal(2, amount=50, partner_id=10),
            make_deal(3, amount=30, partner_id=None),
            Deal.from_api(mock_deals_response["deals"][1]),
        ]

        summary = aggregate_by_partner(deals, NameLookup({10: "Shop"}))

        assert summary["Shop"].expense == 150
        assert summary["Shop"].count == 2
        assert summary[NO_PARTNER].expense == 30
        assert summary["Walk-in"].income == 110000

    def test_report_table(self, make_deal):
        deals = [
            make_deal(1, amount=100, account_item_id=1),
            make_deal(2, amount=500, account_item_id=2),
            make_deal(3, amount=1000, account_item_id=3, type="income"),
        ]

        table = build_report_table(
            deals,
            NameLookup({1: "Paper", 2: "Rent", 3: "Sales"}),
            NameLookup({10: "Shop"}),
            date(2026, 1, 1),
            date(2026, 1, 31),
        )

        assert table.title == "Expense report 2026-01"
        assert ["Total expense", 600, "", ""] in table.rows
        assert ["Net (income - expense)", 400, "", ""] in table.rows
        start = table.rows.index(["Account item", "Expense", "Income", "Lines"])
        assert [row[0] for row in table.rows[start + 1 : start + 4]] == ["Rent", "Paper", "Sales"]


@pytest.mark.asyncio
async def test_run_monthly_report_fetches_the_month(fake_freee, sheets, make_deal):
    fake_freee.deals = [make_deal(1)]

    table = await run_monthly_report(fake_freee, sheets, 2026, 2, out=lambda line: None)

    assert fake_freee.deal_ranges == [(date(2026, 2, 1), date(2026, 2, 28))]
    sheets.write_table.assert_called_once_with(table)
