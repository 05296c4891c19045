"""Console and spreadsheet renderings of audit results.

Both renderings take their pass/warn verdicts from :func:`summarize`, so the
counts shown on screen and in the sheet cannot disagree. The console view
truncates long lists; the sheet view writes every record.
"""

from dataclasses import dataclass, field

from freee_link.audit.checks import AccountTotals, AuditResults, Finding, FlaggedLine
from freee_link.clients.google import SheetTable

CONSOLE_PREVIEW = 10
DUPLICATE_PREVIEW = 5
ACCOUNT_PREVIEW = 15
SHEET_HEADERS = ["Item / date", "Value 1", "Value 2", "Value 3", "Value 4"]
BLANK_ROW: list[object] = ["", "", "", "", ""]

CHECK_LABELS = {
    "unsettled": "Unsettled deals",
    "missing_description": "Lines without description",
    "missing_partner": "Deals without partner",
    "duplicates": "Possible duplicates",
    "monthly_trend": "Monthly trend",
    "account_summary": "Account summary",
    "trial_balance": "Trial balance",
}


def format_yen(amount: int) -> str:
    return f"¥{amount:,}"


@dataclass(frozen=True)
class CheckStatus:
    key: str
    label: str
    ok: bool
    count: int


@dataclass
class AuditSummary:
    ok_count: int = 0
    warn_count: int = 0
    warn_items: int = 0
    statuses: list[CheckStatus] = field(default_factory=list)


def summarize(results: AuditResults) -> AuditSummary:
    """Verdict per check plus the totals shown at the end of a report."""
    tb = results.trial_balance
    entries = [
        ("unsettled", results.unsettled.ok, results.unsettled.count),
        ("missing_description", results.missing_description.ok, results.missing_description.count),
        ("missing_partner", results.missing_partner.ok, results.missing_partner.count),
        ("duplicates", results.duplicates.ok, results.duplicates.count),
        ("monthly_trend", results.monthly_trend.ok, len(results.monthly_trend.warnings)),
        # informational only
        ("account_summary", True, 0),
        ("trial_balance", tb.matches, int(tb.income_diff > 0) + int(tb.expense_diff > 0)),
    ]

    summary = AuditSummary()
    for key, ok, count in entries:
        summary.statuses.append(CheckStatus(key=key, label=CHECK_LABELS[key], ok=ok, count=count))
        if ok:
            summary.ok_count += 1
        else:
            summary.warn_count += 1
            summary.warn_items += count
    return summary


def sorted_accounts(results: AuditResults) -> list[tuple[str, AccountTotals]]:
    return sorted(
        results.account_summary.items(), key=lambda entry: entry[1].volume, reverse=True
    )


def _overflow(lines: list[str], total: int, shown: int, unit: str = "more") -> None:
    if total > shown:
        lines.append(f"   ... and {total - shown} {unit}")


def _finding_block(
    lines: list[str],
    title: str,
    finding: Finding,
    describe,
    preview: int,
) -> None:
    if finding.ok:
        lines.append(f"   OK: no {title.lower()}")
        return
    lines.append(f"   WARN: {finding.count} {title.lower()}")
    for item in finding.items[:preview]:
        lines.append(f"   - {describe(item)}")
    _overflow(lines, finding.count, preview)


def render_console(results: AuditResults, period_label: str, preview: int = CONSOLE_PREVIEW) -> str:
    """Human-readable report text."""
    summary = summarize(results)
    lines = [
        "========================================",
        f"  Data quality audit ({period_label})",
        "========================================",
        "",
        "1. Unsettled deals",
    ]

    def unsettled_line(item: FlaggedLine) -> str:
        return f"{item.date} {item.account} {format_yen(item.amount)} ({item.description})"

    _finding_block(lines, "Unsettled deals", results.unsettled, unsettled_line, preview)

    lines += ["", "2. Lines without description"]
    _finding_block(
        lines,
        "Lines without description",
        results.missing_description,
        lambda item: f"{item.date} {item.account} {format_yen(item.amount)} (deal {item.deal_id})",
        preview,
    )

    lines += ["", "3. Deals without partner"]
    _finding_block(
        lines,
        "Deals without partner",
        results.missing_partner,
        lambda item: (
            f"{item.date} {format_yen(item.amount)} ({item.description}) (deal {item.deal_id})"
        ),
        preview,
    )

    lines += ["", "4. Possible duplicates"]
    duplicates = results.duplicates
    if duplicates.ok:
        lines.append("   OK: no possible duplicates")
    else:
        lines.append(f"   WARN: {duplicates.count} groups of possible duplicates")
        for group in duplicates.groups[:DUPLICATE_PREVIEW]:
            first = group[0]
            lines.append(
                f"   - {first.date} {format_yen(first.amount)} x {len(group)} ({first.description})"
            )
            lines.append(f"     deals: {', '.join(str(item.deal_id) for item in group)}")
        _overflow(lines, duplicates.count, DUPLICATE_PREVIEW, "more groups")

    lines += [
        "",
        "5. Monthly trend",
        f"   {'month':<8} {'count':>6} {'expense':>14} {'income':>14}",
    ]
    trend = results.monthly_trend
    for month, bucket in trend.months.items():
        flag = " !" if trend.is_flagged(month) else ""
        lines.append(
            f"   {month:<8} {bucket.count:>6} {format_yen(bucket.expense):>14}"
            f" {format_yen(bucket.income):>14}{flag}"
        )
    if trend.warnings:
        months = ", ".join(w.month for w in trend.warnings)
        lines.append(f"   WARN: very few deals in {months} (average {trend.warnings[0].average})")

    lines += [
        "",
        "6. Account summary",
        f"   {'account':<20} {'expense':>14} {'income':>14} {'lines':>6}",
    ]
    accounts = sorted_accounts(results)
    for name, totals in accounts[:ACCOUNT_PREVIEW]:
        lines.append(
            f"   {name[:20]:<20} {format_yen(totals.expense):>14}"
            f" {format_yen(totals.income):>14} {totals.count:>6}"
        )
    _overflow(lines, len(accounts), ACCOUNT_PREVIEW, "more accounts")

    tb = results.trial_balance
    lines += [
        "",
        "7. Trial balance",
        f"   deals  - income: {format_yen(tb.deal_income)}  expense: {format_yen(tb.deal_expense)}",
        f"   report - income: {format_yen(tb.report_income)}  expense: {format_yen(tb.report_expense)}",
    ]
    if tb.matches:
        lines.append("   OK: deal totals match the trial balance")
    else:
        if tb.income_diff:
            lines.append(f"   WARN: income difference {format_yen(tb.income_diff)}")
        if tb.expense_diff:
            lines.append(f"   WARN: expense difference {format_yen(tb.expense_diff)}")
        lines.append("   Note: transfer slips and private-use splits can cause differences")

    lines += [
        "",
        "========================================",
        "  Summary",
        "========================================",
        f"OK: {summary.ok_count} checks",
    ]
    if summary.warn_count:
        lines.append(f"WARN: {summary.warn_count} checks ({summary.warn_items} items)")
    return "\n".join(lines) + "\n"


def render_sheet_rows(results: AuditResults, title: str) -> SheetTable:
    """Flat five-column table holding every record, one section per check."""
    summary = summarize(results)
    rows: list[list[object]] = [
        ["[Summary]", "", "", "", ""],
        ["Check", "Result", "Count", "", ""],
    ]
    for status in summary.statuses:
        rows.append([status.label, "OK" if status.ok else "WARN", status.count, "", ""])
    rows.append(list(BLANK_ROW))

    if not results.unsettled.ok:
        rows.append(["[Unsettled deals]", "", "", "", ""])
        rows.append(["Date", "Account", "Amount", "Description", "Deal ID"])
        for item in results.unsettled.items:
            rows.append([item.date, item.account, item.amount, item.description, item.deal_id])
        rows.append(list(BLANK_ROW))

    if not results.missing_description.ok:
        rows.append(["[Lines without description]", "", "", "", ""])
        rows.append(["Date", "Account", "Amount", "Deal ID", ""])
        for item in results.missing_description.items:
            rows.append([item.date, item.account, item.amount, item.deal_id, ""])
        rows.append(list(BLANK_ROW))

    if not results.missing_partner.ok:
        rows.append(["[Deals without partner]", "", "", "", ""])
        rows.append(["Date", "Amount", "Description", "Deal ID", ""])
        for item in results.missing_partner.items:
            rows.append([item.date, item.amount, item.description, item.deal_id, ""])
        rows.append(list(BLANK_ROW))

    if not results.duplicates.ok:
        rows.append(["[Possible duplicates]", "", "", "", ""])
        rows.append(["Date", "Amount", "Description", "Deal IDs", "Lines"])
        for group in results.duplicates.groups:
            first = group[0]
            deal_ids = ", ".join(str(item.deal_id) for item in group)
            rows.append([first.date, first.amount, first.description, deal_ids, len(group)])
        rows.append(list(BLANK_ROW))

    trend = results.monthly_trend
    rows.append(["[Monthly trend]", "", "", "", ""])
    rows.append(["Month", "Count", "Expense", "Income", "Warning"])
    for month, bucket in trend.months.items():
        flag = "low" if trend.is_flagged(month) else ""
        rows.append([month, bucket.count, bucket.expense, bucket.income, flag])
    rows.append(list(BLANK_ROW))

    rows.append(["[Account summary]", "", "", "", ""])
    rows.append(["Account", "Expense", "Income", "Lines", ""])
    for name, totals in sorted_accounts(results):
        rows.append([name, totals.expense, totals.income, totals.count, ""])
    rows.append(list(BLANK_ROW))

    tb = results.trial_balance
    rows += [
        ["[Trial balance]", "", "", "", ""],
        ["", "Income", "Expense", "", ""],
        ["Deals", tb.deal_income, tb.deal_expense, "", ""],
        ["Report", tb.report_income, tb.report_expense, "", ""],
        ["Difference", tb.income_diff, tb.expense_diff, "", ""],
    ]
    return SheetTable(title=title, headers=list(SHEET_HEADERS), rows=rows)


def summary_card_lines(results: AuditResults, period_label: str) -> list[str]:
    """Short lines for a chat notification."""
    summary = summarize(results)
    lines = [f"Period: {period_label}"]
    for status in summary.statuses:
        mark = "OK" if status.ok else f"WARN ({status.count})"
        lines.append(f"{status.label}: {mark}")
    lines.append(f"OK {summary.ok_count} / WARN {summary.warn_count} ({summary.warn_items} items)")
    return lines
