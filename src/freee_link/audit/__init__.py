"""Data-quality audit over a fiscal year of freee deals."""

from freee_link.audit.checks import AuditResults, TrialBalanceCategories, run_checks
from freee_link.audit.render import render_console, render_sheet_rows, summarize
from freee_link.audit.runner import run_audit, select_fiscal_year

__all__ = [
    "AuditResults",
    "TrialBalanceCategories",
    "render_console",
    "render_sheet_rows",
    "run_audit",
    "run_checks",
    "select_fiscal_year",
    "summarize",
]
