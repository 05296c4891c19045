"""Command line entry point for freee-link.

Usage examples:

    freee-link sheets:export <spreadsheet-id>
    freee-link sheets:report <spreadsheet-id> 2026-01
    freee-link drive:upload 2025.12
    freee-link api:audit 2025 --sheets <spreadsheet-id>
    freee-link --profile work lark:base:sync all
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime
from pathlib import Path

import structlog

from freee_link.audit.runner import categories_from, run_audit, select_fiscal_year
from freee_link.clients.freee import FreeeClient
from freee_link.clients.google import GoogleServices, SheetsClient
from freee_link.clients.lark import LarkClient
from freee_link.config.logging import configure_logging
from freee_link.config.mappings import Mappings, load_mappings
from freee_link.config.settings import ConfigurationError, Settings, load_settings
from freee_link.models import AccountItem
from freee_link.sync.invoices import run_invoice_export, run_invoice_import
from freee_link.sync.monthly_report import MONTH_PATTERN, resolve_month, run_monthly_report
from freee_link.sync.receipts import inspect_drive, upload_receipts
from freee_link.sync.sheets_export import run_export
from freee_link.sync.sheets_import import run_import
from freee_link.sync.state import BaseConfigStore, ProcessedLedger
from freee_link.sync.workspace import (
    DEFAULT_BASE_NAME,
    base_status,
    init_base,
    sync_deals,
    sync_monthly_summary,
    sync_wallet_txns,
)

logger = structlog.get_logger(__name__)

SYNC_TARGETS = ("deals", "wallets", "summary", "all")

# Matched in order; "純資産" contains "資産", so net assets come first.
ACCOUNT_GROUPS: list[tuple[str, tuple[str, ...]]] = [
    ("Net assets", ("純資産", "資本")),
    ("Assets", ("資産",)),
    ("Liabilities", ("負債",)),
    ("Revenue", ("収益", "売上")),
    ("Expenses", ("費用", "経費")),
]


# === Component factories ===


def _freee(settings: Settings) -> FreeeClient:
    settings.require_freee()
    return FreeeClient(settings)


def _lark(settings: Settings) -> LarkClient:
    settings.require_lark()
    return LarkClient(settings)


def _mappings(settings: Settings) -> Mappings:
    return load_mappings(settings.mappings_file)


def _sheets(settings: Settings, spreadsheet_id: str | None) -> SheetsClient:
    resolved = settings.require_spreadsheet(spreadsheet_id)
    return GoogleServices(settings.google_service_account_file).spreadsheet(resolved)


def _split_optional(
    first: str | None, second: str | None, is_second: Callable[[str], bool]
) -> tuple[str | None, str | None]:
    """Let the optional spreadsheet id be omitted before a trailing argument."""
    if first is not None and second is None and is_second(first):
        return None, first
    return first, second


# === Sheets ===


async def cmd_sheets_import(args: argparse.Namespace, settings: Settings) -> None:
    sheets = _sheets(settings, args.spreadsheet_id)
    async with _freee(settings) as freee:
        await run_import(freee, sheets, settings.import_sheet_name, _mappings(settings))


async def cmd_sheets_export(args: argparse.Namespace, settings: Settings) -> None:
    sheets = _sheets(settings, args.spreadsheet_id)
    async with _freee(settings) as freee:
        fiscal_year = select_fiscal_year(await freee.fiscal_years())
        await run_export(freee, sheets, _mappings(settings), fiscal_year.start_date.year)


async def cmd_sheets_report(args: argparse.Namespace, settings: Settings) -> None:
    spreadsheet_id, month = _split_optional(
        args.spreadsheet_id, args.month, lambda value: bool(MONTH_PATTERN.match(value))
    )
    year, month_number = resolve_month(month, date.today())
    sheets = _sheets(settings, spreadsheet_id)
    async with _freee(settings) as freee:
        await run_monthly_report(freee, sheets, year, month_number)


async def cmd_sheets_invoice(args: argparse.Namespace, settings: Settings) -> None:
    spreadsheet_id, mode = _split_optional(
        args.spreadsheet_id, args.mode, lambda value: value in ("import", "export")
    )
    sheets = _sheets(settings, spreadsheet_id)
    async with _freee(settings) as freee:
        if mode == "export":
            await run_invoice_export(freee, sheets)
        else:
            await run_invoice_import(freee, sheets, _mappings(settings))


# === Drive ===


async def cmd_drive_check(args: argparse.Namespace, settings: Settings) -> None:
    root_folder_id = settings.require_drive_folder()
    drive = GoogleServices(settings.google_service_account_file).drive_client()
    folder = drive.get_folder(root_folder_id)
    print(f"Root folder: {folder.get('name')} ({root_folder_id})")

    summaries = inspect_drive(drive, root_folder_id)
    if not summaries:
        print("No month folders found")
    for summary in summaries:
        print(f"  {summary.name}: {summary.receipt_count} receipts / {summary.file_count} files")
        for name in summary.examples:
            print(f"    - {name}")


async def cmd_drive_upload(args: argparse.Namespace, settings: Settings) -> None:
    root_folder_id = settings.require_drive_folder()
    drive = GoogleServices(settings.google_service_account_file).drive_client()
    ledger = ProcessedLedger(settings.receipt_ledger_path)
    async with _freee(settings) as freee:
        await upload_receipts(
            freee,
            drive,
            ledger,
            root_folder_id,
            month=args.month,
            delay=settings.receipt_upload_delay,
            max_size_mb=settings.receipt_max_size_mb,
        )


# === freee API ===


async def cmd_api_test(args: argparse.Namespace, settings: Settings) -> None:
    """Read-only smoke test of the credentials against a few endpoints."""
    async with _freee(settings) as freee:
        companies = await freee.list_companies()
        print(f"Companies: {len(companies)}")
        for company in companies[:1]:
            print(f"  first: {company.get('display_name')} (ID {company.get('id')})")

        partners = await freee.list_partners(limit=3)
        print(f"Partners (first page of 3): {len(partners)}")
        account_items = await freee.list_account_items()
        print(f"Account items: {len(account_items)}")
    print("freee API OK")


async def cmd_api_companies(args: argparse.Namespace, settings: Settings) -> None:
    async with _freee(settings) as freee:
        companies = await freee.list_companies()
        print(f"{len(companies)} companies")
        for company in companies:
            print(f"  [{company.get('id')}] {company.get('display_name')} ({company.get('role')})")
        if not companies:
            return

        detail = await freee.get_company(companies[0].get("id"))
        print(f"\nCompany {detail.get('id')}: {detail.get('display_name')}")
        for key in ("name", "name_kana", "phone1", "zipcode", "industry_name", "head_count"):
            if detail.get(key):
                print(f"  {key}: {detail[key]}")
        for fy in detail.get("fiscal_years") or []:
            print(f"  fiscal year: {fy.get('start_date')}..{fy.get('end_date')}")


def group_account_items(items: list[AccountItem]) -> dict[str, list[AccountItem]]:
    """Group account items by the broad kind of their freee category."""
    groups: dict[str, list[AccountItem]] = {name: [] for name, _ in ACCOUNT_GROUPS}
    groups["Other"] = []
    for item in items:
        category = item.account_category or ""
        for name, markers in ACCOUNT_GROUPS:
            if any(marker in category for marker in markers):
                groups[name].append(item)
                break
        else:
            groups["Other"].append(item)
    return groups


async def cmd_api_accounts(args: argparse.Namespace, settings: Settings) -> None:
    async with _freee(settings) as freee:
        items = await freee.fetch_account_items()

    groups = group_account_items(items)
    print(f"{len(items)} account items")
    for name, members in groups.items():
        if not members:
            continue
        print(f"\n[{name}] ({len(members)})")
        for item in members[:10]:
            tax = f" [{item.tax_name}]" if item.tax_name else ""
            print(f"  - {item.name} (ID {item.id}){tax}")
        if len(members) > 10:
            print(f"  ... {len(members) - 10} more")

    if args.output:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "company_id": settings.freee_company_id,
            "total_count": len(items),
            "categories": {
                name: [
                    {
                        "id": item.id,
                        "name": item.name,
                        "shortcut": item.shortcut,
                        "tax_name": item.tax_name,
                        "account_category": item.account_category,
                        "account_category_id": item.account_category_id,
                    }
                    for item in members
                ]
                for name, members in groups.items()
            },
        }
        Path(args.output).write_text(
            json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        print(f"\nSaved to {args.output}")


async def cmd_api_audit(args: argparse.Namespace, settings: Settings) -> None:
    sheets = _sheets(settings, args.sheets) if args.sheets else None
    lark = _lark(settings) if args.notify else None
    async with _freee(settings) as freee:
        try:
            await run_audit(
                freee,
                categories=categories_from(_mappings(settings)),
                year=args.year,
                sheets=sheets,
                lark=lark,
                notify_chat_id=args.notify,
            )
        finally:
            if lark is not None:
                await lark.close()


# === Lark ===


async def cmd_lark_base_init(args: argparse.Namespace, settings: Settings) -> None:
    store = BaseConfigStore(settings.lark_base_config_file)
    async with _lark(settings) as lark:
        await init_base(lark, store, args.name, table_delay=settings.lark_table_delay)


async def cmd_lark_base_sync(args: argparse.Namespace, settings: Settings) -> None:
    config = BaseConfigStore(settings.lark_base_config_file).require()
    target = args.target
    async with _lark(settings) as lark, _freee(settings) as freee:
        if target in ("deals", "all"):
            await sync_deals(lark, freee, config, _mappings(settings))
        if target in ("wallets", "all"):
            await sync_wallet_txns(lark, freee, config, wallet_delay=settings.lark_table_delay)
        if target in ("summary", "all"):
            await sync_monthly_summary(lark, freee, config)


async def cmd_lark_base_status(args: argparse.Namespace, settings: Settings) -> None:
    store = BaseConfigStore(settings.lark_base_config_file)
    config = store.require()
    async with _lark(settings) as lark:
        status = await base_status(lark, store)
    print(f"Base: {config.url or config.app_token}")
    if config.created_at:
        print(f"Created: {config.created_at}")
    for name, count in status.items():
        print(f"  {name}: {count}")


async def cmd_lark_notify(args: argparse.Namespace, settings: Settings) -> None:
    text = " ".join(args.text)
    if not text.strip():
        raise ConfigurationError("Message text is required")
    async with _lark(settings) as lark:
        await lark.send_text(args.chat_id, text)
    print(f"Sent to {args.chat_id}")


Handler = Callable[[argparse.Namespace, Settings], Awaitable[None]]

COMMANDS: dict[str, Handler] = {
    "sheets:import": cmd_sheets_import,
    "sheets:export": cmd_sheets_export,
    "sheets:report": cmd_sheets_report,
    "sheets:invoice": cmd_sheets_invoice,
    "drive:check": cmd_drive_check,
    "drive:upload": cmd_drive_upload,
    "api:test": cmd_api_test,
    "api:companies": cmd_api_companies,
    "api:accounts": cmd_api_accounts,
    "api:audit": cmd_api_audit,
    "lark:base:init": cmd_lark_base_init,
    "lark:base:sync": cmd_lark_base_sync,
    "lark:base:status": cmd_lark_base_status,
    "lark:notify": cmd_lark_notify,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="freee-link",
        description="freee accounting tools for Google Sheets, Google Drive and Lark",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--profile", help="Read .env.<profile> and keep separate token and ledger files"
    )
    sub = parser.add_subparsers(dest="command", metavar="command", required=True)

    p = sub.add_parser("sheets:import", help="Register deals from the import sheet")
    p.add_argument("spreadsheet_id", nargs="?")

    p = sub.add_parser("sheets:export", help="Export freee data to a spreadsheet")
    p.add_argument("spreadsheet_id", nargs="?")

    p = sub.add_parser("sheets:report", help="Write a monthly expense report")
    p.add_argument("spreadsheet_id", nargs="?")
    p.add_argument("month", nargs="?", help="YYYY-MM (default: current month)")

    p = sub.add_parser("sheets:invoice", help="Import invoices as income deals, or export them")
    p.add_argument("spreadsheet_id", nargs="?")
    p.add_argument("mode", nargs="?", choices=["import", "export"])

    sub.add_parser("drive:check", help="Show the receipt folder structure")

    p = sub.add_parser("drive:upload", help="Upload receipts to the freee file box")
    p.add_argument("month", nargs="?", help="Month folder name, e.g. 2025.12")

    sub.add_parser("api:test", help="Check the freee credentials")
    sub.add_parser("api:companies", help="List companies")

    p = sub.add_parser("api:accounts", help="List account items by category")
    p.add_argument("--output", help="Also save the list as JSON")

    p = sub.add_parser("api:audit", help="Run the data-quality audit for a fiscal year")
    p.add_argument("year", nargs="?", type=int, help="Fiscal year start year (default: latest)")
    p.add_argument("--sheets", metavar="SPREADSHEET_ID", help="Write the report to this sheet")
    p.add_argument("--notify", metavar="CHAT_ID", help="Post a summary card to this Lark chat")

    p = sub.add_parser("lark:base:init", help="Create the Lark Base and its tables")
    p.add_argument("name", nargs="?", default=DEFAULT_BASE_NAME)

    p = sub.add_parser("lark:base:sync", help="Mirror freee data into the Lark Base")
    p.add_argument("target", nargs="?", choices=SYNC_TARGETS, default="all")

    sub.add_parser("lark:base:status", help="Record counts of the Lark Base tables")

    p = sub.add_parser("lark:notify", help="Send a text message to a Lark chat")
    p.add_argument("chat_id")
    p.add_argument("text", nargs="+")

    return parser


async def _run(args: argparse.Namespace, settings: Settings) -> None:
    logger.debug("command_started", command=args.command, profile=settings.profile)
    await COMMANDS[args.command](args, settings)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.profile)
        configure_logging(settings.log_level, settings.log_format)
        asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    except Exception as e:
        logger.debug("command_failed", command=args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0
