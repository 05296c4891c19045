"""Mirror freee deals, wallet transactions and monthly totals into a Lark Base."""

import asyncio
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from typing import Any

import structlog

from freee_link.audit.checks import summarize_by_month
from freee_link.clients.freee import FreeeClient
from freee_link.clients.lark import LarkAPIError, LarkClient
from freee_link.config.mappings import Mappings
from freee_link.models import Deal, NameLookup, to_int
from freee_link.sync.state import BaseConfig, BaseConfigStore

logger = structlog.get_logger(__name__)

DEFAULT_BASE_NAME = "freee bookkeeping"

DEALS_TABLE = "Deals"
WALLET_TABLE = "Wallet transactions"
SUMMARY_TABLE = "Monthly summary"

# Lark field types
TEXT, NUMBER, SINGLE_SELECT, DATETIME = 1, 2, 3, 5


def _select(*names: str) -> dict[str, Any]:
    return {"options": [{"name": name} for name in names]}


TABLE_DEFINITIONS: dict[str, list[dict[str, Any]]] = {
    DEALS_TABLE: [
        {"field_name": "sync_key", "type": TEXT},
        {"field_name": "freee_deal_id", "type": NUMBER},
        {"field_name": "Date", "type": DATETIME},
        {"field_name": "Type", "type": SINGLE_SELECT, "property": _select("Income", "Expense")},
        {"field_name": "Partner", "type": TEXT},
        {"field_name": "Account item", "type": TEXT},
        {"field_name": "Amount", "type": NUMBER},
        {"field_name": "VAT", "type": NUMBER},
        {"field_name": "Tax code", "type": TEXT},
        {"field_name": "Description", "type": TEXT},
        {"field_name": "Status", "type": SINGLE_SELECT, "property": _select("Settled", "Unsettled")},
    ],
    WALLET_TABLE: [
        {"field_name": "Date", "type": DATETIME},
        {"field_name": "Wallet", "type": TEXT},
        {
            "field_name": "Wallet type",
            "type": SINGLE_SELECT,
            "property": _select("bank_account", "credit_card", "wallet"),
        },
        {"field_name": "Amount", "type": NUMBER},
        {"field_name": "Description", "type": TEXT},
        {"field_name": "Linked", "type": SINGLE_SELECT, "property": _select("Linked", "Not linked")},
        {"field_name": "freee_deal_id", "type": NUMBER},
    ],
    SUMMARY_TABLE: [
        {"field_name": "Month", "type": TEXT},
        {"field_name": "Income", "type": NUMBER},
        {"field_name": "Expense", "type": NUMBER},
        {"field_name": "Net", "type": NUMBER},
        {"field_name": "Deals", "type": NUMBER},
    ],
}


def date_to_ms(value: str | None) -> int | None:
    """Lark datetime value (UTC midnight, epoch milliseconds) for an ISO date."""
    if not value:
        return None
    try:
        day = date.fromisoformat(value[:10])
    except ValueError:
        return None
    return int(datetime.combine(day, time(), tzinfo=UTC).timestamp() * 1000)


def field_text(value: Any) -> str:
    """Plain text of a Lark cell; text cells may come back as rich-text segments."""
    if value is None:
        return ""
    if isinstance(value, list):
        return "".join(
            str(part.get("text", "")) if isinstance(part, dict) else str(part) for part in value
        )
    return str(value)


def deal_sync_key(deal_id: int | None, line_index: int) -> str:
    return f"{deal_id}:{line_index}"


def wallet_sync_key(date_ms: Any, amount: Any, description: Any) -> str:
    """Wallet transactions have no stable id, so date, amount and text identify them."""
    day = to_int(date_ms) if date_ms not in (None, "") else "none"
    return f"{day}_{to_int(amount)}_{field_text(description)}"


async def init_base(
    lark: LarkClient,
    store: BaseConfigStore,
    name: str = DEFAULT_BASE_NAME,
    table_delay: float = 0.3,
    out: Callable[[str], object] = print,
) -> BaseConfig:
    """Create a Base with the three mirror tables and save its ids."""
    app = await lark.create_base(name)
    app_token = app["app_token"]
    out(f"Created Base {app_token}")

    tables: dict[str, str] = {}
    for table_name, fields in TABLE_DEFINITIONS.items():
        tables[table_name] = await lark.create_table(app_token, table_name, fields)
        out(f"  table '{table_name}': {tables[table_name]}")
        await asyncio.sleep(table_delay)

    # A new Base starts with an empty default table.
    try:
        for table in await lark.list_tables(app_token):
            if table.get("table_id") not in tables.values():
                await lark.delete_table(app_token, table["table_id"])
                logger.info("default_table_deleted", table_id=table["table_id"])
    except LarkAPIError as e:
        logger.warning("default_table_delete_failed", error=str(e))

    config = BaseConfig(app_token=app_token, url=app.get("url") or "", tables=tables)
    store.save(config)
    out(f"Base URL: {config.url}")
    return config


async def _existing_fields(lark: LarkClient, config: BaseConfig, table: str) -> list[dict[str, Any]]:
    records = await lark.list_records(config.app_token, config.table_id(table))
    return [record.get("fields") or {} for record in records]


def deal_records(
    deals: list[Deal],
    accounts: NameLookup,
    partners: NameLookup,
    mappings: Mappings,
    existing_keys: set[str],
) -> list[dict[str, Any]]:
    """Base records for every deal line whose sync key is not in ``existing_keys``."""
    records = []
    for deal in deals:
        partner = partners.name_or(deal.partner_id, "")
        for index, detail in enumerate(deal.details):
            key = deal_sync_key(deal.id, index)
            if key in existing_keys:
                continue
            existing_keys.add(key)
            records.append(
                {
                    "fields": {
                        "sync_key": key,
                        "freee_deal_id": deal.id,
                        "Date": date_to_ms(deal.issue_date),
                        "Type": "Income" if deal.is_income else "Expense",
                        "Partner": partner,
                        "Account item": accounts.name_or_id(detail.account_item_id),
                        "Amount": detail.amount,
                        "VAT": detail.vat,
                        "Tax code": mappings.tax_name(detail.tax_code),
                        "Description": detail.description or "",
                        "Status": "Settled" if deal.status == "settled" else "Unsettled",
                    }
                }
            )
    return records


async def sync_deals(
    lark: LarkClient,
    freee: FreeeClient,
    config: BaseConfig,
    mappings: Mappings,
    out: Callable[[str], object] = print,
) -> int:
    """Insert deal lines not yet in the Base. Returns the number of records created."""
    deals, account_items, partners, existing = await asyncio.gather(
        freee.fetch_deals(),
        freee.fetch_account_items(),
        freee.fetch_partners(),
        _existing_fields(lark, config, DEALS_TABLE),
    )
    existing_keys = {field_text(f.get("sync_key")) for f in existing if f.get("sync_key")}
    records = deal_records(
        deals,
        NameLookup.from_records(account_items),
        NameLookup.from_records(partners),
        mappings,
        existing_keys,
    )
    out(f"Deals: {len(deals)} in freee, {len(existing)} in Base, {len(records)} new lines")
    if not records:
        return 0
    created = await lark.batch_create_records(
        config.app_token, config.table_id(DEALS_TABLE), records
    )
    logger.info("deals_synced", created=created)
    return created


async def sync_wallet_txns(
    lark: LarkClient,
    freee: FreeeClient,
    config: BaseConfig,
    wallet_delay: float = 0.3,
    out: Callable[[str], object] = print,
) -> int:
    """Insert wallet transactions not yet in the Base, wallet by wallet."""
    existing = await _existing_fields(lark, config, WALLET_TABLE)
    existing_keys = {
        wallet_sync_key(f.get("Date"), f.get("Amount"), f.get("Description")) for f in existing
    }

    records: list[dict[str, Any]] = []
    for wallet in await freee.list_walletables():
        txns = await freee.fetch_all_wallet_txns(wallet["id"], wallet["type"])
        for txn in txns:
            date_ms = date_to_ms(txn.get("date"))
            key = wallet_sync_key(date_ms, txn.get("amount"), txn.get("description") or "")
            if key in existing_keys:
                continue
            existing_keys.add(key)
            records.append(
                {
                    "fields": {
                        "Date": date_ms,
                        "Wallet": wallet.get("name", ""),
                        "Wallet type": wallet.get("type", ""),
                        "Amount": to_int(txn.get("amount")),
                        "Description": txn.get("description") or "",
                        "Linked": "Linked" if txn.get("deal_id") else "Not linked",
                        "freee_deal_id": txn.get("deal_id"),
                    }
                }
            )
        await asyncio.sleep(wallet_delay)

    out(f"Wallet transactions: {len(records)} new")
    if not records:
        return 0
    created = await lark.batch_create_records(
        config.app_token, config.table_id(WALLET_TABLE), records
    )
    logger.info("wallet_txns_synced", created=created)
    return created


def summary_records(deals: list[Deal]) -> list[dict[str, Any]]:
    return [
        {
            "fields": {
                "Month": month,
                "Income": bucket.income,
                "Expense": bucket.expense,
                "Net": bucket.income - bucket.expense,
                "Deals": bucket.count,
            }
        }
        for month, bucket in summarize_by_month(deals).items()
    ]


def _summary_row(fields: dict[str, Any]) -> tuple[str, int, int, int]:
    return (
        field_text(fields.get("Month")),
        to_int(fields.get("Income")),
        to_int(fields.get("Expense")),
        to_int(fields.get("Deals")),
    )


async def sync_monthly_summary(
    lark: LarkClient,
    freee: FreeeClient,
    config: BaseConfig,
    out: Callable[[str], object] = print,
) -> int:
    """Replace the summary table with current month totals; no writes when unchanged."""
    table_id = config.table_id(SUMMARY_TABLE)
    deals, existing = await asyncio.gather(
        freee.fetch_deals(), lark.list_records(config.app_token, table_id)
    )
    records = summary_records(deals)

    current = sorted(_summary_row(r["fields"]) for r in records)
    stored = sorted(_summary_row(r.get("fields") or {}) for r in existing)
    if current == stored:
        out("Monthly summary unchanged")
        return 0

    if existing:
        await lark.batch_delete_records(
            config.app_token, table_id, [r["record_id"] for r in existing]
        )
    created = await lark.batch_create_records(config.app_token, table_id, records) if records else 0
    out(f"Monthly summary: {created} months written")
    logger.info("monthly_summary_synced", months=created)
    return created


async def base_status(lark: LarkClient, store: BaseConfigStore) -> dict[str, int | str]:
    """Record count per mirrored table, or the error text for a table that failed."""
    config = store.require()
    status: dict[str, int | str] = {}
    for name, table_id in config.tables.items():
        try:
            status[name] = len(await lark.list_records(config.app_token, table_id))
        except LarkAPIError as e:
            logger.warning("table_status_failed", table=name, error=str(e))
            status[name] = f"error: {e}"
    return status
