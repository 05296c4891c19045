"""Typed snapshots of the freee records the tools read.

freee responses are parsed leniently: a missing or malformed number becomes
0, a missing string becomes ``None`` and a missing list becomes empty.
Parsing never raises, so one odd record cannot abort an audit.
"""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

UNKNOWN_ACCOUNT = "(unknown)"
NO_DESCRIPTION = "(no description)"
NO_PARTNER = "(no partner)"


def to_int(value: Any) -> int:
    """Coerce an API number (int, float or numeric string) to int, 0 on failure."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).replace(",", "")))
    except (ValueError, OverflowError):
        return 0


def to_optional_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


class DealType(str, Enum):
    """Direction of a deal. Anything that is not income counts as expense."""

    INCOME = "income"
    EXPENSE = "expense"

    @classmethod
    def parse(cls, value: Any) -> "DealType":
        return cls.INCOME if value == cls.INCOME.value else cls.EXPENSE


class SettlementStatus(str, Enum):
    SETTLED = "settled"
    UNSETTLED = "unsettled"


@dataclass(frozen=True)
class DealDetail:
    """One line of a deal."""

    amount: int = 0
    account_item_id: int | None = None
    tax_code: int | None = None
    description: str | None = None
    vat: int = 0

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> "DealDetail":
        return cls(
            amount=to_int(raw.get("amount")),
            account_item_id=to_optional_int(raw.get("account_item_id")),
            tax_code=to_optional_int(raw.get("tax_code")),
            description=to_optional_str(raw.get("description")),
            vat=to_int(raw.get("vat")),
        )

    @property
    def has_description(self) -> bool:
        return bool(self.description and self.description.strip())


EMPTY_DETAIL = DealDetail()


@dataclass(frozen=True)
class Deal:
    """A freee deal (transaction) with its lines."""

    id: int | None
    issue_date: str
    type: DealType
    status: str
    partner_id: int | None = None
    receipt_partner_name: str | None = None
    details: tuple[DealDetail, ...] = field(default_factory=tuple)

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> "Deal":
        receipt_partner_name = None
        receipts = raw.get("receipts") or []
        if isinstance(receipts, list) and receipts and isinstance(receipts[0], dict):
            metadata = receipts[0].get("receipt_metadatum") or {}
            if isinstance(metadata, dict):
                receipt_partner_name = metadata.get("partner_name") or None

        details = raw.get("details") or []
        return cls(
            id=to_optional_int(raw.get("id")),
            issue_date=str(raw.get("issue_date") or ""),
            type=DealType.parse(raw.get("type")),
            status=str(raw.get("status") or ""),
            partner_id=to_optional_int(raw.get("partner_id")),
            receipt_partner_name=receipt_partner_name,
            details=tuple(
                DealDetail.from_api(d) for d in details if isinstance(d, dict)
            ),
        )

    @property
    def is_income(self) -> bool:
        return self.type is DealType.INCOME

    @property
    def is_unsettled(self) -> bool:
        return self.status == SettlementStatus.UNSETTLED.value

    @property
    def total_amount(self) -> int:
        return sum(detail.amount for detail in self.details)

    @property
    def first_detail(self) -> DealDetail:
        return self.details[0] if self.details else EMPTY_DETAIL

    @property
    def month(self) -> str | None:
        """``YYYY-MM`` of the issue date, or None when the date is missing."""
        if len(self.issue_date) < 7:
            return None
        return self.issue_date[:7]


@dataclass(frozen=True)
class AccountItem:
    id: int | None
    name: str
    account_category: str | None = None
    account_category_id: int | None = None
    shortcut: str | None = None
    tax_name: str | None = None
    dc_balance: str | None = None
    corresponding_income_name: str | None = None
    searchable: bool = False

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> "AccountItem":
        return cls(
            id=to_optional_int(raw.get("id")),
            name=str(raw.get("name") or ""),
            account_category=to_optional_str(raw.get("account_category")),
            account_category_id=to_optional_int(raw.get("account_category_id")),
            shortcut=to_optional_str(raw.get("shortcut")),
            tax_name=to_optional_str(raw.get("tax_name")),
            dc_balance=to_optional_str(raw.get("dc_balance")),
            corresponding_income_name=to_optional_str(raw.get("corresponding_income_name")),
            searchable=bool(raw.get("searchable")),
        )


@dataclass(frozen=True)
class Partner:
    id: int | None
    name: str
    code: str | None = None
    org_code: int | None = None
    phone: str | None = None
    email: str | None = None
    address: str = ""

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> "Partner":
        address = ""
        attrs = raw.get("address_attributes")
        if isinstance(attrs, dict):
            address = (
                f"{attrs.get('prefecture_code') or ''} {attrs.get('street_name1') or ''}"
            ).strip()
        return cls(
            id=to_optional_int(raw.get("id")),
            name=str(raw.get("name") or ""),
            code=to_optional_str(raw.get("code")),
            org_code=to_optional_int(raw.get("org_code")),
            phone=to_optional_str(raw.get("phone")),
            email=to_optional_str(raw.get("email")),
            address=address,
        )

    @property
    def is_corporation(self) -> bool:
        return bool(self.org_code)


@dataclass(frozen=True)
class TrialBalanceRow:
    account_item_name: str = ""
    account_category_name: str = ""
    account_category_id: int | None = None
    debit_amount: int = 0
    credit_amount: int = 0
    debit_total: int = 0
    credit_total: int = 0
    opening_balance: int = 0
    closing_balance: int = 0

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> "TrialBalanceRow":
        return cls(
            account_item_name=str(raw.get("account_item_name") or ""),
            account_category_name=str(raw.get("account_category_name") or ""),
            account_category_id=to_optional_int(raw.get("account_category_id")),
            debit_amount=to_int(raw.get("debit_amount")),
            credit_amount=to_int(raw.get("credit_amount")),
            debit_total=to_int(raw.get("debit_total")),
            credit_total=to_int(raw.get("credit_total")),
            opening_balance=to_int(raw.get("opening_balance")),
            closing_balance=to_int(raw.get("closing_balance")),
        )


@dataclass(frozen=True)
class TrialBalance:
    """A trial-balance report (PL or BS) as a list of per-account rows."""

    rows: tuple[TrialBalanceRow, ...] = field(default_factory=tuple)

    @classmethod
    def from_api(cls, raw: Mapping[str, Any] | None) -> "TrialBalance":
        balances = (raw or {}).get("balances") or []
        return cls(
            rows=tuple(TrialBalanceRow.from_api(b) for b in balances if isinstance(b, dict))
        )


@dataclass(frozen=True)
class FiscalYear:
    start_date: date
    end_date: date

    @property
    def label(self) -> str:
        return f"{self.start_date.isoformat()}..{self.end_date.isoformat()}"

    @classmethod
    def list_from_api(cls, raw: Any) -> list["FiscalYear"]:
        """Parse a company's ``fiscal_years``, skipping entries without valid dates."""
        years = []
        for entry in raw or []:
            if not isinstance(entry, dict):
                continue
            try:
                start = date.fromisoformat(str(entry.get("start_date")))
                end = date.fromisoformat(str(entry.get("end_date")))
            except ValueError:
                continue
            years.append(cls(start_date=start, end_date=end))
        return years


class NameLookup(Mapping[int, str]):
    """Read-only id -> name table with explicit fallbacks on a miss."""

    def __init__(self, names: Mapping[int, str] | None = None):
        self._names: dict[int, str] = dict(names or {})

    @classmethod
    def from_records(cls, records: Iterable[AccountItem | Partner]) -> "NameLookup":
        return cls({r.id: r.name for r in records if r.id is not None})

    def __getitem__(self, key: int) -> str:
        return self._names[key]

    def __iter__(self) -> Iterator[int]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def name_or(self, key: int | None, fallback: str) -> str:
        if key is None:
            return fallback
        return self._names.get(key) or fallback

    def name_or_id(self, key: int | None) -> str:
        """Name for ``key``, else the id itself as text."""
        if key is None:
            return UNKNOWN_ACCOUNT
        return self._names.get(key) or str(key)
