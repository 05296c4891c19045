"""Account, tax-code and report-category mappings loaded from YAML."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

DEFAULT_MAPPINGS_PATH = Path(__file__).resolve().parent / "mappings.yaml"


@dataclass(frozen=True)
class Mappings:
    """Identifier tables for one freee company."""

    account_items: dict[str, int]
    tax_codes: dict[int, str]
    default_expense_tax_code: int
    income_account_item: str
    income_tax_codes: dict[int, int]
    default_income_tax_code: int
    income_category_ids: frozenset[int]
    expense_category_ids: frozenset[int]

    def account_item_id(self, name: str) -> int | None:
        return self.account_items.get(name.strip())

    def tax_code_for(self, label: str | None) -> int:
        """Resolve a tax label (or a bare numeric code) to a freee tax code."""
        if not label or not label.strip():
            return self.default_expense_tax_code
        label = label.strip()
        if label.isdigit():
            return int(label)
        for code, name in self.tax_codes.items():
            if name == label:
                return code
        return self.default_expense_tax_code

    def tax_name(self, code: int | None) -> str:
        if code is None:
            return ""
        return self.tax_codes.get(code, str(code))

    def income_tax_code_for(self, rate: int | None) -> int:
        if rate is None:
            return self.default_income_tax_code
        return self.income_tax_codes.get(rate, self.default_income_tax_code)


def _int_keys(raw: Any, section: str) -> dict[int, Any]:
    if not isinstance(raw, dict):
        raise ValueError(f"mappings section '{section}' must be a mapping")
    try:
        return {int(key): value for key, value in raw.items()}
    except (TypeError, ValueError) as e:
        raise ValueError(f"mappings section '{section}' has a non-numeric key") from e


def parse_mappings(data: dict[str, Any]) -> Mappings:
    """Validate raw YAML content and build a :class:`Mappings`."""
    account_items = data.get("account_items") or {}
    if not isinstance(account_items, dict):
        raise ValueError("mappings section 'account_items' must be a mapping")

    trial = data.get("trial_balance") or {}
    tax_codes = _int_keys(data.get("tax_codes") or {}, "tax_codes")
    income_tax_codes = _int_keys(data.get("income_tax_codes") or {}, "income_tax_codes")

    return Mappings(
        account_items={str(name): int(item_id) for name, item_id in account_items.items()},
        tax_codes={code: str(label) for code, label in tax_codes.items()},
        default_expense_tax_code=int(data.get("default_expense_tax_code", 136)),
        income_account_item=str(data.get("income_account_item", "売上高")),
        income_tax_codes={rate: int(code) for rate, code in income_tax_codes.items()},
        default_income_tax_code=int(data.get("default_income_tax_code", 2)),
        income_category_ids=frozenset(int(i) for i in trial.get("income_category_ids", [9, 13])),
        expense_category_ids=frozenset(
            int(i) for i in trial.get("expense_category_ids", [11, 12, 14])
        ),
    )


@lru_cache
def load_mappings(path: Path | None = None) -> Mappings:
    """Load mappings from ``path``, or the bundled defaults when no path is given."""
    source = path or DEFAULT_MAPPINGS_PATH
    if not source.exists():
        raise FileNotFoundError(f"Mappings file not found: {source}")
    data = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Mappings file must contain a mapping: {source}")
    return parse_mappings(data)
