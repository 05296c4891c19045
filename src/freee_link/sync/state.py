"""Small JSON files that remember what has already been synced."""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from freee_link.config.settings import ConfigurationError


class ProcessedLedger:
    """Keys of receipts already uploaded, stored as ``{"processed": [...]}``.

    Every ``add`` is written straight to disk, so an interrupted run never
    uploads a recorded file again.
    """

    def __init__(self, path: Path):
        self.path = path
        self._keys: list[str] = []
        self._seen: set[str] = set()
        if path.exists():
            raw = json.loads(path.read_text(encoding="utf-8"))
            for key in raw.get("processed", []):
                if key not in self._seen:
                    self._keys.append(key)
                    self._seen.add(key)

    def __contains__(self, key: object) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, key: str) -> None:
        if key in self._seen:
            return
        self._keys.append(key)
        self._seen.add(key)
        self.path.write_text(
            json.dumps({"processed": self._keys}, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )


@dataclass
class BaseConfig:
    app_token: str
    url: str = ""
    tables: dict[str, str] = field(default_factory=dict)
    created_at: str = ""

    def table_id(self, name: str) -> str:
        try:
            return self.tables[name]
        except KeyError:
            raise ConfigurationError(
                f"Table '{name}' is missing from the Lark Base config; run lark:base:init"
            ) from None


class BaseConfigStore:
    """Where ``lark:base:init`` records the Base it created."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> BaseConfig | None:
        if not self.path.exists():
            return None
        raw: dict[str, Any] = json.loads(self.path.read_text(encoding="utf-8"))
        if not raw.get("app_token"):
            return None
        return BaseConfig(
            app_token=raw["app_token"],
            url=raw.get("url") or "",
            tables=dict(raw.get("tables") or {}),
            created_at=raw.get("created_at") or "",
        )

    def require(self) -> BaseConfig:
        config = self.load()
        if config is None:
            raise ConfigurationError("Lark Base is not initialised; run lark:base:init first")
        return config

    def save(self, config: BaseConfig) -> None:
        if not config.created_at:
            config.created_at = datetime.now(UTC).isoformat()
        payload = {
            "app_token": config.app_token,
            "url": config.url,
            "tables": config.tables,
            "created_at": config.created_at,
        }
        self.path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
