"""Tests for the receipt ledger and the Lark Base config file."""

import json

import pytest

from freee_link.config.settings import ConfigurationError
from freee_link.sync.state import BaseConfig, BaseConfigStore, ProcessedLedger


class TestProcessedLedger:
    def test_add_persists(self, tmp_path):
        path = tmp_path / "ledger.json"
        ledger = ProcessedLedger(path)

        ledger.add("a_1.jpg")
        ledger.add("a_1.jpg")

        assert "a_1.jpg" in ledger
        assert json.loads(path.read_text(encoding="utf-8")) == {"processed": ["a_1.jpg"]}

    def test_duplicates_in_file_are_collapsed(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps({"processed": ["x", "y", "x"]}), encoding="utf-8")

        ledger = ProcessedLedger(path)

        assert len(ledger) == 2
        assert "missing" not in ledger


class TestBaseConfigStore:
    def test_missing_file(self, tmp_path):
        store = BaseConfigStore(tmp_path / "base.json")

        assert store.load() is None
        with pytest.raises(ConfigurationError, match="lark:base:init"):
            store.require()

    def test_save_and_load(self, tmp_path):
        store = BaseConfigStore(tmp_path / "base.json")
        store.save(BaseConfig(app_token="app-1", url="https://example", tables={"Deals": "tbl1"}))

        config = store.require()

        assert config.app_token == "app-1"
        assert config.table_id("Deals") == "tbl1"
        assert config.created_at

    def test_file_without_token_counts_as_missing(self, tmp_path):
        path = tmp_path / "base.json"
        path.write_text("{}", encoding="utf-8")

        assert BaseConfigStore(path).load() is None

    def test_unknown_table(self):
        with pytest.raises(ConfigurationError, match="Summary"):
            BaseConfig(app_token="app-1").table_id("Summary")
