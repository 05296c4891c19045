"""Tests for the Sheets and Drive wrappers."""

from unittest.mock import MagicMock

import pytest

from freee_link.clients.google import DriveClient, GoogleServices, SheetsClient, SheetTable
from freee_link.config.settings import ConfigurationError


@pytest.fixture
def sheets_service():
    service = MagicMock()
    spreadsheets = service.spreadsheets.return_value
    spreadsheets.get.return_value.execute.return_value = {
        "sheets": [{"properties": {"title": "Deals", "sheetId": 5}}]
    }
    spreadsheets.batchUpdate.return_value.execute.return_value = {
        "replies": [{"addSheet": {"properties": {"sheetId": 9}}}]
    }
    return service


class TestSheetsClient:
    def test_sheet_id_lookup(self, sheets_service):
        client = SheetsClient(sheets_service, "sheet-1")

        assert client.sheet_id("Deals") == 5
        assert client.sheet_id("Missing") is None

    def test_create_sheet_replaces_existing(self, sheets_service):
        client = SheetsClient(sheets_service, "sheet-1")

        assert client.create_sheet("Deals") == 9

        calls = sheets_service.spreadsheets.return_value.batchUpdate.call_args_list
        assert calls[0].kwargs["body"] == {"requests": [{"deleteSheet": {"sheetId": 5}}]}
        assert calls[1].kwargs["body"] == {
            "requests": [{"addSheet": {"properties": {"title": "Deals"}}}]
        }

    def test_write_table(self, sheets_service):
        client = SheetsClient(sheets_service, "sheet-1")
        table = SheetTable(title="New", headers=["A", "B"], rows=[[1, 2], [3, 4]])

        assert client.write_table(table) == 2

        update = sheets_service.spreadsheets.return_value.values.return_value.update
        assert update.call_args.kwargs["range"] == "'New'!A1"
        assert update.call_args.kwargs["body"] == {"values": [["A", "B"], [1, 2], [3, 4]]}
        # add + header format, no delete for a new title
        assert sheets_service.spreadsheets.return_value.batchUpdate.call_count == 2

    def test_read_rows_without_values(self, sheets_service):
        sheets_service.spreadsheets.return_value.values.return_value.get.return_value.execute.return_value = {}

        assert SheetsClient(sheets_service, "sheet-1").read_rows("'Import'!A:H") == []

    def test_url(self):
        assert SheetsClient(MagicMock(), "abc").url == "https://docs.google.com/spreadsheets/d/abc"


class TestDriveClient:
    def test_list_follows_page_tokens(self):
        service = MagicMock()
        files_list = service.files.return_value.list
        files_list.return_value.execute.side_effect = [
            {"files": [{"id": "a"}], "nextPageToken": "next"},
            {"files": [{"id": "b"}]},
        ]

        files = DriveClient(service).list_files("folder-1")

        assert [f["id"] for f in files] == ["a", "b"]
        assert files_list.call_args_list[0].kwargs["pageToken"] is None
        assert files_list.call_args_list[1].kwargs["pageToken"] == "next"
        assert "'folder-1' in parents" in files_list.call_args.kwargs["q"]

    def test_download(self):
        service = MagicMock()
        service.files.return_value.get_media.return_value.execute.return_value = b"pdf"

        assert DriveClient(service).download("f1") == b"pdf"
        service.files.return_value.get_media.assert_called_once_with(fileId="f1")


def test_missing_service_account_file(tmp_path):
    services = GoogleServices(tmp_path / "missing.json")

    with pytest.raises(ConfigurationError, match="Service account file not found"):
        services.spreadsheet("sheet-1").sheet_id("x")
