"""Google Sheets and Drive access through a service account."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from freee_link.config.settings import ConfigurationError

logger = structlog.get_logger(__name__)

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
DRIVE_READONLY_SCOPE = "https://www.googleapis.com/auth/drive.readonly"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

HEADER_BACKGROUND = {"red": 0.2, "green": 0.46, "blue": 0.85}


@dataclass
class SheetTable:
    """A titled table ready to be written as one sheet."""

    title: str
    headers: list[str]
    rows: list[list[Any]] = field(default_factory=list)


class GoogleServices:
    """Builds Sheets v4 and Drive v3 services from a service-account key file."""

    def __init__(self, service_account_file: Path):
        self._service_account_file = service_account_file.expanduser()
        self._sheets: Any = None
        self._drive: Any = None

    def _build(self, api: str, version: str, scopes: list[str]) -> Any:
        # Imported on first use.
        from google.oauth2 import service_account
        from googleapiclient.discovery import build

        if not self._service_account_file.exists():
            raise ConfigurationError(
                f"Service account file not found: {self._service_account_file}"
            )
        info = json.loads(self._service_account_file.read_text(encoding="utf-8"))
        creds = service_account.Credentials.from_service_account_info(info, scopes=scopes)
        return build(api, version, credentials=creds, cache_discovery=False)

    @property
    def sheets(self) -> Any:
        if self._sheets is None:
            self._sheets = self._build("sheets", "v4", [SHEETS_SCOPE])
        return self._sheets

    @property
    def drive(self) -> Any:
        if self._drive is None:
            self._drive = self._build("drive", "v3", [DRIVE_READONLY_SCOPE])
        return self._drive

    def spreadsheet(self, spreadsheet_id: str) -> "SheetsClient":
        return SheetsClient(self.sheets, spreadsheet_id)

    def drive_client(self) -> "DriveClient":
        return DriveClient(self.drive)


class SheetsClient:
    """One spreadsheet: sheet creation, bulk writes and cell updates."""

    def __init__(self, service: Any, spreadsheet_id: str):
        self._service = service
        self.spreadsheet_id = spreadsheet_id

    @property
    def url(self) -> str:
        return f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}"

    def _batch_update(self, requests: list[dict[str, Any]]) -> dict[str, Any]:
        return (
            self._service.spreadsheets()
            .batchUpdate(spreadsheetId=self.spreadsheet_id, body={"requests": requests})
            .execute(num_retries=2)
        )

    def sheet_id(self, title: str) -> int | None:
        meta = (
            self._service.spreadsheets()
            .get(spreadsheetId=self.spreadsheet_id, fields="sheets(properties(sheetId,title))")
            .execute(num_retries=2)
        )
        for sheet in meta.get("sheets", []):
            props = sheet.get("properties", {})
            if props.get("title") == title:
                return props.get("sheetId")
        return None

    def create_sheet(self, title: str) -> int:
        """Create ``title``, deleting any existing sheet of that name first."""
        existing = self.sheet_id(title)
        if existing is not None:
            self._batch_update([{"deleteSheet": {"sheetId": existing}}])
            logger.debug("sheet_deleted", title=title)

        response = self._batch_update([{"addSheet": {"properties": {"title": title}}}])
        sheet_id = response["replies"][0]["addSheet"]["properties"]["sheetId"]
        logger.debug("sheet_created", title=title, sheet_id=sheet_id)
        return sheet_id

    def write_rows(self, title: str, headers: list[str], rows: list[list[Any]]) -> int:
        """Write headers and rows from A1; returns the number of data rows."""
        (
            self._service.spreadsheets()
            .values()
            .update(
                spreadsheetId=self.spreadsheet_id,
                range=f"'{title}'!A1",
                valueInputOption="USER_ENTERED",
                body={"values": [headers, *rows]},
            )
            .execute(num_retries=2)
        )
        return len(rows)

    def append_rows(self, title: str, rows: list[list[Any]]) -> None:
        (
            self._service.spreadsheets()
            .values()
            .append(
                spreadsheetId=self.spreadsheet_id,
                range=f"'{title}'!A1",
                valueInputOption="USER_ENTERED",
                body={"values": rows},
            )
            .execute(num_retries=2)
        )

    def format_header(self, sheet_id: int, column_count: int) -> None:
        """Bold white header on blue, first row frozen."""
        self._batch_update(
            [
                {
                    "repeatCell": {
                        "range": {
                            "sheetId": sheet_id,
                            "startRowIndex": 0,
                            "endRowIndex": 1,
                            "startColumnIndex": 0,
                            "endColumnIndex": column_count,
                        },
                        "cell": {
                            "userEnteredFormat": {
                                "backgroundColor": HEADER_BACKGROUND,
                                "textFormat": {
                                    "bold": True,
                                    "foregroundColor": {"red": 1, "green": 1, "blue": 1},
                                },
                            }
                        },
                        "fields": "userEnteredFormat(backgroundColor,textFormat)",
                    }
                },
                {
                    "updateSheetProperties": {
                        "properties": {"sheetId": sheet_id, "gridProperties": {"frozenRowCount": 1}},
                        "fields": "gridProperties.frozenRowCount",
                    }
                },
            ]
        )

    def write_table(self, table: SheetTable) -> int:
        """Replace the sheet named after the table with its contents."""
        sheet_id = self.create_sheet(table.title)
        count = self.write_rows(table.title, table.headers, table.rows)
        self.format_header(sheet_id, len(table.headers))
        logger.info("sheet_written", title=table.title, rows=count)
        return count

    def read_rows(self, a1_range: str) -> list[list[str]]:
        resp = (
            self._service.spreadsheets()
            .values()
            .get(spreadsheetId=self.spreadsheet_id, range=a1_range)
            .execute(num_retries=2)
        )
        rows = resp.get("values", [])
        return rows if isinstance(rows, list) else []

    def update_cell(self, a1: str, value: Any) -> None:
        (
            self._service.spreadsheets()
            .values()
            .update(
                spreadsheetId=self.spreadsheet_id,
                range=a1,
                valueInputOption="USER_ENTERED",
                body={"values": [[value]]},
            )
            .execute(num_retries=2)
        )


class DriveClient:
    """Read-only Drive access for receipt folders."""

    def __init__(self, service: Any):
        self._service = service

    def _list(self, query: str, fields: str) -> list[dict[str, Any]]:
        files: list[dict[str, Any]] = []
        page_token = None
        while True:
            resp = (
                self._service.files()
                .list(
                    q=query,
                    fields=f"nextPageToken, files({fields})",
                    pageSize=100,
                    pageToken=page_token,
                    orderBy="name",
                )
                .execute(num_retries=2)
            )
            files.extend(resp.get("files", []))
            page_token = resp.get("nextPageToken")
            if not page_token:
                break
        return files

    def get_folder(self, folder_id: str) -> dict[str, Any]:
        return (
            self._service.files()
            .get(fileId=folder_id, fields="id, name, mimeType")
            .execute(num_retries=2)
        )

    def list_folders(self, parent_id: str) -> list[dict[str, Any]]:
        return self._list(
            f"'{parent_id}' in parents and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false",
            "id, name",
        )

    def list_files(self, folder_id: str) -> list[dict[str, Any]]:
        return self._list(
            f"'{folder_id}' in parents and mimeType != '{FOLDER_MIME_TYPE}' and trashed = false",
            "id, name, mimeType, size, createdTime",
        )

    def download(self, file_id: str) -> bytes:
        return self._service.files().get_media(fileId=file_id).execute(num_retries=2)
