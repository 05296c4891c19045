"""Upload receipt files from month folders on Google Drive to the freee file box."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog
from googleapiclient.errors import HttpError

from freee_link.clients.freee import FreeeAPIError, FreeeClient
from freee_link.clients.google import DriveClient
from freee_link.models import to_int
from freee_link.sync.state import ProcessedLedger

logger = structlog.get_logger(__name__)

SUPPORTED_MIME_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/gif", "application/pdf"}
)
DEFAULT_MAX_SIZE_MB = 10


def receipt_key(file: dict[str, Any]) -> str:
    """Ledger key of a Drive file. Renaming a file makes it a new receipt."""
    return f"{file.get('id')}_{file.get('name')}"


def is_receipt(file: dict[str, Any]) -> bool:
    return file.get("mimeType") in SUPPORTED_MIME_TYPES


def size_mb(file: dict[str, Any]) -> float:
    return to_int(file.get("size")) / 1024 / 1024


@dataclass
class UploadSummary:
    uploaded: int = 0
    skipped: int = 0
    errors: int = 0
    failed_files: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.uploaded + self.skipped + self.errors


async def upload_receipts(
    freee: FreeeClient,
    drive: DriveClient,
    ledger: ProcessedLedger,
    root_folder_id: str,
    month: str | None = None,
    delay: float = 1.0,
    max_size_mb: float = DEFAULT_MAX_SIZE_MB,
    out: Callable[[str], object] = print,
) -> UploadSummary:
    """Upload every receipt not yet in the ledger.

    ``month`` limits the run to the month folder with that exact name
    (e.g. ``2025.12``). Each file is recorded right after its upload, so a
    second run over unchanged folders uploads nothing.
    """
    summary = UploadSummary()
    folders = drive.list_folders(root_folder_id)
    if month:
        folders = [f for f in folders if f.get("name") == month]
        if not folders:
            out(f"No month folder named '{month}'")
            return summary
    out(f"{len(folders)} month folders, {len(ledger)} receipts already uploaded")

    for folder in folders:
        files = [f for f in drive.list_files(folder["id"]) if is_receipt(f)]
        out(f"{folder.get('name')}: {len(files)} receipt files")

        for file in files:
            key = receipt_key(file)
            name = file.get("name", "")
            if key in ledger:
                summary.skipped += 1
                continue

            if size_mb(file) > max_size_mb:
                logger.warning("receipt_too_large", file=name, size_mb=round(size_mb(file), 1))
                out(f"  {name}: too large ({size_mb(file):.1f} MB)")
                summary.errors += 1
                summary.failed_files.append(name)
                continue

            try:
                content = drive.download(file["id"])
                receipt = await freee.upload_receipt(name, content, file["mimeType"])
            except (FreeeAPIError, HttpError) as e:
                logger.warning("receipt_upload_failed", file=name, error=str(e))
                out(f"  {name}: FAILED {e}")
                summary.errors += 1
                summary.failed_files.append(name)
                continue

            ledger.add(key)
            summary.uploaded += 1
            logger.info("receipt_uploaded", file=name, receipt_id=receipt.get("id"))
            out(f"  {name}: uploaded (receipt {receipt.get('id')})")
            await asyncio.sleep(delay)

    out(
        f"Uploaded: {summary.uploaded}  Skipped: {summary.skipped}  "
        f"Errors: {summary.errors}  Total: {summary.total}"
    )
    return summary


@dataclass(frozen=True)
class FolderSummary:
    id: str
    name: str
    file_count: int
    receipt_count: int
    examples: tuple[str, ...] = ()


def inspect_drive(drive: DriveClient, root_folder_id: str) -> list[FolderSummary]:
    """File counts per month folder under the receipt root."""
    summaries = []
    for folder in drive.list_folders(root_folder_id):
        files = drive.list_files(folder["id"])
        receipts = [f for f in files if is_receipt(f)]
        summaries.append(
            FolderSummary(
                id=folder["id"],
                name=folder.get("name", ""),
                file_count=len(files),
                receipt_count=len(receipts),
                examples=tuple(f.get("name", "") for f in receipts[:5]),
            )
        )
    return summaries
