"""Spreadsheet-backed persistence for reconciliation tables.

Every named table is a worksheet in one XLSX workbook. A write replaces the whole
worksheet. When an S3 bucket is configured the saved workbook is uploaded after
each write so reviewers always pick up the latest copy.
"""

import os
import threading
import zipfile
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from config import WORKBOOK_PATH, WORKBOOK_S3_BUCKET, WORKBOOK_S3_KEY, get_s3_client, logger
from exceptions import PersistenceError

MAX_SHEET_TITLE_LENGTH = 31
_INVALID_TITLE_CHARS = set("[]:*?/\\")
_MAX_COLUMN_WIDTH = 60


def _validate_table_name(table_name: str) -> str:
    name = (table_name or "").strip()
    if not name:
        raise PersistenceError("Table name is required", table_name=table_name)
    if len(name) > MAX_SHEET_TITLE_LENGTH:
        raise PersistenceError(f"Table name '{name}' exceeds {MAX_SHEET_TITLE_LENGTH} characters", table_name=table_name)
    if any(ch in _INVALID_TITLE_CHARS for ch in name):
        raise PersistenceError(f"Table name '{name}' contains characters not allowed in a sheet title", table_name=table_name)
    return name


def _auto_fit_columns(sheet: Any) -> None:
    widths: Dict[int, int] = {}
    for row in sheet.iter_rows():
        for cell in row:
            if cell.value is None:
                continue
            widths[cell.column] = max(widths.get(cell.column, 0), len(str(cell.value)))
    for column, width in widths.items():
        sheet.column_dimensions[get_column_letter(column)].width = min(width + 2, _MAX_COLUMN_WIDTH)


class WorkbookSheetStore:
    """Persistence sink writing named tables into an XLSX workbook."""

    def __init__(self, path: str = WORKBOOK_PATH, s3_bucket: Optional[str] = WORKBOOK_S3_BUCKET, s3_key: str = WORKBOOK_S3_KEY, s3_client: Any = None) -> None:
        self._path = Path(path)
        self._s3_bucket = s3_bucket
        self._s3_key = s3_key
        self._s3_client = s3_client
        # One file backs every table, so concurrent table writes are serialised here.
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Workbook:
        if not self._path.exists():
            workbook = Workbook()
            workbook.remove(workbook.active)
            return workbook
        return load_workbook(self._path)

    def _upload(self) -> None:
        if not self._s3_bucket:
            return
        client = self._s3_client or get_s3_client()
        try:
            client.upload_file(str(self._path), self._s3_bucket, self._s3_key)
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Failed to upload workbook to S3", bucket=self._s3_bucket, key=self._s3_key, error=str(exc))
            raise PersistenceError(f"Failed to upload workbook to S3: {exc}") from exc
        logger.info("Uploaded workbook to S3", bucket=self._s3_bucket, key=self._s3_key)

    def persist(self, table_name: str, rows: Sequence[Sequence[Any]]) -> None:
        """
        Replace the contents of ``table_name`` with ``rows``.

        The first row is treated as the header and rendered bold.

        Raises:
            PersistenceError: if the workbook cannot be read, written or uploaded.
        """
        name = _validate_table_name(table_name)

        with self._lock:
            try:
                workbook = self._load()
                if name in workbook.sheetnames:
                    position = workbook.sheetnames.index(name)
                    workbook.remove(workbook[name])
                    sheet = workbook.create_sheet(name, position)
                else:
                    sheet = workbook.create_sheet(name)

                for row in rows:
                    sheet.append(list(row))
                if rows:
                    for cell in sheet[1]:
                        cell.font = Font(bold=True)
                    sheet.freeze_panes = "A2"
                _auto_fit_columns(sheet)

                os.makedirs(self._path.parent, exist_ok=True)
                workbook.save(self._path)
            except (InvalidFileException, zipfile.BadZipFile, OSError, ValueError) as exc:
                logger.exception("Failed to write table", table_name=name, path=str(self._path), error=str(exc))
                raise PersistenceError(f"Failed to write table {name}: {exc}", table_name=name) from exc

            logger.info("Wrote table", table_name=name, row_count=max(len(rows) - 1, 0), path=str(self._path))
            self._upload()

    def check_health(self) -> Dict[str, Any]:
        directory = self._path.parent
        if self._path.exists():
            try:
                load_workbook(self._path, read_only=True).close()
            except (InvalidFileException, zipfile.BadZipFile, OSError) as exc:
                return {"status": False, "message": f"Unreadable workbook: {exc}"}
            return {"status": True, "message": "Connected"}
        if directory.exists() and not os.access(directory, os.W_OK):
            return {"status": False, "message": "Permission denied"}
        return {"status": True, "message": "Workbook will be created on first write"}
