from __future__ import annotations

import logging
import threading
from typing import ContextManager, Dict, List, Sequence, Tuple

import gspread
import requests
from google.oauth2.service_account import Credentials

from .errors import StoreError
from .store import TableStore


logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

_SHEET_LOCKS: Dict[Tuple[str, str], threading.RLock] = {}
_SHEET_LOCKS_GUARD = threading.Lock()


def _sheet_lock(spreadsheet_id: str, title: str) -> threading.RLock:
    with _SHEET_LOCKS_GUARD:
        return _SHEET_LOCKS.setdefault((spreadsheet_id, title), threading.RLock())


def _pad(values: List[str], width: int) -> List[str]:
    return list(values) + [""] * (width - len(values))


def open_worksheet(spreadsheet_id: str, sheet_name: str, credentials_file: str, *, timeout: float = 30):
    """Authorize with a service account key file and open one worksheet."""
    try:
        credentials = Credentials.from_service_account_file(credentials_file, scopes=SCOPES)
    except (OSError, ValueError) as e:
        raise StoreError(f"Cannot load service account credentials from {credentials_file}: {e}")
    try:
        client = gspread.authorize(credentials)
        client.set_timeout(timeout)
        return client.open_by_key(spreadsheet_id).worksheet(sheet_name)
    except gspread.exceptions.SpreadsheetNotFound:
        raise StoreError(f"Spreadsheet not found or not shared with the service account: {spreadsheet_id}")
    except gspread.exceptions.WorksheetNotFound:
        raise StoreError(f"Spreadsheet missing required sheet: '{sheet_name}'")
    except (gspread.exceptions.GSpreadException, requests.RequestException) as e:
        raise StoreError(f"Failed to open Google Sheet: {e}")


class GSheetTableStore(TableStore):
    """
    Worksheet of a Google Sheet, read and written through the Sheets API.

    Every call goes to the API; nothing is cached. Sessions in this process
    share one lock per worksheet. Writers on other hosts are not covered, so
    across hosts only the commit-time re-read guards a round slot.
    """

    def __init__(self, worksheet, spreadsheet_id: str = ""):
        self.ws = worksheet
        self._lock = _sheet_lock(spreadsheet_id or str(getattr(worksheet, "spreadsheet_id", "")), worksheet.title)

    def lock(self) -> ContextManager[object]:
        return self._lock

    def _call(self, what: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (gspread.exceptions.GSpreadException, requests.RequestException) as e:
            raise StoreError(f"Google Sheets {what} failed: {e}")

    def read_table(self) -> Tuple[List[str], List[List[str]]]:
        values = self._call("read", self.ws.get_all_values)
        if not values:
            return [], []
        headers = [str(h) for h in values[0]]
        while headers and headers[-1] == "":
            headers.pop()
        rows = [_pad([str(v) for v in r], len(headers))[: len(headers)] for r in values[1:]]
        return headers, rows

    def read_headers(self) -> List[str]:
        return [str(h) for h in self._call("read", self.ws.row_values, 1)]

    def add_column(self, name: str) -> int:
        with self._lock:
            col = len(self.read_headers()) + 1
            if col > self.ws.col_count:
                self._call("resize", self.ws.add_cols, col - self.ws.col_count)
            self._call("write", self.ws.update_cell, 1, col, name)
        logger.info("Added column '%s' at column %d of sheet '%s'", name, col, self.ws.title)
        return col

    def read_column(self, column: int) -> List[str]:
        return [str(v) for v in self._call("read", self.ws.col_values, column)[1:]]

    def read_cells(self, row: int, columns: Sequence[int]) -> Dict[int, str]:
        if row < 2:
            raise StoreError(f"Row {row} out of range")
        values = self._call("read", self.ws.row_values, row)
        values = _pad([str(v) for v in values], max(columns, default=0))
        return {c: values[c - 1] for c in columns}

    def write_cells(self, row: int, values: Dict[int, str]) -> None:
        if row < 2:
            raise StoreError(f"Row {row} out of range")
        cells = [gspread.Cell(row=row, col=c, value=v) for c, v in values.items()]
        # RAW keeps "ca,no,..." from being interpreted by the sheet
        self._call("write", self.ws.update_cells, cells, value_input_option="RAW")
