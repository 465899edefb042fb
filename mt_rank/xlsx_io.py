from __future__ import annotations

import logging
import os
import tempfile
import threading
import zipfile
from contextlib import contextmanager
from io import BytesIO
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from filelock import FileLock, Timeout
import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.utils import get_column_letter
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from .config import RunConfig
from .errors import ParseFailed, StoreError
from .rows import comment_column, parse_csv_text, ranking_column, resolve_columns
from .store import TableStore


logger = logging.getLogger(__name__)


def _text(v: object) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def _header_values(ws: Worksheet) -> List[str]:
    header = [_text(c.value) for c in next(ws.iter_rows(min_row=1, max_row=1))]
    while header and header[-1] == "":
        header.pop()
    return header


def header_map(ws: Worksheet) -> Dict[str, int]:
    return {name.strip(): idx + 1 for idx, name in enumerate(_header_values(ws)) if name.strip()}


def ensure_column(ws: Worksheet, name: str) -> int:
    """Ensure a header column exists; if missing, append it. Returns 1-based col index."""
    hm = header_map(ws)
    if name in hm:
        return hm[name]
    col = len(_header_values(ws)) + 1
    ws.cell(row=1, column=col, value=name)
    return col


class _PathLock:
    """
    Re-entrant lock for one workbook path: a thread lock for sessions of this
    process plus a `.lock` file for other processes on the same host.
    """

    def __init__(self, path: Path):
        self.path = path
        self._thread = threading.RLock()
        self._file = FileLock(f"{path}.lock")

    def acquire(self, timeout: float) -> None:
        if not self._thread.acquire(timeout=timeout):
            raise StoreError(f"Timed out waiting for workbook lock: {self.path}")
        try:
            self._file.acquire(timeout=timeout)
        except Timeout:
            self._thread.release()
            raise StoreError(f"Timed out waiting for workbook lock file: {self._file.lock_file}")
        except OSError as e:
            self._thread.release()
            raise StoreError(f"Cannot lock workbook {self.path}: {e}")
        except BaseException:
            self._thread.release()
            raise

    def release(self) -> None:
        try:
            self._file.release()
        finally:
            self._thread.release()


_PATH_LOCKS: Dict[Path, _PathLock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _path_lock(path: Path) -> _PathLock:
    key = path.resolve()
    with _PATH_LOCKS_GUARD:
        if key not in _PATH_LOCKS:
            _PATH_LOCKS[key] = _PathLock(key)
        return _PATH_LOCKS[key]


class XlsxTableStore(TableStore):
    """
    Worksheet of an .xlsx file on disk. The workbook is re-opened for every
    read and saved after every write, so sessions sharing the file see each
    other's commits.

    Every write is a load-modify-save under the path lock, and the save lands
    through a temp file renamed over the workbook, so readers never see a
    half-written file. All stores for the same path share one lock.
    """

    def __init__(self, path: str | Path, sheet_name: str = "Sheet1", *, lock_timeout: float = 30):
        self.path = Path(path)
        self.sheet_name = sheet_name
        self.lock_timeout = lock_timeout
        self._path_lock = _path_lock(self.path)

    @contextmanager
    def lock(self) -> Iterator["XlsxTableStore"]:
        self._path_lock.acquire(self.lock_timeout)
        try:
            yield self
        finally:
            self._path_lock.release()

    def _open(self) -> Tuple[Workbook, Worksheet]:
        if not self.path.exists():
            raise StoreError(f"Workbook not found: {self.path}")
        try:
            wb = openpyxl.load_workbook(self.path)
        except (OSError, InvalidFileException, zipfile.BadZipFile) as e:
            raise StoreError(f"Failed to open workbook {self.path}: {e}")
        if self.sheet_name not in wb.sheetnames:
            raise StoreError(f"Workbook missing required sheet: '{self.sheet_name}'")
        return wb, wb[self.sheet_name]

    def _save(self, wb: Workbook) -> None:
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.stem}.", suffix=".tmp.xlsx", dir=self.path.parent)
        os.close(fd)
        try:
            wb.save(tmp)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Failed to save workbook {self.path}: {e}")
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)

    def read_table(self) -> Tuple[List[str], List[List[str]]]:
        _, ws = self._open()
        headers = _header_values(ws)
        rows: List[List[str]] = []
        for row in ws.iter_rows(min_row=2, max_col=max(1, len(headers)), values_only=True):
            rows.append([_text(v) for v in row])
        return headers, rows

    def read_headers(self) -> List[str]:
        _, ws = self._open()
        return _header_values(ws)

    def add_column(self, name: str) -> int:
        with self.lock():
            wb, ws = self._open()
            col = ensure_column(ws, name)
            self._save(wb)
        logger.info("Added column '%s' at %s1", name, get_column_letter(col))
        return col

    def read_column(self, column: int) -> List[str]:
        _, ws = self._open()
        return [_text(ws.cell(row=r, column=column).value) for r in range(2, ws.max_row + 1)]

    def read_cells(self, row: int, columns: Sequence[int]) -> Dict[int, str]:
        _, ws = self._open()
        if row < 2 or row > ws.max_row:
            raise StoreError(f"Row {row} out of range")
        return {c: _text(ws.cell(row=row, column=c).value) for c in columns}

    def write_cells(self, row: int, values: Dict[int, str]) -> None:
        with self.lock():
            wb, ws = self._open()
            if row < 2 or row > ws.max_row:
                raise StoreError(f"Row {row} out of range")
            for c, v in values.items():
                ws.cell(row=row, column=c).value = v
            self._save(wb)


# ---------------- Store preparation ----------------

def read_uploaded_table(name: str, data: bytes) -> Tuple[List[str], List[List[str]]]:
    """CSV or XLSX upload -> (headers, rows)."""
    lower = (name or "").lower()
    if lower.endswith(".xlsx"):
        try:
            wb = openpyxl.load_workbook(BytesIO(data), data_only=True)
        except (OSError, InvalidFileException, zipfile.BadZipFile) as e:
            raise ParseFailed(f"Not a readable XLSX file: {e}")
        ws = wb.worksheets[0]
        headers = _header_values(ws)
        if not headers:
            raise ParseFailed("File appears to be empty (no header row).")
        rows = [
            [_text(v) for v in row]
            for row in ws.iter_rows(min_row=2, max_col=len(headers), values_only=True)
        ]
        return headers, rows
    return parse_csv_text(data.decode("utf-8-sig", errors="replace"))


def build_store_workbook(
    headers: Sequence[str],
    rows: Sequence[Sequence[object]],
    cfg: RunConfig,
    sheet_name: Optional[str] = None,
) -> Workbook:
    """
    Workbook holding the uploaded table plus any missing annotator columns.
    Existing annotator columns (under any accepted spelling) are kept as-is.
    """
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_name or cfg.sheet_name

    headers = [str(h) for h in headers]
    ws.append(headers)
    for r in rows:
        ws.append([_text(v) for v in r])

    resolved = resolve_columns(headers, cfg)
    for n in cfg.rounds:
        for key, col in ((f"ranking:{n}", ranking_column(n)), (f"comment:{n}", comment_column(n))):
            if resolved[key] is None:
                ensure_column(ws, col)

    ws.freeze_panes = "A2"
    ws.column_dimensions["A"].width = 10
    ws.column_dimensions["B"].width = 60
    for idx in range(3, len(_header_values(ws)) + 1):
        ws.column_dimensions[get_column_letter(idx)].width = 40
    return wb


def save_workbook_to_bytes(wb: Workbook) -> bytes:
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()
