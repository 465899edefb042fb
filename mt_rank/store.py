from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import nullcontext
from typing import ContextManager, Dict, List, Optional, Sequence, Tuple

from .errors import StoreError


class TableStore(ABC):
    """
    Spreadsheet-like backend addressed by 1-based (row, column) coordinates.
    Row 1 is the header row; data starts at row 2.
    Every call reads or writes the live backend; nothing is cached between calls.
    """

    def lock(self) -> ContextManager[object]:
        """
        Held by the commit coordinator across re-read, write and read-back.
        Stores shared by concurrent writers return a real, re-entrant lock.
        """
        return nullcontext()

    @abstractmethod
    def read_table(self) -> Tuple[List[str], List[List[str]]]:
        """Header row and all data rows as strings."""

    @abstractmethod
    def read_headers(self) -> List[str]:
        ...

    @abstractmethod
    def add_column(self, name: str) -> int:
        """Append a header cell; returns its 1-based column index."""

    @abstractmethod
    def read_column(self, column: int) -> List[str]:
        """Values of one column for data rows, index 0 is sheet row 2."""

    @abstractmethod
    def read_cells(self, row: int, columns: Sequence[int]) -> Dict[int, str]:
        ...

    @abstractmethod
    def write_cells(self, row: int, values: Dict[int, str]) -> None:
        ...


def _as_text(v: object) -> str:
    return "" if v is None else str(v)


class MemoryTableStore(TableStore):
    def __init__(self, headers: Sequence[str], rows: Optional[Sequence[Sequence[object]]] = None):
        self.headers: List[str] = [str(h) for h in headers]
        self.rows: List[List[str]] = [[_as_text(v) for v in r] for r in (rows or [])]
        self._lock = threading.RLock()

    def lock(self) -> ContextManager[object]:
        return self._lock

    def _check(self, row: int, column: int) -> None:
        if row < 2 or row > len(self.rows) + 1:
            raise StoreError(f"Row {row} out of range")
        if column < 1 or column > len(self.headers):
            raise StoreError(f"Column {column} out of range")

    def _pad(self, r: List[str]) -> List[str]:
        if len(r) < len(self.headers):
            r.extend([""] * (len(self.headers) - len(r)))
        return r

    def read_table(self) -> Tuple[List[str], List[List[str]]]:
        return list(self.headers), [list(self._pad(r)) for r in self.rows]

    def read_headers(self) -> List[str]:
        return list(self.headers)

    def add_column(self, name: str) -> int:
        self.headers.append(str(name))
        return len(self.headers)

    def read_column(self, column: int) -> List[str]:
        if column < 1 or column > len(self.headers):
            raise StoreError(f"Column {column} out of range")
        return [self._pad(r)[column - 1] for r in self.rows]

    def read_cells(self, row: int, columns: Sequence[int]) -> Dict[int, str]:
        out: Dict[int, str] = {}
        for c in columns:
            self._check(row, c)
            out[c] = self._pad(self.rows[row - 2])[c - 1]
        return out

    def write_cells(self, row: int, values: Dict[int, str]) -> None:
        for c in values:
            self._check(row, c)
        r = self._pad(self.rows[row - 2])
        for c, v in values.items():
            r[c - 1] = _as_text(v)
