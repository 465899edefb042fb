from __future__ import annotations

from typing import Callable, List, Protocol, Sequence, Tuple

from .commit import CommitCoordinator
from .config import RunConfig
from .errors import ConfigError
from .gsheets import GSheetTableStore, open_worksheet
from .models import AnnotationSubmission, CommitResult
from .sheets import SheetsClient
from .store import TableStore
from .xlsx_io import XlsxTableStore


TableLoader = Callable[[], Tuple[List[str], List[List[str]]]]


class Committer(Protocol):
    def commit(self, submissions: Sequence[AnnotationSubmission]) -> List[CommitResult]:
        ...


def open_store(cfg: RunConfig) -> TableStore:
    """Table store this process writes to directly (xlsx or sheets backend)."""
    if cfg.backend == "xlsx":
        if not cfg.xlsx_path:
            raise ConfigError("store.xlsx_path is required for the xlsx backend")
        return XlsxTableStore(cfg.xlsx_path, cfg.sheet_name, lock_timeout=cfg.timeout_seconds)

    if cfg.backend == "sheets":
        ws = open_worksheet(cfg.sheet_id, cfg.sheet_name, cfg.credentials_file, timeout=cfg.timeout_seconds)
        return GSheetTableStore(ws, cfg.sheet_id)

    raise ConfigError(f"store.backend '{cfg.backend}' has no local table store")


def open_backend(cfg: RunConfig) -> Tuple[TableLoader, Committer]:
    """Reader and committer for the configured store."""
    if cfg.backend == "remote":
        client = SheetsClient(cfg.export_csv_url(), cfg.write_url, timeout=cfg.timeout_seconds)
        return client.fetch_table, client

    store = open_store(cfg)
    return store.read_table, CommitCoordinator(store, cfg)
