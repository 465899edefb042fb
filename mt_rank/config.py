from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Dict, Any, Optional
import yaml

from .errors import ConfigError


BACKENDS = ("xlsx", "sheets", "remote")

DEFAULTS: Dict[str, Any] = {
    "corpus": {
        "candidate_keys": ["ad", "an", "bo", "ca", "op", "pa", "no"],
        "id_min": 0,
        "id_max": 49,
        "num_rounds": 3,
    },
    "batch": {"size": 5},
    "store": {
        "backend": "xlsx",
        "xlsx_path": "annotations.xlsx",
        "sheet_name": "Sheet1",
        "sheet_id": "",
        "gid": 0,
        "credentials_file": "service_account.json",
        "csv_url": "",
        "write_url": "",
        "timeout_seconds": 30,
    },
    "ui": {"show_instructions": True, "completion_url": ""},
    "logging": {"level": "INFO"},
}


@dataclass(frozen=True)
class RunConfig:
    candidate_keys: List[str]
    id_min: int
    id_max: int
    num_rounds: int
    batch_size: int
    backend: str
    xlsx_path: str
    sheet_name: str
    sheet_id: str
    gid: int
    credentials_file: str
    csv_url: str
    write_url: str
    timeout_seconds: float
    ui_show_instructions: bool
    ui_completion_url: str
    log_level: str

    @property
    def num_candidates(self) -> int:
        return len(self.candidate_keys)

    @property
    def rounds(self) -> List[int]:
        return list(range(1, self.num_rounds + 1))

    def id_in_range(self, n: int) -> bool:
        return self.id_min <= n <= self.id_max

    def export_csv_url(self) -> Optional[str]:
        if self.csv_url:
            return self.csv_url
        if self.sheet_id:
            return f"https://docs.google.com/spreadsheets/d/{self.sheet_id}/export?format=csv&gid={self.gid}"
        return None


def default_config() -> RunConfig:
    return _build(DEFAULTS)


def load_config(path: str | Path = "config.yaml") -> RunConfig:
    p = Path(path)
    if not p.exists():
        data = DEFAULTS
    else:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    return _build(data)


def _build(data: Dict[str, Any]) -> RunConfig:
    def _req(obj: Dict[str, Any], key: str, ctx: str) -> Any:
        if not isinstance(obj, dict) or key not in obj:
            raise ConfigError(f"Missing config key: {ctx}.{key}")
        return obj[key]

    corpus = _req(data, "corpus", "root")
    batch = _req(data, "batch", "root")
    store = _req(data, "store", "root")
    ui = data.get("ui") or DEFAULTS["ui"]
    log = data.get("logging") or DEFAULTS["logging"]

    keys_raw = _req(corpus, "candidate_keys", "corpus")
    if not isinstance(keys_raw, list):
        raise ConfigError("corpus.candidate_keys must be a list")

    # Write endpoint may be supplied by the deployment environment
    write_url = os.environ.get("GOOGLE_APPS_SCRIPT_URL") or str(store.get("write_url") or "")

    cfg = RunConfig(
        candidate_keys=[str(k).strip().lower() for k in keys_raw],
        id_min=int(_req(corpus, "id_min", "corpus")),
        id_max=int(_req(corpus, "id_max", "corpus")),
        num_rounds=int(corpus.get("num_rounds", 3)),
        batch_size=int(_req(batch, "size", "batch")),
        backend=str(_req(store, "backend", "store")).strip().lower(),
        xlsx_path=str(store.get("xlsx_path") or ""),
        sheet_name=str(store.get("sheet_name") or "Sheet1"),
        sheet_id=str(store.get("sheet_id") or ""),
        gid=int(store.get("gid") or 0),
        credentials_file=str(store.get("credentials_file") or ""),
        csv_url=str(store.get("csv_url") or ""),
        write_url=write_url,
        timeout_seconds=float(store.get("timeout_seconds") or 30),
        ui_show_instructions=bool(ui.get("show_instructions", True)),
        ui_completion_url=str(ui.get("completion_url") or ""),
        log_level=str(log.get("level") or "INFO").upper(),
    )

    # Basic invariants
    if not cfg.candidate_keys:
        raise ConfigError("corpus.candidate_keys must not be empty")
    if len(cfg.candidate_keys) != len(set(cfg.candidate_keys)):
        raise ConfigError("Candidate keys must be unique")
    if any(not k for k in cfg.candidate_keys):
        raise ConfigError("Candidate keys must be non-empty strings")
    if cfg.id_min < 0 or cfg.id_min > cfg.id_max:
        raise ConfigError("corpus.id_min must be >= 0 and <= corpus.id_max")
    if cfg.num_rounds <= 0:
        raise ConfigError("corpus.num_rounds must be > 0")
    if cfg.batch_size <= 0:
        raise ConfigError("batch.size must be > 0")
    if cfg.backend not in BACKENDS:
        raise ConfigError(f"store.backend must be one of {', '.join(BACKENDS)}")
    if cfg.backend == "sheets" and not (cfg.sheet_id and cfg.credentials_file):
        raise ConfigError("store.sheet_id and store.credentials_file are required for the sheets backend")
    if cfg.timeout_seconds <= 0:
        raise ConfigError("store.timeout_seconds must be > 0")

    return cfg
