from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .config import RunConfig
from .errors import ParseFailed
from .models import Candidate, RoundState, SentenceRecord


logger = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"\d+")
_SEP_RE = re.compile(r"[\s\-]+")

# canonical key -> accepted spellings (after _norm)
BASE_ALIASES: Dict[str, List[str]] = {
    "id": ["id", "sentence_id", "item_id"],
    "sentence": ["sentence", "source", "src", "source_sentence"],
}


def ranking_column(n: int) -> str:
    return f"Annotator_{n}_Rankings"


def comment_column(n: int) -> str:
    return f"Annotator_{n}_Comments"


def round_columns(cfg: RunConfig) -> List[str]:
    cols: List[str] = []
    for n in cfg.rounds:
        cols += [ranking_column(n), comment_column(n)]
    return cols


def _norm(s: object) -> str:
    return _SEP_RE.sub("_", str(s).strip().lower()) if s is not None else ""


def _round_aliases(n: int, noun: str) -> List[str]:
    # noun is "ranking" or "comment"; accepts singular/plural and spacing variants
    out: List[str] = []
    for word in (noun, noun + "s"):
        out += [f"annotator_{n}_{word}", f"annotator{n}_{word}", f"{word}_{n}", f"round_{n}_{word}"]
    return out


def alias_table(cfg: RunConfig) -> Dict[str, List[str]]:
    table = {k: list(v) for k, v in BASE_ALIASES.items()}
    for key in cfg.candidate_keys:
        table[f"candidate:{key}"] = [key]
    for n in cfg.rounds:
        table[f"ranking:{n}"] = _round_aliases(n, "ranking")
        table[f"comment:{n}"] = _round_aliases(n, "comment")
    return table


@dataclass(frozen=True)
class TableSchema:
    """Resolved 0-based column indices for one header row."""

    id_col: int
    sentence_col: int
    candidate_cols: Dict[str, int]
    ranking_cols: Dict[int, Optional[int]]
    comment_cols: Dict[int, Optional[int]]


def resolve_columns(headers: Sequence[object], cfg: RunConfig) -> Dict[str, Optional[int]]:
    """Map every canonical key to its first matching header index (None if absent)."""
    norm = [_norm(h) for h in headers]
    out: Dict[str, Optional[int]] = {}
    for canonical, spellings in alias_table(cfg).items():
        out[canonical] = None
        for i, h in enumerate(norm):
            if h in spellings:
                out[canonical] = i
                break
    return out


def resolve_schema(headers: Sequence[object], cfg: RunConfig) -> TableSchema:
    cols = resolve_columns(headers, cfg)

    required = ["id", "sentence"] + [f"candidate:{k}" for k in cfg.candidate_keys]
    missing = [c.split(":")[-1] for c in required if cols[c] is None]
    if missing:
        logger.error("Header is missing required column(s): %s", ", ".join(missing))
        raise ParseFailed(f"Required column(s) not found: {', '.join(missing)}")

    for n in cfg.rounds:
        if cols[f"ranking:{n}"] is None:
            logger.info("No ranking column for round %d; treating round %d as incomplete", n, n)

    return TableSchema(
        id_col=cols["id"],
        sentence_col=cols["sentence"],
        candidate_cols={k: cols[f"candidate:{k}"] for k in cfg.candidate_keys},
        ranking_cols={n: cols[f"ranking:{n}"] for n in cfg.rounds},
        comment_cols={n: cols[f"comment:{n}"] for n in cfg.rounds},
    )


def parse_csv_text(text: str) -> Tuple[List[str], List[List[str]]]:
    """
    Split a CSV export into (headers, data rows).
    Blank lines are kept as empty rows so list position maps to sheet row.
    """
    text = text.lstrip("\ufeff")
    if not text.strip():
        raise ParseFailed("No data found in sheet (empty export).")

    reader = csv.reader(io.StringIO(text, newline=""))
    try:
        headers = [h.strip() for h in next(reader)]
    except csv.Error as e:
        raise ParseFailed(f"Malformed CSV header: {e}")

    try:
        rows = [list(r) for r in reader]
    except csv.Error as e:
        raise ParseFailed(f"Malformed CSV data: {e}")
    return headers, rows


def parse_ranking_cell(value: object) -> List[str]:
    if value is None:
        return []
    return [p.strip() for p in str(value).split(",") if p.strip()]


def serialize_ranking(keys: Sequence[str]) -> str:
    return ",".join(keys)


def numeric_id(sentence_id: str) -> Optional[int]:
    m = _DIGITS_RE.search(sentence_id)
    return int(m.group(0)) if m else None


def _cell(row: Sequence[object], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    v = row[idx]
    return str(v).strip() if v is not None else ""


def parse_records(
    headers: Sequence[object],
    rows: Sequence[Sequence[object]],
    cfg: RunConfig,
) -> List[SentenceRecord]:
    schema = resolve_schema(headers, cfg)

    records: List[SentenceRecord] = []
    seen: Dict[str, int] = {}
    for i, raw in enumerate(rows):
        row_coordinate = i + 2  # header is row 1

        sentence_id = _cell(raw, schema.id_col)
        sentence = _cell(raw, schema.sentence_col)
        if not sentence_id:
            continue

        if sentence_id in seen:
            logger.warning(
                "Row %d: duplicate id %r (first seen at row %d), skipped",
                row_coordinate, sentence_id, seen[sentence_id],
            )
            continue
        seen[sentence_id] = row_coordinate

        if not sentence:
            continue

        n = numeric_id(sentence_id)
        if n is None or not cfg.id_in_range(n):
            logger.debug("Row %d: id %r outside valid range, skipped", row_coordinate, sentence_id)
            continue

        candidates = [Candidate(k, _cell(raw, schema.candidate_cols[k])) for k in cfg.candidate_keys]
        if any(not c.text for c in candidates):
            logger.debug("Row %d: id %r has incomplete candidates, skipped", row_coordinate, sentence_id)
            continue

        rounds = [
            RoundState(
                ranking=parse_ranking_cell(_cell(raw, schema.ranking_cols[r])),
                comment=_cell(raw, schema.comment_cols[r]),
            )
            for r in cfg.rounds
        ]
        records.append(
            SentenceRecord(
                sentence_id=sentence_id,
                sentence=sentence,
                candidates=candidates,
                row_coordinate=row_coordinate,
                rounds=rounds,
            )
        )

    return records
