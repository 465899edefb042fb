from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .config import RunConfig
from .errors import (
    AllRoundsFilled,
    MtRankError,
    PayloadShapeInvalid,
    RowNotFound,
    StoreError,
    TransportFailed,
    VerificationFailed,
)
from .models import AnnotationSubmission, CommitResult
from .rows import comment_column, ranking_column, resolve_columns, serialize_ranking
from .store import TableStore


logger = logging.getLogger(__name__)


def validate_ranking(ranked: Sequence[str], expected_keys: Sequence[str]) -> None:
    """Ranking must be an exact permutation of the candidate column keys."""
    ranked = [str(k) for k in ranked]
    problems: List[str] = []
    if len(ranked) != len(expected_keys):
        problems.append(f"expected {len(expected_keys)} keys, got {len(ranked)}")
    if len(set(ranked)) != len(ranked):
        problems.append("duplicate keys")
    unknown = [k for k in ranked if k not in set(expected_keys)]
    if unknown:
        problems.append("unknown keys " + ", ".join(repr(k[:40]) for k in unknown))
    missing = [k for k in expected_keys if k not in set(ranked)]
    if missing:
        problems.append("missing keys " + ", ".join(missing))
    if problems:
        raise PayloadShapeInvalid("Ranking is not a permutation of the candidate keys: " + "; ".join(problems))


class CommitCoordinator:
    """
    Writes submissions into the first still-empty round slot of their row.

    Row and slot are re-derived from the live store for every submission
    (read, pick slot, write, read back); the load-time row hint is never
    trusted. The sequence runs under `store.lock()`. The XLSX store makes that
    a real lock; a Google Sheet offers none, so there a small window remains
    between the re-read and the write.
    """

    def __init__(self, store: TableStore, cfg: RunConfig):
        self.store = store
        self.cfg = cfg

    # ---------------- Columns ----------------

    def _columns(self) -> Dict[str, int]:
        """1-based column index for id and every round's ranking/comment cell."""
        headers = self.store.read_headers()
        resolved = resolve_columns(headers, self.cfg)
        if resolved["id"] is None:
            raise StoreError("ID column not found in sheet headers")

        cols: Dict[str, int] = {"id": resolved["id"] + 1}
        for n in self.cfg.rounds:
            for key, name in ((f"ranking:{n}", ranking_column(n)), (f"comment:{n}", comment_column(n))):
                idx = resolved[key]
                cols[key] = idx + 1 if idx is not None else self.store.add_column(name)
        return cols

    # ---------------- Steps ----------------

    def resolve_row(self, sentence_id: str, id_col: int, hint: Optional[int] = None) -> int:
        for i, v in enumerate(self.store.read_column(id_col)):
            if v.strip() == sentence_id:
                row = i + 2
                if hint and hint != row:
                    logger.info("id %s moved from row %s to row %d since load", sentence_id, hint, row)
                return row
        raise RowNotFound(f"Row not found for ID: {sentence_id}")

    def pick_round(self, row: int, cols: Dict[str, int]) -> int:
        ranking_cols = [cols[f"ranking:{n}"] for n in self.cfg.rounds]
        current = self.store.read_cells(row, ranking_cols)
        for n, c in zip(self.cfg.rounds, ranking_cols):
            if not current[c].strip():
                return n
        raise AllRoundsFilled(f"All {self.cfg.num_rounds} rounds already filled for row {row}")

    def commit_one(self, sub: AnnotationSubmission, cols: Dict[str, int]) -> CommitResult:
        try:
            validate_ranking(sub.ranked_column_keys, self.cfg.candidate_keys)
        except PayloadShapeInvalid as e:
            logger.error("Rejected payload for id %s: %s (payload=%r)", sub.sentence_id, e, sub)
            return CommitResult(sentence_id=sub.sentence_id, success=False, error_code=e.code, error=str(e))

        row: Optional[int] = None
        rnd: Optional[int] = None
        ranking = serialize_ranking(sub.ranked_column_keys)
        comment = sub.comment or ""
        try:
            # no other writer may touch the store between re-read and read-back
            with self.store.lock():
                row = self.resolve_row(sub.sentence_id, cols["id"], sub.row_coordinate_hint)
                rnd = self.pick_round(row, cols)
                rc, cc = cols[f"ranking:{rnd}"], cols[f"comment:{rnd}"]
                self.store.write_cells(row, {rc: ranking, cc: comment})
                written = self.store.read_cells(row, [rc, cc])
            if written[rc] != ranking or written[cc] != comment:
                raise VerificationFailed(
                    f"Row {row} round {rnd}: read back {written[rc]!r} / {written[cc]!r}",
                )
        except VerificationFailed as e:
            logger.error("Verification failed for id %s: %s", sub.sentence_id, e)
            return CommitResult(
                sentence_id=sub.sentence_id, success=False, row=row, round=rnd,
                error_code=e.code, error=str(e),
                verified_ranking=written[rc], verified_comment=written[cc],
            )
        except AllRoundsFilled as e:
            logger.warning("id %s: %s", sub.sentence_id, e)
            return CommitResult(sentence_id=sub.sentence_id, success=False, row=row, error_code=e.code, error=str(e))
        except StoreError as e:
            logger.error("Store failure while committing id %s: %s", sub.sentence_id, e)
            return CommitResult(
                sentence_id=sub.sentence_id, success=False, row=row, round=rnd,
                error_code=TransportFailed.code, error=str(e),
            )
        except MtRankError as e:
            logger.warning("id %s not committed: %s", sub.sentence_id, e)
            return CommitResult(sentence_id=sub.sentence_id, success=False, row=row, error_code=e.code, error=str(e))

        logger.info("Committed id %s to row %d round %d", sub.sentence_id, row, rnd)
        return CommitResult(
            sentence_id=sub.sentence_id, success=True, row=row, round=rnd,
            verified_ranking=written[rc], verified_comment=written[cc],
        )

    def commit(self, submissions: Sequence[AnnotationSubmission]) -> List[CommitResult]:
        if not submissions:
            return []
        try:
            with self.store.lock():
                cols = self._columns()
        except StoreError as e:
            logger.error("Cannot prepare annotator columns: %s", e)
            raise TransportFailed(str(e))
        return [self.commit_one(sub, cols) for sub in submissions]
