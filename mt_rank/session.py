from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .backends import Committer, TableLoader
from .config import RunConfig
from .errors import (
    FetchFailed,
    MtRankError,
    ParseFailed,
    SessionStateError,
    StoreError,
    TransportFailed,
    ValidationFailed,
)
from .models import AnnotationSubmission, Candidate, CommitResult
from .rows import parse_records
from .selection import select_batch


logger = logging.getLogger(__name__)

NEEDS_REORDER = "reorder the translations"
NEEDS_COMMENT = "add a comment"


class Phase(str, Enum):
    LOADING = "loading"
    READY = "ready"
    EDITING = "editing"
    SUBMITTING = "submitting"
    DONE = "done"
    ERROR = "error"


@dataclass
class SentenceDraft:
    """One sentence of the batch while the annotator works on it."""

    sentence_id: str
    sentence: str
    row_coordinate: int
    needed_round: int
    initial_order: List[Candidate]
    order: List[Candidate]
    comment: str = ""
    committed: bool = False
    last_result: Optional[CommitResult] = None

    @property
    def ranked_column_keys(self) -> List[str]:
        return [c.column_key for c in self.order]

    @property
    def reordered(self) -> bool:
        return self.order != self.initial_order

    def missing(self) -> List[str]:
        out: List[str] = []
        if not self.reordered:
            out.append(NEEDS_REORDER)
        if not self.comment.strip():
            out.append(NEEDS_COMMENT)
        return out


@dataclass
class LoadResult:
    sentences: List[SentenceDraft]
    error: Optional[str] = None
    exhausted: bool = False


@dataclass
class SubmitOutcome:
    success: bool
    results: List[CommitResult] = field(default_factory=list)
    error: Optional[str] = None


class AnnotationSession:
    """
    One annotator's batch: load, reorder/comment, submit.

    Phases: loading -> ready -> editing -> submitting -> done, or
    loading -> error. A failed submit returns to editing with all drafts kept.
    """

    def __init__(
        self,
        loader: TableLoader,
        committer: Committer,
        cfg: RunConfig,
        *,
        rng: Optional[random.Random] = None,
        seed: Optional[str] = None,
    ):
        self.loader = loader
        self.committer = committer
        self.cfg = cfg
        self.rng = rng
        self.seed = seed
        self.phase = Phase.LOADING
        self.drafts: List[SentenceDraft] = []
        self.error: Optional[str] = None

    # ---------------- Loading ----------------

    def load_batch(self) -> LoadResult:
        self.phase = Phase.LOADING
        self.error = None
        self.drafts = []
        try:
            headers, rows = self.loader()
            records = parse_records(headers, rows, self.cfg)
        except (FetchFailed, ParseFailed) as e:
            return self._fail_load(e)
        except StoreError as e:
            return self._fail_load(FetchFailed(str(e)))

        batch = select_batch(records, self.cfg, rng=self.rng, seed=self.seed)
        self.drafts = [
            SentenceDraft(
                sentence_id=sel.record.sentence_id,
                sentence=sel.record.sentence,
                row_coordinate=sel.record.row_coordinate,
                needed_round=sel.needed_round,
                initial_order=list(sel.presentation),
                order=list(sel.presentation),
            )
            for sel in batch
        ]
        self.phase = Phase.READY
        return LoadResult(sentences=list(self.drafts), exhausted=not self.drafts)

    def _fail_load(self, e: MtRankError) -> LoadResult:
        logger.error("Batch load failed (%s): %s", e.code, e)
        self.phase = Phase.ERROR
        self.error = str(e)
        return LoadResult(sentences=[], error=self.error)

    # ---------------- Editing ----------------

    def _require_editable(self) -> None:
        if self.phase not in (Phase.READY, Phase.EDITING):
            raise SessionStateError(f"Session is {self.phase.value}; editing is not allowed")

    def draft(self, sentence_id: str) -> SentenceDraft:
        for d in self.drafts:
            if d.sentence_id == sentence_id:
                return d
        raise KeyError(sentence_id)

    def reorder(self, sentence_id: str, from_index: int, to_index: int) -> None:
        self._require_editable()
        d = self.draft(sentence_id)
        if d.committed:
            raise SessionStateError(f"Sentence {sentence_id} is already committed")
        n = len(d.order)
        if not (0 <= from_index < n) or not (0 <= to_index < n):
            raise IndexError(f"Reorder indices out of range for {n} translations")
        order = list(d.order)
        item = order.pop(from_index)
        order.insert(to_index, item)
        d.order = order
        self.phase = Phase.EDITING

    def set_comment(self, sentence_id: str, text: str) -> None:
        self._require_editable()
        d = self.draft(sentence_id)
        d.comment = text or ""
        self.phase = Phase.EDITING

    def discard(self, sentence_id: str) -> None:
        """Drop an uncommitted sentence, e.g. after losing every round slot to other sessions."""
        self._require_editable()
        d = self.draft(sentence_id)
        if d.committed:
            raise SessionStateError(f"Sentence {sentence_id} is already committed")
        self.drafts.remove(d)
        logger.info("Discarded sentence %s from the batch", sentence_id)
        if not self.drafts:
            self.phase = Phase.READY
        elif all(x.committed for x in self.drafts):
            self.phase = Phase.DONE

    def needs_new_batch(self) -> bool:
        """True when every sentence of the batch was discarded and nothing is left to edit."""
        return self.phase in (Phase.READY, Phase.EDITING) and not self.drafts

    # ---------------- Submit ----------------

    def pending(self) -> List[SentenceDraft]:
        return [d for d in self.drafts if not d.committed]

    def missing_requirements(self) -> Dict[str, List[str]]:
        return {d.sentence_id: d.missing() for d in self.pending() if d.missing()}

    def can_submit(self) -> bool:
        if self.phase not in (Phase.READY, Phase.EDITING) or not self.pending():
            return False
        return not self.missing_requirements()

    def submit(self) -> SubmitOutcome:
        self._require_editable()
        pending = self.pending()
        if not pending:
            raise SessionStateError("Nothing to submit")
        missing = self.missing_requirements()
        if missing:
            raise ValidationFailed(missing)

        submissions = [
            AnnotationSubmission(
                sentence_id=d.sentence_id,
                row_coordinate_hint=d.row_coordinate,
                ranked_column_keys=d.ranked_column_keys,
                comment=d.comment.strip(),
            )
            for d in pending
        ]

        self.phase = Phase.SUBMITTING
        try:
            results = self.committer.commit(submissions)
        except TransportFailed as e:
            logger.error("Submit failed: %s", e)
            self.phase = Phase.EDITING
            msg = f"{e} ({e.details})" if e.details else str(e)
            return SubmitOutcome(success=False, error=msg)

        by_id = {r.sentence_id: r for r in results}
        ordered: List[CommitResult] = []
        for d in pending:
            r = by_id.get(d.sentence_id) or CommitResult(
                sentence_id=d.sentence_id, success=False, error_code="Error", error="No result returned"
            )
            d.last_result = r
            if r.success:
                d.committed = True
            ordered.append(r)

        if all(d.committed for d in self.drafts):
            self.phase = Phase.DONE
            return SubmitOutcome(success=True, results=ordered)

        self.phase = Phase.EDITING
        failed = [r for r in ordered if not r.success]
        self.error = "; ".join(f"{r.sentence_id}: {r.error}" for r in failed)
        return SubmitOutcome(success=False, results=ordered, error=self.error)
