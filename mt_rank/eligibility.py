from __future__ import annotations

from typing import Dict, List, Optional

from .config import RunConfig
from .models import RoundState, SentenceRecord


def round_is_complete(state: RoundState) -> bool:
    # A round counts as done once a ranking is stored; the comment is not required.
    return any(str(k).strip() for k in state.ranking)


def candidates_complete(record: SentenceRecord, cfg: RunConfig) -> bool:
    if record.column_keys != list(cfg.candidate_keys):
        return False
    return all(c.text.strip() for c in record.candidates)


def classify(record: SentenceRecord, cfg: RunConfig) -> Optional[int]:
    """
    Returns the round (1-based) this record needs next, or None when it is
    fully annotated or its candidate data is incomplete.
    Rounds are checked in fixed order so every session agrees on priority.
    """
    if not candidates_complete(record, cfg):
        return None
    for n in cfg.rounds:
        if n > len(record.rounds) or not round_is_complete(record.rounds[n - 1]):
            return n
    return None


def bucket_by_round(records: List[SentenceRecord], cfg: RunConfig) -> Dict[int, List[SentenceRecord]]:
    buckets: Dict[int, List[SentenceRecord]] = {n: [] for n in cfg.rounds}
    for rec in records:
        needed = classify(rec, cfg)
        if needed is not None:
            buckets[needed].append(rec)
    return buckets
