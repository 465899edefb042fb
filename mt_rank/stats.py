from __future__ import annotations

import math
from typing import Dict, List

from .config import RunConfig
from .eligibility import classify, round_is_complete
from .models import SentenceRecord


def round_progress(records: List[SentenceRecord], cfg: RunConfig) -> Dict[str, int]:
    """Sentences waiting on each round, plus fully annotated ones."""
    out: Dict[str, int] = {f"needs_round_{n}": 0 for n in cfg.rounds}
    out["complete"] = 0
    for rec in records:
        needed = classify(rec, cfg)
        if needed is None:
            out["complete"] += 1
        else:
            out[f"needs_round_{needed}"] += 1
    out["total"] = len(records)
    return out


def filled_rounds(records: List[SentenceRecord]) -> int:
    return sum(1 for rec in records for r in rec.rounds if round_is_complete(r))


def mean_rank_by_key(records: List[SentenceRecord], cfg: RunConfig) -> Dict[str, float]:
    """
    Average 1-based rank position of each candidate key over all stored
    rankings. Rankings that are not a permutation of the keys are ignored.
    """
    expected = set(cfg.candidate_keys)
    positions: Dict[str, List[int]] = {k: [] for k in cfg.candidate_keys}
    for rec in records:
        for r in rec.rounds:
            if set(r.ranking) != expected or len(r.ranking) != len(expected):
                continue
            for pos, key in enumerate(r.ranking, start=1):
                positions[key].append(pos)
    return {k: (sum(xs) / len(xs) if xs else math.nan) for k, xs in positions.items()}
