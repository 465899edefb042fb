from __future__ import annotations

import logging
import random
from typing import List, Optional

from .config import RunConfig
from .eligibility import bucket_by_round
from .hashing import stable_seed_int
from .models import Candidate, SelectedSentence, SentenceRecord


logger = logging.getLogger(__name__)


def presentation_order(
    record: SentenceRecord,
    *,
    rng: Optional[random.Random] = None,
    seed: Optional[str] = None,
) -> List[Candidate]:
    """Random permutation of the record's candidates, independent of canonical order."""
    order = list(record.candidates)
    if seed is not None:
        rng = random.Random(stable_seed_int(seed, record.sentence_id))
    (rng or random.Random()).shuffle(order)
    return order


def select_batch(
    records: List[SentenceRecord],
    cfg: RunConfig,
    *,
    batch_size: Optional[int] = None,
    rng: Optional[random.Random] = None,
    seed: Optional[str] = None,
) -> List[SelectedSentence]:
    """
    Pick up to `batch_size` records from the lowest round that still has work,
    across the whole corpus. Returns [] when everything is annotated.
    """
    size = int(batch_size if batch_size is not None else cfg.batch_size)
    if size <= 0:
        raise ValueError("batch_size must be > 0")

    if seed is not None:
        rng = random.Random(stable_seed_int(seed, "sample"))
    elif rng is None:
        rng = random.Random()

    buckets = bucket_by_round(records, cfg)
    for n in cfg.rounds:
        bucket = buckets[n]
        if not bucket:
            continue
        picked = rng.sample(bucket, min(size, len(bucket)))
        logger.info("Selected %d of %d sentence(s) needing round %d", len(picked), len(bucket), n)
        return [
            SelectedSentence(
                record=rec,
                needed_round=n,
                presentation=presentation_order(rec, rng=rng, seed=seed),
            )
            for rec in picked
        ]

    logger.info("No sentence needs annotation (%d record(s) read)", len(records))
    return []
