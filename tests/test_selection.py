import random

import pytest

from tests.helpers import HEADERS, KEYS, make_row

from mt_rank.rows import parse_records
from mt_rank.selection import presentation_order, select_batch

RANKING = "ad,an,bo,ca,op,pa,no"


def test_small_corpus_returns_everything_for_round_one(cfg):
    records = parse_records(HEADERS, [make_row("0"), make_row("1"), make_row("2")], cfg)
    batch = select_batch(records, cfg, rng=random.Random(1))
    assert sorted(s.record.sentence_id for s in batch) == ["0", "1", "2"]
    assert all(s.needed_round == 1 for s in batch)


def test_round_one_backlog_blocks_later_rounds(cfg):
    rows = [make_row(str(i), {1: RANKING}) for i in range(10)] + [make_row("20")]
    records = parse_records(HEADERS, rows, cfg)
    for seed in range(20):
        batch = select_batch(records, cfg, rng=random.Random(seed))
        assert [s.record.sentence_id for s in batch] == ["20"]
        assert batch[0].needed_round == 1


def test_batch_is_sampled_without_replacement_from_one_bucket(cfg):
    rows = [make_row(str(i), {1: RANKING}) for i in range(12)]
    records = parse_records(HEADERS, rows, cfg)
    batch = select_batch(records, cfg, rng=random.Random(7))
    ids = [s.record.sentence_id for s in batch]
    assert len(ids) == cfg.batch_size
    assert len(set(ids)) == len(ids)
    assert all(s.needed_round == 2 for s in batch)


def test_batch_size_override(cfg):
    records = parse_records(HEADERS, [make_row(str(i)) for i in range(10)], cfg)
    assert len(select_batch(records, cfg, batch_size=2, rng=random.Random(0))) == 2
    with pytest.raises(ValueError):
        select_batch(records, cfg, batch_size=0)


def test_fully_annotated_corpus_gives_empty_batch(cfg):
    full = {1: RANKING, 2: RANKING, 3: RANKING}
    records = parse_records(HEADERS, [make_row("1", full), make_row("2", full)], cfg)
    assert select_batch(records, cfg) == []
    assert select_batch([], cfg) == []


def test_presentation_is_a_permutation_and_canonical_order_is_kept(cfg):
    records = parse_records(HEADERS, [make_row(str(i)) for i in range(5)], cfg)
    for s in select_batch(records, cfg, rng=random.Random(3)):
        assert sorted(c.column_key for c in s.presentation) == sorted(KEYS)
        assert s.record.column_keys == KEYS
        for cand in s.presentation:
            assert cand.text == f"{cand.column_key} translation of {s.record.sentence_id}"


def test_seed_makes_selection_reproducible(cfg):
    records = parse_records(HEADERS, [make_row(str(i)) for i in range(30)], cfg)
    a = select_batch(records, cfg, seed="session-a")
    b = select_batch(records, cfg, seed="session-a")
    assert [s.record.sentence_id for s in a] == [s.record.sentence_id for s in b]
    assert [s.presentation for s in a] == [s.presentation for s in b]
    assert presentation_order(records[0], seed="x") == presentation_order(records[0], seed="x")
