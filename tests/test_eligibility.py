from tests.helpers import HEADERS, make_row

from mt_rank.eligibility import bucket_by_round, classify, round_is_complete
from mt_rank.models import Candidate, RoundState
from mt_rank.rows import parse_records

RANKING = "ad,an,bo,ca,op,pa,no"


def _record(cfg, filled):
    return parse_records(HEADERS, [make_row("5", filled)], cfg)[0]


def test_round_complete_only_when_ranking_present():
    assert not round_is_complete(RoundState())
    assert not round_is_complete(RoundState(ranking=[], comment="nice"))
    assert round_is_complete(RoundState(ranking=["ca"], comment=""))


def test_classify_returns_first_empty_round(cfg):
    assert classify(_record(cfg, {}), cfg) == 1
    assert classify(_record(cfg, {1: RANKING}), cfg) == 2
    assert classify(_record(cfg, {1: RANKING, 2: RANKING}), cfg) == 3


def test_classify_gap_in_round_one_is_filled_first(cfg):
    assert classify(_record(cfg, {2: RANKING, 3: RANKING}), cfg) == 1


def test_fully_annotated_record_is_not_eligible(cfg):
    assert classify(_record(cfg, {1: RANKING, 2: RANKING, 3: RANKING}), cfg) is None


def test_incomplete_candidates_are_not_eligible(cfg):
    rec = _record(cfg, {})
    rec.candidates[3] = Candidate("ca", "")
    assert classify(rec, cfg) is None


def test_bucket_by_round(cfg):
    rows = [make_row("1"), make_row("2", {1: RANKING}), make_row("3", {1: RANKING, 2: RANKING, 3: RANKING})]
    buckets = bucket_by_round(parse_records(HEADERS, rows, cfg), cfg)
    assert [r.sentence_id for r in buckets[1]] == ["1"]
    assert [r.sentence_id for r in buckets[2]] == ["2"]
    assert buckets[3] == []
