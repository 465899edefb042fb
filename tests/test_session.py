import random

import pytest

from tests.helpers import HEADERS, make_row

from mt_rank.commit import CommitCoordinator
from mt_rank.errors import FetchFailed, SessionStateError, TransportFailed, ValidationFailed
from mt_rank.models import CommitResult
from mt_rank.session import NEEDS_COMMENT, NEEDS_REORDER, AnnotationSession, Phase
from mt_rank.store import MemoryTableStore

FULL = "ad,an,bo,ca,op,pa,no"


class _SpyCommitter:
    def __init__(self, results=None, error=None):
        self.calls = []
        self.results = results
        self.error = error

    def commit(self, submissions):
        self.calls.append(list(submissions))
        if self.error is not None:
            raise self.error
        if self.results is not None:
            return self.results(submissions)
        return [CommitResult(sentence_id=s.sentence_id, success=True, row=2, round=1) for s in submissions]


def _session(cfg, rows, committer=None):
    store = MemoryTableStore(HEADERS, rows)
    committer = committer or CommitCoordinator(store, cfg)
    return AnnotationSession(store.read_table, committer, cfg, rng=random.Random(11)), store


def _complete(session):
    for d in session.drafts:
        session.reorder(d.sentence_id, 0, len(d.order) - 1)
        session.set_comment(d.sentence_id, f"reasoning for {d.sentence_id}")


def test_load_small_store_returns_all_sentences_for_round_one(cfg):
    session, _ = _session(cfg, [make_row("0"), make_row("1"), make_row("2")])
    result = session.load_batch()
    assert result.error is None and not result.exhausted
    assert sorted(d.sentence_id for d in result.sentences) == ["0", "1", "2"]
    assert all(d.needed_round == 1 for d in result.sentences)
    assert session.phase == Phase.READY


def test_exhausted_corpus_is_ready_with_empty_batch(cfg):
    full = {1: FULL, 2: FULL, 3: FULL}
    session, _ = _session(cfg, [make_row("0", full)])
    result = session.load_batch()
    assert result.exhausted and result.sentences == []
    assert session.phase == Phase.READY
    assert not session.can_submit()


def test_fetch_failure_moves_to_error_and_can_retry(cfg):
    calls = {"n": 0}

    def loader():
        calls["n"] += 1
        if calls["n"] == 1:
            raise FetchFailed("Failed to fetch Google Sheet (HTTP 503)")
        return HEADERS, [make_row("1")]

    session = AnnotationSession(loader, _SpyCommitter(), cfg)
    result = session.load_batch()
    assert session.phase == Phase.ERROR
    assert "503" in result.error

    assert session.load_batch().error is None
    assert session.phase == Phase.READY


def test_parse_failure_moves_to_error(cfg):
    session = AnnotationSession(lambda: (["id"], [["1"]]), _SpyCommitter(), cfg)
    result = session.load_batch()
    assert session.phase == Phase.ERROR
    assert "sentence" in result.error


def test_reorder_moves_text_and_key_together(cfg):
    session, _ = _session(cfg, [make_row("4")])
    session.load_batch()
    d = session.drafts[0]
    before = list(d.order)
    session.reorder("4", 0, 3)
    assert d.order[3] == before[0]
    assert d.order[:3] == before[1:4]
    for cand in d.order:
        assert cand.text == f"{cand.column_key} translation of 4"
    assert d.ranked_column_keys == [c.column_key for c in d.order]
    assert session.phase == Phase.EDITING


def test_reorder_rejects_bad_indices_and_unknown_ids(cfg):
    session, _ = _session(cfg, [make_row("4")])
    session.load_batch()
    with pytest.raises(IndexError):
        session.reorder("4", 0, 7)
    with pytest.raises(KeyError):
        session.reorder("99", 0, 1)


def test_gate_requires_reorder_and_comment_for_every_sentence(cfg):
    session, _ = _session(cfg, [make_row("1"), make_row("2")])
    session.load_batch()
    assert not session.can_submit()
    assert set(session.missing_requirements()["1"]) == {NEEDS_REORDER, NEEDS_COMMENT}

    _complete(session)
    assert session.can_submit()

    session.set_comment("2", "   ")
    assert not session.can_submit()
    assert session.missing_requirements() == {"2": [NEEDS_COMMENT]}

    session.set_comment("2", "ok")
    d = session.draft("1")
    session.reorder("1", len(d.order) - 1, 0)  # back to the initial order
    assert not session.can_submit()
    assert session.missing_requirements() == {"1": [NEEDS_REORDER]}


def test_gate_failure_makes_no_commit_call(cfg):
    spy = _SpyCommitter()
    session, _ = _session(cfg, [make_row("1")], committer=spy)
    session.load_batch()
    session.set_comment("1", "only a comment")
    with pytest.raises(ValidationFailed) as exc:
        session.submit()
    assert exc.value.missing == {"1": [NEEDS_REORDER]}
    assert "Sentence 1" in str(exc.value)
    assert spy.calls == []


def test_successful_submit_writes_store_and_finishes(cfg):
    session, store = _session(cfg, [make_row("1"), make_row("2")])
    session.load_batch()
    _complete(session)
    outcome = session.submit()
    assert outcome.success
    assert session.phase == Phase.DONE
    col = store.headers.index("Annotator_1_Rankings")
    for d in session.drafts:
        assert store.rows[d.row_coordinate - 2][col] == ",".join(d.ranked_column_keys)
    with pytest.raises(SessionStateError):
        session.reorder("1", 0, 1)


def test_transport_failure_keeps_drafts_for_retry(cfg):
    spy = _SpyCommitter(error=TransportFailed("Failed to update sheet: timeout"))
    session, _ = _session(cfg, [make_row("1")], committer=spy)
    session.load_batch()
    _complete(session)
    order = list(session.drafts[0].order)

    outcome = session.submit()
    assert not outcome.success
    assert "timeout" in outcome.error
    assert session.phase == Phase.EDITING
    assert session.drafts[0].order == order
    assert session.drafts[0].comment == "reasoning for 1"

    spy.error = None
    assert session.submit().success
    assert len(spy.calls) == 2


def test_partial_failure_only_resends_failed_sentences(cfg):
    def results(subs):
        return [
            CommitResult(sentence_id=s.sentence_id, success=(s.sentence_id != "2"),
                         error_code=None if s.sentence_id != "2" else "VerificationFailed",
                         error=None if s.sentence_id != "2" else "mismatch")
            for s in subs
        ]

    spy = _SpyCommitter(results=results)
    session, _ = _session(cfg, [make_row("1"), make_row("2")], committer=spy)
    session.load_batch()
    _complete(session)

    outcome = session.submit()
    assert not outcome.success
    assert session.phase == Phase.EDITING
    assert {r.sentence_id: r.success for r in outcome.results} == {"1": True, "2": False}

    spy.results = None
    assert session.submit().success
    assert [s.sentence_id for s in spy.calls[1]] == ["2"]
    assert session.phase == Phase.DONE


def test_lost_race_sentence_can_be_discarded(cfg):
    full = {1: FULL, 2: FULL}
    session, store = _session(cfg, [make_row("1", full), make_row("2", full)])
    session.load_batch()
    assert all(d.needed_round == 3 for d in session.drafts)
    _complete(session)

    # another annotator takes round 3 of sentence 2 before we submit
    store.rows[1][store.headers.index("Annotator_3_Rankings")] = FULL

    outcome = session.submit()
    assert not outcome.success
    failed = [r for r in outcome.results if not r.success]
    assert [(r.sentence_id, r.error_code) for r in failed] == [("2", "AllRoundsFilled")]

    session.discard("2")
    assert session.phase == Phase.DONE


def test_discarding_every_sentence_asks_for_a_new_batch(cfg):
    full = {1: FULL, 2: FULL}
    session, store = _session(cfg, [make_row("1", full)])
    session.load_batch()
    _complete(session)
    store.rows[0][store.headers.index("Annotator_3_Rankings")] = FULL

    assert session.submit().results[0].error_code == "AllRoundsFilled"
    assert not session.needs_new_batch()

    session.discard("1")
    assert session.drafts == []
    assert session.phase == Phase.READY
    assert session.needs_new_batch()
    assert not session.can_submit()
