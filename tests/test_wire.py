from tests.helpers import HEADERS, make_row

from mt_rank.commit import CommitCoordinator
from mt_rank.models import AnnotationSubmission, CommitResult
from mt_rank.store import MemoryTableStore
from mt_rank.wire import decode_request, decode_response, encode_request, encode_response, handle_update_request

RANKING = ["ca", "no", "ad", "an", "bo", "pa", "op"]


def test_request_envelope_shape():
    body = encode_request([AnnotationSubmission("7", 9, RANKING, "good")])
    assert body == {"annotations": [{"id": "7", "rowIndex": 9, "rankings": RANKING, "comment": "good"}]}
    [sub] = decode_request(body)
    assert (sub.sentence_id, sub.row_coordinate_hint, sub.comment) == ("7", 9, "good")
    assert sub.ranked_column_keys == RANKING


def test_comment_is_optional_in_request():
    [sub] = decode_request({"annotations": [{"id": 3, "rankings": RANKING}]})
    assert sub.sentence_id == "3"
    assert sub.comment == ""
    assert sub.row_coordinate_hint == 0


def test_response_envelope_omits_unset_fields():
    body = encode_response(
        [
            CommitResult("7", True, row=9, round=2, verified_ranking="ca,no", verified_comment="x"),
            CommitResult("8", False, error_code="RowNotFound", error="Row not found for ID: 8"),
        ]
    )
    assert body["success"] is False
    assert body["updates"][0] == {
        "id": "7", "success": True, "row": 9, "round": 2, "verifiedRanking": "ca,no", "verifiedComment": "x",
    }
    assert body["updates"][1] == {
        "id": "8", "success": False, "error": "Row not found for ID: 8", "errorCode": "RowNotFound",
    }
    decoded = decode_response(body)
    assert decoded[0].round == 2
    assert decoded[1].error_code == "RowNotFound"


def test_handler_rejects_malformed_envelopes(cfg):
    coord = CommitCoordinator(MemoryTableStore(HEADERS, [make_row("1")]), cfg)
    for payload in ("nope", {"annotations": []}, {"annotations": [{"id": "1", "rankings": "ca,no"}]}):
        status, body = handle_update_request(payload, coord)
        assert status == 400
        assert "error" in body and "updates" not in body


def test_handler_commits_and_reports_per_item(cfg):
    store = MemoryTableStore(HEADERS, [make_row("1"), make_row("2")])
    payload = {
        "annotations": [
            {"id": "1", "rowIndex": 2, "rankings": RANKING, "comment": "a"},
            {"id": "2", "rowIndex": 3, "rankings": ["xx"] + RANKING[1:], "comment": "b"},
            {"id": "9", "rowIndex": 4, "rankings": RANKING, "comment": "c"},
        ]
    }
    status, body = handle_update_request(payload, CommitCoordinator(store, cfg))
    assert status == 200
    assert body["success"] is False
    ok, bad, missing = body["updates"]
    assert ok["success"] and ok["round"] == 1 and ok["row"] == 2
    assert ok["verifiedRanking"] == ",".join(RANKING)
    assert bad["errorCode"] == "PayloadShapeInvalid"
    assert missing["errorCode"] == "RowNotFound"
