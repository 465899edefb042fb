"""
JSON envelopes exchanged with the write endpoint.

Request:  {"annotations": [{"id", "rowIndex", "rankings": [...], "comment"?}]}
Response: {"success": bool, "updates": [{"id", "row"?, "round"?, "success", "error"?,
           "verifiedRanking"?, "verifiedComment"?}]}
          or {"error": str, "details"?: str} when nothing could be processed.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

from .commit import CommitCoordinator
from .errors import MtRankError, PayloadShapeInvalid
from .models import AnnotationSubmission, CommitResult


logger = logging.getLogger(__name__)


def encode_request(submissions: Sequence[AnnotationSubmission]) -> Dict[str, Any]:
    return {
        "annotations": [
            {
                "id": s.sentence_id,
                "rowIndex": int(s.row_coordinate_hint or 0),
                "rankings": list(s.ranked_column_keys),
                "comment": s.comment or "",
            }
            for s in submissions
        ]
    }


def decode_request(payload: Any) -> List[AnnotationSubmission]:
    if not isinstance(payload, dict):
        raise PayloadShapeInvalid("Invalid JSON in request body", details="expected an object")
    annotations = payload.get("annotations")
    if not isinstance(annotations, list) or not annotations:
        raise PayloadShapeInvalid("Invalid data: annotations must be a non-empty array")

    out: List[AnnotationSubmission] = []
    for i, ann in enumerate(annotations):
        if not isinstance(ann, dict):
            raise PayloadShapeInvalid(f"annotations[{i}] must be an object")
        sid = str(ann.get("id") or "").strip()
        if not sid:
            raise PayloadShapeInvalid(f"annotations[{i}] is missing id")
        rankings = ann.get("rankings")
        if not isinstance(rankings, list):
            raise PayloadShapeInvalid(f"annotations[{i}].rankings must be an array")
        try:
            hint = int(ann.get("rowIndex") or 0)
        except (TypeError, ValueError):
            hint = 0
        out.append(
            AnnotationSubmission(
                sentence_id=sid,
                row_coordinate_hint=hint,
                ranked_column_keys=[str(k) for k in rankings],
                comment=str(ann.get("comment") or ""),
            )
        )
    return out


def _update(r: CommitResult) -> Dict[str, Any]:
    u: Dict[str, Any] = {"id": r.sentence_id, "success": r.success}
    if r.row is not None:
        u["row"] = r.row
    if r.round is not None:
        u["round"] = r.round
    if r.error:
        u["error"] = r.error
    if r.error_code:
        u["errorCode"] = r.error_code
    if r.verified_ranking is not None:
        u["verifiedRanking"] = r.verified_ranking
    if r.verified_comment is not None:
        u["verifiedComment"] = r.verified_comment
    return u


def encode_response(results: Sequence[CommitResult]) -> Dict[str, Any]:
    return {"success": all(r.success for r in results), "updates": [_update(r) for r in results]}


def decode_response(payload: Any) -> List[CommitResult]:
    if not isinstance(payload, dict) or not isinstance(payload.get("updates"), list):
        raise PayloadShapeInvalid("Response has no updates array")

    results: List[CommitResult] = []
    for u in payload["updates"]:
        if not isinstance(u, dict):
            continue
        results.append(
            CommitResult(
                sentence_id=str(u.get("id") or ""),
                success=bool(u.get("success")),
                row=u.get("row"),
                round=u.get("round"),
                error_code=u.get("errorCode") or (None if u.get("success") else "Error"),
                error=u.get("error"),
                verified_ranking=u.get("verifiedRanking"),
                verified_comment=u.get("verifiedComment"),
            )
        )
    return results


def handle_update_request(payload: Any, coordinator: CommitCoordinator) -> Tuple[int, Dict[str, Any]]:
    """Endpoint body: decode, commit each annotation, encode. Returns (HTTP status, body); never raises."""
    try:
        submissions = decode_request(payload)
    except PayloadShapeInvalid as e:
        logger.warning("Rejected update request: %s", e)
        return 400, ({"error": str(e), "details": e.details} if e.details else {"error": str(e)})

    try:
        results = coordinator.commit(submissions)
    except MtRankError as e:
        logger.error("Update request failed: %s", e)
        return 500, {"error": f"Failed to update sheet: {e}", "details": e.code}
    return 200, encode_response(results)
