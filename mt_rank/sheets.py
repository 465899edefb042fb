from __future__ import annotations

import json
import logging
from typing import List, Optional, Sequence, Tuple

import requests

from .errors import FetchFailed, PayloadShapeInvalid, TransportFailed
from .models import AnnotationSubmission, CommitResult
from .rows import parse_csv_text
from .wire import decode_response, encode_request


logger = logging.getLogger(__name__)


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:15].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


class SheetsClient:
    """
    Google Sheet reached over HTTP: rows come from the CSV export, commits go
    to a deployed Apps Script web app that runs the commit logic next to the
    sheet.
    """

    def __init__(
        self,
        csv_url: Optional[str],
        write_url: Optional[str],
        *,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.csv_url = csv_url
        self.write_url = write_url
        self.timeout = timeout
        self.http = session or requests.Session()

    def fetch_csv(self) -> str:
        if not self.csv_url:
            raise FetchFailed("No CSV export URL configured (store.sheet_id or store.csv_url).")
        try:
            resp = self.http.get(self.csv_url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchFailed(f"Failed to fetch Google Sheet: {e}")
        if resp.status_code != 200:
            raise FetchFailed(f"Failed to fetch Google Sheet (HTTP {resp.status_code})")
        resp.encoding = resp.encoding or "utf-8"
        return resp.text

    def fetch_table(self) -> Tuple[List[str], List[List[str]]]:
        return parse_csv_text(self.fetch_csv())

    def commit(self, submissions: Sequence[AnnotationSubmission]) -> List[CommitResult]:
        if not submissions:
            return []
        if not self.write_url:
            raise TransportFailed(
                "Google Apps Script URL not configured",
                details="Set store.write_url or the GOOGLE_APPS_SCRIPT_URL environment variable.",
            )

        body = encode_request(submissions)
        try:
            resp = self.http.post(self.write_url, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportFailed(f"Failed to update sheet: {e}")

        text = resp.text or ""
        if _looks_like_html(text):
            raise TransportFailed(
                "Google Apps Script authorization required",
                details="Visit the write URL in a browser, authorize the script, then try again.",
            )
        try:
            result = json.loads(text)
        except ValueError:
            raise TransportFailed(
                "Invalid response from Google Apps Script",
                details=f"Expected JSON but received: {text[:500]}",
            )

        if isinstance(result, dict) and result.get("error"):
            raise TransportFailed(str(result["error"]), details=result.get("details"))
        if not resp.ok:
            raise TransportFailed(f"Google Apps Script returned status {resp.status_code}")

        try:
            results = decode_response(result)
        except PayloadShapeInvalid as e:
            raise TransportFailed(f"Invalid response from Google Apps Script: {e}")
        logger.info(
            "Write endpoint committed %d/%d annotation(s)",
            sum(1 for r in results if r.success), len(results),
        )
        return results
