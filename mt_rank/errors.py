from __future__ import annotations

from typing import Dict, List, Optional


class MtRankError(Exception):
    """Base class. `code` is the stable name reported on the wire."""

    code = "Error"

    def __init__(self, message: str, *, details: Optional[str] = None):
        super().__init__(message)
        self.details = details


class ConfigError(MtRankError, ValueError):
    code = "ConfigError"


class FetchFailed(MtRankError):
    code = "FetchFailed"


class ParseFailed(MtRankError):
    code = "ParseFailed"


class ValidationFailed(MtRankError):
    """Submit gate not satisfied. `missing` maps sentence id -> unmet requirements."""

    code = "ValidationFailed"

    def __init__(self, missing: Dict[str, List[str]]):
        lines = [f"Sentence {sid}: {', '.join(reqs)}" for sid, reqs in missing.items()]
        super().__init__("Please complete all sentences before submitting:\n- " + "\n- ".join(lines))
        self.missing = missing


class PayloadShapeInvalid(MtRankError):
    code = "PayloadShapeInvalid"


class RowNotFound(MtRankError):
    code = "RowNotFound"


class AllRoundsFilled(MtRankError):
    code = "AllRoundsFilled"


class VerificationFailed(MtRankError):
    code = "VerificationFailed"


class TransportFailed(MtRankError):
    code = "TransportFailed"


class StoreError(MtRankError):
    code = "StoreError"


class SessionStateError(MtRankError):
    code = "SessionStateError"
