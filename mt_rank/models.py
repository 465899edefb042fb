from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional


class Candidate(NamedTuple):
    column_key: str
    text: str


@dataclass
class RoundState:
    ranking: List[str] = field(default_factory=list)
    comment: str = ""


@dataclass
class SentenceRecord:
    sentence_id: str
    sentence: str
    candidates: List[Candidate]
    row_coordinate: int
    rounds: List[RoundState]

    @property
    def column_keys(self) -> List[str]:
        return [c.column_key for c in self.candidates]


@dataclass
class SelectedSentence:
    """A record picked for a session, with the order its candidates are shown in."""

    record: SentenceRecord
    needed_round: int
    presentation: List[Candidate]


@dataclass
class AnnotationSubmission:
    sentence_id: str
    row_coordinate_hint: int
    ranked_column_keys: List[str]
    comment: str = ""


@dataclass
class CommitResult:
    sentence_id: str
    success: bool
    row: Optional[int] = None
    round: Optional[int] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    verified_ranking: Optional[str] = None
    verified_comment: Optional[str] = None
