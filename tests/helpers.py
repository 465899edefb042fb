"""Row builders shared by the test modules."""
from typing import Dict, List, Optional

KEYS = ["ad", "an", "bo", "ca", "op", "pa", "no"]

HEADERS = (
    ["id", "sentence"]
    + KEYS
    + [
        "Annotator_1_Rankings",
        "Annotator_1_Comments",
        "Annotator_2_Rankings",
        "Annotator_2_Comments",
        "Annotator_3_Rankings",
        "Annotator_3_Comments",
    ]
)


def make_row(sentence_id: str, filled: Optional[Dict[int, str]] = None) -> List[str]:
    """Data row with all candidates present; `filled` maps round -> ranking cell."""
    filled = filled or {}
    row = [sentence_id, f"Source sentence {sentence_id}."]
    row += [f"{k} translation of {sentence_id}" for k in KEYS]
    for n in (1, 2, 3):
        ranking = filled.get(n, "")
        row += [ranking, f"comment {n}" if ranking else ""]
    return row
