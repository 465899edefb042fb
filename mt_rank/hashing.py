from __future__ import annotations

import hashlib


def stable_seed_int(seed: str, scope: str) -> int:
    """
    Deterministic seed derived from SHA256(seed + ':' + scope).
    `scope` is a sentence id for presentation shuffles, or a fixed label for sampling.
    """
    h = hashlib.sha256(f"{seed}:{scope}".encode("utf-8")).digest()
    return int.from_bytes(h[:8], byteorder="big", signed=False)
