from __future__ import annotations

from typing import Any, Dict, Tuple


def apply(record: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """
    Bring a pre-versioned session file to v1.

    Early builds wrote the bare state object (``{"kind": ...}``) at the top
    level; v1 wraps it in ``{record_version, saved_at, state}``.
    """
    changed = False
    out = dict(record or {})
    if "state" not in out and "kind" in out:
        out = {"state": out}
        changed = True
    if int(out.get("record_version") or 0) < 1:
        out["record_version"] = 1
        changed = True
    return out, changed
