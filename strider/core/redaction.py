from __future__ import annotations

from typing import Any, Dict


REDACT_KEYS = {
    "password",
    "new_password",
    "secret",
    "token",
    "access_token",
    "refresh_token",
    "authorization",
    "credential",
    "digest",
    "salt",
}


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            if str(k).lower() in REDACT_KEYS:
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact(v)
        return out
    if isinstance(obj, (list, tuple)):
        return [_redact(x) for x in obj]
    return obj


def redact(obj: Any) -> Any:
    return _redact(obj)


def mask_email(email: str) -> str:
    """
    Keep enough of an address to correlate log lines without storing it whole.
    """
    e = str(email or "")
    if "@" not in e:
        return "***"
    local, _, domain = e.partition("@")
    head = local[:1] if local else ""
    return f"{head}***@{domain}"
