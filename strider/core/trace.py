from __future__ import annotations

import contextlib
import contextvars
import uuid
from typing import Iterator, Optional

_TRACE_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("strider.trace_id", default=None)


def new_trace_id() -> str:
    return uuid.uuid4().hex


def current_trace_id(default: Optional[str] = None) -> Optional[str]:
    trace_id = _TRACE_ID.get()
    return trace_id if trace_id else default


def resolve_trace_id(trace_id: Optional[str] = None) -> str:
    if trace_id:
        return str(trace_id)
    existing = current_trace_id()
    if existing:
        return existing
    return new_trace_id()


@contextlib.contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    tid = resolve_trace_id(trace_id)
    token = _TRACE_ID.set(tid)
    try:
        yield tid
    finally:
        try:
            _TRACE_ID.reset(token)
        except ValueError:
            pass
