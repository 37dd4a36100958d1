from __future__ import annotations

from strider.core.session.models import Authenticated, Guest, SessionRecord, SessionState, Unauthenticated
from strider.core.session.orchestrator import SessionOrchestrator
from strider.core.session.store import SessionStore

__all__ = [
    "Authenticated",
    "Guest",
    "SessionRecord",
    "SessionState",
    "Unauthenticated",
    "SessionOrchestrator",
    "SessionStore",
]
