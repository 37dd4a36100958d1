from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List

from strider.core.events.models import UserChanged

logger = logging.getLogger(__name__)

Handler = Callable[[UserChanged], None]


class UserChangedNotifier:
    """
    Synchronous fan-out of UserChanged events.

    - handlers run on the publishing thread, in subscription order
    - a failing handler is logged and does not stop the others
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: List[Handler] = []
        self._delivered = 0
        self._handler_errors = 0

    def subscribe(self, handler: Handler) -> None:
        if not callable(handler):
            raise ValueError("handler must be callable")
        with self._lock:
            self._handlers.append(handler)

    def unsubscribe(self, handler: Handler) -> int:
        with self._lock:
            before = len(self._handlers)
            self._handlers = [h for h in self._handlers if h is not handler]
            return before - len(self._handlers)

    def publish(self, ev: UserChanged) -> int:
        with self._lock:
            handlers = list(self._handlers)
        delivered = 0
        for h in handlers:
            try:
                h(ev)
                delivered += 1
            except Exception:  # noqa: BLE001
                with self._lock:
                    self._handler_errors += 1
                logger.exception("UserChanged handler %s failed (trace_id=%s)", getattr(h, "__name__", "handler"), ev.trace_id)
        with self._lock:
            self._delivered += delivered
        return delivered

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {"subscribers": len(self._handlers), "delivered_total": self._delivered, "handler_errors_total": self._handler_errors}
