from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class BreakerConfig:
    failures: int
    window_seconds: int
    cooldown_seconds: int


class CircuitBreaker:
    """
    Windowed failure breaker for the account service.

    While OPEN, calls are refused so the caller can fall back to local data
    immediately instead of waiting out another transport timeout.
    """

    def __init__(
        self,
        cfg: BreakerConfig,
        *,
        name: str = "remote_identity",
        clock: Callable[[], float] = time.time,
        on_state_change: Optional[Callable[[BreakerState, "CircuitBreaker"], None]] = None,
    ):
        self.cfg = cfg
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._fail_times: List[float] = []
        self._state = BreakerState.CLOSED
        self._opened_at: Optional[float] = None
        self._half_open_tested: bool = False
        self._on_state_change = on_state_change

    def state(self) -> BreakerState:
        with self._lock:
            self._update_state_locked()
            return self._state

    def allow(self) -> bool:
        with self._lock:
            self._update_state_locked()
            if self._state == BreakerState.CLOSED:
                return True
            if self._state == BreakerState.OPEN:
                return False
            # HALF_OPEN: allow exactly one probe
            if not self._half_open_tested:
                self._half_open_tested = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            old = self._state
            self._fail_times.clear()
            self._state = BreakerState.CLOSED
            self._opened_at = None
            self._half_open_tested = False
            self._notify_locked(old)

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            old = self._state
            if self._state == BreakerState.HALF_OPEN:
                self._state = BreakerState.OPEN
                self._opened_at = now
                self._half_open_tested = False
                self._notify_locked(old)
                return
            self._fail_times.append(now)
            cutoff = now - float(self.cfg.window_seconds)
            self._fail_times = [t for t in self._fail_times if t >= cutoff]
            if len(self._fail_times) >= int(self.cfg.failures):
                self._state = BreakerState.OPEN
                self._opened_at = now
                self._half_open_tested = False
                self._notify_locked(old)

    def reset(self) -> None:
        self.record_success()

    def _update_state_locked(self) -> None:
        if self._state == BreakerState.OPEN and self._opened_at is not None:
            if (self._clock() - self._opened_at) >= float(self.cfg.cooldown_seconds):
                old = self._state
                self._state = BreakerState.HALF_OPEN
                self._half_open_tested = False
                self._notify_locked(old)

    def _notify_locked(self, old: BreakerState) -> None:
        if old == self._state:
            return
        logger.warning("Circuit breaker '%s': %s -> %s", self.name, old.value, self._state.value)
        if self._on_state_change:
            try:
                self._on_state_change(self._state, self)
            except Exception:  # noqa: BLE001
                logger.exception("breaker state-change callback failed")

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            cutoff = self._clock() - float(self.cfg.window_seconds)
            window = [t for t in self._fail_times if t >= cutoff]
            opened_at = self._opened_at
            cooldown_until = (opened_at + float(self.cfg.cooldown_seconds)) if opened_at else None
            return {
                "state": self._state.value,
                "opened_at": opened_at,
                "cooldown_until": cooldown_until,
                "failure_count_window": len(window),
            }
