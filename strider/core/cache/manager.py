from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, Iterable, Optional, Union

from strider.core.cache.durable import DEVICE_OWNER, DurableCacheStore
from strider.core.cache.kinds import DataKind, coerce_kind, coerce_kinds, empty_value
from strider.core.errors import StateTransitionError

logger = logging.getLogger(__name__)


class PerUserCache:
    """
    The live, in-memory view of one owner's cached data, backed by
    DurableCacheStore.

    At most one owner is bound at a time. ``generation`` increments on every
    bind/unbind/purge so holders of an older view can tell it went stale.
    """

    def __init__(self, *, store: DurableCacheStore):
        self.store = store
        self._lock = threading.RLock()
        self._owner_id: Optional[str] = None
        self._generation = 0
        self._live: Dict[DataKind, Any] = {}

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def generation(self) -> int:
        return self._generation

    # ---- purge ----
    def purge_all_for_any_user(self) -> int:
        with self._lock:
            n = self.store.drop_all()
            self._unbind_locked()
        logger.info("Cache purged for all owners (%d entries)", n)
        return n

    def purge_for_user_switch(self, previous_owner_id: str) -> int:
        if not previous_owner_id:
            raise ValueError("previous_owner_id is required")
        with self._lock:
            n = self.store.drop_namespace(previous_owner_id)
            if self._owner_id == previous_owner_id:
                self._unbind_locked()
        logger.info("Cache namespace dropped for previous owner (%d entries)", n)
        return n

    # ---- binding ----
    def reload(self, owner_id: str) -> int:
        if not owner_id:
            raise ValueError("owner_id is required")
        with self._lock:
            stored = self.store.read_namespace(owner_id)
            self._live = {k: stored[k] if k in stored else empty_value(k) for k in DataKind}
            self._owner_id = str(owner_id)
            self._generation += 1
            return self._generation

    def unbind(self) -> None:
        with self._lock:
            self._unbind_locked()

    def _unbind_locked(self) -> None:
        self._owner_id = None
        self._live = {}
        self._generation += 1

    # ---- access ----
    def get(self, kind: Union[str, DataKind]) -> Any:
        k = coerce_kind(kind)
        with self._lock:
            self._require_bound_locked()
            return copy.deepcopy(self._live.get(k, empty_value(k)))

    def put(self, kind: Union[str, DataKind], value: Any) -> None:
        k = coerce_kind(kind)
        with self._lock:
            self._require_bound_locked()
            self.store.write(self._owner_id or "", k, value)
            self._live[k] = copy.deepcopy(value)

    def _require_bound_locked(self) -> None:
        if self._owner_id is None:
            raise StateTransitionError("No account data is loaded.", reason="cache_unbound")

    # ---- device-wide entries ----
    def get_device(self, kind: Union[str, DataKind]) -> Any:
        k = coerce_kind(kind)
        stored = self.store.read_namespace(DEVICE_OWNER)
        return stored[k] if k in stored else empty_value(k)

    def put_device(self, kind: Union[str, DataKind], value: Any) -> None:
        self.store.write(DEVICE_OWNER, coerce_kind(kind), value)

    def clear_device_state(self, kinds: Iterable[Union[str, DataKind]]) -> int:
        return self.store.delete_kinds(DEVICE_OWNER, coerce_kinds(kinds))

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {"owner_id": self._owner_id, "generation": self._generation, "bound": self._owner_id is not None}
