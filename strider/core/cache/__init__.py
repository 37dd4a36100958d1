from __future__ import annotations

from strider.core.cache.durable import DEVICE_OWNER, DurableCacheStore
from strider.core.cache.kinds import DEVICE_SCOPED_KINDS, DataKind
from strider.core.cache.manager import PerUserCache

__all__ = ["DEVICE_OWNER", "DurableCacheStore", "DEVICE_SCOPED_KINDS", "DataKind", "PerUserCache"]
