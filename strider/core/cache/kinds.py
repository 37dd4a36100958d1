from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Dict, Iterable, List, Union


class DataKind(str, Enum):
    """
    Every kind of account-owned data cached on the device. A purge covers
    exactly this set, so a new kind must be added here before it is written.
    """

    HISTORY = "history"
    REWARDS_LEDGER = "rewards-ledger"
    SOCIAL_GRAPH = "social-graph"
    ACHIEVEMENTS = "achievements"
    PREFERENCES = "preferences"
    PROFILE = "profile"
    OWNER_STATS = "owner-stats"
    STREAK = "streak"
    CITY_STATE = "city-state"
    DESCRIPTION = "description"


_EMPTY: Dict[DataKind, Any] = {
    DataKind.HISTORY: [],
    DataKind.REWARDS_LEDGER: [],
    DataKind.SOCIAL_GRAPH: {},
    DataKind.ACHIEVEMENTS: [],
    DataKind.PREFERENCES: {},
    DataKind.PROFILE: {},
    DataKind.OWNER_STATS: {},
    DataKind.STREAK: {},
    DataKind.CITY_STATE: {},
    DataKind.DESCRIPTION: "",
}

# kinds that historically lived device-wide rather than per account
DEVICE_SCOPED_KINDS = (DataKind.PREFERENCES, DataKind.ACHIEVEMENTS)


def coerce_kind(kind: Union[str, DataKind]) -> DataKind:
    try:
        return DataKind(kind)
    except ValueError:
        raise ValueError(f"unknown data kind: {kind!r}") from None


def coerce_kinds(kinds: Iterable[Union[str, DataKind]]) -> List[DataKind]:
    return [coerce_kind(k) for k in kinds]


def empty_value(kind: DataKind) -> Any:
    return copy.deepcopy(_EMPTY[kind])
