from __future__ import annotations

from strider.core.events.models import Transition, UserChanged
from strider.core.events.notifier import UserChangedNotifier

__all__ = ["Transition", "UserChanged", "UserChangedNotifier"]
