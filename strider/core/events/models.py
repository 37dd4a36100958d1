from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Transition(str, Enum):
    ENTER_GUEST = "enter_guest"
    EXIT_GUEST = "exit_guest"
    SIGN_UP = "sign_up"
    SIGN_IN = "sign_in"
    SIGN_OUT = "sign_out"
    DELETE_ACCOUNT = "delete_account"
    RESTORE = "restore"


class UserChanged(BaseModel):
    """
    Emitted after a transition has been committed and persisted.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = Field(default_factory=lambda: time.time())
    transition: Transition
    session_kind: str
    user_id: Optional[str] = None
    previous_user_id: Optional[str] = None
    generation: int = Field(ge=0)
    trace_id: Optional[str] = None
