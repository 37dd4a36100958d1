from __future__ import annotations

import time
import uuid
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from strider.core.identity.models import IdentityRecord


class Unauthenticated(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    kind: Literal["unauthenticated"] = "unauthenticated"

    @property
    def owner_id(self) -> Optional[str]:
        return None


class Guest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    kind: Literal["guest"] = "guest"
    guest_id: str = Field(default_factory=lambda: f"guest-{uuid.uuid4().hex}", min_length=1)

    @property
    def owner_id(self) -> Optional[str]:
        return self.guest_id


class Authenticated(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    kind: Literal["authenticated"] = "authenticated"
    user: IdentityRecord
    token: str = Field(min_length=1)

    @property
    def owner_id(self) -> Optional[str]:
        return self.user.id


SessionState = Annotated[Union[Unauthenticated, Guest, Authenticated], Field(discriminator="kind")]


class SessionRecord(BaseModel):
    """
    On-disk envelope; replaced wholesale on every save.
    """

    model_config = ConfigDict(extra="forbid")

    record_version: int = Field(default=1, ge=1)
    saved_at: str = Field(default_factory=lambda: time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()))
    state: SessionState = Field(default_factory=Unauthenticated)
