from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _iso_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def normalize_email(email: str) -> str:
    return str(email or "").strip().lower()


class IdentityRecord(BaseModel):
    """
    Public profile of an account. ``id`` never changes once assigned.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), min_length=1)
    email: str
    first_name: str = Field(default="", max_length=120)
    last_name: str = Field(default="", max_length=120)
    bio: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        v = str(v or "").strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("a valid email is required")
        return v

    @property
    def email_key(self) -> str:
        return normalize_email(self.email)

    @classmethod
    def from_remote(cls, data: Dict[str, Any]) -> "IdentityRecord":
        """
        Accepts the service's camelCase user object.
        """
        return cls(
            id=str(data.get("id") or ""),
            email=str(data.get("email") or ""),
            first_name=str(data.get("firstName") or data.get("first_name") or ""),
            last_name=str(data.get("lastName") or data.get("last_name") or ""),
            bio=data.get("bio"),
        )


class StoredIdentity(BaseModel):
    """
    One row of the local identity table.
    """

    model_config = ConfigDict(extra="forbid")

    record: IdentityRecord
    credential: Dict[str, Any]
    origin: str = "local"  # local|remote
    token_sha256: Optional[str] = None  # last token minted offline for this identity
    created_at: str = Field(default_factory=_iso_now)
    updated_at: str = Field(default_factory=_iso_now)


class IdentityTable(BaseModel):
    model_config = ConfigDict(extra="forbid")

    store_version: int = Field(default=1, ge=1)
    updated_at: str = Field(default_factory=_iso_now)
    users: Dict[str, StoredIdentity] = Field(default_factory=dict)

    @field_validator("users")
    @classmethod
    def _keys_match_emails(cls, v: Dict[str, StoredIdentity]) -> Dict[str, StoredIdentity]:
        for key, row in v.items():
            if key != row.record.email_key:
                raise ValueError(f"identity key {key!r} does not match its record email")
        return v
