from __future__ import annotations

"""
Account-service contract.

Every call returns a RemoteResult instead of raising, so the orchestrator's
choice between falling back to the local table (UNREACHABLE) and reporting a
refusal (REJECTED) is an explicit branch.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, Protocol, TypeVar

from strider.core.identity.models import IdentityRecord

T = TypeVar("T")


class RemoteErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RemoteError:
    kind: RemoteErrorKind
    message: str = ""
    http_status: Optional[int] = None

    @classmethod
    def unreachable(cls, message: str = "service unreachable") -> "RemoteError":
        return cls(kind=RemoteErrorKind.UNREACHABLE, message=message)

    @classmethod
    def rejected(cls, http_status: int, message: str = "") -> "RemoteError":
        return cls(kind=RemoteErrorKind.REJECTED, message=message, http_status=int(http_status))

    @property
    def is_unreachable(self) -> bool:
        return self.kind == RemoteErrorKind.UNREACHABLE


@dataclass(frozen=True)
class AuthGrant:
    user: IdentityRecord
    token: str


@dataclass(frozen=True)
class RemoteResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[RemoteError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "RemoteResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: RemoteError) -> "RemoteResult[T]":
        return cls(error=error)


class RemoteIdentityClient(Protocol):
    def sign_up(self, email: str, password: str, first_name: str, last_name: str) -> RemoteResult[AuthGrant]: ...

    def sign_in(self, email: str, password: str) -> RemoteResult[AuthGrant]: ...

    def sign_out(self, token: str) -> RemoteResult[None]: ...

    def validate_token(self, token: str) -> RemoteResult[IdentityRecord]: ...

    def delete_account(self, token: str, password: str) -> RemoteResult[None]: ...

    def health(self) -> bool: ...
