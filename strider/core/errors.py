from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from strider.core.redaction import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class StriderError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Identity ----
class DuplicateEmailError(StriderError):
    def __init__(self, user_message: str = "An account with that email already exists.", **ctx: Any):
        super().__init__("duplicate_email", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class IdentityNotFoundError(StriderError):
    def __init__(self, user_message: str = "No account was found for that email.", **ctx: Any):
        super().__init__("identity_not_found", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class InvalidCredentialsError(StriderError):
    def __init__(self, user_message: str = "The email or password is incorrect.", **ctx: Any):
        super().__init__("invalid_credentials", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Remote ----
class RemoteUnreachableError(StriderError):
    def __init__(self, user_message: str = "The account service can't be reached right now.", **ctx: Any):
        super().__init__("remote_unreachable", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class RemoteRejectedError(StriderError):
    def __init__(self, user_message: str = "The account service refused the request.", **ctx: Any):
        super().__init__("remote_rejected", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Storage ----
class StorageCorruptError(StriderError):
    """Raised inside stores only; callers see a repaired store or NotFound."""

    def __init__(self, user_message: str = "Local data could not be read.", **ctx: Any):
        super().__init__("storage_corrupt", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


# ---- Orchestration ----
class StateTransitionError(StriderError):
    def __init__(self, user_message: str = "That action isn't available right now.", **ctx: Any):
        super().__init__("state_transition_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class TransitionSupersededError(StriderError):
    def __init__(self, user_message: str = "A newer account action replaced this one.", **ctx: Any):
        super().__init__("transition_superseded", user_message, severity=Severity.INFO, recoverable=True, context=ctx)


class ConfigError(StriderError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)
