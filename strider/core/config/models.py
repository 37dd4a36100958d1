from __future__ import annotations

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BackendEnvironment(str, Enum):
    development = "development"
    production = "production"


class BreakerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    failures: int = Field(default=3, ge=1, le=100)
    window_seconds: int = Field(default=60, ge=1, le=3600)
    cooldown_seconds: int = Field(default=30, ge=1, le=3600)


class RemoteIdentityConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    environment: BackendEnvironment = BackendEnvironment.development
    base_urls: Dict[str, str] = Field(
        default_factory=lambda: {
            "development": "http://localhost:54321/functions/v1",
            "production": "https://strider-app.supabase.co/functions/v1",
        }
    )
    anon_key: str = ""  # public client key sent on unauthenticated calls
    request_timeout_seconds: float = Field(default=60.0, gt=0, le=600)
    upload_timeout_seconds: float = Field(default=120.0, gt=0, le=600)
    max_retry_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay_seconds: float = Field(default=2.0, ge=0, le=60)
    breaker: BreakerSettings = Field(default_factory=BreakerSettings)

    @field_validator("base_urls")
    @classmethod
    def _known_environments(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = set(v) - {e.value for e in BackendEnvironment}
        if unknown:
            raise ValueError(f"unknown environments: {sorted(unknown)}")
        return {k: str(u).rstrip("/") for k, u in v.items()}

    @property
    def base_url(self) -> str:
        url = self.base_urls.get(self.environment.value)
        if not url:
            raise ValueError(f"no base url configured for {self.environment.value}")
        return url


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    data_dir: str = "data"
    backup_keep: int = Field(default=10, ge=1, le=200)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: str = "INFO"
    file_name: str = "strider.log"
    max_bytes: int = Field(default=1_000_000, ge=10_000, le=100_000_000)
    backup_count: int = Field(default=5, ge=0, le=50)
    console: bool = True
    ops_log_file: str = "ops.jsonl"

    @field_validator("level")
    @classmethod
    def _level(cls, v: str) -> str:
        v = str(v or "").upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("invalid log level")
        return v


class FeaturesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    offline_fallback_enabled: bool = True
    validate_token_on_restore: bool = True


class StriderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    config_version: int = Field(default=1, ge=1)
    remote: RemoteIdentityConfig = Field(default_factory=RemoteIdentityConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)
