from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests
from pydantic import ValidationError

from strider.core.circuit_breaker import BreakerConfig, CircuitBreaker
from strider.core.config.models import RemoteIdentityConfig
from strider.core.identity.models import IdentityRecord
from strider.core.identity.remote import AuthGrant, RemoteError, RemoteResult

logger = logging.getLogger(__name__)

# gateway/outage statuses: the service did not get to decide
_UNAVAILABLE_STATUSES = {502, 503, 504}


def _json_or_empty(r: Any) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


@dataclass
class HttpRemoteIdentityClient:
    """
    Account service over HTTP+JSON.

    Idempotent calls (sign-in, sign-out, validate) are retried on transport
    failure; sign-up and delete are attempted once so a lost response can't
    turn into a duplicate-email refusal on retry.
    """

    base_url: str
    anon_key: str = ""
    request_timeout_seconds: float = 60.0
    upload_timeout_seconds: float = 120.0
    max_retry_attempts: int = 3
    retry_delay_seconds: float = 2.0
    breaker: Optional[CircuitBreaker] = None
    http: Any = None
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.http is None:
            self.http = requests

    @classmethod
    def from_config(cls, cfg: RemoteIdentityConfig, *, http: Any = None) -> "HttpRemoteIdentityClient":
        breaker = CircuitBreaker(
            BreakerConfig(failures=cfg.breaker.failures, window_seconds=cfg.breaker.window_seconds, cooldown_seconds=cfg.breaker.cooldown_seconds)
        )
        return cls(
            base_url=cfg.base_url,
            anon_key=cfg.anon_key,
            request_timeout_seconds=cfg.request_timeout_seconds,
            upload_timeout_seconds=cfg.upload_timeout_seconds,
            max_retry_attempts=cfg.max_retry_attempts,
            retry_delay_seconds=cfg.retry_delay_seconds,
            breaker=breaker,
            http=http,
        )

    # ---- contract ----
    def sign_up(self, email: str, password: str, first_name: str, last_name: str) -> RemoteResult[AuthGrant]:
        body = {"email": email, "password": password, "firstName": first_name, "lastName": last_name}
        res = self._request("POST", "/signup", json_body=body, timeout=self.upload_timeout_seconds, idempotent=False)
        return self._grant(res)

    def sign_in(self, email: str, password: str) -> RemoteResult[AuthGrant]:
        body = {"email": email, "password": password}
        res = self._request("POST", "/login", json_body=body, timeout=self.request_timeout_seconds, idempotent=True)
        return self._grant(res)

    def sign_out(self, token: str) -> RemoteResult[None]:
        res = self._request("POST", "/logout", json_body={}, token=token, timeout=self.request_timeout_seconds, idempotent=True)
        if not res.ok:
            return RemoteResult.failure(res.error)  # type: ignore[arg-type]
        return RemoteResult.success(None)

    def validate_token(self, token: str) -> RemoteResult[IdentityRecord]:
        res = self._request("POST", "/validate-token", json_body={}, token=token, timeout=self.request_timeout_seconds, idempotent=True)
        if not res.ok:
            return RemoteResult.failure(res.error)  # type: ignore[arg-type]
        body = res.value or {}
        user = body.get("user") if isinstance(body.get("user"), dict) else body
        try:
            return RemoteResult.success(IdentityRecord.from_remote(user))
        except ValidationError:
            return RemoteResult.failure(RemoteError.rejected(200, "malformed user in response"))

    def delete_account(self, token: str, password: str) -> RemoteResult[None]:
        res = self._request("POST", "/deleteAccount", json_body={"password": password}, token=token, timeout=self.upload_timeout_seconds, idempotent=False)
        if not res.ok:
            return RemoteResult.failure(res.error)  # type: ignore[arg-type]
        return RemoteResult.success(None)

    def health(self) -> bool:
        res = self._request("GET", "/health", timeout=min(5.0, self.request_timeout_seconds), idempotent=False)
        return res.ok

    # ---- internals ----
    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    def _headers(self, token: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        bearer = token or self.anon_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
        timeout: float,
        idempotent: bool,
    ) -> RemoteResult[Dict[str, Any]]:
        if self.breaker is not None and not self.breaker.allow():
            logger.info("Account service breaker open; skipping %s %s", method, path)
            return RemoteResult.failure(RemoteError.unreachable("circuit open"))

        attempts = max(1, int(self.max_retry_attempts)) if idempotent else 1
        for attempt in range(1, attempts + 1):
            try:
                r = self.http.request(method, self._url(path), json=json_body, headers=self._headers(token), timeout=timeout)
            except requests.RequestException as e:
                logger.warning("%s %s failed (attempt %d/%d): %s", method, path, attempt, attempts, e.__class__.__name__)
                if attempt < attempts:
                    self.sleep(float(self.retry_delay_seconds))
                    continue
                self._record(False)
                return RemoteResult.failure(RemoteError.unreachable(e.__class__.__name__))

            status = int(r.status_code)
            body = _json_or_empty(r)
            if 200 <= status < 300:
                self._record(True)
                return RemoteResult.success(body)
            if status in _UNAVAILABLE_STATUSES:
                logger.warning("%s %s returned HTTP %d (attempt %d/%d)", method, path, status, attempt, attempts)
                if attempt < attempts:
                    self.sleep(float(self.retry_delay_seconds))
                    continue
                self._record(False)
                return RemoteResult.failure(RemoteError.unreachable(f"HTTP {status}"))
            self._record(True)
            message = str(body.get("error") or body.get("message") or f"HTTP {status}")
            return RemoteResult.failure(RemoteError.rejected(status, message))
        return RemoteResult.failure(RemoteError.unreachable("no attempts made"))

    def _record(self, ok: bool) -> None:
        if self.breaker is None:
            return
        if ok:
            self.breaker.record_success()
        else:
            self.breaker.record_failure()

    def _grant(self, res: RemoteResult[Dict[str, Any]]) -> RemoteResult[AuthGrant]:
        if not res.ok:
            return RemoteResult.failure(res.error)  # type: ignore[arg-type]
        body = res.value or {}
        user = body.get("user")
        session = body.get("session") if isinstance(body.get("session"), dict) else {}
        token = body.get("token") or session.get("access_token")
        if not isinstance(user, dict) or not token:
            return RemoteResult.failure(RemoteError.rejected(200, "malformed auth response"))
        try:
            record = IdentityRecord.from_remote(user)
        except ValidationError:
            return RemoteResult.failure(RemoteError.rejected(200, "malformed user in response"))
        return RemoteResult.success(AuthGrant(user=record, token=str(token)))
