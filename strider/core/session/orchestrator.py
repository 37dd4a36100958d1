from __future__ import annotations

"""
Session state machine.

Every transition has two phases:
- a remote phase (account-service call) that runs without the lock
- a commit phase (fallback, persist, purge/reload, notify) serialized by one RLock

The session record is saved before any purge or identity removal, so a
failed save leaves the previous state fully intact.

Each attempt takes a generation number when it starts. A commit whose
generation is no longer the latest raises TransitionSupersededError and
applies nothing.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar

from strider.core.cache.kinds import DEVICE_SCOPED_KINDS
from strider.core.cache.manager import PerUserCache
from strider.core.errors import (
    DuplicateEmailError,
    IdentityNotFoundError,
    InvalidCredentialsError,
    RemoteRejectedError,
    RemoteUnreachableError,
    StateTransitionError,
    StriderError,
    TransitionSupersededError,
)
from strider.core.events.models import Transition, UserChanged
from strider.core.events.notifier import UserChangedNotifier
from strider.core.identity.local_store import LocalIdentityStore, RepairReport, is_local_token
from strider.core.identity.models import IdentityRecord, normalize_email
from strider.core.identity.remote import RemoteError, RemoteIdentityClient
from strider.core.ops_log import OpsLogger
from strider.core.redaction import mask_email
from strider.core.session.models import Authenticated, Guest, SessionState, Unauthenticated
from strider.core.session.store import SessionStore
from strider.core.trace import trace_scope

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _empty_response() -> RemoteError:
    return RemoteError.rejected(200, "empty response from account service")


def _sign_in_rejection(err: RemoteError, email: str) -> StriderError:
    status = err.http_status or 0
    if status in (400, 401, 403):
        return InvalidCredentialsError(http_status=status, email=mask_email(email))
    if status == 404:
        return IdentityNotFoundError(http_status=status, email=mask_email(email))
    return RemoteRejectedError(http_status=status, message=err.message)


def _sign_up_rejection(err: RemoteError, email: str) -> StriderError:
    status = err.http_status or 0
    if status == 409 or "already registered" in (err.message or "").lower():
        return DuplicateEmailError(http_status=status, email=mask_email(email))
    return RemoteRejectedError(http_status=status, message=err.message)


def _delete_rejection(err: RemoteError) -> StriderError:
    if err.is_unreachable:
        return RemoteUnreachableError("Your account can't be deleted while the account service is unreachable.")
    status = err.http_status or 0
    if status in (400, 401, 403):
        return InvalidCredentialsError("The password is incorrect.", http_status=status)
    return RemoteRejectedError(http_status=status, message=err.message)


class SessionOrchestrator:
    def __init__(
        self,
        *,
        session_store: SessionStore,
        identity_store: LocalIdentityStore,
        remote: RemoteIdentityClient,
        cache: PerUserCache,
        notifier: Optional[UserChangedNotifier] = None,
        ops: Optional[OpsLogger] = None,
        offline_fallback_enabled: bool = True,
        validate_token_on_restore: bool = True,
    ):
        self.session_store = session_store
        self.identity_store = identity_store
        self.remote = remote
        self.cache = cache
        self.notifier = notifier or UserChangedNotifier()
        self.ops = ops
        self.offline_fallback_enabled = bool(offline_fallback_enabled)
        self.validate_token_on_restore = bool(validate_token_on_restore)

        self._lock = threading.RLock()
        self._state: SessionState = Unauthenticated()
        self._generation = 0

    # ---- snapshots (lock-free) ----
    def current_state(self) -> SessionState:
        return self._state

    def is_authenticated(self) -> bool:
        return isinstance(self._state, Authenticated)

    @property
    def generation(self) -> int:
        return self._generation

    # ---- transitions ----
    def enter_guest(self, *, trace_id: Optional[str] = None) -> Guest:
        def run(tid: str) -> Guest:
            gen = self._begin()
            with self._lock:
                self._ensure_current_locked(gen, Transition.ENTER_GUEST)
                prev = self._state
                guest = Guest()
                self._commit_locked(guest)
                self.cache.purge_all_for_any_user()
                self.cache.reload(guest.guest_id)
                self._notify_locked(Transition.ENTER_GUEST, prev, gen, tid)
                return guest

        return self._run(Transition.ENTER_GUEST, trace_id, run)

    def exit_guest(self, *, trace_id: Optional[str] = None) -> Unauthenticated:
        def run(tid: str) -> Unauthenticated:
            self._require(Guest, "You're not in guest mode.")
            gen = self._begin()
            with self._lock:
                self._ensure_current_locked(gen, Transition.EXIT_GUEST)
                self._require(Guest, "You're not in guest mode.")
                prev = self._state
                st = Unauthenticated()
                self._commit_locked(st)
                self.cache.unbind()
                self._notify_locked(Transition.EXIT_GUEST, prev, gen, tid)
                return st

        return self._run(Transition.EXIT_GUEST, trace_id, run)

    def sign_up(self, email: str, password: str, first_name: str = "", last_name: str = "", *, trace_id: Optional[str] = None) -> Authenticated:
        def run(tid: str) -> Authenticated:
            self._check_sign_up_allowed(email)
            draft = self._draft_identity(email, password, first_name, last_name)
            gen = self._begin()
            res = self.remote.sign_up(draft.email, password, draft.first_name, draft.last_name)
            with self._lock:
                self._ensure_current_locked(gen, Transition.SIGN_UP)
                self._check_sign_up_allowed(email)
                undo: Optional[Callable[[], None]] = None
                if res.ok and res.value is not None:
                    user, token = res.value.user, res.value.token
                    self._mirror_remote_identity(user, password)
                elif res.error is not None and res.error.is_unreachable:
                    self._require_fallback(res.error)
                    logger.info("Account service unreachable; creating local identity for %s", mask_email(email))
                    user = self.identity_store.add_user(draft, password)
                    undo = self._identity_rollback(user)
                    try:
                        token = self.identity_store.issue_token(user)
                    except (OSError, StriderError):
                        self._undo(undo, Transition.SIGN_UP)
                        raise
                else:
                    raise _sign_up_rejection(res.error or _empty_response(), email)

                prev = self._state
                st = Authenticated(user=user, token=token)
                self._commit_locked(st, undo=undo, transition=Transition.SIGN_UP)
                # a new identity never inherits anything cached on this device
                self.cache.purge_all_for_any_user()
                self.cache.reload(user.id)
                self._notify_locked(Transition.SIGN_UP, prev, gen, tid)
                return st

        return self._run(Transition.SIGN_UP, trace_id, run)

    def sign_in(self, email: str, password: str, *, trace_id: Optional[str] = None) -> Authenticated:
        def run(tid: str) -> Authenticated:
            if not normalize_email(email) or not password:
                raise InvalidCredentialsError("Enter your email and password.")
            gen = self._begin()
            res = self.remote.sign_in(email, password)
            with self._lock:
                self._ensure_current_locked(gen, Transition.SIGN_IN)
                undo: Optional[Callable[[], None]] = None
                if res.ok and res.value is not None:
                    user, token = res.value.user, res.value.token
                    self._mirror_remote_identity(user, password)
                elif res.error is not None and res.error.is_unreachable:
                    self._require_fallback(res.error)
                    logger.info("Account service unreachable; verifying %s locally", mask_email(email))
                    if not self.identity_store.verify_password(email, password):
                        raise InvalidCredentialsError(email=mask_email(email), source="local")
                    user = self.identity_store.get_user(email)
                    undo = self._token_rollback(user)
                    token = self.identity_store.issue_token(user)
                else:
                    raise _sign_in_rejection(res.error or _empty_response(), email)

                prev = self._state
                st = Authenticated(user=user, token=token)
                self._commit_locked(st, undo=undo, transition=Transition.SIGN_IN)
                prev_owner = prev.owner_id
                if prev_owner and prev_owner != user.id:
                    self.cache.purge_for_user_switch(prev_owner)
                self.cache.reload(user.id)
                self._notify_locked(Transition.SIGN_IN, prev, gen, tid)
                return st

        return self._run(Transition.SIGN_IN, trace_id, run)

    def sign_out(self, *, trace_id: Optional[str] = None) -> Unauthenticated:
        def run(tid: str) -> Unauthenticated:
            current = self._require(Authenticated, "You're not signed in.")
            gen = self._begin()
            if not is_local_token(current.token):
                res = self.remote.sign_out(current.token)
                if not res.ok and res.error is not None:
                    logger.warning("Remote sign-out failed (%s); continuing locally", res.error.kind.value)
            with self._lock:
                self._ensure_current_locked(gen, Transition.SIGN_OUT)
                prev = self._require(Authenticated, "You're not signed in.")
                st = Unauthenticated()
                self._commit_locked(st)
                if is_local_token(prev.token):
                    self.identity_store.revoke_token(prev.user.email)
                self.cache.purge_all_for_any_user()
                self._notify_locked(Transition.SIGN_OUT, prev, gen, tid)
                return st

        return self._run(Transition.SIGN_OUT, trace_id, run)

    def delete_account(self, password: Optional[str] = None, *, trace_id: Optional[str] = None) -> Unauthenticated:
        """
        Irreversibly delete the signed-in account from this device.

        With ``password`` on a remote session the account service deletes the
        account first and nothing local changes unless it succeeds. Without a
        password only local data is removed.
        """

        def run(tid: str) -> Unauthenticated:
            current = self._require(Authenticated, "You're not signed in.")
            gen = self._begin()
            if password is not None:
                if is_local_token(current.token):
                    if not self.identity_store.verify_password(current.user.email, password):
                        raise InvalidCredentialsError("The password is incorrect.", source="local")
                else:
                    res = self.remote.delete_account(current.token, password)
                    if not res.ok:
                        raise _delete_rejection(res.error)  # type: ignore[arg-type]
            with self._lock:
                self._ensure_current_locked(gen, Transition.DELETE_ACCOUNT)
                prev = self._require(Authenticated, "You're not signed in.")
                st = Unauthenticated()
                self._commit_locked(st)
                self.cache.purge_all_for_any_user()
                self.identity_store.remove_user(prev.user.email)
                self.cache.clear_device_state(DEVICE_SCOPED_KINDS)
                self._notify_locked(Transition.DELETE_ACCOUNT, prev, gen, tid)
                return st

        return self._run(Transition.DELETE_ACCOUNT, trace_id, run)

    def restore(self, *, trace_id: Optional[str] = None) -> SessionState:
        """
        Resume the persisted session at startup. Never raises for an invalid
        or unverifiable token; the session becomes Unauthenticated instead.
        """

        def run(tid: str) -> SessionState:
            gen = self._begin()
            loaded = self.session_store.load()
            resolved: SessionState = loaded
            if isinstance(loaded, Authenticated):
                resolved = self._validate_restored(loaded)
            with self._lock:
                self._ensure_current_locked(gen, Transition.RESTORE)
                prev = self._state
                if resolved is not loaded:
                    self._commit_locked(resolved)
                else:
                    self._state = resolved
                owner = resolved.owner_id
                if owner:
                    self.cache.reload(owner)
                else:
                    self.cache.unbind()
                self._notify_locked(Transition.RESTORE, prev, gen, tid)
                return resolved

        return self._run(Transition.RESTORE, trace_id, run)

    # ---- identity store maintenance (serialized with transitions) ----
    def reload_identity_store(self) -> int:
        with self._lock:
            return self.identity_store.reload_from_durable_storage()

    def repair_identity_store(self) -> RepairReport:
        with self._lock:
            return self.identity_store.repair()

    # ---- internals ----
    def _run(self, transition: Transition, trace_id: Optional[str], fn: Callable[[str], T]) -> T:
        with trace_scope(trace_id) as tid:
            try:
                result = fn(tid)
            except StriderError as e:
                self._ops(tid, transition, "failed", {"code": e.code, "context": e.context})
                raise
            except OSError as e:
                self._ops(tid, transition, "failed", {"code": "io_error", "error": str(e)})
                raise StateTransitionError("Your session couldn't be saved on this device.", reason="io_error") from e
            self._ops(tid, transition, "ok", {"session_kind": self._state.kind, "generation": self._generation})
            return result

    def _ops(self, tid: str, transition: Transition, outcome: str, details: Dict[str, Any]) -> None:
        if self.ops is None:
            return
        self.ops.log(trace_id=tid, event=f"session.{transition.value}", outcome=outcome, details=details)

    def _begin(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _ensure_current_locked(self, gen: int, transition: Transition) -> None:
        if gen != self._generation:
            logger.info("Discarding superseded %s (generation %d < %d)", transition.value, gen, self._generation)
            raise TransitionSupersededError(transition=transition.value, generation=gen, current_generation=self._generation)

    def _require(self, kind: type, message: str) -> Any:
        st = self._state
        if not isinstance(st, kind):
            raise StateTransitionError(message, session_kind=st.kind)
        return st

    def _require_fallback(self, err: RemoteError) -> None:
        if not self.offline_fallback_enabled:
            raise RemoteUnreachableError(reason=err.message)

    def _check_sign_up_allowed(self, email: str) -> None:
        st = self._state
        if isinstance(st, Authenticated) and st.user.email_key == normalize_email(email):
            raise StateTransitionError("You're already signed in with that email.", session_kind=st.kind)

    def _draft_identity(self, email: str, password: str, first_name: str, last_name: str) -> IdentityRecord:
        if not password:
            raise InvalidCredentialsError("Choose a password.")
        try:
            return IdentityRecord(email=email, first_name=first_name or "", last_name=last_name or "")
        except ValueError as e:
            raise InvalidCredentialsError("Enter a valid email address.") from e

    def _mirror_remote_identity(self, user: IdentityRecord, password: str) -> None:
        try:
            self.identity_store.remember_remote_identity(user, password)
        except OSError as e:
            # offline sign-in for this account won't work until the next successful mirror
            logger.warning("Could not mirror identity for %s locally: %s", mask_email(user.email), e)

    def _validate_restored(self, st: Authenticated) -> SessionState:
        if is_local_token(st.token):
            try:
                user = self.identity_store.validate_token(st.token)
            except InvalidCredentialsError:
                logger.info("Restored offline session is no longer valid")
                return Unauthenticated()
            if user.id != st.user.id:
                return Unauthenticated()
            return Authenticated(user=user, token=st.token)
        if not self.validate_token_on_restore:
            return st
        res = self.remote.validate_token(st.token)
        if not res.ok or res.value is None:
            logger.info("Restored session not validated (%s); signing out", res.error.kind.value if res.error else "empty")
            return Unauthenticated()
        if res.value.id != st.user.id:
            logger.warning("Restored token belongs to a different identity; signing out")
            return Unauthenticated()
        return Authenticated(user=res.value, token=st.token)

    def _identity_rollback(self, user: IdentityRecord) -> Callable[[], None]:
        return lambda: self.identity_store.remove_user(user.email)

    def _token_rollback(self, user: IdentityRecord) -> Callable[[], None]:
        # issuing replaces any earlier offline token for this identity
        prev = self._state
        if isinstance(prev, Authenticated) and is_local_token(prev.token) and prev.user.id == user.id:
            return lambda: self.identity_store.issue_token(prev.user, prev.token)
        return lambda: self.identity_store.revoke_token(user.email)

    def _undo(self, undo: Callable[[], None], transition: Transition) -> None:
        try:
            undo()
        except (OSError, StriderError) as e:
            logger.error("Could not roll back %s: %s", transition.value, e)

    def _commit_locked(
        self,
        st: SessionState,
        *,
        undo: Optional[Callable[[], None]] = None,
        transition: Transition = Transition.RESTORE,
    ) -> None:
        """
        Persist ``st`` and make it current. Local changes that can't be taken
        back run after this returns; the few made earlier are reverted through
        ``undo`` when the save fails.
        """
        try:
            self.session_store.save(st)
        except (OSError, StriderError):
            if undo is not None:
                self._undo(undo, transition)
            raise
        self._state = st

    def _notify_locked(self, transition: Transition, prev: SessionState, gen: int, tid: str) -> None:
        st = self._state
        prev_user = prev.user.id if isinstance(prev, Authenticated) else None
        ev = UserChanged(
            transition=transition,
            session_kind=st.kind,
            user_id=st.user.id if isinstance(st, Authenticated) else None,
            previous_user_id=prev_user,
            generation=gen,
            trace_id=tid,
        )
        self.notifier.publish(ev)
