from __future__ import annotations

"""
Local identity table used when the account service can't be reached.

The durable JSON record is the ground truth; the in-memory map is an
advisory cache that can be forced back in sync with
``reload_from_durable_storage()`` or merged with ``repair()``.
"""

import hashlib
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from strider.core.errors import DuplicateEmailError, IdentityNotFoundError, InvalidCredentialsError, StorageCorruptError
from strider.core.identity.models import IdentityRecord, IdentityTable, StoredIdentity, normalize_email
from strider.core.passwords import hash_password, verify_password
from strider.core.redaction import mask_email
from strider.core.storage.io import (
    RecordPaths,
    atomic_write_json,
    ensure_dirs,
    purge_backups,
    read_json_file,
    recover_from_corrupt,
    write_last_known_good,
)

logger = logging.getLogger(__name__)

LOCAL_TOKEN_PREFIX = "local-"


def _iso_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def is_local_token(token: Optional[str]) -> bool:
    return bool(token) and str(token).startswith(LOCAL_TOKEN_PREFIX)


@dataclass(frozen=True)
class RepairReport:
    durable_records: int
    restored_to_memory: int
    written_back: int
    dropped_invalid: int
    recovered_from_backup: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "durable_records": self.durable_records,
            "restored_to_memory": self.restored_to_memory,
            "written_back": self.written_back,
            "dropped_invalid": self.dropped_invalid,
            "recovered_from_backup": self.recovered_from_backup,
        }


class LocalIdentityStore:
    def __init__(self, *, paths: RecordPaths, backup_keep: int = 10):
        self.paths = paths
        self.backup_keep = int(backup_keep)
        self._lock = threading.RLock()
        self._users: Dict[str, Any] = {}
        ensure_dirs(paths.backups_dir, paths.last_known_good_dir)
        try:
            self.reload_from_durable_storage()
        except StorageCorruptError:
            self.repair()

    # ---- public API ----
    def add_user(self, record: IdentityRecord, password: str, *, origin: str = "local") -> IdentityRecord:
        with self._lock:
            self._sync_durable_locked()
            key = record.email_key
            if key in self._users:
                raise DuplicateEmailError(email=mask_email(record.email))
            if any(r.record.id == record.id for r in self._users.values()):
                raise ValueError("identity id already in use")
            self._users[key] = StoredIdentity(record=record, credential=hash_password(password), origin=origin)
            self._write_durable_locked()
        logger.info("Local identity added for %s", mask_email(record.email))
        return record

    def get_user(self, email: str) -> IdentityRecord:
        return self._find(email).record

    def verify_password(self, email: str, password: str) -> bool:
        row = self._find(email)
        return verify_password(password, row.credential)

    def list_all(self) -> List[IdentityRecord]:
        with self._lock:
            rows = [r for r in self._users.values() if isinstance(r, StoredIdentity)]
        return sorted((r.record for r in rows), key=lambda r: r.email_key)

    def remove_user(self, email: str) -> bool:
        key = normalize_email(email)
        with self._lock:
            self._sync_durable_locked()
            if key not in self._users:
                return False
            del self._users[key]
            self._write_durable_locked()
            purge_backups(self.paths)
        logger.info("Local identity removed for %s", mask_email(email))
        return True

    def remove_all(self) -> int:
        with self._lock:
            self._sync_durable_locked()
            n = len(self._users)
            self._users = {}
            self._write_durable_locked()
            purge_backups(self.paths)
        logger.warning("Local identity table wiped (%d records)", n)
        return n

    def remember_remote_identity(self, record: IdentityRecord, password: str) -> IdentityRecord:
        """
        Mirror an identity the service vouched for, so an offline sign-in later
        resolves to the same id.
        """
        key = record.email_key
        with self._lock:
            self._sync_durable_locked()
            existing = self._users.get(key)
            if existing is None:
                if any(r.record.id == record.id for r in self._users.values()):
                    logger.warning("Remote identity id already mirrored under another email; not mirroring %s", mask_email(record.email))
                    return record
                self._users[key] = StoredIdentity(record=record, credential=hash_password(password), origin="remote")
            elif existing.record.id == record.id:
                self._users[key] = existing.model_copy(
                    update={"record": record, "credential": hash_password(password), "origin": "remote", "updated_at": _iso_now()}
                )
            else:
                logger.warning("Local identity for %s has a different id than the service; keeping local record", mask_email(record.email))
                return existing.record
            self._write_durable_locked()
        return record

    # ---- offline tokens ----
    def issue_token(self, record: IdentityRecord, token: Optional[str] = None) -> str:
        """
        Mint an offline token for ``record``, or re-register ``token`` (used to
        put back the previous token when a sign-in could not be committed).
        Only one offline token per identity is valid at a time.
        """
        if token is None:
            token = LOCAL_TOKEN_PREFIX + secrets.token_urlsafe(24)
        elif not is_local_token(token):
            raise ValueError("offline tokens must carry the local prefix")
        with self._lock:
            self._sync_durable_locked()
            row = self._find(record.email)
            if row.record.id != record.id:
                raise IdentityNotFoundError(email=mask_email(record.email))
            self._users[record.email_key] = row.model_copy(update={"token_sha256": _token_digest(token), "updated_at": _iso_now()})
            self._write_durable_locked()
        return token

    def validate_token(self, token: str) -> IdentityRecord:
        if not is_local_token(token):
            raise InvalidCredentialsError("That session is no longer valid.")
        digest = _token_digest(token)
        with self._lock:
            for row in self._users.values():
                if isinstance(row, StoredIdentity) and row.token_sha256 and secrets.compare_digest(row.token_sha256, digest):
                    return row.record
        raise InvalidCredentialsError("That session is no longer valid.")

    def revoke_token(self, email: str) -> None:
        key = normalize_email(email)
        with self._lock:
            self._sync_durable_locked()
            row = self._users.get(key)
            if not isinstance(row, StoredIdentity) or row.token_sha256 is None:
                return
            self._users[key] = row.model_copy(update={"token_sha256": None, "updated_at": _iso_now()})
            self._write_durable_locked()

    # ---- durability ----
    def reload_from_durable_storage(self) -> int:
        """
        Replace the in-memory view with the durable table. In-memory-only
        rows are discarded. Raises StorageCorruptError for unreadable content.
        """
        with self._lock:
            self._users = self._read_durable_locked()
            return len(self._users)

    def repair(self) -> RepairReport:
        """
        Merge durable storage and memory, favoring durable storage. Never
        deletes a record: an unreadable file is quarantined and its last known
        good copy restored, and memory-only rows are written back.
        """
        with self._lock:
            recovered = False
            rewrite = False
            try:
                durable = self._read_durable_locked()
            except StorageCorruptError as e:
                logger.warning("Identity table unreadable (%s); restoring last known good", e.context.get("reason"))
                data, recovered = recover_from_corrupt(self.paths, max_backups=self.backup_keep)
                durable = {}
                if recovered:
                    try:
                        durable = self._parse_locked(data)
                    except StorageCorruptError:
                        recovered = False
                        rewrite = True

            valid: Dict[str, StoredIdentity] = {}
            dropped = 0
            for row in list(self._users.values()):
                if isinstance(row, StoredIdentity):
                    valid[row.record.email_key] = row
                else:
                    dropped += 1

            restored = sum(1 for k in durable if k not in valid or valid[k] != durable[k])
            memory_only = [k for k in valid if k not in durable]
            merged = dict(valid)
            merged.update(durable)
            self._users = merged
            if memory_only or recovered or rewrite:
                self._write_durable_locked()
            report = RepairReport(
                durable_records=len(durable),
                restored_to_memory=restored,
                written_back=len(memory_only),
                dropped_invalid=dropped,
                recovered_from_backup=recovered,
            )
        logger.info("Identity table repair: %s", report.to_dict())
        return report

    # ---- internals ----
    def _find(self, email: str) -> StoredIdentity:
        key = normalize_email(email)
        with self._lock:
            row = self._users.get(key)
            if isinstance(row, StoredIdentity):
                return row
            # miss: another process may have written since we last read
            try:
                self._sync_durable_locked(repair_on_corrupt=False)
            except StorageCorruptError:
                self.repair()
                try:
                    self._sync_durable_locked(repair_on_corrupt=False)
                except StorageCorruptError:
                    raise IdentityNotFoundError(email=mask_email(email)) from None
            row = self._users.get(key)
            if not isinstance(row, StoredIdentity):
                raise IdentityNotFoundError(email=mask_email(email))
            return row

    def _sync_durable_locked(self, *, repair_on_corrupt: bool = True) -> None:
        # mutations start from the durable table; only repair() writes memory-only rows back
        try:
            self._users = self._read_durable_locked()
        except StorageCorruptError:
            if not repair_on_corrupt:
                raise
            self.repair()

    def _read_durable_locked(self) -> Dict[str, StoredIdentity]:
        rr = read_json_file(self.paths.path)
        if rr.missing:
            return {}
        if not rr.ok:
            raise StorageCorruptError(path=self.paths.path, reason=rr.error)
        return self._parse_locked(rr.data)

    def _parse_locked(self, data: Dict[str, Any]) -> Dict[str, StoredIdentity]:
        try:
            table = IdentityTable.model_validate(data)
        except ValidationError as e:
            raise StorageCorruptError(path=self.paths.path, reason="schema_invalid") from e
        return dict(table.users)

    def _write_durable_locked(self) -> None:
        rows = {k: v for k, v in self._users.items() if isinstance(v, StoredIdentity)}
        table = IdentityTable(users=rows)
        atomic_write_json(self.paths.path, table.model_dump(mode="json"), self.paths.backups_dir, max_backups=self.backup_keep)
        write_last_known_good(self.paths)
