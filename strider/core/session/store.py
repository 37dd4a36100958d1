from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict

from pydantic import ValidationError

from strider.core.session.migrations.migration_0001_initial import apply as mig_0001
from strider.core.session.models import SessionRecord, SessionState, Unauthenticated
from strider.core.storage.io import (
    RecordPaths,
    atomic_write_json,
    ensure_dirs,
    quarantine_corrupt,
    read_json_file,
    write_last_known_good,
)

logger = logging.getLogger(__name__)


def _restrict_permissions(path: str) -> None:
    # the record carries a bearer token
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass


class SessionStore:
    """
    Persists the single current session state.

    ``load()`` never raises: a corrupt or schema-invalid record is moved
    aside and the last known good copy is used, else Unauthenticated.
    """

    def __init__(self, *, paths: RecordPaths, backup_keep: int = 10):
        self.paths = paths
        self.backup_keep = int(backup_keep)
        self._lock = threading.Lock()
        ensure_dirs(paths.backups_dir, paths.last_known_good_dir)

    def load(self) -> SessionState:
        with self._lock:
            rr = read_json_file(self.paths.path)
            if rr.missing:
                return Unauthenticated()
            if rr.ok:
                state = self._parse(rr.data)
                if state is not None:
                    write_last_known_good(self.paths)
                    return state
            logger.warning("Session record unreadable (%s); trying last known good", rr.error or "schema_invalid")
            return self._recover_locked()

    def save(self, state: SessionState) -> None:
        record = SessionRecord(state=state)
        with self._lock:
            atomic_write_json(self.paths.path, record.model_dump(mode="json"), self.paths.backups_dir, max_backups=self.backup_keep)
            _restrict_permissions(self.paths.path)
            write_last_known_good(self.paths)
            _restrict_permissions(self.paths.last_known_good_path)

    def clear(self) -> SessionState:
        state = Unauthenticated()
        self.save(state)
        return state

    # ---- internals ----
    def _parse(self, data: Dict[str, Any]) -> Any:
        data, changed = mig_0001(data)
        try:
            record = SessionRecord.model_validate(data)
        except ValidationError:
            return None
        if changed:
            logger.info("Session record migrated to v%d", record.record_version)
        return record.state

    def _recover_locked(self) -> SessionState:
        quarantine_corrupt(self.paths, max_backups=self.backup_keep)
        rr = read_json_file(self.paths.last_known_good_path)
        state = self._parse(rr.data) if rr.ok else None
        if state is None:
            logger.warning("No usable last known good session; starting unauthenticated")
            return Unauthenticated()
        atomic_write_json(self.paths.path, SessionRecord(state=state).model_dump(mode="json"), self.paths.backups_dir, max_backups=self.backup_keep)
        _restrict_permissions(self.paths.path)
        return state
