"""
Durable JSON record helpers shared by the identity table, the session record
and the config file.

Every write goes to a temp file in the target directory and is moved into
place with ``os.replace``, so a crash leaves either the old or the new record.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None
    was_recovered: bool = False

    @property
    def missing(self) -> bool:
        return self.error == "missing"

    @property
    def corrupt(self) -> bool:
        return bool(self.error) and not self.missing


@dataclass(frozen=True)
class RecordPaths:
    """
    Locations for one durable record: the record itself, its rolling backups
    and the last copy that was read back successfully.
    """

    path: str
    backups_dir: str
    last_known_good_dir: str

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def last_known_good_path(self) -> str:
        return os.path.join(self.last_known_good_dir, self.name)


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.gmtime())


def ensure_dirs(*dirs: str) -> None:
    for d in dirs:
        if d:
            os.makedirs(d, exist_ok=True)


def read_json_file(path: str) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
        if not isinstance(obj, dict):
            return ReadResult(ok=False, data={}, error="not_object")
        return ReadResult(ok=True, data=obj)
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e}")
    except (OSError, UnicodeDecodeError) as e:
        return ReadResult(ok=False, data={}, error=str(e))


def backup_file(path: str, backups_dir: str, *, reason: str, max_backups: int = 10) -> Optional[str]:
    if not os.path.exists(path):
        return None
    ensure_dirs(backups_dir)
    base = os.path.basename(path)
    out = os.path.join(backups_dir, f"{base}.{_ts()}.{reason}.json")
    try:
        shutil.copy2(path, out)
    except OSError:
        return None
    _enforce_backup_retention(backups_dir, prefix=f"{base}.", keep=max_backups)
    return out


def _enforce_backup_retention(backups_dir: str, *, prefix: str, keep: int) -> None:
    try:
        items = [os.path.join(backups_dir, f) for f in os.listdir(backups_dir) if f.startswith(prefix)]
    except OSError:
        return
    items.sort(key=lambda p: os.path.getmtime(p), reverse=True)
    for p in items[int(keep) :]:
        try:
            os.remove(p)
        except OSError:
            pass


def atomic_write_json(path: str, data: Dict[str, Any], backups_dir: str, *, max_backups: int = 10) -> None:
    ensure_dirs(os.path.dirname(path), backups_dir)
    backup_file(path, backups_dir, reason="prewrite", max_backups=max_backups)
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            f.write("\n")
            try:
                f.flush()
                os.fsync(f.fileno())
            except OSError:
                pass
        os.replace(tmp, path)
    finally:
        try:
            if os.path.exists(tmp):
                os.remove(tmp)
        except OSError:
            pass


def write_last_known_good(paths: RecordPaths) -> None:
    if not os.path.exists(paths.path):
        return
    ensure_dirs(paths.last_known_good_dir)
    try:
        shutil.copy2(paths.path, paths.last_known_good_path)
    except OSError:
        return


def quarantine_corrupt(paths: RecordPaths, *, max_backups: int = 10) -> Optional[str]:
    """
    Move an unreadable record aside as ``<name>.<ts>.corrupt.json``.
    """
    if not os.path.exists(paths.path):
        return None
    ensure_dirs(paths.backups_dir)
    dst = os.path.join(paths.backups_dir, f"{paths.name}.{_ts()}.corrupt.json")
    try:
        shutil.move(paths.path, dst)
    except OSError:
        return None
    _enforce_backup_retention(paths.backups_dir, prefix=f"{paths.name}.", keep=max_backups)
    return dst


def recover_from_corrupt(paths: RecordPaths, *, max_backups: int = 10) -> Tuple[Dict[str, Any], bool]:
    """
    On a corrupt record:
    - move it to backups/<name>.<ts>.corrupt.json
    - restore last_known_good/<name> into place if it reads back
    Returns (data, recovered).
    """
    quarantine_corrupt(paths, max_backups=max_backups)
    rr = read_json_file(paths.last_known_good_path)
    if rr.ok:
        atomic_write_json(paths.path, rr.data, paths.backups_dir, max_backups=max_backups)
        return rr.data, True
    return {}, False


def purge_backups(paths: RecordPaths) -> int:
    """
    Remove rolling backups of a record and refresh its last-known-good copy.

    Used after deletions so removed data does not survive in backups.
    """
    removed = 0
    prefix = f"{paths.name}."
    try:
        names = [f for f in os.listdir(paths.backups_dir) if f.startswith(prefix)]
    except OSError:
        names = []
    for f in names:
        try:
            os.remove(os.path.join(paths.backups_dir, f))
            removed += 1
        except OSError:
            pass
    if os.path.exists(paths.path):
        write_last_known_good(paths)
    else:
        try:
            os.remove(paths.last_known_good_path)
        except OSError:
            pass
    return removed
