from __future__ import annotations

import os
from dataclasses import dataclass

from strider.core.storage.io import RecordPaths


@dataclass(frozen=True)
class StriderPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def config_backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    @property
    def config_last_known_good_dir(self) -> str:
        return os.path.join(self.config_backups_dir, "last_known_good")

    @property
    def config_file(self) -> str:
        return os.path.join(self.config_dir, "strider.json")

    @property
    def config_record(self) -> RecordPaths:
        return RecordPaths(path=self.config_file, backups_dir=self.config_backups_dir, last_known_good_dir=self.config_last_known_good_dir)


@dataclass(frozen=True)
class DataPaths:
    """
    Layout of the per-device data directory.
    """

    data_dir: str = "data"

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.data_dir, "backups")

    @property
    def last_known_good_dir(self) -> str:
        return os.path.join(self.data_dir, "last_known_good")

    @property
    def session_file(self) -> str:
        return os.path.join(self.data_dir, "session.json")

    @property
    def identities_file(self) -> str:
        return os.path.join(self.data_dir, "identities.json")

    @property
    def cache_db(self) -> str:
        return os.path.join(self.data_dir, "user_cache.sqlite")

    @property
    def session_record(self) -> RecordPaths:
        return RecordPaths(path=self.session_file, backups_dir=self.backups_dir, last_known_good_dir=self.last_known_good_dir)

    @property
    def identities_record(self) -> RecordPaths:
        return RecordPaths(path=self.identities_file, backups_dir=self.backups_dir, last_known_good_dir=self.last_known_good_dir)
