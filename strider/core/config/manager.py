from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from pydantic import ValidationError

from strider.core.config.models import StriderConfig
from strider.core.config.paths import DataPaths, StriderPaths
from strider.core.errors import ConfigError
from strider.core.storage.io import atomic_write_json, read_json_file, recover_from_corrupt, write_last_known_good

logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Loads ``config/strider.json``.

    - missing file: defaults are written
    - corrupt JSON: moved aside, last known good restored, else defaults
    - schema-invalid content raises ConfigError (a hand-edit mistake should be seen)
    """

    def __init__(self, *, fs: Optional[StriderPaths] = None, read_only: bool = False):
        self.fs = fs or StriderPaths(".")
        self.read_only = read_only
        self._cfg: Optional[StriderConfig] = None

    def load(self) -> StriderConfig:
        rec = self.fs.config_record
        rr = read_json_file(rec.path)
        raw: Dict[str, Any]
        if rr.ok:
            raw = rr.data
        elif rr.missing:
            raw = StriderConfig().model_dump(mode="json")
            if not self.read_only:
                atomic_write_json(rec.path, raw, rec.backups_dir)
                logger.info("Wrote default config to %s", rec.path)
        else:
            logger.warning("Config unreadable (%s); recovering", rr.error)
            raw, recovered = recover_from_corrupt(rec)
            if not recovered:
                raw = StriderConfig().model_dump(mode="json")
        try:
            cfg = StriderConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigError("Configuration file is invalid.", path=rec.path, errors=e.errors(include_url=False)) from e
        if not self.read_only:
            write_last_known_good(rec)
        self._cfg = cfg
        return cfg

    def get(self) -> StriderConfig:
        if self._cfg is None:
            return self.load()
        return self._cfg

    def save(self, cfg: StriderConfig) -> None:
        if self.read_only:
            raise ConfigError("Configuration is read-only.")
        rec = self.fs.config_record
        atomic_write_json(rec.path, cfg.model_dump(mode="json"), rec.backups_dir)
        write_last_known_good(rec)
        self._cfg = cfg

    def data_paths(self) -> DataPaths:
        data_dir = self.get().storage.data_dir
        if not os.path.isabs(data_dir):
            data_dir = os.path.join(self.fs.root, data_dir)
        return DataPaths(data_dir=data_dir)

    def log_dir(self) -> str:
        log_dir = self.get().logging.log_dir
        if not os.path.isabs(log_dir):
            log_dir = os.path.join(self.fs.root, log_dir)
        return log_dir
