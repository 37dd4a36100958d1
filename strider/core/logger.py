from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

from strider.core.config.models import LoggingConfig
from strider.core.trace import current_trace_id

_FILE_FORMAT = "%(asctime)s | %(levelname)s | %(trace_id)s | %(name)s | %(message)s"


class TraceIdFilter(logging.Filter):
    """Stamps each record with the transition trace id, or ``-`` outside one."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = current_trace_id() or "-"
        return True


def setup_logging(
    log_dir: str = "logs",
    level: str = "INFO",
    *,
    file_name: str = "strider.log",
    max_bytes: int = 1_000_000,
    backup_count: int = 5,
    console: bool = True,
) -> logging.Logger:
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger("strider")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.propagate = False

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        text_path = os.path.join(log_dir, file_name)
        h = RotatingFileHandler(text_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        h.addFilter(TraceIdFilter())
        h.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(h)

    streams = [h for h in logger.handlers if isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)]
    if console and not streams:
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(sh)
    elif not console:
        for sh in streams:
            logger.removeHandler(sh)

    return logger


def setup_logging_from_config(cfg: LoggingConfig, log_dir: str) -> logging.Logger:
    """``log_dir`` is the resolved directory; ``cfg.log_dir`` may be relative to the app root."""
    return setup_logging(
        log_dir,
        cfg.level,
        file_name=cfg.file_name,
        max_bytes=cfg.max_bytes,
        backup_count=cfg.backup_count,
        console=cfg.console,
    )
