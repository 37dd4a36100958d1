from __future__ import annotations

import logging
import logging.handlers
import os

from strider.core.config.models import LoggingConfig
from strider.core.errors import DuplicateEmailError, RemoteRejectedError, Severity
from strider.core.logger import setup_logging, setup_logging_from_config
from strider.core.ops_log import OpsLogger
from strider.core.redaction import mask_email, redact
from strider.core.trace import current_trace_id, trace_scope


def test_error_to_dict_redacts_context():
    e = RemoteRejectedError(http_status=500, token="abc", password="pw")
    d = e.to_dict()
    assert d["code"] == "remote_rejected"
    assert d["context"]["token"] == "***REDACTED***"
    assert d["context"]["password"] == "***REDACTED***"
    assert d["context"]["http_status"] == 500
    assert str(e) == e.user_message


def test_duplicate_email_is_user_correctable():
    e = DuplicateEmailError(email=mask_email("ann@x.com"))
    assert e.recoverable is False
    assert e.severity == Severity.WARN
    assert e.context["email"] == "a***@x.com"


def test_redact_nested():
    out = redact({"a": [{"Authorization": "Bearer x"}], "ok": 1})
    assert out == {"a": [{"Authorization": "***REDACTED***"}], "ok": 1}


def test_ops_logger_appends_redacted_jsonl(tmp_path):
    ops = OpsLogger(path=str(tmp_path / "logs" / "ops.jsonl"))
    ops.log(trace_id="t1", event="session.sign_in", outcome="ok", details={"token": "secret"})
    ops.log(trace_id="t2", event="session.sign_out", outcome="ok")
    tail = ops.tail(1)
    assert len(tail) == 1 and tail[0]["trace_id"] == "t2"
    assert ops.tail(10)[0]["details"]["token"] == "***REDACTED***"


def test_trace_scope_sets_and_restores():
    assert current_trace_id() is None
    with trace_scope("abc") as tid:
        assert tid == "abc"
        assert current_trace_id() == "abc"
        with trace_scope() as inner:
            assert inner == "abc"
    assert current_trace_id() is None


def test_setup_logging_is_idempotent(tmp_path):
    log_dir = str(tmp_path / "logs")
    lg = setup_logging(log_dir, "DEBUG")
    n = len(lg.handlers)
    setup_logging(log_dir, "DEBUG")
    assert len(lg.handlers) == n
    assert lg.level == logging.DEBUG
    assert os.path.exists(os.path.join(log_dir, "strider.log"))


def test_setup_logging_from_config_applies_settings(tmp_path):
    lg = logging.getLogger("strider")
    saved = list(lg.handlers)
    for h in saved:
        lg.removeHandler(h)
    try:
        cfg = LoggingConfig(level="warning", file_name="session.log", max_bytes=50_000, backup_count=2, console=False)
        setup_logging_from_config(cfg, str(tmp_path / "logs"))
        files = [h for h in lg.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(files) == 1
        assert files[0].maxBytes == 50_000 and files[0].backupCount == 2
        assert all(isinstance(h, logging.handlers.RotatingFileHandler) for h in lg.handlers)
        assert lg.level == logging.WARNING
        with trace_scope("t-log"):
            logging.getLogger("strider.core.session").warning("switch")
        files[0].flush()
        with open(tmp_path / "logs" / "session.log", "r", encoding="utf-8") as f:
            assert "| t-log |" in f.read()
    finally:
        for h in list(lg.handlers):
            lg.removeHandler(h)
            h.close()
        for h in saved:
            lg.addHandler(h)
