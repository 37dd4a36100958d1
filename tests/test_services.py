from __future__ import annotations

import os

from strider.core.identity.http_client import HttpRemoteIdentityClient
from strider.core.services import build_session_services
from strider.core.session.models import Guest, Unauthenticated
from tests.helpers.fakes import EventRecorder, FakeRemoteIdentityClient


def test_build_wires_one_shared_set_of_services(tmp_path):
    remote = FakeRemoteIdentityClient()
    svc = build_session_services(str(tmp_path), remote=remote)
    assert svc.orchestrator.remote is remote
    assert svc.orchestrator.cache is svc.cache
    assert svc.data_paths.data_dir == os.path.join(str(tmp_path), "data")
    assert isinstance(svc.orchestrator.restore(), Unauthenticated)


def test_default_remote_is_http_client(tmp_path):
    svc = build_session_services(str(tmp_path))
    assert isinstance(svc.remote, HttpRemoteIdentityClient)
    assert svc.remote.request_timeout_seconds == svc.config.remote.request_timeout_seconds


def test_session_resumes_across_builds(tmp_path):
    rec = EventRecorder()
    svc = build_session_services(str(tmp_path), remote=FakeRemoteIdentityClient())
    g = svc.orchestrator.enter_guest()
    again = build_session_services(str(tmp_path), remote=FakeRemoteIdentityClient())
    again.notifier.subscribe(rec)
    assert again.orchestrator.restore() == g
    assert isinstance(again.orchestrator.current_state(), Guest)
    assert rec.transitions() == ["restore"]
    assert os.path.exists(os.path.join(str(tmp_path), "logs", "ops.jsonl"))
