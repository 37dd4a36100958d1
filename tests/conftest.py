from __future__ import annotations

import os

import pytest

from strider.core.cache.durable import DurableCacheStore
from strider.core.cache.manager import PerUserCache
from strider.core.config.paths import DataPaths
from strider.core.events.notifier import UserChangedNotifier
from strider.core.identity.local_store import LocalIdentityStore
from strider.core.ops_log import OpsLogger
from strider.core.session.orchestrator import SessionOrchestrator
from strider.core.session.store import SessionStore
from tests.helpers.fakes import EventRecorder, FakeRemoteIdentityClient


@pytest.fixture
def data_paths(tmp_path):
    """
    Isolated data directory under tmp_path.
    """
    dp = DataPaths(data_dir=str(tmp_path / "data"))
    os.makedirs(dp.data_dir, exist_ok=True)
    return dp


@pytest.fixture
def identity_store(data_paths):
    return LocalIdentityStore(paths=data_paths.identities_record)


@pytest.fixture
def session_store(data_paths):
    return SessionStore(paths=data_paths.session_record)


@pytest.fixture
def cache(data_paths):
    return PerUserCache(store=DurableCacheStore(db_path=data_paths.cache_db))


@pytest.fixture
def remote():
    return FakeRemoteIdentityClient()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def make_orchestrator(data_paths, identity_store, session_store, cache, remote, recorder, tmp_path):
    def _make(**kwargs):
        notifier = UserChangedNotifier()
        notifier.subscribe(recorder)
        return SessionOrchestrator(
            session_store=kwargs.pop("session_store", session_store),
            identity_store=kwargs.pop("identity_store", identity_store),
            remote=kwargs.pop("remote", remote),
            cache=kwargs.pop("cache", cache),
            notifier=notifier,
            ops=OpsLogger(path=str(tmp_path / "logs" / "ops.jsonl")),
            **kwargs,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()
