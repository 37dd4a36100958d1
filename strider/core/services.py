from __future__ import annotations

"""
Builds the session services once at process start.

Everything the orchestrator depends on is constructed here and passed in,
so tests can substitute any piece (typically the remote client).
"""

import os
from dataclasses import dataclass
from typing import Optional

from strider.core.cache.durable import DurableCacheStore
from strider.core.cache.manager import PerUserCache
from strider.core.config.manager import ConfigManager
from strider.core.config.models import StriderConfig
from strider.core.config.paths import DataPaths, StriderPaths
from strider.core.events.notifier import UserChangedNotifier
from strider.core.identity.http_client import HttpRemoteIdentityClient
from strider.core.identity.local_store import LocalIdentityStore
from strider.core.identity.remote import RemoteIdentityClient
from strider.core.ops_log import OpsLogger
from strider.core.session.orchestrator import SessionOrchestrator
from strider.core.session.store import SessionStore


@dataclass
class SessionServices:
    config: StriderConfig
    data_paths: DataPaths
    identity_store: LocalIdentityStore
    session_store: SessionStore
    cache: PerUserCache
    remote: RemoteIdentityClient
    notifier: UserChangedNotifier
    ops: OpsLogger
    orchestrator: SessionOrchestrator


def build_session_services(
    root: str = ".",
    *,
    config_manager: Optional[ConfigManager] = None,
    remote: Optional[RemoteIdentityClient] = None,
    notifier: Optional[UserChangedNotifier] = None,
) -> SessionServices:
    cm = config_manager or ConfigManager(fs=StriderPaths(root))
    cfg = cm.get()
    dp = cm.data_paths()
    keep = int(cfg.storage.backup_keep)

    identity_store = LocalIdentityStore(paths=dp.identities_record, backup_keep=keep)
    session_store = SessionStore(paths=dp.session_record, backup_keep=keep)
    cache = PerUserCache(store=DurableCacheStore(db_path=dp.cache_db))
    remote_client = remote or HttpRemoteIdentityClient.from_config(cfg.remote)
    notifier = notifier or UserChangedNotifier()
    ops = OpsLogger(path=os.path.join(cm.log_dir(), cfg.logging.ops_log_file))

    orch = SessionOrchestrator(
        session_store=session_store,
        identity_store=identity_store,
        remote=remote_client,
        cache=cache,
        notifier=notifier,
        ops=ops,
        offline_fallback_enabled=cfg.features.offline_fallback_enabled,
        validate_token_on_restore=cfg.features.validate_token_on_restore,
    )
    return SessionServices(
        config=cfg,
        data_paths=dp,
        identity_store=identity_store,
        session_store=session_store,
        cache=cache,
        remote=remote_client,
        notifier=notifier,
        ops=ops,
        orchestrator=orch,
    )
