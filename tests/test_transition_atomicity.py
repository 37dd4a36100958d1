from __future__ import annotations

import pytest

from strider.core.cache.kinds import DataKind
from strider.core.errors import InvalidCredentialsError, StateTransitionError
from strider.core.identity.local_store import is_local_token
from strider.core.session.models import Authenticated, Unauthenticated


def _disk_full(state):
    raise OSError(28, "No space left on device")


def _signed_in(orch, remote, email="u1@x.com", pw="pw1"):
    remote.add_account(email, pw)
    return orch.sign_in(email, pw)


def test_failed_sign_out_save_keeps_session_and_cache(orchestrator, remote, cache, session_store, recorder, monkeypatch):
    st = _signed_in(orchestrator, remote)
    cache.put(DataKind.HISTORY, [{"run": 1}])
    monkeypatch.setattr(session_store, "save", _disk_full)
    with pytest.raises(StateTransitionError):
        orchestrator.sign_out()
    assert orchestrator.current_state() == st
    assert cache.owner_id == st.user.id
    assert cache.get(DataKind.HISTORY) == [{"run": 1}]
    assert recorder.transitions() == ["sign_in"]


def test_failed_offline_sign_out_save_keeps_token_valid(orchestrator, remote, identity_store, session_store, monkeypatch):
    remote.reachable = False
    st = orchestrator.sign_up("off@x.com", "pw1", "Off", "Line")
    monkeypatch.setattr(session_store, "save", _disk_full)
    with pytest.raises(StateTransitionError):
        orchestrator.sign_out()
    assert identity_store.validate_token(st.token).id == st.user.id


def test_failed_offline_sign_up_save_leaves_no_identity(orchestrator, remote, identity_store, session_store, recorder, monkeypatch):
    remote.reachable = False
    monkeypatch.setattr(session_store, "save", _disk_full)
    with pytest.raises(StateTransitionError):
        orchestrator.sign_up("new@x.com", "pw1", "New", "User")
    assert identity_store.list_all() == []
    assert isinstance(orchestrator.current_state(), Unauthenticated)
    assert recorder.events == []

    monkeypatch.undo()
    st = orchestrator.sign_up("new@x.com", "pw1", "New", "User")
    assert is_local_token(st.token)
    assert [r.email for r in identity_store.list_all()] == ["new@x.com"]


def test_failed_enter_guest_save_keeps_previous_owner_data(orchestrator, remote, cache, session_store, monkeypatch):
    st = _signed_in(orchestrator, remote)
    cache.put(DataKind.CITY_STATE, {"tiles": 4})
    monkeypatch.setattr(session_store, "save", _disk_full)
    with pytest.raises(StateTransitionError):
        orchestrator.enter_guest()
    assert orchestrator.current_state() == st
    assert cache.owner_id == st.user.id
    assert cache.get(DataKind.CITY_STATE) == {"tiles": 4}


def test_failed_delete_save_keeps_identity_and_data(orchestrator, remote, cache, identity_store, session_store, monkeypatch):
    remote.reachable = False
    st = orchestrator.sign_up("del@x.com", "pw1", "Del", "Me")
    cache.put(DataKind.REWARDS_LEDGER, [{"pts": 3}])
    monkeypatch.setattr(session_store, "save", _disk_full)
    with pytest.raises(StateTransitionError):
        orchestrator.delete_account()
    assert identity_store.get_user("del@x.com").id == st.user.id
    assert cache.get(DataKind.REWARDS_LEDGER) == [{"pts": 3}]
    assert isinstance(orchestrator.current_state(), Authenticated)


def test_failed_offline_relogin_save_keeps_current_token(orchestrator, remote, identity_store, session_store, monkeypatch):
    remote.reachable = False
    st = orchestrator.sign_up("same@x.com", "pw1", "Same", "User")
    monkeypatch.setattr(session_store, "save", _disk_full)
    with pytest.raises(StateTransitionError):
        orchestrator.sign_in("same@x.com", "pw1")
    assert orchestrator.current_state() == st
    assert identity_store.validate_token(st.token).id == st.user.id


def test_failed_offline_sign_in_save_leaves_no_usable_token(orchestrator, remote, identity_store, session_store, monkeypatch):
    remote.reachable = False
    st = orchestrator.sign_up("tok@x.com", "pw1", "Tok", "User")
    orchestrator.sign_out()
    monkeypatch.setattr(session_store, "save", _disk_full)
    with pytest.raises(StateTransitionError):
        orchestrator.sign_in("tok@x.com", "pw1")
    assert isinstance(orchestrator.current_state(), Unauthenticated)
    assert identity_store._users["tok@x.com"].token_sha256 is None
    with pytest.raises(InvalidCredentialsError):
        identity_store.validate_token(st.token)
