from __future__ import annotations

import threading

import pytest

from strider.core.cache.kinds import DataKind
from strider.core.errors import TransitionSupersededError
from strider.core.session.models import Authenticated, Guest


def _run_in_thread(fn):
    box = {}

    def target():
        try:
            box["result"] = fn()
        except Exception as e:  # noqa: BLE001
            box["error"] = e

    t = threading.Thread(target=target, daemon=True)
    t.start()
    return t, box


def test_superseded_sign_in_result_is_discarded(orchestrator, remote, cache, recorder):
    remote.add_account("slow@x.com", "pw1")
    fast = remote.add_account("fast@x.com", "pw2")
    gate = remote.gate("sign_in")

    t, box = _run_in_thread(lambda: orchestrator.sign_in("slow@x.com", "pw1"))
    assert remote.entered["sign_in"].wait(timeout=5.0)
    # newer transition commits while the first is still waiting on the service
    del remote.gates["sign_in"]
    st = orchestrator.sign_in("fast@x.com", "pw2")
    gate.set()
    t.join(timeout=5.0)

    assert isinstance(box.get("error"), TransitionSupersededError)
    assert orchestrator.current_state() == st
    assert st.user.id == fast.id
    assert cache.owner_id == fast.id
    assert recorder.transitions() == ["sign_in"]


def test_superseded_sign_up_never_touches_local_state(orchestrator, remote, cache, identity_store):
    remote.reachable = False
    gate = remote.gate("sign_up")
    t, box = _run_in_thread(lambda: orchestrator.sign_up("late@x.com", "pw", "", ""))
    assert remote.entered["sign_up"].wait(timeout=5.0)
    g = orchestrator.enter_guest()
    cache.put(DataKind.HISTORY, ["guest-walk"])
    gate.set()
    t.join(timeout=5.0)

    assert isinstance(box.get("error"), TransitionSupersededError)
    assert orchestrator.current_state() == g
    assert cache.get(DataKind.HISTORY) == ["guest-walk"]
    assert identity_store.list_all() == []


def test_concurrent_transitions_leave_store_and_memory_consistent(orchestrator, remote, session_store):
    for i in range(4):
        remote.add_account(f"u{i}@x.com", "pw")
    errors = []

    def worker(i):
        try:
            if i % 2:
                orchestrator.enter_guest()
            else:
                orchestrator.sign_in(f"u{i}@x.com", "pw")
        except TransitionSupersededError:
            pass
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for th in threads:
        th.start()
    for th in threads:
        th.join(timeout=10.0)

    assert errors == []
    final = orchestrator.current_state()
    assert isinstance(final, (Authenticated, Guest))
    assert session_store.load() == final


def test_reads_are_snapshots(orchestrator, remote):
    remote.add_account("a@x.com", "pw")
    before = orchestrator.current_state()
    orchestrator.sign_in("a@x.com", "pw")
    assert before.kind == "unauthenticated"
    assert orchestrator.is_authenticated() is True
    with pytest.raises(Exception):
        orchestrator.current_state().token = "x"  # frozen
