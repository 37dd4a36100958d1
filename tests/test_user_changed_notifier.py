from __future__ import annotations

import pytest

from strider.core.events.models import Transition, UserChanged
from strider.core.events.notifier import UserChangedNotifier


def _ev(**kw) -> UserChanged:
    return UserChanged(transition=kw.get("transition", Transition.SIGN_IN), session_kind="authenticated", user_id="u1", generation=1)


def test_handlers_run_in_subscription_order():
    n = UserChangedNotifier()
    seen = []
    n.subscribe(lambda ev: seen.append("a"))
    n.subscribe(lambda ev: seen.append("b"))
    assert n.publish(_ev()) == 2
    assert seen == ["a", "b"]


def test_failing_handler_is_isolated():
    n = UserChangedNotifier()
    seen = []

    def boom(ev):
        raise RuntimeError("x")

    n.subscribe(boom)
    n.subscribe(lambda ev: seen.append(ev.user_id))
    assert n.publish(_ev()) == 1
    assert seen == ["u1"]
    assert n.get_stats()["handler_errors_total"] == 1


def test_unsubscribe_and_non_callable():
    n = UserChangedNotifier()
    h = lambda ev: None  # noqa: E731
    n.subscribe(h)
    assert n.unsubscribe(h) == 1
    assert n.publish(_ev()) == 0
    with pytest.raises(ValueError):
        n.subscribe("nope")  # type: ignore[arg-type]
