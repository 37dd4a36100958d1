from __future__ import annotations

import argparse
import getpass
import json
import os
import sys
from typing import Any, Dict, Optional

from strider.core.config import ConfigManager, StriderPaths
from strider.core.errors import StriderError
from strider.core.events.models import UserChanged
from strider.core.identity.local_store import is_local_token
from strider.core.logger import setup_logging_from_config
from strider.core.services import SessionServices, build_session_services
from strider.core.session.models import Authenticated, Guest, SessionState
from strider.core.trace import new_trace_id


def _describe(st: SessionState) -> Dict[str, Any]:
    out: Dict[str, Any] = {"kind": st.kind}
    if isinstance(st, Guest):
        out["guest_id"] = st.guest_id
    if isinstance(st, Authenticated):
        out["user"] = st.user.model_dump(exclude={"bio"})
        out["offline"] = is_local_token(st.token)
    return out


def _password(args: argparse.Namespace, prompt: str = "Password: ") -> str:
    env_name = str(getattr(args, "password_env", "") or "")
    if env_name and os.environ.get(env_name):
        return str(os.environ[env_name])
    return getpass.getpass(prompt)


def _print_change(ev: UserChanged) -> None:
    print(f"[session] {ev.transition.value} -> {ev.session_kind}" + (f" ({ev.user_id})" if ev.user_id else ""))


def _run_command(svc: SessionServices, args: argparse.Namespace) -> Optional[SessionState]:
    orch = svc.orchestrator
    cmd = args.command
    if cmd == "status":
        return orch.current_state()
    if cmd == "guest":
        return orch.enter_guest()
    if cmd == "exit-guest":
        return orch.exit_guest()
    if cmd == "signup":
        pw = _password(args)
        return orch.sign_up(args.email, pw, args.first_name, args.last_name)
    if cmd == "signin":
        return orch.sign_in(args.email, _password(args))
    if cmd == "signout":
        return orch.sign_out()
    if cmd == "delete-account":
        pw = _password(args, "Confirm password: ") if args.confirm_remote else None
        return orch.delete_account(pw)
    if cmd == "health":
        ok = svc.remote.health()
        print("account service: " + ("reachable" if ok else "unreachable"))
        breaker = getattr(svc.remote, "breaker", None)
        if breaker is not None:
            print(json.dumps(breaker.snapshot(), indent=2, sort_keys=True))
        return None
    raise SystemExit(f"unknown command: {cmd}")


def main() -> None:
    ap = argparse.ArgumentParser(description="Strider session CLI (local-first account handling)")
    ap.add_argument("--root", default=".", help="Strider root directory (default: .)")
    ap.add_argument("--password-env", default="STRIDER_PASSWORD", help="Env var to read the password from instead of prompting.")
    sub = ap.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show the current session.")
    sub.add_parser("guest", help="Enter guest mode (wipes cached account data).")
    sub.add_parser("exit-guest", help="Leave guest mode.")
    p_up = sub.add_parser("signup", help="Create an account and sign in.")
    p_up.add_argument("email")
    p_up.add_argument("--first-name", default="")
    p_up.add_argument("--last-name", default="")
    p_in = sub.add_parser("signin", help="Sign in.")
    p_in.add_argument("email")
    sub.add_parser("signout", help="Sign out (wipes cached account data).")
    p_del = sub.add_parser("delete-account", help="Delete the signed-in account from this device.")
    p_del.add_argument("--confirm-remote", action="store_true", help="Also delete the account on the service (asks for the password).")
    sub.add_parser("health", help="Probe the account service.")
    args = ap.parse_args()

    root = str(args.root or ".")
    cm = ConfigManager(fs=StriderPaths(root))
    try:
        cfg = cm.load()
    except StriderError as e:
        print(e.user_message, file=sys.stderr)
        raise SystemExit(2)
    setup_logging_from_config(cfg.logging, cm.log_dir())

    svc = build_session_services(root, config_manager=cm)
    svc.notifier.subscribe(_print_change)
    try:
        svc.orchestrator.restore(trace_id=new_trace_id())
        st = _run_command(svc, args)
    except StriderError as e:
        print(e.user_message, file=sys.stderr)
        raise SystemExit(1)
    if st is not None:
        print(json.dumps(_describe(st), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
