from __future__ import annotations

import argparse
import os
import sys

from strider.core.cache import DurableCacheStore
from strider.core.config import ConfigManager, StriderPaths
from strider.core.identity.local_store import LocalIdentityStore
from strider.core.ops_log import OpsLogger
from strider.core.session.store import SessionStore
from strider.core.trace import new_trace_id


def main() -> None:
    ap = argparse.ArgumentParser(description="Irreversibly wipe every local identity, the saved session and all cached account data.")
    ap.add_argument("--root", default=".", help="Strider root directory (default: .)")
    ap.add_argument("--yes", action="store_true", help="Confirm the wipe.")
    args = ap.parse_args()
    if not args.yes:
        print("Refusing to wipe without --yes.", file=sys.stderr)
        raise SystemExit(2)

    cm = ConfigManager(fs=StriderPaths(str(args.root or ".")))
    cfg = cm.load()
    dp = cm.data_paths()
    store = LocalIdentityStore(paths=dp.identities_record, backup_keep=int(cfg.storage.backup_keep))
    removed = store.remove_all()
    SessionStore(paths=dp.session_record, backup_keep=int(cfg.storage.backup_keep)).clear()
    entries = DurableCacheStore(db_path=dp.cache_db).drop_all()

    ops = OpsLogger(path=os.path.join(cm.log_dir(), cfg.logging.ops_log_file))
    ops.log(trace_id=new_trace_id(), event="identities.reset", outcome="ok", details={"identities": removed, "cache_entries": entries})
    print(f"Removed {removed} identities and {entries} cache entries.")


if __name__ == "__main__":
    main()
