from __future__ import annotations

import argparse
import json

from strider.core.config import ConfigManager, StriderPaths
from strider.core.identity.local_store import LocalIdentityStore


def main() -> None:
    ap = argparse.ArgumentParser(description="Merge the local identity table with its last known good copy (never deletes records).")
    ap.add_argument("--root", default=".", help="Strider root directory (default: .)")
    ap.add_argument("--list", action="store_true", help="List identities after the repair.")
    args = ap.parse_args()

    cm = ConfigManager(fs=StriderPaths(str(args.root or ".")))
    cfg = cm.load()
    store = LocalIdentityStore(paths=cm.data_paths().identities_record, backup_keep=int(cfg.storage.backup_keep))
    report = store.repair()
    print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    if args.list:
        for rec in store.list_all():
            print(f"{rec.id}  {rec.email}")


if __name__ == "__main__":
    main()
