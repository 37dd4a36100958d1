from __future__ import annotations

import argparse
import json

from strider.core.config import ConfigManager, StriderPaths


def main() -> None:
    ap = argparse.ArgumentParser(description="Print the effective Strider configuration.")
    ap.add_argument("--root", default=".", help="Strider root directory (default: .)")
    args = ap.parse_args()
    cm = ConfigManager(fs=StriderPaths(str(args.root or ".")), read_only=True)
    cfg = cm.load()
    print(json.dumps(cfg.model_dump(mode="json"), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
