#!/usr/bin/env python3
"""
run_import.py — config-driven import
Uses courier_config.json. Run from project root.

  python run_import.py backup.xml      # import into db_path from config
  python run_import.py --api           # start API server

Config is created on first save or manually.
"""

import argparse
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="courier — config-driven import")
    parser.add_argument("backup", nargs="?", type=Path, help="Backup file to import")
    parser.add_argument("--api", action="store_true", help="Start API server")
    args = parser.parse_args()

    root = Path(__file__).parent
    sys.path.insert(0, str(root))

    from courier.config import load_config, resolve_db_path

    config  = load_config(root)
    db_path = resolve_db_path(config, root)

    if args.api:
        import uvicorn
        from courier.api import build_app
        app = build_app(db_path=db_path, config_root=root)
        print("Starting API at http://127.0.0.1:8766")
        uvicorn.run(app, host="127.0.0.1", port=8766, log_level="info")
        return

    if not args.backup:
        parser.error("backup file required (or --api)")

    from courier.cli import main as cli_main
    sys.exit(cli_main([str(args.backup), "--db", str(db_path)]))


if __name__ == "__main__":
    main()
