#!/usr/bin/env python3
"""
Manage API keys for the Receipt Queue submission API.

Usage:
  python scripts/manage_keys.py create "Front counter POS"
  python scripts/manage_keys.py list [--all]
  python scripts/manage_keys.py deactivate <api_key>

The database location follows the same settings as the server
(RECEIPTQUEUE_DB_PATH, the config file, or the XDG data default).
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from receipt_queue.core.auth import ApiKeyValidator  # noqa: E402
from receipt_queue.core.config import load_settings  # noqa: E402
from receipt_queue.core.db import JobStore  # noqa: E402
from receipt_queue.core.errors import StoreError  # noqa: E402


def _validator(db_path: str | None) -> ApiKeyValidator:
    settings = load_settings({"db_path": db_path} if db_path else None)
    store = JobStore(settings.db_path, timeout=settings.db_timeout)
    return ApiKeyValidator(store, min_length=settings.min_apikey_length)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Create, list and deactivate Receipt Queue API keys",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", dest="db_path", help="Path to the queue database (overrides settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_create = sub.add_parser("create", help="Generate a new key")
    p_create.add_argument("name", nargs="?", default="Unnamed Key")

    p_list = sub.add_parser("list", help="List keys (masked)")
    p_list.add_argument("--all", action="store_true", help="Include deactivated keys")

    p_deact = sub.add_parser("deactivate", help="Deactivate a key")
    p_deact.add_argument("api_key")

    args = parser.parse_args(argv)
    validator = _validator(args.db_path)

    try:
        if args.command == "create":
            created = validator.create_key(args.name)
            print(f"Created key for {created['name']}:")
            print(created["api_key"])
        elif args.command == "list":
            keys = validator.list_keys(active_only=not args.all)
            if not keys:
                print("No API keys.")
            for k in keys:
                state = "active" if k["is_active"] else "inactive"
                print(f"{k['id']:>4}  {k['api_key_masked']:<16}  {state:<8}  {k['request_count']:>6}  {k['name']}")
        elif args.command == "deactivate":
            if not validator.deactivate_key(args.api_key):
                print("Key not found.", file=sys.stderr)
                return 1
            print("Key deactivated.")
    except StoreError as e:
        print(f"Database error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
