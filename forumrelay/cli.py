"""CLI entry point for forumrelay.

Provides ``forumrelay start`` and ``forumrelay users`` subcommands.

``load_config()`` must run before settings are read so values from .env
files are visible.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point (``forumrelay`` command)."""
    parser = argparse.ArgumentParser(
        prog="forumrelay",
        description="forumrelay - one forum topic per Telegram user",
    )
    parser.add_argument("--data-dir", help="Directory holding the ledgers")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("start", help="Run the relay bot")
    sub.add_parser("users", help="Print the user <-> topic mappings")

    args = parser.parse_args(argv)

    if args.data_dir:
        os.environ["FORUMRELAY_DATA_DIR"] = args.data_dir

    from forumrelay.config import load_config

    load_config()

    if args.command == "start":
        _run_start()
    elif args.command == "users":
        _run_users()
    else:
        parser.print_help()
        sys.exit(1)


def _run_start() -> None:
    """Handle ``forumrelay start``."""
    from forumrelay.main import run

    run()


def _run_users() -> None:
    """Handle ``forumrelay users``: replay the ledger without contacting Telegram."""
    from forumrelay.bot import USER_LEDGER_FILE
    from forumrelay.settings import settings
    from forumrelay.store import MappingStore

    store = MappingStore(Path(settings.data_dir()) / USER_LEDGER_FILE)
    store.load()
    if not store.records():
        print("No user mappings found.")
        return
    print(f"Admin topic: {store.control_value or '-'}")
    for record in store.records():
        name = record.display_name or "-"
        print(f"{record.user_id}\t{record.thread_id}\t{name}")
