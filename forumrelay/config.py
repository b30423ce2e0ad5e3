"""Loads bot credentials from .env files into ``os.environ``.

A variable set in the real environment always wins. After that the working
directory's ``.env`` is read, then ``$XDG_CONFIG_HOME/forumrelay/config.env``
so an installed bot can keep its token outside any checkout.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


def _xdg_home(var: str, *fallback: str) -> Path:
    base = os.environ.get(var, "").strip()
    return Path(base) if base else Path.home().joinpath(*fallback)


def config_dir() -> Path:
    """Directory holding the per-user ``config.env``."""
    return _xdg_home("XDG_CONFIG_HOME", ".config") / "forumrelay"


def data_dir_default() -> Path:
    """Ledger directory for installs without ``FORUMRELAY_DATA_DIR``."""
    return _xdg_home("XDG_DATA_HOME", ".local", "share") / "forumrelay"


def load_config() -> list[Path]:
    """Read the local and per-user env files; return the ones that existed.

    Files are applied without ``override``, so whichever file is read first
    keeps a key and the real environment is never touched.
    """
    loaded: list[Path] = []
    for path in (Path.cwd() / ".env", config_dir() / "config.env"):
        if path.is_file():
            load_dotenv(path, override=False)
            loaded.append(path)
    return loaded
