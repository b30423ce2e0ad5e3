"""Persistent user <-> topic mapping backed by a line-oriented ledger.

The ledger (``user_info.txt``) is the source of truth. Its first non-empty
line is a control value (the administrative topic id); every following line is
``threadId---[displayName---]userId``. The in-memory maps are a cache rebuilt
by replaying the ledger, first writer wins.

All reading and writing of ledger text lives in this module.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

LEDGER_SEPARATOR = "---"


@dataclass(frozen=True)
class UserRecord:
    """Association between an end-user and their forum topic."""

    user_id: str
    thread_id: str
    display_name: str | None = None


def topic_label(user_id: str, display_name: str | None, fallback: str = "User") -> str:
    """Human-readable topic name for a user."""
    if display_name:
        return f"{display_name} --- {user_id}"
    return f"{fallback} --- {user_id}"


def sanitize_display_name(name: str | None) -> str | None:
    """Make a display name safe to embed in a ledger line.

    Line breaks become spaces, separator runs are broken up and trailing
    dashes are dropped so they cannot merge into the following separator.
    """
    if not name:
        return None
    cleaned = " ".join(name.splitlines())
    while LEDGER_SEPARATOR in cleaned:
        cleaned = cleaned.replace(LEDGER_SEPARATOR, "- -")
    cleaned = cleaned.strip().rstrip("-").strip()
    return cleaned or None


def render_record(record: UserRecord) -> str:
    """Render a record as one ledger line (without newline)."""
    if record.display_name:
        return LEDGER_SEPARATOR.join(
            [record.thread_id, record.display_name, record.user_id]
        )
    return LEDGER_SEPARATOR.join([record.thread_id, record.user_id])


def parse_record(line: str) -> UserRecord | None:
    """Parse one ledger line.

    The first field is the thread id and the last is the user id. Anything in
    between is the display name, re-joined with the separator. Returns None for
    malformed lines.
    """
    parts = line.split(LEDGER_SEPARATOR)
    if len(parts) < 2:
        return None
    thread_id = parts[0].strip()
    user_id = parts[-1].strip()
    if not thread_id or not user_id:
        return None
    display_name = LEDGER_SEPARATOR.join(parts[1:-1]) or None
    return UserRecord(user_id=user_id, thread_id=thread_id, display_name=display_name)


def _ledger_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _is_control_value(value: str) -> bool:
    return value.isdigit()


def read_control_value(path: str | Path) -> str | None:
    """Return the control value stored on the first line of a ledger file."""
    try:
        text = Path(path).read_text("utf-8")
    except FileNotFoundError:
        return None
    lines = _ledger_lines(text)
    if lines and _is_control_value(lines[0]):
        return lines[0]
    return None


def write_control_value(path: str | Path, value: str) -> None:
    """Record ``value`` as the first line of a ledger file.

    Existing content is kept below it. The file is replaced atomically.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    existing = path.read_text("utf-8") if path.exists() else ""
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        f.write(f"{value}\n{existing}")
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def append_line(path: str | Path, line: str) -> None:
    """Durably append one line to a ledger file.

    Files written by older versions do not end with a newline, so one is
    inserted first when needed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a+b") as f:
        f.seek(0, os.SEEK_END)
        prefix = b""
        if f.tell() > 0:
            f.seek(-1, os.SEEK_END)
            if f.read(1) != b"\n":
                prefix = b"\n"
        f.write(prefix + line.encode("utf-8") + b"\n")
        f.flush()
        os.fsync(f.fileno())


class MappingStore:
    """Owns the user ledger, the bijective in-memory maps and the
    in-flight creation markers.

    Constructed once at startup and handed to the resolver, relay engine and
    audit log.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._users: dict[str, UserRecord] = {}
        self._threads: dict[str, str] = {}
        self.control_value: str | None = None
        # user_id -> future resolving to the thread id being created
        self.pending: dict[str, asyncio.Future[str]] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> tuple[dict[str, UserRecord], dict[str, str]]:
        """Rebuild the maps by replaying the ledger.

        A missing file yields empty maps. Returns copies of the user map and
        the thread index.
        """
        self._users = {}
        self._threads = {}
        self.control_value = None

        if not self._path.exists():
            logger.info("No user ledger found, starting fresh", path=str(self._path))
            return self.user_map, self.thread_map

        lines = _ledger_lines(self._path.read_text("utf-8"))
        if lines:
            self.control_value = lines[0]

        for lineno, line in enumerate(lines[1:], start=2):
            record = parse_record(line)
            if record is None:
                logger.warning("Skipping malformed ledger line", line=lineno)
                continue
            if record.user_id in self._users:
                logger.debug(
                    "Ignoring duplicate ledger entry",
                    user_id=record.user_id,
                    line=lineno,
                )
                continue
            if record.thread_id in self._threads:
                logger.warning(
                    "Ignoring ledger entry for a topic already mapped",
                    user_id=record.user_id,
                    thread_id=record.thread_id,
                    line=lineno,
                )
                continue
            self._index(record)

        logger.info("Loaded user mappings", mapping_count=len(self._users))
        return self.user_map, self.thread_map

    async def append(
        self, user_id: str, display_name: str | None, thread_id: str
    ) -> UserRecord:
        """Durably record a new association, then index it.

        Write errors propagate: a lost append means a restart would create a
        second topic for the user.
        """
        existing = self._users.get(user_id)
        if existing is not None:
            return existing
        owner = self._threads.get(thread_id)
        if owner is not None:
            raise ValueError(f"Topic {thread_id} is already mapped to user {owner}")

        safe_name = sanitize_display_name(display_name)
        if safe_name != (display_name or None):
            logger.warning(
                "Display name sanitized for ledger",
                user_id=user_id,
                display_name=display_name,
                stored_as=safe_name,
            )
        record = UserRecord(user_id=user_id, thread_id=thread_id, display_name=safe_name)

        await asyncio.to_thread(append_line, self._path, render_record(record))

        # Replay keeps the first record, so mirror that here.
        if user_id in self._users:
            return self._users[user_id]
        self._index(record)
        logger.info("Recorded user mapping", user_id=user_id, thread_id=thread_id)
        return record

    def _index(self, record: UserRecord) -> None:
        self._users[record.user_id] = record
        self._threads[record.thread_id] = record.user_id

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_thread(self, user_id: str) -> str | None:
        """Get the topic id for a user."""
        record = self._users.get(user_id)
        return record.thread_id if record else None

    def get_user(self, thread_id: str) -> str | None:
        """Get the user id for a topic."""
        return self._threads.get(thread_id)

    def get_record(self, user_id: str) -> UserRecord | None:
        return self._users.get(user_id)

    def records(self) -> list[UserRecord]:
        return list(self._users.values())

    @property
    def user_map(self) -> dict[str, UserRecord]:
        return dict(self._users)

    @property
    def thread_map(self) -> dict[str, str]:
        return dict(self._threads)

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users
