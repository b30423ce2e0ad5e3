"""Shared pytest fixtures for forumrelay tests."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

# Ensure host machine credentials do not affect test results.
for k in (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_GROUP_ID",
    "TELEGRAM_BOT_OWNER_ID",
    "USER_INFO_TOPIC_NAME",
    "LOG_TOPIC_NAME",
):
    os.environ.pop(k, None)
for k in list(os.environ):
    if k.startswith("FORUMRELAY_"):
        os.environ.pop(k, None)

from forumrelay.audit import AuditLog
from forumrelay.errors import CreationError, DeliveryError
from forumrelay.models import ChatInfo
from forumrelay.relay import RelayEngine
from forumrelay.resolver import TopicResolver
from forumrelay.store import MappingStore

GROUP_ID = "-1001234567890"
OWNER_ID = "999"
ADMIN_THREAD = "2"
LOG_THREAD = "3"


class FakeTransport:
    """In-memory transport that records every call.

    ``create_delay`` suspends inside ``create_thread`` so tests can interleave
    concurrent first contacts.
    """

    def __init__(self) -> None:
        self.next_thread = 100
        self.create_delay = 0.0
        self.chat = ChatInfo(type="supergroup", is_forum=True)
        self.fail_create = False
        self.fail_forward = False
        self.fail_copy = False
        self.fail_send = False
        self.fail_document = False
        self.created: list[tuple[str, str]] = []
        self.forwarded: list[dict] = []
        self.copied: list[dict] = []
        self.sent: list[dict] = []
        self.documents: list[dict] = []

    async def create_thread(self, group_id: str, label: str, icon_color: int | None = None) -> str:
        self.created.append((group_id, label))
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.fail_create:
            raise CreationError("create_forum_topic failed")
        self.next_thread += 1
        return str(self.next_thread)

    async def forward_message(self, target_chat_id, source_chat_id, message_id, thread_id=None) -> None:
        if self.fail_forward:
            raise DeliveryError("forward failed")
        self.forwarded.append(
            {
                "target": target_chat_id,
                "source": source_chat_id,
                "message_id": message_id,
                "thread_id": thread_id,
            }
        )

    async def copy_message(self, target_user_id, source_chat_id, message_id) -> None:
        if self.fail_copy:
            raise DeliveryError("copy failed")
        self.copied.append(
            {"target": target_user_id, "source": source_chat_id, "message_id": message_id}
        )

    async def send_text(self, chat_id, text, thread_id=None, disable_notification=False) -> None:
        if self.fail_send:
            raise DeliveryError("send failed")
        self.sent.append(
            {
                "chat_id": chat_id,
                "text": text,
                "thread_id": thread_id,
                "disable_notification": disable_notification,
            }
        )

    async def send_document(self, user_id, file_path, caption) -> None:
        if self.fail_document:
            raise DeliveryError("document failed")
        self.documents.append({"user_id": user_id, "path": Path(file_path), "caption": caption})

    async def get_chat_info(self, group_id: str) -> ChatInfo:
        return self.chat


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir) -> MappingStore:
    """Store backed by a ledger that already holds the admin topic id."""
    ledger = data_dir / "user_info.txt"
    ledger.write_text(f"{ADMIN_THREAD}\n", "utf-8")
    s = MappingStore(ledger)
    s.load()
    return s


@pytest.fixture
def resolver(store, transport) -> TopicResolver:
    return TopicResolver(store, transport, GROUP_ID, admin_thread_id=ADMIN_THREAD)


@pytest.fixture
def audit(store, transport, data_dir) -> AuditLog:
    log_path = data_dir / "forwardlog.log"
    log_path.write_text(f"{LOG_THREAD}\n", "utf-8")
    return AuditLog(
        store,
        transport,
        log_path=log_path,
        backup_dir=data_dir / "backup" / "export",
        group_id=GROUP_ID,
        log_thread_id=LOG_THREAD,
        owner_id=OWNER_ID,
    )


@pytest.fixture
def relay(store, resolver, transport, audit) -> RelayEngine:
    return RelayEngine(store, resolver, transport, audit, group_id=GROUP_ID, owner_id=OWNER_ID)


def assert_bijective(store: MappingStore) -> None:
    users = store.user_map
    threads = store.thread_map
    assert len(users) == len(threads)
    for user_id, record in users.items():
        assert threads[record.thread_id] == user_id
    for thread_id, user_id in threads.items():
        assert users[user_id].thread_id == thread_id
