"""Chat transport used by the relay core.

``Transport`` is the narrow surface the core calls. ``TelegramTransport``
implements it on top of python-telegram-bot; tests substitute a fake.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

import structlog
from telegram.error import TelegramError

from forumrelay.errors import CreationError, DeliveryError
from forumrelay.models import ChatInfo

logger = structlog.get_logger(__name__)

_TELEGRAM_TOPIC_NAME_MAX_LEN = 128
_TELEGRAM_MESSAGE_MAX_LEN = 4096


class Transport(Protocol):
    async def create_thread(
        self, group_id: str, label: str, icon_color: int | None = None
    ) -> str: ...

    async def forward_message(
        self,
        target_chat_id: str,
        source_chat_id: str,
        message_id: int,
        thread_id: str | None = None,
    ) -> None: ...

    async def copy_message(
        self, target_user_id: str, source_chat_id: str, message_id: int
    ) -> None: ...

    async def send_text(
        self,
        chat_id: str,
        text: str,
        thread_id: str | None = None,
        disable_notification: bool = False,
    ) -> None: ...

    async def send_document(
        self, user_id: str, file_path: str | Path, caption: str
    ) -> None: ...

    async def get_chat_info(self, group_id: str) -> ChatInfo: ...


def _thread_arg(thread_id: str | None) -> int | None:
    return int(thread_id) if thread_id else None


class TelegramTransport:
    """Transport backed by a ``telegram.Bot``.

    Args:
        bot: An initialized python-telegram-bot ``Bot`` (usually ``app.bot``).
    """

    def __init__(self, bot: Any):
        self._bot = bot

    async def create_thread(
        self, group_id: str, label: str, icon_color: int | None = None
    ) -> str:
        """Create a forum topic and return its id."""
        kwargs: dict[str, Any] = {}
        if icon_color is not None:
            kwargs["icon_color"] = icon_color
        try:
            topic = await self._bot.create_forum_topic(
                chat_id=int(group_id),
                name=label[:_TELEGRAM_TOPIC_NAME_MAX_LEN],
                **kwargs,
            )
        except TelegramError as e:
            raise CreationError(f"Failed to create topic {label!r}: {e}") from e
        logger.info(
            "Created Telegram topic",
            topic_id=topic.message_thread_id,
            name=label,
        )
        return str(topic.message_thread_id)

    async def forward_message(
        self,
        target_chat_id: str,
        source_chat_id: str,
        message_id: int,
        thread_id: str | None = None,
    ) -> None:
        try:
            await self._bot.forward_message(
                chat_id=int(target_chat_id),
                from_chat_id=int(source_chat_id),
                message_id=message_id,
                message_thread_id=_thread_arg(thread_id),
            )
        except TelegramError as e:
            raise DeliveryError(f"Failed to forward message {message_id}: {e}") from e

    async def copy_message(
        self, target_user_id: str, source_chat_id: str, message_id: int
    ) -> None:
        try:
            await self._bot.copy_message(
                chat_id=int(target_user_id),
                from_chat_id=int(source_chat_id),
                message_id=message_id,
            )
        except TelegramError as e:
            raise DeliveryError(f"Failed to copy message {message_id}: {e}") from e

    async def send_text(
        self,
        chat_id: str,
        text: str,
        thread_id: str | None = None,
        disable_notification: bool = False,
    ) -> None:
        try:
            await self._bot.send_message(
                chat_id=int(chat_id),
                text=text[:_TELEGRAM_MESSAGE_MAX_LEN],
                message_thread_id=_thread_arg(thread_id),
                disable_notification=disable_notification,
            )
        except TelegramError as e:
            raise DeliveryError(f"Failed to send message: {e}") from e

    async def send_document(
        self, user_id: str, file_path: str | Path, caption: str
    ) -> None:
        try:
            with open(file_path, "rb") as f:
                await self._bot.send_document(
                    chat_id=int(user_id),
                    document=f,
                    filename=Path(file_path).name,
                    caption=caption,
                )
        except (TelegramError, OSError) as e:
            raise DeliveryError(f"Failed to send document {file_path}: {e}") from e

    async def get_chat_info(self, group_id: str) -> ChatInfo:
        chat = await self._bot.get_chat(chat_id=int(group_id))
        return ChatInfo(type=str(chat.type), is_forum=bool(chat.is_forum))
