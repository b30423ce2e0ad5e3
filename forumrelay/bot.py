"""Telegram bot wiring: startup sequence and update -> event translation."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog
from telegram.ext import Application, MessageHandler, filters

from forumrelay.audit import DEFAULT_BACKUP_KEEP, AuditLog
from forumrelay.errors import DeliveryError, InitializationError
from forumrelay.models import GroupMessage, InboundEvent, UserRef, UserToGroup
from forumrelay.relay import ExportCommand, RelayEngine
from forumrelay.resolver import TopicResolver
from forumrelay.store import MappingStore
from forumrelay.topics import ControlTopic
from forumrelay.transport import TelegramTransport, Transport

logger = structlog.get_logger(__name__)

USER_LEDGER_FILE = "user_info.txt"
AUDIT_LEDGER_FILE = "forwardlog.log"
BACKUP_SUBDIR = Path("backup") / "export"


def user_ref(user: Any) -> UserRef | None:
    """Build a ``UserRef`` from a Telegram user. The username is the display name."""
    if user is None:
        return None
    return UserRef(
        id=str(user.id),
        display_name=user.username or None,
        is_bot=bool(user.is_bot),
    )


def event_from_message(message: Any) -> InboundEvent | None:
    """Translate a Telegram message into a relay event."""
    if message is None:
        return None
    if message.chat.type == "private":
        user = user_ref(message.from_user)
        if user is None:
            return None
        return UserToGroup(
            user=user,
            chat_id=str(message.chat.id),
            message_id=message.message_id,
        )
    thread_id = message.message_thread_id
    return GroupMessage(
        author=user_ref(message.from_user),
        chat_id=str(message.chat.id),
        message_id=message.message_id,
        thread_id=str(thread_id) if thread_id else None,
        text=message.text,
    )


class RelayBot:
    """Runs the relay against a Telegram forum supergroup.

    Args:
        bot_token: Telegram bot API token.
        group_id: Forum supergroup id.
        owner_id: Operator allowed to export ledgers.
        data_dir: Directory holding the ledgers and backups.
        user_info_topic_name: Name of the administrative topic.
        log_topic_name: Name of the audit mirror topic.
        fallback_label: Topic label prefix for users without a username.
        backup_keep: Backups retained after each export.
        export_users_command: Command exporting the user ledger.
        export_log_command: Command exporting the audit ledger.
    """

    def __init__(
        self,
        bot_token: str,
        group_id: int | str,
        owner_id: int | str | None = None,
        data_dir: str | Path = "data",
        user_info_topic_name: str = "User Info",
        log_topic_name: str = "Relay Log",
        fallback_label: str = "User",
        backup_keep: int = DEFAULT_BACKUP_KEEP,
        export_users_command: str = "export users",
        export_log_command: str = "export log",
    ):
        self._bot_token = bot_token
        self._group_id = str(group_id)
        self._owner_id = str(owner_id) if owner_id else None
        self._data_dir = Path(data_dir)
        self._fallback_label = fallback_label
        self._backup_keep = backup_keep
        self._export_users_command = export_users_command
        self._export_log_command = export_log_command
        self._app: Any = None

        self.store = MappingStore(self._data_dir / USER_LEDGER_FILE)
        self.admin_topic = ControlTopic(user_info_topic_name, self.store.path)
        self.log_topic = ControlTopic(log_topic_name, self._data_dir / AUDIT_LEDGER_FILE)
        self.relay: RelayEngine | None = None

    async def start(self) -> None:
        """Start the Telegram application, bootstrap, then begin polling."""
        self._app = (
            Application.builder()
            .token(self._bot_token)
            .concurrent_updates(True)
            .build()
        )
        self._app.add_handler(
            MessageHandler(
                filters.UpdateType.MESSAGE
                & (filters.ChatType.PRIVATE | filters.Chat(chat_id=int(self._group_id))),
                self._handle_message,
            )
        )
        self._app.add_error_handler(self._handle_error)

        await self._app.initialize()
        await self.bootstrap(TelegramTransport(self._app.bot))
        await self._app.start()
        await self._app.updater.start_polling()
        logger.info("Relay bot started", group_id=self._group_id)

    async def stop(self) -> None:
        """Stop the Telegram application."""
        if self._app:
            if self._app.updater.running:
                await self._app.updater.stop()
            if self.relay is not None:
                await self.relay.resolver.drain_notices()
            if self._app.running:
                await self._app.stop()
            await self._app.shutdown()
        logger.info("Relay bot stopped")

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def bootstrap(self, transport: Transport) -> RelayEngine:
        """Verify the group, bootstrap control topics, load mappings.

        Raises:
            InitializationError: Any step failed. The caller should exit.
        """
        logger.info("Initializing relay", group_id=self._group_id)
        await self._verify_group(transport)

        backup_dir = self._data_dir / BACKUP_SUBDIR
        try:
            await asyncio.to_thread(backup_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise InitializationError(f"Cannot create backup directory: {e}") from e

        admin_thread_id = await self.admin_topic.ensure(transport, self._group_id)
        log_thread_id = await self.log_topic.ensure(transport, self._group_id)

        try:
            await asyncio.to_thread(self.store.load)
        except (OSError, UnicodeDecodeError) as e:
            raise InitializationError(f"Cannot read user ledger: {e}") from e

        resolver = TopicResolver(
            self.store,
            transport,
            self._group_id,
            admin_thread_id=admin_thread_id,
            fallback_label=self._fallback_label,
        )
        audit = AuditLog(
            self.store,
            transport,
            log_path=self.log_topic.control_file,
            backup_dir=backup_dir,
            group_id=self._group_id,
            log_thread_id=log_thread_id,
            owner_id=self._owner_id,
            backup_keep=self._backup_keep,
            fallback_label=self._fallback_label,
        )
        relay = RelayEngine(
            self.store,
            resolver,
            transport,
            audit,
            group_id=self._group_id,
            owner_id=self._owner_id,
        )
        relay.add_export_command(
            ExportCommand(
                thread_id=admin_thread_id,
                text=self._export_users_command,
                source_file=self.store.path,
                label="user-info-export",
            )
        )
        relay.add_export_command(
            ExportCommand(
                thread_id=log_thread_id,
                text=self._export_log_command,
                source_file=self.log_topic.control_file,
                label="log-export",
            )
        )
        self.relay = relay

        await self._send_startup_notices(transport, admin_thread_id)
        return relay

    async def _verify_group(self, transport: Transport) -> None:
        try:
            chat = await transport.get_chat_info(self._group_id)
        except Exception as e:
            raise InitializationError(f"Cannot fetch group {self._group_id}: {e}") from e
        if chat.type != "supergroup":
            raise InitializationError("Target chat must be a supergroup")
        if not chat.is_forum:
            raise InitializationError("Target group does not have topics enabled")

    async def _send_startup_notices(self, transport: Transport, admin_thread_id: str) -> None:
        started = "✅ Initialized" if self.admin_topic.created else "✅ Bot started"
        count = len(self.store)
        if count:
            loaded = f"📊 Loaded user data: {count} mappings"
        else:
            loaded = "⚠️ No saved user mappings found"
        try:
            await transport.send_text(self._group_id, started, thread_id=admin_thread_id)
            await transport.send_text(
                self._group_id,
                loaded,
                thread_id=admin_thread_id,
                disable_notification=True,
            )
        except DeliveryError:
            logger.warning("Failed to post startup notice")

    # ------------------------------------------------------------------
    # Telegram handlers
    # ------------------------------------------------------------------

    async def _handle_message(self, update: Any, context: Any) -> None:
        if self.relay is None:
            return
        event = event_from_message(update.message)
        if event is None:
            return
        await self.relay.dispatch(event)

    async def _handle_error(self, update: Any, context: Any) -> None:
        logger.error("Unhandled error while processing update", exc_info=context.error)
