"""Relay engine: routes inbound events between users and their topics."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from forumrelay.audit import AuditLog
from forumrelay.errors import AuditError, CreationError, DeliveryError
from forumrelay.models import (
    AuditEvent,
    Endpoint,
    EventKind,
    GroupMessage,
    InboundEvent,
    UserToGroup,
)
from forumrelay.resolver import TopicResolver
from forumrelay.store import MappingStore
from forumrelay.transport import Transport

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExportCommand:
    """Operator command that exports a ledger, accepted in one topic only."""

    thread_id: str
    text: str
    source_file: Path
    label: str


class RelayEngine:
    """Consumes inbound events and drives the resolver, transport and audit log.

    Errors are handled here and never propagate out of ``dispatch``.

    Args:
        store: Mapping store.
        resolver: Topic resolver for user->group messages.
        transport: Chat transport.
        audit: Audit log for successful relays and exports.
        group_id: Forum supergroup id.
        owner_id: Operator allowed to run export commands.
    """

    def __init__(
        self,
        store: MappingStore,
        resolver: TopicResolver,
        transport: Transport,
        audit: AuditLog,
        group_id: str,
        owner_id: str | None = None,
    ):
        self._store = store
        self._resolver = resolver
        self._transport = transport
        self._audit = audit
        self._group_id = group_id
        self._owner_id = owner_id
        self._commands: list[ExportCommand] = []

    @property
    def resolver(self) -> TopicResolver:
        return self._resolver

    def add_export_command(self, command: ExportCommand) -> None:
        self._commands.append(command)

    async def dispatch(self, event: InboundEvent) -> None:
        """Route one inbound event to its handler."""
        if isinstance(event, UserToGroup):
            await self.handle_user_message(event)
        elif isinstance(event, GroupMessage):
            await self.handle_group_message(event)
        else:
            logger.warning("Ignoring unknown event", event_type=type(event).__name__)

    async def handle_user_message(self, event: UserToGroup) -> None:
        """Forward a private message into the user's topic."""
        user = event.user
        try:
            thread_id = await self._resolver.resolve_or_create(user)
        except CreationError:
            logger.exception(
                "Dropping message, no topic for user",
                user_id=user.id,
                message_id=event.message_id,
            )
            return

        try:
            await self._transport.forward_message(
                self._group_id, event.chat_id, event.message_id, thread_id=thread_id
            )
        except DeliveryError:
            logger.exception(
                "Failed to forward user message",
                user_id=user.id,
                thread_id=thread_id,
                message_id=event.message_id,
            )
            return

        await self._record(
            AuditEvent(
                kind=EventKind.USER_TO_GROUP,
                source=Endpoint(type="user", id=user.id, display_name=user.display_name),
                destination=Endpoint(type="topic", id=thread_id),
            )
        )

    async def handle_group_message(self, event: GroupMessage) -> None:
        """Copy a reply posted in a user's topic back to that user."""
        if event.chat_id != self._group_id or not event.thread_id:
            return
        if event.author is None or event.author.is_bot:
            return

        if await self._maybe_run_command(event):
            return

        user_id = self._store.get_user(event.thread_id)
        if user_id is None:
            logger.debug("Message in topic with no user mapping", thread_id=event.thread_id)
            return

        try:
            await self._transport.copy_message(user_id, self._group_id, event.message_id)
        except DeliveryError:
            logger.exception(
                "Failed to deliver reply to user",
                user_id=user_id,
                thread_id=event.thread_id,
                message_id=event.message_id,
            )
            return

        await self._record(
            AuditEvent(
                kind=EventKind.GROUP_TO_USER,
                source=Endpoint(
                    type="user",
                    id=event.author.id,
                    display_name=event.author.display_name,
                ),
                destination=Endpoint(type="user", id=user_id),
            )
        )

    async def _maybe_run_command(self, event: GroupMessage) -> bool:
        if not self._owner_id or event.author is None or event.author.id != self._owner_id:
            return False
        text = (event.text or "").strip()
        for command in self._commands:
            if command.thread_id == event.thread_id and command.text == text:
                logger.info("Running export command", label=command.label)
                try:
                    await self._audit.export_and_backup(command.source_file, command.label)
                except AuditError:
                    logger.exception("Export failed", label=command.label)
                return True
        return False

    async def _record(self, event: AuditEvent) -> None:
        try:
            await self._audit.log_event(event)
        except AuditError:
            logger.exception("Failed to write audit line", kind=event.kind.value)
