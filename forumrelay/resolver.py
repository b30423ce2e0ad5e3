"""Create-or-resolve the forum topic for a user."""

from __future__ import annotations

import asyncio

import structlog

from forumrelay.errors import CreationError, DeliveryError
from forumrelay.models import UserRef
from forumrelay.store import MappingStore, topic_label
from forumrelay.transport import Transport

logger = structlog.get_logger(__name__)


class TopicResolver:
    """Returns a user's topic, creating it exactly once on first contact.

    Concurrent first-contact requests for the same user share one in-flight
    future kept in ``store.pending``; only the first issues ``create_thread``.

    Args:
        store: Mapping store owning the maps and the in-flight markers.
        transport: Chat transport used to create topics and post notices.
        group_id: Forum supergroup id.
        admin_thread_id: Topic that receives new-user notices (optional).
        fallback_label: Label prefix for users without a display name.
    """

    def __init__(
        self,
        store: MappingStore,
        transport: Transport,
        group_id: str,
        admin_thread_id: str | None = None,
        fallback_label: str = "User",
    ):
        self._store = store
        self._transport = transport
        self._group_id = group_id
        self.admin_thread_id = admin_thread_id
        self._fallback_label = fallback_label
        self._notice_tasks: set[asyncio.Task] = set()

    async def resolve_or_create(self, user: UserRef) -> str:
        """Return the topic id for ``user``, creating the topic if needed.

        Raises:
            CreationError: Topic creation or the ledger append failed. No map
                was modified.
        """
        thread_id = self._store.get_thread(user.id)
        if thread_id is not None:
            return thread_id

        in_flight = self._store.pending.get(user.id)
        if in_flight is not None:
            logger.debug("Waiting for in-flight topic creation", user_id=user.id)
            return await asyncio.shield(in_flight)

        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._store.pending[user.id] = future
        try:
            thread_id = await self._create(user)
        except asyncio.CancelledError:
            # Waiters belong to other updates; they get a relay error, not
            # this task's cancellation.
            future.set_exception(
                CreationError(f"Topic creation cancelled for user {user.id}")
            )
            future.exception()
            raise
        except Exception as e:
            error = e if isinstance(e, CreationError) else CreationError(
                f"Topic creation failed for user {user.id}: {e}"
            )
            future.set_exception(error)
            # Mark retrieved; waiters (if any) still receive it.
            future.exception()
            if error is e:
                raise
            raise error from e
        else:
            future.set_result(thread_id)
        finally:
            self._store.pending.pop(user.id, None)

        # The caller forwards the first message before the notice is sent.
        task = asyncio.create_task(self._notify_new_user(user, thread_id))
        self._notice_tasks.add(task)
        task.add_done_callback(self._notice_tasks.discard)
        return thread_id

    async def drain_notices(self) -> None:
        """Wait for new-user notices that are still being sent."""
        if self._notice_tasks:
            await asyncio.gather(*self._notice_tasks, return_exceptions=True)

    async def _create(self, user: UserRef) -> str:
        label = topic_label(user.id, user.display_name, self._fallback_label)
        thread_id = await self._transport.create_thread(self._group_id, label)
        try:
            await self._store.append(user.id, user.display_name, thread_id)
        except (OSError, ValueError) as e:
            logger.exception(
                "Failed to record user mapping",
                user_id=user.id,
                thread_id=thread_id,
            )
            raise CreationError(
                f"Failed to record topic {thread_id} for user {user.id}: {e}"
            ) from e
        logger.info(
            "Created topic for user",
            user_id=user.id,
            thread_id=thread_id,
            label=label,
        )
        return thread_id

    async def _notify_new_user(self, user: UserRef, thread_id: str) -> None:
        """Post the new mapping into the administrative topic (best-effort)."""
        if not self.admin_thread_id:
            return
        text = (
            f"User ID: {user.id}\n"
            f"Topic ID: {thread_id}\n"
            f"Username: @{user.display_name or 'none'}"
        )
        try:
            await self._transport.send_text(
                self._group_id, text, thread_id=self.admin_thread_id
            )
        except DeliveryError:
            logger.warning(
                "Failed to post new-user notice",
                user_id=user.id,
                thread_id=thread_id,
            )
