"""Bootstrap of the administrative and audit control topics."""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path

import structlog

from forumrelay.errors import CreationError, DeliveryError, InitializationError
from forumrelay.store import read_control_value, write_control_value
from forumrelay.transport import Transport

logger = structlog.get_logger(__name__)

CONTROL_TOPIC_ICON_COLOR = 0x6FB9F0


class TopicState(str, Enum):
    """Lifecycle of a control topic within one process run."""
    UNRESOLVED = "UNRESOLVED"
    RESOLVING = "RESOLVING"
    READY = "READY"


class ControlTopic:
    """A well-known topic whose id is kept on the first line of ``control_file``.

    The topic is created once; later runs read the recorded id and skip
    creation. A failed bootstrap is fatal for the run.
    """

    def __init__(self, name: str, control_file: str | Path):
        self.name = name
        self.control_file = Path(control_file)
        self.state = TopicState.UNRESOLVED
        self.thread_id: str | None = None
        self.created = False

    async def ensure(self, transport: Transport, group_id: str) -> str:
        """Locate or create the topic and return its id.

        Raises:
            InitializationError: The control file could not be read or
                written, or the topic could not be created.
        """
        if self.state == TopicState.READY and self.thread_id:
            return self.thread_id

        self.state = TopicState.RESOLVING
        try:
            thread_id = await asyncio.to_thread(read_control_value, self.control_file)
            if thread_id:
                logger.debug("Control topic already exists", name=self.name, topic_id=thread_id)
            else:
                thread_id = await transport.create_thread(
                    group_id, self.name, icon_color=CONTROL_TOPIC_ICON_COLOR
                )
                await asyncio.to_thread(write_control_value, self.control_file, thread_id)
                self.created = True
                logger.info("Created control topic", name=self.name, topic_id=thread_id)
                await transport.send_text(
                    group_id,
                    f"{self.name} topic initialized. Topic ID: {thread_id}",
                    thread_id=thread_id,
                )
        except (CreationError, DeliveryError, OSError) as e:
            self.state = TopicState.UNRESOLVED
            raise InitializationError(
                f"Failed to initialize {self.name!r} topic: {e}"
            ) from e

        self.thread_id = thread_id
        self.state = TopicState.READY
        return thread_id
