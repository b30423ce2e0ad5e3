"""Pydantic models for inbound events, audit events and chat metadata."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field


class UserRef(BaseModel):
    """An end-user or group member as seen by the relay."""
    id: str
    display_name: str | None = None
    is_bot: bool = False


class UserToGroup(BaseModel):
    """A private message from an end-user to the bot."""
    kind: Literal["user_to_group"] = "user_to_group"
    user: UserRef
    chat_id: str
    message_id: int


class GroupMessage(BaseModel):
    """A message posted inside the forum group."""
    kind: Literal["group_message"] = "group_message"
    author: UserRef | None = None
    chat_id: str
    message_id: int
    thread_id: str | None = None
    text: str | None = None


InboundEvent = Union[UserToGroup, GroupMessage]


class EventKind(str, Enum):
    """Direction of a relayed message."""
    USER_TO_GROUP = "user-to-group"
    GROUP_TO_USER = "group-to-user"


class Endpoint(BaseModel):
    """Source or destination of a relayed message."""
    type: Literal["user", "topic"]
    id: str
    display_name: str | None = None


class AuditEvent(BaseModel):
    """One successful relay, rendered to a single audit line."""
    kind: EventKind
    source: Endpoint
    destination: Endpoint
    timestamp: datetime = Field(default_factory=datetime.now)


class ChatInfo(BaseModel):
    """The parts of a chat the relay checks at startup."""
    type: str
    is_forum: bool = False
