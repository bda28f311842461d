"""Inbound event names and their payload schemas."""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

# Inbound events -------------------------------------------------------------
REGISTER = "register"
PRIVATE_MESSAGE = "private-message"
GET_PRIVATE_HISTORY = "get-private-history"
CREATE_GROUP = "create-group"
GROUP_MESSAGE = "group-message"
GET_GROUP_HISTORY = "get-group-history"
TYPING = "typing"
GROUP_TYPING = "group-typing"
DISCONNECT = "disconnect"

# Outbound events ------------------------------------------------------------
USER_LIST = "user-list"
GROUP_LIST = "group-list"
PRIVATE_HISTORY = "private-history"
GROUP_HISTORY = "group-history"
USER_TYPING = "user-typing"
USER_GROUP_TYPING = "user-group-typing"


class InboundEvent(BaseModel):
    model_config = ConfigDict(frozen=True)


class RegisterEvent(InboundEvent):
    username: str = Field(..., min_length=1)


class PrivateMessageEvent(InboundEvent):
    to: str
    content: str


class PrivateHistoryRequest(InboundEvent):
    with_id: str = Field(..., alias="with")


class CreateGroupEvent(InboundEvent):
    name: str
    members: list[str] = Field(default_factory=list)


class GroupMessageEvent(InboundEvent):
    group_id: str = Field(..., alias="groupId")
    content: str


class GroupHistoryRequest(InboundEvent):
    group_id: str = Field(..., alias="groupId")


class TypingEvent(InboundEvent):
    to: str
    is_typing: bool = Field(..., alias="isTyping")


class GroupTypingEvent(InboundEvent):
    group_id: str = Field(..., alias="groupId")
    is_typing: bool = Field(..., alias="isTyping")


EVENT_SCHEMAS: dict[str, type[InboundEvent]] = {
    REGISTER: RegisterEvent,
    PRIVATE_MESSAGE: PrivateMessageEvent,
    GET_PRIVATE_HISTORY: PrivateHistoryRequest,
    CREATE_GROUP: CreateGroupEvent,
    GROUP_MESSAGE: GroupMessageEvent,
    GET_GROUP_HISTORY: GroupHistoryRequest,
    TYPING: TypingEvent,
    GROUP_TYPING: GroupTypingEvent,
}


def parse_event(event: str, payload: Any) -> InboundEvent | None:
    """Validate *payload* for *event*; return ``None`` when it cannot be routed."""

    schema = EVENT_SCHEMAS.get(event)
    if schema is None or not isinstance(payload, Mapping):
        return None
    try:
        return schema.model_validate(payload)
    except ValidationError:
        return None
