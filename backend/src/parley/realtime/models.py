"""In-memory records owned by the routing core.

Records are plain dataclasses; ``to_public`` renders the wire shape used by the
outbound events so the directories never leak their internal layout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def isoformat(value: datetime) -> str:
    return value.isoformat()


@dataclass(slots=True)
class Session:
    """Identity profile bound to a live connection handle."""

    handle: str
    username: str
    joined_at: datetime

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.handle,
            "username": self.username,
            "joinedAt": isoformat(self.joined_at),
        }


@dataclass(slots=True, frozen=True)
class PrivateMessage:
    id: str
    sender: str
    recipient: str
    content: str
    timestamp: datetime

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.sender,
            "to": self.recipient,
            "content": self.content,
            "timestamp": isoformat(self.timestamp),
        }


@dataclass(slots=True, frozen=True)
class GroupMessage:
    id: str
    group_id: str
    sender: str
    content: str
    timestamp: datetime

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "groupId": self.group_id,
            "from": self.sender,
            "content": self.content,
            "timestamp": isoformat(self.timestamp),
        }


@dataclass(slots=True)
class Group:
    """A named set of member handles with its own message log.

    ``members`` keeps insertion order (creator first) and never holds
    duplicates. A group only exists while ``members`` is non-empty.
    """

    id: str
    name: str
    created_by: str
    created_at: datetime
    members: list[str]
    messages: list[GroupMessage] = field(default_factory=list)

    def has_member(self, handle: str) -> bool:
        return handle in self.members

    def to_public(self, *, include_messages: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "createdBy": self.created_by,
            "createdAt": isoformat(self.created_at),
            "members": list(self.members),
        }
        if include_messages:
            payload["messages"] = [message.to_public() for message in self.messages]
        return payload
