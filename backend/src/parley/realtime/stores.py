"""Directories holding sessions, private conversations and groups.

None of these classes synchronise on their own. They are only ever mutated
from :class:`parley.realtime.managers.FanoutRouter`, which serialises every
event under a single lock.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List

from .models import Group, GroupMessage, PrivateMessage, Session

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------


class SessionRegistry:
    """Maps live connection handles to identity profiles."""

    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, handle: object) -> bool:
        return handle in self._sessions

    def get(self, handle: str) -> Session | None:
        return self._sessions.get(handle)

    def find_by_name(self, username: str) -> Session | None:
        wanted = username.casefold()
        for session in self._sessions.values():
            if session.username.casefold() == wanted:
                return session
        return None

    def register(self, handle: str, username: str) -> tuple[Session, str | None]:
        """Bind *username* to *handle*.

        Returns the session and, on takeover, the handle the profile was
        previously bound to. A takeover keeps the original ``joined_at``.
        """

        existing = self.find_by_name(username)
        if existing is not None:
            previous = existing.handle
            self._sessions.pop(previous, None)
            existing.handle = handle
            self._sessions[handle] = existing
            return existing, previous

        session = Session(handle=handle, username=username, joined_at=self._clock())
        self._sessions[handle] = session
        return session, None

    def remove(self, handle: str) -> Session | None:
        return self._sessions.pop(handle, None)

    def snapshot(self) -> list[dict]:
        return [session.to_public() for session in self._sessions.values()]


# ---------------------------------------------------------------------------
# Conversation directory
# ---------------------------------------------------------------------------


def canonical_key(first: str, second: str) -> str:
    """Order-independent key identifying the conversation between two handles."""

    return "-".join(sorted((first, second)))


class ConversationDirectory:
    """Append-only private message logs keyed by handle pair."""

    def __init__(self) -> None:
        self._logs: Dict[str, List[PrivateMessage]] = {}

    def __len__(self) -> int:
        return len(self._logs)

    def append(self, first: str, second: str, message: PrivateMessage) -> None:
        self._logs.setdefault(canonical_key(first, second), []).append(message)

    def history(self, first: str, second: str) -> list[PrivateMessage]:
        return list(self._logs.get(canonical_key(first, second), ()))


# ---------------------------------------------------------------------------
# Group directory
# ---------------------------------------------------------------------------


class GroupDirectory:
    """Owns group lifecycle, membership and per-group message logs."""

    def __init__(self, *, clock: Clock = utcnow, id_factory: IdFactory = new_id) -> None:
        self._clock = clock
        self._new_id = id_factory
        self._groups: Dict[str, Group] = {}

    def __len__(self) -> int:
        return len(self._groups)

    def get(self, group_id: str) -> Group | None:
        return self._groups.get(group_id)

    def create(self, creator: str, name: str, members: Iterable[str]) -> Group:
        # dict.fromkeys keeps order and drops duplicates; creator always first
        membership = list(dict.fromkeys([creator, *members]))
        group = Group(
            id=self._new_id(),
            name=name,
            created_by=creator,
            created_at=self._clock(),
            members=membership,
        )
        self._groups[group.id] = group
        return group

    def post_message(
        self, group_id: str, sender: str, content: str
    ) -> tuple[GroupMessage, list[str]] | None:
        """Append a message and return it with the members at posting time."""

        group = self._groups.get(group_id)
        if group is None or not group.has_member(sender):
            return None
        message = GroupMessage(
            id=self._new_id(),
            group_id=group_id,
            sender=sender,
            content=content,
            timestamp=self._clock(),
        )
        group.messages.append(message)
        return message, list(group.members)

    def history(self, group_id: str, requester: str) -> list[GroupMessage] | None:
        group = self._groups.get(group_id)
        if group is None or not group.has_member(requester):
            return None
        return list(group.messages)

    def members(self, group_id: str, requester: str) -> list[str] | None:
        """Current members of *group_id* when *requester* is one of them."""

        group = self._groups.get(group_id)
        if group is None or not group.has_member(requester):
            return None
        return list(group.members)

    def remove_member(self, handle: str) -> list[str]:
        """Evict *handle* everywhere; return the ids of groups deleted as a result."""

        emptied: list[str] = []
        for group_id, group in list(self._groups.items()):
            if handle in group.members:
                group.members = [member for member in group.members if member != handle]
            if not group.members:
                self._groups.pop(group_id, None)
                emptied.append(group_id)
        return emptied

    def snapshot(self) -> list[dict]:
        return [group.to_public() for group in self._groups.values()]
