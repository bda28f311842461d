"""Presence broadcasting, event fanout and disconnect cleanup."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Protocol

from app.monitoring.metrics import (
    realtime_events_total,
    realtime_groups,
    realtime_sessions,
)

from . import events
from .connections import ConnectionManager
from .events import (
    CreateGroupEvent,
    GroupHistoryRequest,
    GroupMessageEvent,
    GroupTypingEvent,
    PrivateHistoryRequest,
    PrivateMessageEvent,
    RegisterEvent,
    TypingEvent,
    parse_event,
)
from .models import PrivateMessage
from .stores import (
    Clock,
    ConversationDirectory,
    GroupDirectory,
    IdFactory,
    SessionRegistry,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)


class Outbound(Protocol):
    """Delivery primitives the router needs from the transport."""

    def send(self, handle: str, event: str, data: Any) -> bool: ...

    def send_many(self, handles: Any, event: str, data: Any) -> int: ...

    def broadcast(self, event: str, data: Any) -> int: ...


# ---------------------------------------------------------------------------
# Presence broadcaster
# ---------------------------------------------------------------------------


class PresenceBroadcaster:
    """Push full user and group rosters to every live connection."""

    def __init__(
        self, outbound: Outbound, sessions: SessionRegistry, groups: GroupDirectory
    ) -> None:
        self._outbound = outbound
        self._sessions = sessions
        self._groups = groups

    def broadcast_users(self) -> None:
        self._outbound.broadcast(events.USER_LIST, self._sessions.snapshot())

    def broadcast_groups(self) -> None:
        self._outbound.broadcast(events.GROUP_LIST, self._groups.snapshot())

    def send_groups(self, handle: str) -> None:
        self._outbound.send(handle, events.GROUP_LIST, self._groups.snapshot())

    def refresh(self) -> None:
        self.broadcast_users()
        self.broadcast_groups()


# ---------------------------------------------------------------------------
# Disconnect reaper
# ---------------------------------------------------------------------------


class DisconnectReaper:
    """Tear down everything a lost connection left behind."""

    def __init__(
        self,
        sessions: SessionRegistry,
        groups: GroupDirectory,
        broadcaster: PresenceBroadcaster,
    ) -> None:
        self._sessions = sessions
        self._groups = groups
        self._broadcaster = broadcaster

    def reap(self, handle: str) -> bool:
        session = self._sessions.remove(handle)
        if session is None:
            return False
        emptied = self._groups.remove_member(handle)
        logger.info(
            "User disconnected: %s (%s)",
            session.username,
            handle,
            extra={"groups_removed": len(emptied)},
        )
        self._broadcaster.refresh()
        return True


# ---------------------------------------------------------------------------
# Fanout router
# ---------------------------------------------------------------------------


class FanoutRouter:
    """Single routing authority for all inbound events.

    Every event, disconnects included, runs to completion under one lock so
    registration, message appends, group changes and cleanup never interleave.
    Invalid events are dropped without telling the sender.
    """

    def __init__(
        self,
        outbound: Outbound,
        *,
        clock: Clock = utcnow,
        id_factory: IdFactory = new_id,
    ) -> None:
        self._outbound = outbound
        self._clock = clock
        self._new_id = id_factory
        self.sessions = SessionRegistry(clock=clock)
        self.conversations = ConversationDirectory()
        self.groups = GroupDirectory(clock=clock, id_factory=id_factory)
        self.broadcaster = PresenceBroadcaster(outbound, self.sessions, self.groups)
        self.reaper = DisconnectReaper(self.sessions, self.groups, self.broadcaster)
        self._lock = asyncio.Lock()
        self._handlers: Dict[str, Callable[[str, Any], bool]] = {
            events.REGISTER: self._register,
            events.PRIVATE_MESSAGE: self._private_message,
            events.GET_PRIVATE_HISTORY: self._private_history,
            events.CREATE_GROUP: self._create_group,
            events.GROUP_MESSAGE: self._group_message,
            events.GET_GROUP_HISTORY: self._group_history,
            events.TYPING: self._typing,
            events.GROUP_TYPING: self._group_typing,
        }

    async def dispatch(self, handle: str, event: str, payload: Any) -> bool:
        """Route one inbound event; return ``False`` when it was dropped.

        Disconnects are never routed here; the transport calls :meth:`disconnect`.
        """

        handler = self._handlers.get(event)
        parsed = parse_event(event, payload)
        if handler is None or parsed is None:
            return self._record(event, False)
        async with self._lock:
            try:
                handled = handler(handle, parsed)
            except Exception:
                logger.exception("Unexpected error while handling %s event", event)
                handled = False
        return self._record(event, handled)

    async def disconnect(self, handle: str) -> bool:
        async with self._lock:
            handled = self.reaper.reap(handle)
        return self._record(events.DISCONNECT, handled)

    def _record(self, event: str, handled: bool) -> bool:
        if not handled:
            logger.debug("Dropped %s event", event)
        label = event if event in self._handlers or event == events.DISCONNECT else "unknown"
        realtime_events_total.labels(label, "handled" if handled else "dropped").inc()
        realtime_sessions.set(len(self.sessions))
        realtime_groups.set(len(self.groups))
        return handled

    # ------------------------------------------------------------------
    # Event handlers; called with the lock held
    # ------------------------------------------------------------------
    def _register(self, handle: str, event: RegisterEvent) -> bool:
        session, previous = self.sessions.register(handle, event.username)
        if previous is not None and previous != handle:
            logger.info(
                "User taken over: %s (%s -> %s)", session.username, previous, handle
            )
        else:
            logger.info("User registered: %s (%s)", session.username, handle)
        self.broadcaster.broadcast_users()
        self.broadcaster.send_groups(handle)
        return True

    def _private_message(self, handle: str, event: PrivateMessageEvent) -> bool:
        target = event.to
        if handle == target or handle not in self.sessions or target not in self.sessions:
            return False
        message = PrivateMessage(
            id=self._new_id(),
            sender=handle,
            recipient=target,
            content=event.content,
            timestamp=self._clock(),
        )
        self.conversations.append(handle, target, message)
        self._outbound.send_many((handle, target), events.PRIVATE_MESSAGE, message.to_public())
        return True

    def _private_history(self, handle: str, event: PrivateHistoryRequest) -> bool:
        messages = self.conversations.history(handle, event.with_id)
        self._outbound.send(
            handle,
            events.PRIVATE_HISTORY,
            {
                "withId": event.with_id,
                "messages": [message.to_public() for message in messages],
            },
        )
        return True

    def _create_group(self, handle: str, event: CreateGroupEvent) -> bool:
        group = self.groups.create(handle, event.name, event.members)
        logger.info(
            "Group created: %s (%s) by %s", group.name, group.id, handle,
            extra={"members": len(group.members)},
        )
        self.broadcaster.broadcast_groups()
        return True

    def _group_message(self, handle: str, event: GroupMessageEvent) -> bool:
        posted = self.groups.post_message(event.group_id, handle, event.content)
        if posted is None:
            return False
        message, members = posted
        self._outbound.send_many(members, events.GROUP_MESSAGE, message.to_public())
        return True

    def _group_history(self, handle: str, event: GroupHistoryRequest) -> bool:
        messages = self.groups.history(event.group_id, handle)
        if messages is None:
            return False
        self._outbound.send(
            handle,
            events.GROUP_HISTORY,
            {
                "groupId": event.group_id,
                "messages": [message.to_public() for message in messages],
            },
        )
        return True

    def _typing(self, handle: str, event: TypingEvent) -> bool:
        if event.to == handle:
            return False
        self._outbound.send(
            event.to, events.USER_TYPING, {"from": handle, "isTyping": event.is_typing}
        )
        return True

    def _group_typing(self, handle: str, event: GroupTypingEvent) -> bool:
        members = self.groups.members(event.group_id, handle)
        if members is None:
            return False
        payload = {"groupId": event.group_id, "from": handle, "isTyping": event.is_typing}
        self._outbound.send_many(
            [member for member in members if member != handle],
            events.USER_GROUP_TYPING,
            payload,
        )
        return True


# ---------------------------------------------------------------------------
# Process-wide instances
# ---------------------------------------------------------------------------

connection_manager = ConnectionManager()
router = FanoutRouter(connection_manager)


async def shutdown_realtime() -> None:
    await connection_manager.close()


def get_connection_manager() -> ConnectionManager:
    return connection_manager


def get_router() -> FanoutRouter:
    return router


__all__ = [
    "DisconnectReaper",
    "FanoutRouter",
    "PresenceBroadcaster",
    "get_connection_manager",
    "get_router",
    "shutdown_realtime",
]
