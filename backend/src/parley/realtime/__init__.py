"""Realtime presence, directories and message fanout."""

from .connections import ConnectionManager, safe_send_json  # noqa: F401
from .managers import (  # noqa: F401
    DisconnectReaper,
    FanoutRouter,
    PresenceBroadcaster,
    get_connection_manager,
    get_router,
    shutdown_realtime,
)
from .stores import (  # noqa: F401
    ConversationDirectory,
    GroupDirectory,
    SessionRegistry,
    canonical_key,
)

__all__ = [
    "get_connection_manager",
    "get_router",
    "shutdown_realtime",
    "canonical_key",
    "ConnectionManager",
    "ConversationDirectory",
    "DisconnectReaper",
    "FanoutRouter",
    "GroupDirectory",
    "PresenceBroadcaster",
    "SessionRegistry",
    "safe_send_json",
]
