"""Metric definitions for the realtime routing core."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of inbound realtime events by outcome.",
    label_names=("event", "outcome"),
)

realtime_deliveries_total = registry.counter(
    "realtime_deliveries_total",
    "Number of outbound frames queued for delivery.",
    label_names=("event",),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

realtime_sessions = registry.gauge(
    "realtime_sessions",
    "Number of registered sessions.",
)

realtime_groups = registry.gauge(
    "realtime_groups",
    "Number of live groups.",
)
