"""Metric definitions for the relay."""

from __future__ import annotations

from .registry import registry


relay_events_total = registry.counter(
    "relay_events_total",
    "Websocket events processed, by event name and direction (in/out).",
    label_names=("event", "direction"),
)

relay_dropped_total = registry.counter(
    "relay_dropped_total",
    "Deliveries that were dropped instead of sent.",
    label_names=("reason",),
)

relay_active_connections = registry.gauge(
    "relay_active_connections",
    "Number of websocket connections currently registered.",
)

relay_active_channels = registry.gauge(
    "relay_active_channels",
    "Number of channels with at least one member.",
)

relay_messages_relayed = registry.gauge(
    "relay_messages_relayed",
    "Media and transmission events relayed across live channels.",
)

janitor_removed_total = registry.counter(
    "janitor_removed_total",
    "Entries removed by the periodic sweeps.",
    label_names=("sweep",),
)
