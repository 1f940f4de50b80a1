"""Real-time notification fan-out."""

from yieldfarm.services.notifications.hub import (
    EVENT_ROUTES,
    Connection,
    NotificationHub,
)
from yieldfarm.services.notifications.schemas import (
    BroadcastReceipt,
    Channel,
    ClientEvent,
    ClientMessage,
    EventType,
    HubMessage,
    HubStats,
    NotificationLevel,
    Subscription,
    SystemBroadcast,
    room_name,
)

__all__ = [
    # Hub
    "EVENT_ROUTES",
    "Connection",
    "NotificationHub",
    # Schemas
    "BroadcastReceipt",
    "Channel",
    "ClientEvent",
    "ClientMessage",
    "EventType",
    "HubMessage",
    "HubStats",
    "NotificationLevel",
    "Subscription",
    "SystemBroadcast",
    "room_name",
]
