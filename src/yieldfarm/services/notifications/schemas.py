"""Schemas for the real-time notification channel."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from yieldfarm.core.schemas import CamelModel
from yieldfarm.services.transactions.schemas import utcnow


class EventType(str, Enum):
    """Server to client events."""

    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    AUTHENTICATED = "authenticated"
    AUTH_ERROR = "auth_error"
    PONG = "pong"
    ERROR = "error"

    BALANCE_UPDATE = "balance:update"
    TRANSACTION_UPDATE = "transaction:update"
    USER_NOTIFICATION = "user:notification"
    SYSTEM_NOTIFICATION = "system:notification"


class ClientEvent(str, Enum):
    """Client to server events."""

    SUBSCRIBE_BALANCES = "subscribe:balances"
    SUBSCRIBE_TRANSACTIONS = "subscribe:transactions"
    UNSUBSCRIBE = "unsubscribe"
    AUTHENTICATE = "authenticate"
    PING = "ping"


class Channel(str, Enum):
    """Per-user subscription channels."""

    BALANCES = "balances"
    TRANSACTIONS = "transactions"


class NotificationLevel(str, Enum):
    """Severity of a user-facing notification."""

    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


def room_name(channel: Channel, user_id: str) -> str:
    """Room key for a user's channel, e.g. ``transactions:0xabc...``."""
    return f"{channel.value}:{user_id.lower()}"


class HubMessage(BaseModel):
    """Envelope for every server to client message."""

    event: EventType = Field(..., description="Event name")
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    timestamp: datetime = Field(default_factory=utcnow, description="Emission time")


class ClientMessage(BaseModel):
    """Envelope for client to server messages."""

    event: str = Field(..., description="Event name")
    data: Any = Field(None, description="Event argument")


class Subscription(BaseModel):
    """A connection's interest in one user's updates."""

    connection_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str | None = None
    channels: set[Channel] = Field(default_factory=set)
    authenticated: bool = False
    authenticated_address: str | None = None
    connected_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)

    @property
    def rooms(self) -> set[str]:
        if not self.user_id:
            return set()
        return {room_name(channel, self.user_id) for channel in self.channels}


class HubStats(CamelModel):
    """Snapshot of hub connections and rooms."""

    total_connections: int
    authenticated_connections: int
    room_stats: dict[str, int]
    pending_deliveries: int
    timestamp: datetime = Field(default_factory=utcnow)


class SystemBroadcast(CamelModel):
    """Operator notification sent to every open connection."""

    type: NotificationLevel = Field(..., description="Severity shown to clients")
    title: str = Field("System Notification", min_length=1, max_length=120)
    message: str = Field(..., min_length=1, max_length=1000)


class BroadcastReceipt(CamelModel):
    """Result of an operator broadcast or disconnect."""

    recipients: int
    timestamp: datetime = Field(default_factory=utcnow)
