"""Room-scoped fan-out of lifecycle and balance events.

Connections join rooms named ``{channel}:{user}``. Broadcasts snapshot the
room membership and schedule one delivery task per recipient, so the caller
never waits on a slow or dead socket.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Protocol

from yieldfarm.services.auth.wallet_auth import WalletAuthService
from yieldfarm.services.notifications.schemas import (
    Channel,
    EventType,
    HubMessage,
    HubStats,
    Subscription,
    room_name,
)
from yieldfarm.services.transactions.schemas import utcnow

logger = logging.getLogger(__name__)

# Channels whose rooms receive each per-user event kind
EVENT_ROUTES: dict[EventType, tuple[Channel, ...]] = {
    EventType.TRANSACTION_UPDATE: (Channel.TRANSACTIONS,),
    EventType.BALANCE_UPDATE: (Channel.BALANCES,),
    EventType.USER_NOTIFICATION: (Channel.BALANCES, Channel.TRANSACTIONS),
}


class Transport(Protocol):
    """What the hub needs from an underlying connection (e.g. a WebSocket)."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class Connection:
    """A connected client and its subscription state."""

    def __init__(self, transport: Transport, connection_id: str | None = None):
        """Initialize connection.

        Args:
            transport: Object used to push text frames
            connection_id: Optional identifier
        """
        self.transport = transport
        self.subscription = (
            Subscription(connection_id=connection_id) if connection_id else Subscription()
        )
        self._send_lock = asyncio.Lock()

    @property
    def connection_id(self) -> str:
        return self.subscription.connection_id

    async def send(self, message: HubMessage) -> bool:
        """Send a message to the client.

        Args:
            message: Message to send

        Returns:
            True if sent successfully
        """
        try:
            async with self._send_lock:
                await self.transport.send_text(message.model_dump_json())
                self.subscription.last_activity = utcnow()
                return True
        except Exception as e:
            logger.warning(f"Failed to send to {self.connection_id}: {e}")
            return False

    async def close(self, code: int = 1000) -> None:
        try:
            await self.transport.close(code=code)
        except Exception as e:
            logger.debug(f"Close failed for {self.connection_id}: {e}")


class NotificationHub:
    """Per-user rooms over persistent connections."""

    def __init__(
        self,
        auth_service: WalletAuthService | None = None,
        require_signature: bool = False,
    ):
        """Initialize hub.

        Args:
            auth_service: Verifies wallet signature proofs
            require_signature: Reject authentication without a valid signature
        """
        self.auth_service = auth_service
        self.require_signature = require_signature
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()
        self._deliveries: set[asyncio.Task] = set()

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    def get_connection(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def room_members(self, room: str) -> set[str]:
        """Connection ids currently in a room."""
        return set(self._rooms.get(room, ()))

    # Connection lifecycle

    async def connect(
        self, transport: Transport, connection_id: str | None = None
    ) -> Connection:
        """Register an accepted connection and greet it.

        Args:
            transport: Accepted transport
            connection_id: Optional identifier

        Returns:
            The registered connection
        """
        connection = Connection(transport, connection_id)
        async with self._lock:
            self._connections[connection.connection_id] = connection

        logger.info(
            f"Client {connection.connection_id} connected. Active: {self.active_connections}"
        )
        await connection.send(
            HubMessage(
                event=EventType.CONNECTED,
                data={
                    "socketId": connection.connection_id,
                    "message": "Connected to yield farming updates",
                },
            )
        )
        return connection

    async def disconnect(self, connection_id: str) -> bool:
        """Forget a connection and all of its room memberships.

        Args:
            connection_id: Connection to remove

        Returns:
            True if the connection was known
        """
        async with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return False
            self._leave_rooms(connection)

        logger.info(
            f"Client {connection_id} disconnected. Active: {self.active_connections}"
        )
        return True

    async def disconnect_user(self, user_id: str) -> int:
        """Close every connection subscribed or authenticated as a user.

        Args:
            user_id: User address

        Returns:
            Number of connections closed
        """
        user = user_id.lower()
        targets = [
            conn
            for conn in list(self._connections.values())
            if user in (conn.subscription.user_id, conn.subscription.authenticated_address)
        ]
        for connection in targets:
            await self.disconnect(connection.connection_id)
            await connection.close()
            logger.info(f"User {user} connection {connection.connection_id} closed by admin")
        return len(targets)

    def _leave_rooms(self, connection: Connection) -> None:
        for room in connection.subscription.rooms:
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(connection.connection_id)
            if not members:
                del self._rooms[room]

    # Subscription management

    async def subscribe(self, connection_id: str, user_id: str | None, channel: Channel) -> bool:
        """Join a connection to ``{channel}:{user_id}``. Idempotent.

        A connection follows a single user; subscribing for a different user
        moves all of its channels to the new user.

        Args:
            connection_id: Subscribing connection
            user_id: User whose updates are wanted
            channel: Channel to join

        Returns:
            True if subscribed
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        if not user_id:
            await self.send_error(connection_id, "User ID is required for subscription")
            return False

        user = user_id.lower()
        room = room_name(channel, user)
        async with self._lock:
            subscription = connection.subscription
            if subscription.user_id and subscription.user_id != user:
                moved = set(subscription.channels)
                self._leave_rooms(connection)
                subscription.user_id = user
                for previous in moved:
                    self._rooms[room_name(previous, user)].add(connection_id)
            subscription.user_id = user
            subscription.channels.add(channel)
            self._rooms[room].add(connection_id)

        logger.info(f"Client {connection_id} subscribed to {room}")
        await connection.send(
            HubMessage(
                event=EventType.SUBSCRIBED,
                data={"type": channel.value, "userId": user, "room": room},
            )
        )
        return True

    async def unsubscribe(self, connection_id: str, channel: Channel | None = None) -> bool:
        """Leave one channel, or all channels when ``channel`` is None."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False

        async with self._lock:
            subscription = connection.subscription
            self._leave_rooms(connection)
            if channel is None:
                subscription.channels.clear()
            else:
                subscription.channels.discard(channel)
            for remaining in subscription.rooms:
                self._rooms[remaining].add(connection_id)

        await connection.send(
            HubMessage(
                event=EventType.UNSUBSCRIBED,
                data={
                    "channels": sorted(c.value for c in connection.subscription.channels),
                    "userId": connection.subscription.user_id,
                },
            )
        )
        return True

    # Authentication

    async def authenticate(
        self,
        connection_id: str,
        user_address: str | None,
        proof: dict[str, Any] | None = None,
    ) -> bool:
        """Mark a connection as authenticated for a wallet.

        Failure is soft: ``auth_error`` is sent and the connection stays open.

        Args:
            connection_id: Connection to authenticate
            user_address: Claimed wallet address
            proof: ``{"signature": ..., "nonce": ...}`` from the wallet

        Returns:
            True if authenticated
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return False

        error = self._check_proof(user_address, proof)
        if error:
            logger.info(f"Authentication failed for {connection_id}: {error}")
            await connection.send(
                HubMessage(
                    event=EventType.AUTH_ERROR,
                    data={"message": "Authentication failed", "reason": error},
                )
            )
            return False

        address = user_address.lower()
        async with self._lock:
            connection.subscription.authenticated = True
            connection.subscription.authenticated_address = address

        logger.info(f"Client {connection_id} authenticated as {address}")
        await connection.send(
            HubMessage(event=EventType.AUTHENTICATED, data={"userAddress": address})
        )
        return True

    def _check_proof(
        self, user_address: str | None, proof: dict[str, Any] | None
    ) -> str | None:
        if not WalletAuthService.is_valid_address(user_address):
            return "Invalid wallet address"
        if not self.require_signature:
            return None
        if self.auth_service is None:
            return "Signature verification unavailable"
        if not isinstance(proof, dict) or not proof.get("signature") or not proof.get("nonce"):
            return "Signature and nonce are required"
        result = self.auth_service.verify(user_address, proof["signature"], proof["nonce"])
        return None if result.valid else result.error

    # Direct replies

    async def ping(self, connection_id: str) -> bool:
        """Answer a liveness probe without touching subscriptions."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return await connection.send(
            HubMessage(event=EventType.PONG, data={"timestamp": utcnow().isoformat()})
        )

    async def send_error(self, connection_id: str, message: str) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return await connection.send(
            HubMessage(event=EventType.ERROR, data={"message": message})
        )

    # Broadcasting

    def broadcast_to_user(
        self, user_id: str, kind: EventType, payload: dict[str, Any]
    ) -> int:
        """Schedule delivery of a per-user event. Does not wait for delivery.

        Each connection receives the event once even when it sits in several
        of the target rooms. Zero recipients is not an error.

        Args:
            user_id: Target user
            kind: transaction:update, balance:update or user:notification
            payload: Event data

        Returns:
            Number of deliveries scheduled

        Raises:
            ValueError: If ``kind`` is not a per-user event
        """
        channels = EVENT_ROUTES.get(kind)
        if channels is None:
            raise ValueError(f"{kind} is not a per-user event")

        recipients: set[str] = set()
        for channel in channels:
            recipients |= self.room_members(room_name(channel, user_id))

        message = HubMessage(event=kind, data=payload)
        scheduled = self._schedule(recipients, message)
        logger.debug(f"{kind.value} for {user_id.lower()} scheduled to {scheduled} clients")
        return scheduled

    def broadcast_system(self, payload: dict[str, Any]) -> int:
        """Schedule delivery of a system notification to every connection.

        Returns:
            Number of deliveries scheduled
        """
        message = HubMessage(event=EventType.SYSTEM_NOTIFICATION, data=payload)
        scheduled = self._schedule(set(self._connections), message)
        logger.info(f"System notification scheduled to {scheduled} clients")
        return scheduled

    def _schedule(self, connection_ids: set[str], message: HubMessage) -> int:
        count = 0
        for connection_id in connection_ids:
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            task = asyncio.create_task(self._deliver(connection, message))
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)
            count += 1
        return count

    async def _deliver(self, connection: Connection, message: HubMessage) -> None:
        if not await connection.send(message):
            await self.disconnect(connection.connection_id)

    async def drain(self) -> None:
        """Wait until every scheduled delivery has finished."""
        while self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    def get_stats(self) -> HubStats:
        """Get connection statistics."""
        connections = list(self._connections.values())
        return HubStats(
            total_connections=len(connections),
            authenticated_connections=sum(
                1 for c in connections if c.subscription.authenticated
            ),
            room_stats={room: len(members) for room, members in self._rooms.items()},
            pending_deliveries=len(self._deliveries),
        )
