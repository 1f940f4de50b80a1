"""WebSocket endpoint for real-time balance and transaction updates."""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from yieldfarm.api.deps import Hub, get_ws_container
from yieldfarm.core.container import ServiceContainer
from yieldfarm.services.notifications import (
    Channel,
    ClientEvent,
    ClientMessage,
    HubStats,
    NotificationHub,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])

SUBSCRIBE_EVENTS = {
    ClientEvent.SUBSCRIBE_BALANCES: Channel.BALANCES,
    ClientEvent.SUBSCRIBE_TRANSACTIONS: Channel.TRANSACTIONS,
}


@router.websocket("")
async def websocket_endpoint(
    websocket: WebSocket,
    container: ServiceContainer = Depends(get_ws_container),
):
    """WebSocket endpoint for real-time updates.

    Protocol:
    1. Client connects and receives ``connected`` with its socket id
    2. Client sends ``{"event": "subscribe:transactions", "data": "<userId>"}``
       (or ``subscribe:balances``) and receives ``subscribed``
    3. Server pushes ``transaction:update``, ``balance:update`` and
       ``user:notification`` events for that user
    4. Client may ``authenticate``, ``unsubscribe`` or ``ping`` at any time
    """
    hub = container.hub
    await websocket.accept()
    connection = await hub.connect(websocket)
    connection_id = connection.connection_id

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = ClientMessage.model_validate(json.loads(raw))
            except (json.JSONDecodeError, ValidationError):
                await hub.send_error(connection_id, "Invalid message format")
                continue
            await handle_client_message(hub, connection_id, message)
    except WebSocketDisconnect:
        logger.info(f"Client {connection_id} closed the connection")
    except Exception as e:
        logger.error(f"WebSocket error for {connection_id}: {e}")
    finally:
        await hub.disconnect(connection_id)


def _user_from(data: Any) -> str | None:
    if isinstance(data, dict):
        data = data.get("userId") or data.get("userAddress")
    return data if isinstance(data, str) and data else None


async def handle_client_message(
    hub: NotificationHub, connection_id: str, message: ClientMessage
) -> None:
    """Dispatch one client event to the hub.

    Args:
        hub: Notification hub
        connection_id: Sending connection
        message: Parsed client message
    """
    try:
        event = ClientEvent(message.event)
    except ValueError:
        await hub.send_error(connection_id, f"Unknown event: {message.event}")
        return

    if event in SUBSCRIBE_EVENTS:
        await hub.subscribe(connection_id, _user_from(message.data), SUBSCRIBE_EVENTS[event])

    elif event == ClientEvent.UNSUBSCRIBE:
        channel = None
        if message.data:
            try:
                channel = Channel(message.data)
            except ValueError:
                await hub.send_error(connection_id, f"Unknown channel: {message.data}")
                return
        await hub.unsubscribe(connection_id, channel)

    elif event == ClientEvent.AUTHENTICATE:
        data = message.data if isinstance(message.data, dict) else {}
        await hub.authenticate(
            connection_id,
            data.get("userAddress"),
            {"signature": data.get("signature"), "nonce": data.get("nonce")},
        )

    elif event == ClientEvent.PING:
        await hub.ping(connection_id)


@router.get("/stats", response_model=HubStats)
async def get_websocket_stats(hub: Hub) -> HubStats:
    """Get WebSocket connection statistics.

    Returns:
        Connection and room stats
    """
    return hub.get_stats()
