"""Operator endpoints for pushing to and closing WebSocket connections."""

import logging

from fastapi import APIRouter, Path

from yieldfarm.api.deps import Hub, RateLimited
from yieldfarm.api.v1.endpoints.farming import ADDRESS_PATTERN
from yieldfarm.services.notifications import BroadcastReceipt, SystemBroadcast

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/websocket", tags=["WebSocket"], dependencies=[RateLimited])


@router.post("/broadcast", response_model=BroadcastReceipt)
async def broadcast_system_notification(
    notification: SystemBroadcast, hub: Hub
) -> BroadcastReceipt:
    """Send a system notification to every open connection.

    Returns:
        Number of connections the notification was scheduled to
    """
    recipients = hub.broadcast_system(notification.model_dump(mode="json"))
    logger.info(f"System {notification.type.value} broadcast to {recipients} clients")
    return BroadcastReceipt(recipients=recipients)


@router.post("/disconnect/{user_address}", response_model=BroadcastReceipt)
async def disconnect_user(
    hub: Hub,
    user_address: str = Path(..., pattern=ADDRESS_PATTERN, description="Wallet address"),
) -> BroadcastReceipt:
    """Close every connection belonging to a wallet."""
    return BroadcastReceipt(recipients=await hub.disconnect_user(user_address))
