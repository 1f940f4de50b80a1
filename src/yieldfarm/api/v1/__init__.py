"""API v1 module."""

from fastapi import APIRouter

from yieldfarm.api.v1.endpoints import (
    auth,
    balances,
    broadcast,
    farming,
    health,
    monitoring,
    transactions,
    websocket,
)

api_router = APIRouter()

# Include routers
api_router.include_router(farming.router)
api_router.include_router(balances.router)
api_router.include_router(transactions.router)
api_router.include_router(monitoring.router)
api_router.include_router(auth.router)
api_router.include_router(health.router)
api_router.include_router(websocket.router)
api_router.include_router(broadcast.router)
