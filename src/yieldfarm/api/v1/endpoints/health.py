"""Health API endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from yieldfarm import __version__
from yieldfarm.api.deps import Container
from yieldfarm.services.transactions.schemas import utcnow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])


async def _chain_reachable(container: Container) -> bool:
    try:
        return await container.chain_client.health_check()
    except Exception as e:
        logger.warning(f"Chain health check failed: {e}")
        return False


@router.get("")
async def get_system_health(container: Container) -> dict[str, Any]:
    """Overall service health with component details.

    Returns:
        Health status, version and per-component state
    """
    chain_ok = await _chain_reachable(container)
    return {
        "status": "healthy" if chain_ok else "degraded",
        "version": __version__,
        "environment": container.settings.environment,
        "timestamp": utcnow().isoformat(),
        "components": {
            "chainClient": {
                "status": "healthy" if chain_ok else "unhealthy",
                "mode": container.settings.ff_chain_client,
            },
            "transactionStore": {"mode": container.settings.ff_transaction_store},
            "monitor": {"activeTransactions": container.monitor.active_count},
            "websocket": {"connections": container.hub.active_connections},
        },
    }


@router.get("/live")
async def liveness_check() -> dict[str, Any]:
    """Liveness probe endpoint.

    Returns:
        Simple alive status
    """
    return {"status": "alive"}


@router.get("/ready")
async def readiness_check(container: Container) -> dict[str, Any]:
    """Readiness probe endpoint.

    Returns:
        Ready status when the chain client answers
    """
    if not await _chain_reachable(container):
        raise HTTPException(503, "Service not ready")
    return {"status": "ready"}
