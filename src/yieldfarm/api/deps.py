"""FastAPI dependencies resolving components from the app container."""

from typing import Annotated

from fastapi import Depends, Request, Response, WebSocket

from yieldfarm.core.container import ServiceContainer
from yieldfarm.services.auth import WalletAuthService
from yieldfarm.services.balances import BalanceService
from yieldfarm.services.farming import OperationOrchestrator
from yieldfarm.services.monitor import TransactionMonitor
from yieldfarm.services.notifications import NotificationHub
from yieldfarm.services.transactions.service import TransactionHistoryService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_ws_container(websocket: WebSocket) -> ServiceContainer:
    return websocket.app.state.container


Container = Annotated[ServiceContainer, Depends(get_container)]


def get_orchestrator(container: Container) -> OperationOrchestrator:
    return container.orchestrator


def get_history(container: Container) -> TransactionHistoryService:
    return container.history


def get_monitor(container: Container) -> TransactionMonitor:
    return container.monitor


def get_balances(container: Container) -> BalanceService:
    return container.balances


def get_hub(container: Container) -> NotificationHub:
    return container.hub


def get_auth_service(container: Container) -> WalletAuthService:
    return container.auth_service


def client_key(request: Request) -> str:
    """Identify the caller for rate limiting."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(
    request: Request, response: Response, container: Container
) -> None:
    """Reject the request when its client exceeded the configured rate.

    Raises:
        RateLimitExceeded: If any window is full
    """
    key = client_key(request)
    result = container.rate_limiter.enforce(key)
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)


Orchestrator = Annotated[OperationOrchestrator, Depends(get_orchestrator)]
History = Annotated[TransactionHistoryService, Depends(get_history)]
Monitor = Annotated[TransactionMonitor, Depends(get_monitor)]
Balances = Annotated[BalanceService, Depends(get_balances)]
Hub = Annotated[NotificationHub, Depends(get_hub)]
AuthService = Annotated[WalletAuthService, Depends(get_auth_service)]
RateLimited = Depends(enforce_rate_limit)
