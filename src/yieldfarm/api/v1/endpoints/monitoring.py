"""Monitor control endpoints."""

from fastapi import APIRouter

from yieldfarm.api.deps import Monitor, RateLimited
from yieldfarm.services.monitor import StopReceipt

router = APIRouter(prefix="/monitoring", tags=["Monitoring"], dependencies=[RateLimited])


@router.post("/stop/{transaction_id}", response_model=StopReceipt)
async def stop_monitoring(transaction_id: str, monitor: Monitor) -> StopReceipt:
    """Stop polling a transaction, leaving its stored status unchanged."""
    stopped = await monitor.stop_monitoring(transaction_id)
    return StopReceipt(
        transaction_id=transaction_id,
        stopped=stopped,
        message=(
            "Monitoring stopped"
            if stopped
            else "Transaction not found or not being monitored"
        ),
    )
