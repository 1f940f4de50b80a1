"""Transaction history, monitoring and lifecycle action endpoints."""

import logging

from fastapi import APIRouter, Query, status

from yieldfarm.api.deps import History, Monitor, Orchestrator, RateLimited
from yieldfarm.api.v1.endpoints.farming import ADDRESS_PATTERN
from yieldfarm.services.farming import RetryReceipt, TransactionActionCommand
from yieldfarm.services.monitor import MonitorStats
from yieldfarm.services.transactions import (
    OperationType,
    TransactionFilter,
    TransactionPage,
    TransactionRecord,
    TransactionStats,
    TransactionStatus,
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/transactions", tags=["Transactions"], dependencies=[RateLimited]
)


@router.get("", response_model=TransactionPage)
async def list_transactions(
    history: History,
    user_address: str | None = Query(
        None, alias="userAddress", pattern=ADDRESS_PATTERN, description="Filter by wallet"
    ),
    tx_status: TransactionStatus | None = Query(
        None, alias="status", description="Filter by status"
    ),
    operation_type: OperationType | None = Query(
        None, alias="type", description="Filter by operation type"
    ),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    offset: int = Query(0, ge=0, description="Records to skip"),
) -> TransactionPage:
    """List transactions, newest first."""
    filters = TransactionFilter(
        user_id=user_address, status=tx_status, operation_type=operation_type
    )
    return await history.list_transactions(filters, limit=limit, offset=offset)


@router.get("/stats", response_model=TransactionStats)
async def transaction_stats(
    history: History,
    user_address: str | None = Query(
        None, alias="userAddress", pattern=ADDRESS_PATTERN, description="Filter by wallet"
    ),
    days: int = Query(30, ge=1, le=365, description="Look-back period in days"),
) -> TransactionStats:
    """Aggregate counts, success rate and volume."""
    return await history.get_stats(user_address, days)


@router.get("/monitoring", response_model=MonitorStats)
async def monitoring_stats(monitor: Monitor) -> MonitorStats:
    """Statistics about transactions currently being monitored."""
    return monitor.get_stats()


@router.post(
    "/retry",
    response_model=RetryReceipt,
    status_code=status.HTTP_202_ACCEPTED,
)
async def retry_transaction(
    command: TransactionActionCommand, orchestrator: Orchestrator
) -> RetryReceipt:
    """Resubmit a failed transaction under a new id."""
    return await orchestrator.retry_transaction(command.transaction_id)


@router.post("/cancel", response_model=TransactionRecord)
async def cancel_transaction(
    command: TransactionActionCommand, monitor: Monitor
) -> TransactionRecord:
    """Cancel a pending transaction."""
    return await monitor.cancel(command.transaction_id)


@router.get("/{transaction_id}", response_model=TransactionRecord)
async def get_transaction(transaction_id: str, history: History) -> TransactionRecord:
    """Get a single transaction by its internal id."""
    return await history.get_transaction(transaction_id)
