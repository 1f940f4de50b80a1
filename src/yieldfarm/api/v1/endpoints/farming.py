"""Farming operation endpoints: deposit, withdraw, compound, estimates."""

import logging

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from yieldfarm.api.deps import Orchestrator, RateLimited
from yieldfarm.services.farming import (
    CompoundCommand,
    CompoundSkipped,
    DepositCommand,
    EarningsSummary,
    EstimateCommand,
    GasEstimate,
    OperationReceipt,
    WithdrawCommand,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Farming"], dependencies=[RateLimited])

ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"


@router.post(
    "/deposit",
    response_model=OperationReceipt,
    status_code=status.HTTP_202_ACCEPTED,
)
async def deposit(command: DepositCommand, orchestrator: Orchestrator) -> OperationReceipt:
    """Deposit EURe on Polygon and receive LP tokens on Gnosis.

    The receipt is returned once the operation is submitted; progress is
    pushed over the WebSocket ``transactions`` channel.
    """
    logger.info(f"Deposit request: {command.amount} EURe from {command.user_address}")
    return await orchestrator.initiate_deposit(command)


@router.post(
    "/withdraw",
    response_model=OperationReceipt,
    status_code=status.HTTP_202_ACCEPTED,
)
async def withdraw(command: WithdrawCommand, orchestrator: Orchestrator) -> OperationReceipt:
    """Withdraw LP tokens on Gnosis and receive EURe on Polygon."""
    logger.info(f"Withdraw request: {command.amount} LP from {command.user_address}")
    return await orchestrator.initiate_withdraw(command)


@router.post(
    "/compound",
    response_model=OperationReceipt | CompoundSkipped,
    status_code=status.HTTP_202_ACCEPTED,
    responses={200: {"model": CompoundSkipped, "description": "Nothing to compound"}},
)
async def compound(command: CompoundCommand, orchestrator: Orchestrator):
    """Reinvest available earnings.

    Responds 200 with an informational message when earnings are below the
    minimum, otherwise 202 with the operation receipt.
    """
    result = await orchestrator.initiate_compound(command)
    if isinstance(result, CompoundSkipped):
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=result.model_dump(mode="json", by_alias=True),
        )
    return result


@router.post("/estimate", response_model=GasEstimate)
async def estimate(command: EstimateCommand, orchestrator: Orchestrator) -> GasEstimate:
    """Estimate the gas cost of an operation without submitting it."""
    return await orchestrator.estimate_cost(command.operation_type, command.amount)


@router.get("/earnings", response_model=EarningsSummary)
async def earnings(
    orchestrator: Orchestrator,
    user_address: str = Query(
        ..., alias="userAddress", pattern=ADDRESS_PATTERN, description="Wallet address"
    ),
) -> EarningsSummary:
    """Get compoundable earnings for a wallet."""
    return await orchestrator.get_earnings(user_address.lower())
