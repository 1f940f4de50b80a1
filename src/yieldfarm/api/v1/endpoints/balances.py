"""Balance endpoints."""

from fastapi import APIRouter, Query
from pydantic import Field

from yieldfarm.api.deps import Balances, RateLimited
from yieldfarm.api.v1.endpoints.farming import ADDRESS_PATTERN
from yieldfarm.core.schemas import CamelModel
from yieldfarm.services.balances import BalanceSnapshot, ChainBalances

router = APIRouter(prefix="/balances", tags=["Balances"], dependencies=[RateLimited])


class RefreshRequest(CamelModel):
    """Request to push fresh balances to a user's subscribers."""

    user_address: str = Field(..., pattern=ADDRESS_PATTERN, description="Wallet address")


@router.get("", response_model=BalanceSnapshot)
async def get_balances(
    service: Balances,
    user_address: str = Query(
        ..., alias="userAddress", pattern=ADDRESS_PATTERN, description="Wallet address"
    ),
    chain: str | None = Query(None, description="polygon, gnosis or all"),
) -> BalanceSnapshot:
    """Get token balances on one chain or across all chains."""
    return await service.get_balances(user_address.lower(), chain)


@router.post("/refresh", response_model=BalanceSnapshot)
async def refresh_balances(request: RefreshRequest, service: Balances) -> BalanceSnapshot:
    """Read fresh balances and broadcast ``balance:update`` to the user."""
    return await service.refresh(request.user_address.lower())


@router.get("/{chain}", response_model=ChainBalances)
async def get_chain_balances(
    chain: str,
    service: Balances,
    user_address: str = Query(
        ..., alias="userAddress", pattern=ADDRESS_PATTERN, description="Wallet address"
    ),
) -> ChainBalances:
    """Get token balances on a single chain."""
    return await service.get_chain_balances(user_address.lower(), chain)
