"""Wallet sign-in challenge endpoint."""

from fastapi import APIRouter, Query

from yieldfarm.api.deps import AuthService, RateLimited
from yieldfarm.api.v1.endpoints.farming import ADDRESS_PATTERN
from yieldfarm.services.auth import SignInChallenge

router = APIRouter(prefix="/auth", tags=["Authentication"], dependencies=[RateLimited])


@router.get("/nonce", response_model=SignInChallenge)
async def get_nonce(
    auth_service: AuthService,
    user_address: str = Query(
        ..., alias="userAddress", pattern=ADDRESS_PATTERN, description="Wallet address"
    ),
) -> SignInChallenge:
    """Get a one-time message to sign for WebSocket authentication.

    The wallet signs ``message`` and sends ``{userAddress, signature, nonce}``
    with the ``authenticate`` event.
    """
    return auth_service.issue_challenge(user_address)
