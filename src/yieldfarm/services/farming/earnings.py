"""Simulated yield computation."""

import logging
from decimal import ROUND_DOWN, Decimal

from yieldfarm.core.exceptions import ChainUnavailable, FarmingError
from yieldfarm.infrastructure.chain.client import ChainClient
from yieldfarm.infrastructure.chain.tokens import FARMING_PAIR

logger = logging.getLogger(__name__)

EARNINGS_PRECISION = Decimal("0.000001")


class EarningsCalculator:
    """Derives compoundable earnings as a fixed share of the LP balance."""

    def __init__(self, chain_client: ChainClient, rate: Decimal = Decimal("0.01")):
        self.chain_client = chain_client
        self.rate = rate

    async def lp_balance(self, user_address: str) -> Decimal:
        try:
            return await self.chain_client.get_token_balance(
                user_address, FARMING_PAIR.reward
            )
        except FarmingError:
            raise
        except Exception as e:
            logger.error(f"LP balance read for {user_address} failed: {e}")
            raise ChainUnavailable(
                "Unable to read LP token balance", details={"reason": str(e)}
            ) from e

    async def available_earnings(self, user_address: str) -> Decimal:
        """Earnings rounded down to 6 decimal places."""
        return self.earnings_for(await self.lp_balance(user_address))

    def earnings_for(self, balance: Decimal) -> Decimal:
        return (balance * self.rate).quantize(EARNINGS_PRECISION, rounding=ROUND_DOWN)
