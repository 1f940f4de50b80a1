"""Multi-chain balance snapshots and balance:update broadcasts."""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal

from pydantic import Field

from yieldfarm.core.exceptions import ChainUnavailable, FarmingError, UnsupportedChain
from yieldfarm.core.schemas import CamelModel
from yieldfarm.infrastructure.chain.client import ChainClient
from yieldfarm.infrastructure.chain.tokens import CHAINS, TOKENS, ChainConfig
from yieldfarm.services.notifications.hub import NotificationHub
from yieldfarm.services.notifications.schemas import EventType
from yieldfarm.services.transactions.schemas import utcnow

logger = logging.getLogger(__name__)


class TokenBalance(CamelModel):
    """Balance of one token."""

    symbol: str
    balance: Decimal
    address: str
    decimals: int
    is_native: bool = False


class ChainBalances(CamelModel):
    """Balances held on one chain."""

    chain: str
    chain_id: int
    tokens: list[TokenBalance]


class BalanceSnapshot(CamelModel):
    """Balances of a user across chains."""

    user_address: str
    chains: dict[str, ChainBalances]
    timestamp: datetime = Field(default_factory=utcnow)


class BalanceService:
    """Reads balances through the chain client and pushes updates."""

    def __init__(self, chain_client: ChainClient, hub: NotificationHub):
        self.chain_client = chain_client
        self.hub = hub

    def resolve_chain(self, chain: str) -> ChainConfig:
        config = CHAINS.get(chain.lower())
        if config is None:
            raise UnsupportedChain(chain, sorted(CHAINS))
        return config

    async def get_chain_balances(self, user_address: str, chain: str) -> ChainBalances:
        """Read every configured token balance on one chain.

        Args:
            user_address: Wallet address
            chain: Chain name

        Returns:
            Balances on that chain

        Raises:
            UnsupportedChain: If the chain is unknown
            ChainUnavailable: If a balance read fails
        """
        config = self.resolve_chain(chain)
        tokens = TOKENS[config.key]
        try:
            amounts = await asyncio.gather(
                *(
                    self.chain_client.get_native_balance(user_address, config.key)
                    if token.is_native
                    else self.chain_client.get_token_balance(user_address, token)
                    for token in tokens
                )
            )
        except FarmingError:
            raise
        except Exception as e:
            logger.error(f"Balance read on {config.key} for {user_address} failed: {e}")
            raise ChainUnavailable(
                f"Unable to read balances on {config.name}", details={"chain": config.key}
            ) from e

        return ChainBalances(
            chain=config.key,
            chain_id=config.chain_id,
            tokens=[
                TokenBalance(
                    symbol=token.symbol,
                    balance=amount,
                    address=token.address,
                    decimals=token.decimals,
                    is_native=token.is_native,
                )
                for token, amount in zip(tokens, amounts)
            ],
        )

    async def get_balances(
        self, user_address: str, chain: str | None = None
    ) -> BalanceSnapshot:
        """Read balances on one chain, or on all chains when ``chain`` is None or "all"."""
        if chain and chain.lower() != "all":
            keys = [self.resolve_chain(chain).key]
        else:
            keys = list(CHAINS)
        results = await asyncio.gather(
            *(self.get_chain_balances(user_address, key) for key in keys)
        )
        return BalanceSnapshot(
            user_address=user_address.lower(),
            chains={result.chain: result for result in results},
        )

    async def refresh(self, user_address: str) -> BalanceSnapshot:
        """Read fresh balances and push them to the user's balance room."""
        snapshot = await self.get_balances(user_address)
        delivered = self.hub.broadcast_to_user(
            snapshot.user_address,
            EventType.BALANCE_UPDATE,
            {
                "userId": snapshot.user_address,
                "balances": snapshot.model_dump(mode="json", by_alias=True)["chains"],
            },
        )
        logger.info(
            f"Balance update for {snapshot.user_address} scheduled to {delivered} clients"
        )
        return snapshot
