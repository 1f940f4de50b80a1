"""JSON-RPC chain client with multi-endpoint failover.

Balance and gas reads go to real nodes. Submission and status polling stay
simulated: operations are never signed or broadcast.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from decimal import Decimal
from typing import Any, TypeVar

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3RPCError
from web3.middleware import ExtraDataToPOAMiddleware

from yieldfarm.core.exceptions import ChainUnavailable
from yieldfarm.infrastructure.chain.simulated import SimulatedChainClient
from yieldfarm.infrastructure.chain.tokens import ERC20_BALANCE_ABI, TokenConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RpcEndpointPool:
    """Ordered RPC endpoints for one chain with sticky failover."""

    def __init__(
        self,
        chain: str,
        rpc_urls: list[str],
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """Initialize endpoint pool.

        Args:
            chain: Chain key used in log messages
            rpc_urls: Primary endpoint followed by backups
            max_retries: Attempts per endpoint before moving on
            retry_delay: Base delay between attempts in seconds
        """
        if not rpc_urls:
            raise ValueError(f"No RPC endpoints configured for {chain}")
        self.chain = chain
        self.rpc_urls = rpc_urls
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._current_rpc_index = 0
        self._web3: dict[int, AsyncWeb3] = {}

    def _get_web3(self, rpc_index: int) -> AsyncWeb3:
        if rpc_index not in self._web3:
            w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_urls[rpc_index]))
            # Polygon and Gnosis blocks carry POA extraData
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
            self._web3[rpc_index] = w3
        return self._web3[rpc_index]

    async def execute(self, operation: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        """Run an operation against the endpoints until one succeeds.

        Args:
            operation: Coroutine function receiving an AsyncWeb3 instance

        Returns:
            Result of the first successful call

        Raises:
            ChainUnavailable: If every endpoint fails
        """
        last_error: Exception | None = None

        for rpc_offset in range(len(self.rpc_urls)):
            rpc_index = (self._current_rpc_index + rpc_offset) % len(self.rpc_urls)
            web3 = self._get_web3(rpc_index)

            for attempt in range(self.max_retries):
                try:
                    result = await operation(web3)
                    self._current_rpc_index = rpc_index
                    return result
                except Web3RPCError as e:
                    last_error = e
                    logger.warning(
                        f"{self.chain} RPC {self.rpc_urls[rpc_index]} failed "
                        f"(attempt {attempt + 1}): {e}"
                    )
                except Exception as e:
                    last_error = e
                    logger.warning(
                        f"{self.chain} RPC {self.rpc_urls[rpc_index]} error "
                        f"(attempt {attempt + 1}): {e}"
                    )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (attempt + 1))

            logger.warning(
                f"Switching {self.chain} from RPC {self.rpc_urls[rpc_index]} to next backup"
            )

        raise ChainUnavailable(
            f"{self.chain} RPC unavailable",
            details={"chain": self.chain, "lastError": str(last_error)},
        )


class RpcChainClient(SimulatedChainClient):
    """Chain client reading balances and gas prices from real nodes."""

    def __init__(
        self,
        rpc_urls: dict[str, list[str]],
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **simulation: Any,
    ):
        """Initialize RPC client.

        Args:
            rpc_urls: Endpoints per chain key, primary first
            max_retries: Attempts per endpoint
            retry_delay: Base delay between attempts in seconds
            **simulation: Options for the simulated submission path
        """
        super().__init__(**simulation)
        self._pools = {
            chain: RpcEndpointPool(chain, urls, max_retries, retry_delay)
            for chain, urls in rpc_urls.items()
        }

    def _pool(self, chain: str) -> RpcEndpointPool:
        try:
            return self._pools[chain]
        except KeyError:
            raise ChainUnavailable(f"No RPC configured for chain {chain}") from None

    async def get_token_balance(self, address: str, token: TokenConfig) -> Decimal:
        owner = Web3.to_checksum_address(address)
        contract_address = Web3.to_checksum_address(token.address)

        async def _balance_of(w3: AsyncWeb3) -> int:
            contract = w3.eth.contract(address=contract_address, abi=ERC20_BALANCE_ABI)
            return await contract.functions.balanceOf(owner).call()

        raw = await self._pool(token.chain).execute(_balance_of)
        return token.to_units(raw)

    async def get_native_balance(self, address: str, chain: str) -> Decimal:
        owner = Web3.to_checksum_address(address)

        async def _get_balance(w3: AsyncWeb3) -> int:
            return await w3.eth.get_balance(owner)

        raw = await self._pool(chain).execute(_get_balance)
        return Decimal(Web3.from_wei(raw, "ether"))

    async def get_gas_price(self, chain: str) -> int:
        async def _gas_price(w3: AsyncWeb3) -> int:
            return await w3.eth.gas_price

        return int(await self._pool(chain).execute(_gas_price))

    async def health_check(self) -> bool:
        async def _block_number(w3: AsyncWeb3) -> int:
            return await w3.eth.block_number

        try:
            for pool in self._pools.values():
                if await pool.execute(_block_number) <= 0:
                    return False
            return True
        except ChainUnavailable:
            return False
