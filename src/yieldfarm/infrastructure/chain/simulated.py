"""Simulated chain client.

Submissions return random transaction hashes and status polls draw random
outcomes. Balances are tracked in memory and move when an operation is
reported completed, so a completed deposit is visible in the next balance
read.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from decimal import Decimal

from yieldfarm.infrastructure.chain.client import (
    ChainClient,
    PollResult,
    SubmissionRequest,
)
from yieldfarm.infrastructure.chain.tokens import (
    CHAINS,
    FARMING_PAIR,
    GNOSIS,
    POLYGON,
    TokenConfig,
)
from yieldfarm.services.transactions.schemas import (
    ConfirmationMeta,
    OperationType,
    utcnow,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Typical gas prices in wei
_GAS_PRICES = {
    POLYGON.key: 30_000_000_000,
    GNOSIS.key: 2_000_000_000,
}

_NATIVE_BALANCE = Decimal("10")


class SimulatedChainClient(ChainClient):
    """Chain client with random outcomes and in-memory balances."""

    def __init__(
        self,
        success_rate: float = 0.7,
        failure_rate: float = 0.1,
        latency_seconds: float = 1.0,
        initial_balance: Decimal = Decimal("1000"),
        seed: int | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize simulated client.

        Args:
            success_rate: Probability that a poll reports completion
            failure_rate: Probability that a poll reports failure
            latency_seconds: Delay applied to submissions
            initial_balance: EURe balance credited to unseen wallets
            seed: Seed for reproducible outcomes
            sleep: Coroutine used for simulated latency
        """
        if success_rate + failure_rate > 1:
            raise ValueError("success_rate + failure_rate must not exceed 1")
        self.success_rate = success_rate
        self.failure_rate = failure_rate
        self.latency_seconds = latency_seconds
        self.initial_balance = initial_balance
        self._rng = random.Random(seed)
        self._sleep = sleep
        self._balances: dict[tuple[str, str], Decimal] = {}
        self._submitted: dict[str, SubmissionRequest] = {}

    def _default_balance(self, symbol: str) -> Decimal:
        if symbol == FARMING_PAIR.deposit.symbol:
            return self.initial_balance
        if symbol in {chain.native_symbol for chain in CHAINS.values()}:
            return _NATIVE_BALANCE
        return Decimal("0")

    def _balance(self, address: str, symbol: str) -> Decimal:
        key = (address.lower(), symbol)
        if key not in self._balances:
            self._balances[key] = self._default_balance(symbol)
        return self._balances[key]

    def set_balance(self, address: str, symbol: str, amount: Decimal) -> None:
        """Overwrite a simulated balance."""
        self._balances[(address.lower(), symbol)] = Decimal(amount)

    async def get_token_balance(self, address: str, token: TokenConfig) -> Decimal:
        return self._balance(address, token.symbol)

    async def get_native_balance(self, address: str, chain: str) -> Decimal:
        return self._balance(address, CHAINS[chain].native_symbol)

    async def get_gas_price(self, chain: str) -> int:
        return _GAS_PRICES[chain]

    def _random_hash(self) -> str:
        return "0x" + format(self._rng.getrandbits(256), "064x")

    async def submit_operation(self, request: SubmissionRequest) -> str:
        if self.latency_seconds:
            await self._sleep(self.latency_seconds)
        tx_hash = self._random_hash()
        self._submitted[tx_hash] = request
        logger.info(
            f"Simulated {request.operation_type.value} submitted: {tx_hash} "
            f"amount={request.amount} user={request.user_id}"
        )
        return tx_hash

    async def get_operation_status(self, chain_tx_ref: str) -> PollResult:
        roll = self._rng.random()
        if roll < self.success_rate:
            self._apply_completion(chain_tx_ref)
            return PollResult.completed(
                ConfirmationMeta(
                    gas_used=self._rng.randint(120_000, 220_000),
                    block_number=self._rng.randint(40_000_000, 41_000_000),
                    confirmations=12,
                    confirmed_at=utcnow(),
                )
            )
        if roll < self.success_rate + self.failure_rate:
            self._submitted.pop(chain_tx_ref, None)
            return PollResult.failed("Cross-chain execution reverted")
        return PollResult.still_pending()

    def _apply_completion(self, chain_tx_ref: str) -> None:
        request = self._submitted.pop(chain_tx_ref, None)
        if request is None:
            return
        user = request.user_id
        deposit = FARMING_PAIR.deposit.symbol
        reward = FARMING_PAIR.reward.symbol
        if request.operation_type == OperationType.DEPOSIT:
            self.set_balance(user, deposit, self._balance(user, deposit) - request.amount)
            self.set_balance(user, reward, self._balance(user, reward) + request.amount)
        elif request.operation_type == OperationType.WITHDRAW:
            self.set_balance(user, reward, self._balance(user, reward) - request.amount)
            self.set_balance(user, deposit, self._balance(user, deposit) + request.amount)
        else:
            self.set_balance(user, reward, self._balance(user, reward) + request.amount)
