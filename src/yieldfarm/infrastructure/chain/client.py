"""Chain client interface consumed by the orchestrator and monitor."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from yieldfarm.infrastructure.chain.tokens import TokenConfig
from yieldfarm.services.transactions.schemas import ConfirmationMeta, OperationType


class PollOutcome(str, Enum):
    """Result category of a single status check."""

    COMPLETED = "completed"
    FAILED = "failed"
    STILL_PENDING = "still_pending"


@dataclass(frozen=True)
class PollResult:
    """Outcome of one status poll for a submitted operation."""

    outcome: PollOutcome
    confirmation: ConfirmationMeta | None = None
    error: str | None = None

    @classmethod
    def completed(cls, confirmation: ConfirmationMeta) -> "PollResult":
        return cls(outcome=PollOutcome.COMPLETED, confirmation=confirmation)

    @classmethod
    def failed(cls, error: str) -> "PollResult":
        return cls(outcome=PollOutcome.FAILED, error=error)

    @classmethod
    def still_pending(cls) -> "PollResult":
        return cls(outcome=PollOutcome.STILL_PENDING)


@dataclass(frozen=True)
class SubmissionRequest:
    """Parameters of an operation handed to the chain for execution."""

    operation_type: OperationType
    user_id: str
    amount: Decimal
    slippage: Decimal
    source_chain: str
    destination_chain: str
    token_symbol: str


class ChainClient(ABC):
    """Abstract base class for chain access.

    Implementations either talk to real nodes or simulate the network.
    Any method may raise; callers decide how a failure is classified.
    """

    @abstractmethod
    async def get_token_balance(self, address: str, token: TokenConfig) -> Decimal:
        """Get an ERC20 balance in token units."""
        ...

    @abstractmethod
    async def get_native_balance(self, address: str, chain: str) -> Decimal:
        """Get the native currency balance in whole units."""
        ...

    @abstractmethod
    async def get_gas_price(self, chain: str) -> int:
        """Get the current gas price in wei."""
        ...

    @abstractmethod
    async def submit_operation(self, request: SubmissionRequest) -> str:
        """Submit an operation and return its chain reference (tx hash)."""
        ...

    @abstractmethod
    async def get_operation_status(self, chain_tx_ref: str) -> PollResult:
        """Check the status of a previously submitted operation."""
        ...

    async def health_check(self) -> bool:
        """Check whether the chain backend is reachable."""
        return True
