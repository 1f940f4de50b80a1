"""Commands and results of farming operations."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from web3 import Web3

from yieldfarm.core.config import Settings
from yieldfarm.core.schemas import CamelModel
from yieldfarm.services.transactions.schemas import OperationType, utcnow

ESTIMATED_COMPLETION_TIME = "2-5 minutes"


def _normalize_address(value: str) -> str:
    if not Web3.is_address(value):
        raise ValueError("Invalid Ethereum address format")
    return value.lower()


class FarmingLimits(BaseModel):
    """Bounds applied to user operations."""

    min_slippage: Decimal = Decimal("0.1")
    max_slippage: Decimal = Decimal("5")
    default_slippage: Decimal = Decimal("0.5")
    min_compound_earnings: Decimal = Decimal("0.01")

    @classmethod
    def from_settings(cls, settings: Settings) -> "FarmingLimits":
        return cls(
            min_slippage=settings.min_slippage,
            max_slippage=settings.max_slippage,
            default_slippage=settings.default_slippage,
            min_compound_earnings=settings.min_compound_earnings,
        )


# Commands


class FarmingCommand(CamelModel):
    """Fields common to every user operation."""

    user_address: str = Field(..., description="Wallet address of the user")
    slippage: Decimal | None = Field(
        None, description="Slippage tolerance in percent (default 0.5)"
    )

    @field_validator("user_address")
    @classmethod
    def validate_address(cls, value: str) -> str:
        return _normalize_address(value)


class DepositCommand(FarmingCommand):
    """Deposit EURe on Polygon for LP tokens on Gnosis."""

    amount: Decimal = Field(..., description="Amount of EURe to deposit")


class WithdrawCommand(FarmingCommand):
    """Withdraw LP tokens on Gnosis for EURe on Polygon."""

    amount: Decimal = Field(..., description="Amount of LP tokens to withdraw")


class CompoundCommand(FarmingCommand):
    """Reinvest available earnings."""


class EstimateCommand(CamelModel):
    """Gas estimate request."""

    operation_type: str = Field(..., alias="type", description="deposit, withdraw or compound")
    amount: Decimal = Field(..., description="Operation amount")
    user_address: str | None = Field(None, description="Wallet address of the user")

    @field_validator("user_address")
    @classmethod
    def validate_address(cls, value: str | None) -> str | None:
        return _normalize_address(value) if value else value


class TransactionActionCommand(CamelModel):
    """Retry or cancel request for an existing transaction."""

    transaction_id: str = Field(..., min_length=1, description="Internal transaction ID")


# Results


class OperationReceipt(CamelModel):
    """Acknowledgement of a submitted operation."""

    internal_id: str = Field(..., description="Internal transaction ID")
    chain_tx_ref: str = Field(..., description="Transaction hash")
    status: Literal["initiated"] = "initiated"
    operation_type: OperationType
    amount: Decimal
    slippage: Decimal
    token_symbol: str
    source_chain: str
    destination_chain: str
    user_address: str
    estimated_completion_time: str = ESTIMATED_COMPLETION_TIME
    timestamp: datetime = Field(default_factory=utcnow)


class RetryReceipt(OperationReceipt):
    """Acknowledgement of a manual retry."""

    retry_of: str = Field(..., description="ID of the failed transaction")
    retry_attempt: int = Field(..., ge=1)


class CompoundSkipped(CamelModel):
    """Informational result when earnings are below the compound threshold."""

    message: str = "No earnings available to compound"
    available_earnings: Decimal
    minimum_required: Decimal
    user_address: str
    timestamp: datetime = Field(default_factory=utcnow)


class GasEstimate(CamelModel):
    """Gas and native-currency cost of an operation."""

    operation: OperationType
    amount: Decimal
    chain: str
    gas_limit: int
    gas_price: int = Field(..., description="Gas price in wei")
    estimated_cost: Decimal = Field(..., description="Cost in native currency")
    currency: str
    timestamp: datetime = Field(default_factory=utcnow)


class EarningsSummary(CamelModel):
    """Compoundable earnings of a user."""

    user_address: str
    lp_balance: Decimal
    available_earnings: Decimal
    can_compound: bool
    minimum_compound_amount: Decimal
    timestamp: datetime = Field(default_factory=utcnow)
