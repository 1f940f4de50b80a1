"""Deposit, withdraw and compound operations."""

from yieldfarm.services.farming.earnings import EarningsCalculator
from yieldfarm.services.farming.orchestrator import (
    DEFAULT_GAS_LIMIT,
    GAS_LIMITS,
    OperationOrchestrator,
)
from yieldfarm.services.farming.schemas import (
    CompoundCommand,
    CompoundSkipped,
    DepositCommand,
    EarningsSummary,
    EstimateCommand,
    FarmingLimits,
    GasEstimate,
    OperationReceipt,
    RetryReceipt,
    TransactionActionCommand,
    WithdrawCommand,
)

__all__ = [
    # Services
    "EarningsCalculator",
    "OperationOrchestrator",
    "GAS_LIMITS",
    "DEFAULT_GAS_LIMIT",
    # Schemas
    "CompoundCommand",
    "CompoundSkipped",
    "DepositCommand",
    "EarningsSummary",
    "EstimateCommand",
    "FarmingLimits",
    "GasEstimate",
    "OperationReceipt",
    "RetryReceipt",
    "TransactionActionCommand",
    "WithdrawCommand",
]
