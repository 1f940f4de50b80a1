"""Entry point for user-initiated farming operations.

Validates a typed command, checks the balance precondition, submits the
operation to the chain client and hands the persisted record to the
monitor. Nothing is persisted or monitored unless submission succeeds.
"""

import logging
from decimal import Decimal
from typing import Any

from web3 import Web3

from yieldfarm.core.exceptions import (
    ChainUnavailable,
    FarmingError,
    InsufficientBalance,
    InvalidAmount,
    InvalidOperation,
    InvalidSlippage,
    InvalidTransactionState,
    SubmissionFailure,
    TransactionNotFound,
)
from yieldfarm.infrastructure.chain.client import ChainClient, SubmissionRequest
from yieldfarm.infrastructure.chain.tokens import FARMING_PAIR, ChainConfig, TokenConfig
from yieldfarm.repositories.transaction import TransactionRepository
from yieldfarm.services.farming.earnings import EarningsCalculator
from yieldfarm.services.farming.schemas import (
    CompoundCommand,
    CompoundSkipped,
    DepositCommand,
    EarningsSummary,
    FarmingLimits,
    GasEstimate,
    OperationReceipt,
    RetryReceipt,
    WithdrawCommand,
)
from yieldfarm.services.monitor.monitor import TransactionMonitor
from yieldfarm.services.notifications.hub import NotificationHub
from yieldfarm.services.notifications.schemas import EventType, NotificationLevel
from yieldfarm.services.transactions.schemas import (
    OperationType,
    TransactionRecord,
    TransactionStatus,
    generate_internal_id,
)

logger = logging.getLogger(__name__)

GAS_LIMITS: dict[OperationType, int] = {
    OperationType.DEPOSIT: 150_000,
    OperationType.WITHDRAW: 120_000,
    OperationType.COMPOUND: 200_000,
}
DEFAULT_GAS_LIMIT = 100_000


def _route(operation: OperationType) -> tuple[ChainConfig, ChainConfig, TokenConfig]:
    """Source chain, destination chain and spent token of an operation."""
    pair = FARMING_PAIR
    if operation == OperationType.DEPOSIT:
        return pair.source_chain, pair.reward_chain, pair.deposit
    if operation == OperationType.WITHDRAW:
        return pair.reward_chain, pair.source_chain, pair.reward
    return pair.reward_chain, pair.reward_chain, pair.reward


_INITIATED_TITLES = {
    OperationType.DEPOSIT: "Deposit Initiated",
    OperationType.WITHDRAW: "Withdrawal Initiated",
    OperationType.COMPOUND: "Auto-Compound Initiated",
}


class OperationOrchestrator:
    """Validates, submits and registers deposit, withdraw and compound operations."""

    def __init__(
        self,
        chain_client: ChainClient,
        repository: TransactionRepository,
        monitor: TransactionMonitor,
        hub: NotificationHub,
        earnings: EarningsCalculator,
        limits: FarmingLimits | None = None,
    ):
        """Initialize orchestrator.

        Args:
            chain_client: Balance reads and submission
            repository: Durable transaction records
            monitor: Lifecycle monitor for submitted operations
            hub: Notification fan-out
            earnings: Yield computation used by compound
            limits: Slippage bounds and compound threshold
        """
        self.chain_client = chain_client
        self.repository = repository
        self.monitor = monitor
        self.hub = hub
        self.earnings = earnings
        self.limits = limits if limits is not None else FarmingLimits()

    # Operations

    async def initiate_deposit(self, command: DepositCommand) -> OperationReceipt:
        """Deposit EURe on Polygon for LP tokens on Gnosis.

        Raises:
            InvalidAmount: If amount is not positive
            InvalidSlippage: If slippage is out of bounds
            InsufficientBalance: If the EURe balance does not cover amount
            SubmissionFailure: If the chain client rejects the operation
        """
        record = await self._execute(
            OperationType.DEPOSIT,
            command.user_address,
            command.amount,
            command.slippage,
        )
        return self._receipt(record)

    async def initiate_withdraw(self, command: WithdrawCommand) -> OperationReceipt:
        """Withdraw LP tokens on Gnosis for EURe on Polygon.

        Raises:
            InvalidAmount: If amount is not positive
            InvalidSlippage: If slippage is out of bounds
            InsufficientBalance: If the LP balance does not cover amount
            SubmissionFailure: If the chain client rejects the operation
        """
        record = await self._execute(
            OperationType.WITHDRAW,
            command.user_address,
            command.amount,
            command.slippage,
        )
        return self._receipt(record)

    async def initiate_compound(
        self, command: CompoundCommand
    ) -> OperationReceipt | CompoundSkipped:
        """Reinvest available earnings when they reach the threshold.

        Returns:
            A receipt, or CompoundSkipped when earnings are below the minimum
        """
        slippage = self._validate_slippage(command.slippage)
        earnings = await self.earnings.available_earnings(command.user_address)
        minimum = self.limits.min_compound_earnings

        if earnings < minimum:
            logger.info(
                f"No earnings to compound for {command.user_address}: "
                f"{earnings} < {minimum}"
            )
            return CompoundSkipped(
                available_earnings=earnings,
                minimum_required=minimum,
                user_address=command.user_address,
            )

        logger.info(f"Auto-compounding {earnings} for {command.user_address}")
        record = await self._submit(
            OperationType.COMPOUND,
            command.user_address,
            earnings,
            slippage,
            details={"type": "auto-compound", "originalEarnings": str(earnings)},
        )
        return self._receipt(record)

    async def estimate_cost(self, operation_type: str, amount: Decimal) -> GasEstimate:
        """Estimate gas and native-currency cost. Creates no transaction.

        Raises:
            InvalidOperation: If the operation type is unknown
            InvalidAmount: If amount is not positive
            ChainUnavailable: If the gas price cannot be read
        """
        operation = self._parse_operation(operation_type)
        amount = self._validate_amount(amount)
        source, _, _ = _route(operation)

        try:
            gas_price = await self.chain_client.get_gas_price(source.key)
        except FarmingError:
            raise
        except Exception as e:
            logger.error(f"Gas price read on {source.key} failed: {e}")
            raise ChainUnavailable(
                "Unable to read gas price", details={"chain": source.key}
            ) from e

        gas_limit = GAS_LIMITS.get(operation, DEFAULT_GAS_LIMIT)
        cost = Decimal(str(Web3.from_wei(gas_limit * gas_price, "ether")))
        return GasEstimate(
            operation=operation,
            amount=amount,
            chain=source.key,
            gas_limit=gas_limit,
            gas_price=gas_price,
            estimated_cost=cost,
            currency=source.native_symbol,
        )

    async def get_earnings(self, user_address: str) -> EarningsSummary:
        lp_balance = await self.earnings.lp_balance(user_address)
        earnings = self.earnings.earnings_for(lp_balance)
        return EarningsSummary(
            user_address=user_address.lower(),
            lp_balance=lp_balance,
            available_earnings=earnings,
            can_compound=earnings >= self.limits.min_compound_earnings,
            minimum_compound_amount=self.limits.min_compound_earnings,
        )

    async def retry_transaction(self, internal_id: str) -> RetryReceipt:
        """Resubmit a failed transaction under a new id.

        Raises:
            TransactionNotFound: If no record exists
            InvalidTransactionState: If the transaction has not failed
        """
        original = await self.repository.get(internal_id)
        if original is None:
            raise TransactionNotFound(internal_id)
        if original.status != TransactionStatus.FAILED:
            raise InvalidTransactionState(
                "Only failed transactions can be retried",
                current_status=original.status.value,
            )

        logger.info(
            f"Retrying {original.operation_type.value} {internal_id} "
            f"(attempt {original.retry_attempt + 1})"
        )
        record = await self._execute(
            original.operation_type,
            original.user_id,
            original.amount,
            original.slippage_tolerance,
            retry_of=original.internal_id,
            retry_attempt=original.retry_attempt + 1,
            details=dict(original.details),
        )
        return RetryReceipt(
            **self._receipt(record).model_dump(),
            retry_of=original.internal_id,
            retry_attempt=record.retry_attempt,
        )

    # Validation

    def _parse_operation(self, operation_type: str | OperationType) -> OperationType:
        if isinstance(operation_type, OperationType):
            return operation_type
        try:
            return OperationType(str(operation_type).lower())
        except ValueError:
            raise InvalidOperation(
                "Operation type must be one of: "
                + ", ".join(op.value for op in OperationType),
                details={"type": str(operation_type)},
            ) from None

    def _validate_amount(self, amount: Decimal | None) -> Decimal:
        if amount is None or not amount.is_finite() or amount <= 0:
            raise InvalidAmount(
                "Amount must be greater than 0",
                details={"amount": None if amount is None else str(amount)},
            )
        return amount

    def _validate_slippage(self, slippage: Decimal | None) -> Decimal:
        if slippage is None:
            return self.limits.default_slippage
        if not (self.limits.min_slippage <= slippage <= self.limits.max_slippage):
            raise InvalidSlippage(
                f"Slippage must be between {self.limits.min_slippage} "
                f"and {self.limits.max_slippage} percent",
                details={"slippage": str(slippage)},
            )
        return slippage

    async def _require_balance(
        self, user_address: str, token: TokenConfig, amount: Decimal
    ) -> None:
        try:
            balance = await self.chain_client.get_token_balance(user_address, token)
        except FarmingError:
            raise
        except Exception as e:
            logger.error(f"{token.symbol} balance read for {user_address} failed: {e}")
            raise ChainUnavailable(
                f"Unable to read {token.symbol} balance", details={"chain": token.chain}
            ) from e
        if balance < amount:
            raise InsufficientBalance(token.symbol, balance, amount)

    # Submission

    async def _execute(
        self,
        operation: OperationType,
        user_address: str,
        amount: Decimal | None,
        slippage: Decimal | None,
        **extra: Any,
    ) -> TransactionRecord:
        """Validate inputs and balance, then submit."""
        amount = self._validate_amount(amount)
        slippage = self._validate_slippage(slippage)
        if operation != OperationType.COMPOUND:
            _, _, token = _route(operation)
            await self._require_balance(user_address, token, amount)
        return await self._submit(operation, user_address, amount, slippage, **extra)

    async def _submit(
        self,
        operation: OperationType,
        user_address: str,
        amount: Decimal,
        slippage: Decimal,
        retry_of: str | None = None,
        retry_attempt: int = 0,
        details: dict[str, Any] | None = None,
    ) -> TransactionRecord:
        source, destination, token = _route(operation)
        request = SubmissionRequest(
            operation_type=operation,
            user_id=user_address.lower(),
            amount=amount,
            slippage=slippage,
            source_chain=source.key,
            destination_chain=destination.key,
            token_symbol=token.symbol,
        )

        try:
            chain_tx_ref = await self.chain_client.submit_operation(request)
        except Exception as e:
            logger.error(f"{operation.value} submission for {user_address} failed: {e}")
            raise SubmissionFailure(
                f"Failed to submit {operation.value} operation",
                details={"reason": str(e)},
            ) from e

        record = TransactionRecord(
            internal_id=generate_internal_id("retry" if retry_of else "tx"),
            chain_tx_ref=chain_tx_ref,
            user_id=user_address,
            operation_type=operation,
            amount=amount,
            token_symbol=token.symbol,
            source_chain=source.key,
            destination_chain=destination.key,
            slippage_tolerance=slippage,
            status=TransactionStatus.MONITORING,
            retry_of=retry_of,
            retry_attempt=retry_attempt,
            details={
                **(details or {}),
                "amount": str(amount),
                "slippage": str(slippage),
                "fromChain": source.key,
                "toChain": destination.key,
                "token": token.symbol,
            },
        )
        record = await self.repository.save(record)
        await self.monitor.start_monitoring(record)

        logger.info(
            f"{operation.value} {record.internal_id} initiated: tx={chain_tx_ref} "
            f"amount={amount} user={record.user_id}"
        )
        self.hub.broadcast_to_user(
            record.user_id,
            EventType.USER_NOTIFICATION,
            {
                "userId": record.user_id,
                "type": NotificationLevel.INFO.value,
                "title": _INITIATED_TITLES[operation],
                "message": (
                    f"{operation.value.capitalize()} of {amount} {token.symbol} "
                    "has been initiated"
                ),
                "txId": record.internal_id,
                "txHash": chain_tx_ref,
            },
        )
        return record

    @staticmethod
    def _receipt(record: TransactionRecord) -> OperationReceipt:
        return OperationReceipt(
            internal_id=record.internal_id,
            chain_tx_ref=record.chain_tx_ref or "",
            operation_type=record.operation_type,
            amount=record.amount,
            slippage=record.slippage_tolerance,
            token_symbol=record.token_symbol,
            source_chain=record.source_chain,
            destination_chain=record.destination_chain,
            user_address=record.user_id,
        )
