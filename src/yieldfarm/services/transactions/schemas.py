"""Transaction record schemas and lifecycle rules."""

import secrets
import string
import time
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from yieldfarm.core.schemas import CamelModel


class OperationType(str, Enum):
    """User-initiated farming operation."""

    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    COMPOUND = "compound"


class TransactionStatus(str, Enum):
    """Lifecycle status of a monitored transaction."""

    MONITORING = "monitoring"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether no further automatic transition can occur."""
        return self in TERMINAL_STATUSES

    @property
    def rank(self) -> int:
        """Position in the monotonic lifecycle ordering."""
        return _STATUS_RANK[self]


TERMINAL_STATUSES = frozenset(
    {
        TransactionStatus.COMPLETED,
        TransactionStatus.FAILED,
        TransactionStatus.TIMEOUT,
        TransactionStatus.CANCELLED,
    }
)

ACTIVE_STATUSES = frozenset({TransactionStatus.MONITORING, TransactionStatus.PENDING})

_STATUS_RANK = {
    TransactionStatus.MONITORING: 0,
    TransactionStatus.PENDING: 1,
    TransactionStatus.COMPLETED: 2,
    TransactionStatus.FAILED: 2,
    TransactionStatus.TIMEOUT: 2,
    TransactionStatus.CANCELLED: 2,
}

ALLOWED_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.MONITORING: frozenset(
        {
            TransactionStatus.PENDING,
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.TIMEOUT,
        }
    ),
    TransactionStatus.PENDING: frozenset(
        {
            TransactionStatus.PENDING,
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.TIMEOUT,
            TransactionStatus.CANCELLED,
        }
    ),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.TIMEOUT: frozenset(),
    TransactionStatus.CANCELLED: frozenset(),
}


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    """Check whether ``current -> target`` is a legal lifecycle step."""
    return target in ALLOWED_TRANSITIONS[current]


_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_internal_id(prefix: str = "tx") -> str:
    """Generate an opaque transaction id such as ``tx_1718000000000_k3j9x0a2b``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConfirmationMeta(CamelModel):
    """Chain confirmation details captured on completion."""

    gas_used: int | None = Field(None, description="Gas consumed")
    block_number: int | None = Field(None, description="Inclusion block")
    confirmations: int = Field(default=0, ge=0, description="Confirmation count")
    confirmed_at: datetime | None = Field(None, description="Confirmation time")


class TransactionRecord(CamelModel):
    """One user-initiated farming operation and its monitoring state."""

    internal_id: str = Field(default_factory=generate_internal_id)
    chain_tx_ref: str | None = Field(None, description="External transaction hash")
    user_id: str = Field(..., description="Owning wallet address (lower-case)")
    operation_type: OperationType
    amount: Decimal = Field(..., description="Operation amount in token units")
    token_symbol: str
    source_chain: str
    destination_chain: str
    slippage_tolerance: Decimal

    status: TransactionStatus = TransactionStatus.MONITORING
    retry_count: int = Field(default=0, ge=0)
    last_checked_at: datetime | None = None
    error_detail: str | None = None
    confirmation: ConfirmationMeta | None = None

    created_at: datetime = Field(default_factory=utcnow)
    started_monitoring_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    duration_seconds: float | None = None

    retry_of: str | None = Field(None, description="Original id when this is a manual retry")
    retry_attempt: int = Field(default=0, ge=0)
    details: dict[str, Any] = Field(default_factory=dict)

    @field_validator("user_id")
    @classmethod
    def normalize_user(cls, value: str) -> str:
        return value.lower()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class TransactionFilter(CamelModel):
    """Filters for transaction history queries."""

    user_id: str | None = None
    status: TransactionStatus | None = None
    operation_type: OperationType | None = None

    @field_validator("user_id")
    @classmethod
    def normalize_user(cls, value: str | None) -> str | None:
        return value.lower() if value else value


class Pagination(CamelModel):
    """Pagination metadata for list responses."""

    limit: int
    offset: int
    total: int
    has_more: bool


class TransactionPage(CamelModel):
    """Paginated transaction history."""

    transactions: list[TransactionRecord]
    pagination: Pagination
    filters: TransactionFilter


class TransactionStats(CamelModel):
    """Aggregate history statistics for one user."""

    user_id: str | None
    period_days: int
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    success_rate: float
    total_volume: Decimal
    average_amount: Decimal
