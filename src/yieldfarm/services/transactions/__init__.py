"""Transaction records, lifecycle rules and history queries."""

from yieldfarm.services.transactions.schemas import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    ConfirmationMeta,
    OperationType,
    Pagination,
    TransactionFilter,
    TransactionPage,
    TransactionRecord,
    TransactionStats,
    TransactionStatus,
    can_transition,
    generate_internal_id,
)

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "ConfirmationMeta",
    "OperationType",
    "Pagination",
    "TransactionFilter",
    "TransactionPage",
    "TransactionRecord",
    "TransactionStats",
    "TransactionStatus",
    "can_transition",
    "generate_internal_id",
]
