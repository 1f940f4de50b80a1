"""Domain error taxonomy.

Every error raised to a caller of the farming API derives from
``FarmingError``. The HTTP layer maps ``kind`` and ``status_code`` onto the
JSON error envelope; nothing below the API imports FastAPI.
"""

from decimal import Decimal
from typing import Any


class FarmingError(Exception):
    """Base class for errors surfaced to API callers."""

    kind: str = "FarmingError"
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidAmount(FarmingError):
    """Amount is missing, non-numeric or not strictly positive."""

    kind = "InvalidAmount"
    status_code = 400


class InvalidOperation(FarmingError):
    """Operation type is not one of deposit, withdraw, compound."""

    kind = "InvalidOperation"
    status_code = 400


class InvalidSlippage(FarmingError):
    """Slippage tolerance outside the configured bounds."""

    kind = "InvalidSlippage"
    status_code = 400


class InsufficientBalance(FarmingError):
    """User balance does not cover the requested amount."""

    kind = "InsufficientBalance"
    status_code = 400

    def __init__(self, token: str, available: Decimal, required: Decimal):
        super().__init__(
            f"Insufficient {token} balance. Available: {available}, Required: {required}",
            details={
                "token": token,
                "available": str(available),
                "required": str(required),
            },
        )
        self.available = available
        self.required = required


class SubmissionFailure(FarmingError):
    """The chain client rejected or failed to submit an operation."""

    kind = "SubmissionFailure"
    status_code = 500


class ChainUnavailable(FarmingError):
    """A chain read failed because the upstream node is unreachable."""

    kind = "ServiceUnavailable"
    status_code = 503


class TransactionNotFound(FarmingError):
    """No transaction record exists for the given id."""

    kind = "TransactionNotFound"
    status_code = 404

    def __init__(self, internal_id: str):
        super().__init__(f"Transaction with ID {internal_id} not found")
        self.internal_id = internal_id


class InvalidTransactionState(FarmingError):
    """The requested action is not permitted in the record's current status."""

    kind = "InvalidTransactionState"
    status_code = 400

    def __init__(self, message: str, current_status: str):
        super().__init__(message, details={"currentStatus": current_status})
        self.current_status = current_status


class RateLimitExceeded(FarmingError):
    """Caller exceeded the configured request rate."""

    kind = "TooManyRequests"
    status_code = 429

    def __init__(self, retry_after: float, limit: int | None = None, remaining: int = 0):
        super().__init__(
            "You have exceeded the rate limit. Please try again later.",
            details={"retryAfter": round(retry_after, 1)},
        )
        self.retry_after = retry_after
        self.limit = limit
        self.remaining = remaining


class UnsupportedChain(FarmingError):
    """Chain name is not one of the configured networks."""

    kind = "UnsupportedChain"
    status_code = 400

    def __init__(self, chain: str, supported: list[str]):
        super().__init__(
            f"Unsupported chain: {chain}. Supported chains: {', '.join(supported)}",
            details={"chain": chain, "supported": supported},
        )
