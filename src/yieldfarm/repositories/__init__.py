"""Repository layer for transaction persistence."""

from yieldfarm.repositories.base import BaseRepository
from yieldfarm.repositories.memory import InMemoryTransactionRepository
from yieldfarm.repositories.transaction import (
    FarmingTransactionRepository,
    SqlTransactionRepository,
    TransactionRepository,
)

__all__ = [
    "BaseRepository",
    "FarmingTransactionRepository",
    "InMemoryTransactionRepository",
    "SqlTransactionRepository",
    "TransactionRepository",
]
