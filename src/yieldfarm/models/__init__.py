"""Database models for the farming backend."""

from yieldfarm.models.base import Base, TimestampMixin
from yieldfarm.models.transaction import FarmingTransaction

__all__ = [
    "Base",
    "TimestampMixin",
    "FarmingTransaction",
]
