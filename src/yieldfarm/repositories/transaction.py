"""Repositories for farming transaction records."""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from sqlalchemy import and_, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from yieldfarm.models.transaction import FarmingTransaction
from yieldfarm.repositories.base import BaseRepository
from yieldfarm.services.transactions.schemas import (
    ACTIVE_STATUSES,
    ConfirmationMeta,
    TransactionFilter,
    TransactionRecord,
    utcnow,
)


class TransactionRepository(ABC):
    """Durable storage for transaction records.

    Records are never deleted; terminal records stay queryable as history.
    """

    @abstractmethod
    async def save(self, record: TransactionRecord) -> TransactionRecord:
        """Insert a new record."""
        ...

    @abstractmethod
    async def get(self, internal_id: str) -> TransactionRecord | None:
        """Get a record by internal id."""
        ...

    @abstractmethod
    async def update(
        self, internal_id: str, changes: dict[str, Any]
    ) -> TransactionRecord | None:
        """Apply field changes to a record and return the updated copy."""
        ...

    @abstractmethod
    async def find(
        self,
        filters: TransactionFilter,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[TransactionRecord], int]:
        """Page through records newest first. Returns (page, total matches)."""
        ...

    @abstractmethod
    async def find_active(
        self, created_after: datetime | None = None
    ) -> list[TransactionRecord]:
        """Records still in monitoring/pending, oldest first."""
        ...

    @abstractmethod
    async def find_since(
        self, user_id: str | None, since: datetime
    ) -> list[TransactionRecord]:
        """All records for a user (or everyone) created at or after ``since``."""
        ...


def _column_value(key: str, value: Any) -> Any:
    if isinstance(value, ConfirmationMeta):
        return value.model_dump(mode="json")
    if key == "confirmation" and isinstance(value, dict):
        return ConfirmationMeta(**value).model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    return value


def _to_row(record: TransactionRecord) -> dict[str, Any]:
    data = record.model_dump()
    data["confirmation"] = _column_value("confirmation", record.confirmation)
    data["operation_type"] = record.operation_type.value
    data["status"] = record.status.value
    return data


def _to_record(row: FarmingTransaction) -> TransactionRecord:
    return TransactionRecord(
        internal_id=row.internal_id,
        chain_tx_ref=row.chain_tx_ref,
        user_id=row.user_id,
        operation_type=row.operation_type,
        amount=row.amount,
        token_symbol=row.token_symbol,
        source_chain=row.source_chain,
        destination_chain=row.destination_chain,
        slippage_tolerance=row.slippage_tolerance,
        status=row.status,
        retry_count=row.retry_count,
        last_checked_at=row.last_checked_at,
        error_detail=row.error_detail,
        confirmation=row.confirmation,
        created_at=row.created_at,
        started_monitoring_at=row.started_monitoring_at,
        updated_at=row.updated_at,
        completed_at=row.completed_at,
        cancelled_at=row.cancelled_at,
        duration_seconds=row.duration_seconds,
        retry_of=row.retry_of,
        retry_attempt=row.retry_attempt,
        details=row.details or {},
    )


class FarmingTransactionRepository(BaseRepository[FarmingTransaction]):
    """Session-scoped queries over the farming_transactions table."""

    model = FarmingTransaction

    async def get_page(
        self,
        filters: TransactionFilter,
        *,
        limit: int,
        offset: int,
    ) -> tuple[list[FarmingTransaction], int]:
        """Get a newest-first page plus the total match count.

        @param filters - User/status/type filters
        @param limit - Page size
        @param offset - Rows to skip
        @returns (rows, total)
        """
        criteria = {
            "user_id": filters.user_id,
            "status": filters.status.value if filters.status else None,
            "operation_type": (
                filters.operation_type.value if filters.operation_type else None
            ),
        }
        rows = await self.page(
            offset=offset,
            limit=limit,
            order_by=desc(self.model.created_at),
            **criteria,
        )
        total = await self.count(**criteria)
        return list(rows), total

    async def get_active(
        self, created_after: datetime | None = None
    ) -> list[FarmingTransaction]:
        """Get unfinished rows, oldest first.

        @param created_after - Optional lower bound on creation time
        @returns Rows in monitoring/pending status
        """
        conditions = [self.model.status.in_([s.value for s in ACTIVE_STATUSES])]
        if created_after is not None:
            conditions.append(self.model.created_at >= created_after)
        stmt = select(self.model).where(and_(*conditions)).order_by(self.model.created_at)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_since(
        self, user_id: str | None, since: datetime
    ) -> list[FarmingTransaction]:
        """Get all rows created at or after a point in time.

        @param user_id - Optional owner filter
        @param since - Lower bound on creation time
        @returns Matching rows
        """
        stmt = select(self.model).where(self.model.created_at >= since)
        if user_id:
            stmt = stmt.where(func.lower(self.model.user_id) == user_id.lower())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class SqlTransactionRepository(TransactionRepository):
    """Transaction storage backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        """Initialize repository.

        @param session_factory - Factory for creating database sessions
        """
        self._session_factory = session_factory

    async def save(self, record: TransactionRecord) -> TransactionRecord:
        async with self._session_factory() as session:
            repo = FarmingTransactionRepository(session)
            row = await repo.insert(_to_row(record))
            await session.commit()
            return _to_record(row)

    async def get(self, internal_id: str) -> TransactionRecord | None:
        async with self._session_factory() as session:
            repo = FarmingTransactionRepository(session)
            row = await repo.first(internal_id=internal_id)
            return _to_record(row) if row else None

    async def update(
        self, internal_id: str, changes: dict[str, Any]
    ) -> TransactionRecord | None:
        values = {key: _column_value(key, value) for key, value in changes.items()}
        values["updated_at"] = utcnow()
        async with self._session_factory() as session:
            repo = FarmingTransactionRepository(session)
            updated = await repo.patch(values, internal_id=internal_id)
            if not updated:
                return None
            await session.commit()
            row = await repo.first(internal_id=internal_id)
            return _to_record(row) if row else None

    async def find(
        self,
        filters: TransactionFilter,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[TransactionRecord], int]:
        async with self._session_factory() as session:
            repo = FarmingTransactionRepository(session)
            rows, total = await repo.get_page(filters, limit=limit, offset=offset)
            return [_to_record(row) for row in rows], total

    async def find_active(
        self, created_after: datetime | None = None
    ) -> list[TransactionRecord]:
        async with self._session_factory() as session:
            repo = FarmingTransactionRepository(session)
            rows = await repo.get_active(created_after)
            return [_to_record(row) for row in rows]

    async def find_since(
        self, user_id: str | None, since: datetime
    ) -> list[TransactionRecord]:
        async with self._session_factory() as session:
            repo = FarmingTransactionRepository(session)
            rows = await repo.get_since(user_id, since)
            return [_to_record(row) for row in rows]
