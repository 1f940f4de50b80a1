"""In-process transaction store used in mock mode and tests."""

import asyncio
from datetime import datetime
from typing import Any

from yieldfarm.repositories.transaction import TransactionRepository
from yieldfarm.services.transactions.schemas import (
    ACTIVE_STATUSES,
    TransactionFilter,
    TransactionRecord,
    utcnow,
)


class InMemoryTransactionRepository(TransactionRepository):
    """Dictionary-backed repository.

    Returned records are copies; callers never hold a reference into the
    store, so concurrent monitor tasks cannot observe half-applied updates.
    """

    def __init__(self) -> None:
        self._records: dict[str, TransactionRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def save(self, record: TransactionRecord) -> TransactionRecord:
        async with self._lock:
            if record.internal_id in self._records:
                raise ValueError(f"Duplicate transaction id {record.internal_id}")
            self._records[record.internal_id] = record.model_copy(deep=True)
            return record.model_copy(deep=True)

    async def get(self, internal_id: str) -> TransactionRecord | None:
        async with self._lock:
            record = self._records.get(internal_id)
            return record.model_copy(deep=True) if record else None

    async def update(
        self, internal_id: str, changes: dict[str, Any]
    ) -> TransactionRecord | None:
        async with self._lock:
            current = self._records.get(internal_id)
            if current is None:
                return None
            updated = TransactionRecord.model_validate(
                {**current.model_dump(), **changes, "updated_at": utcnow()}
            )
            self._records[internal_id] = updated
            return updated.model_copy(deep=True)

    async def find(
        self,
        filters: TransactionFilter,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[TransactionRecord], int]:
        async with self._lock:
            matches = [r for r in self._records.values() if _matches(r, filters)]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        page = matches[offset : offset + limit]
        return [r.model_copy(deep=True) for r in page], len(matches)

    async def find_active(
        self, created_after: datetime | None = None
    ) -> list[TransactionRecord]:
        async with self._lock:
            active = [
                r
                for r in self._records.values()
                if r.status in ACTIVE_STATUSES
                and (created_after is None or r.created_at >= created_after)
            ]
        active.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in active]

    async def find_since(
        self, user_id: str | None, since: datetime
    ) -> list[TransactionRecord]:
        user = user_id.lower() if user_id else None
        async with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._records.values()
                if r.created_at >= since and (user is None or r.user_id == user)
            ]


def _matches(record: TransactionRecord, filters: TransactionFilter) -> bool:
    if filters.user_id and record.user_id != filters.user_id:
        return False
    if filters.status and record.status != filters.status:
        return False
    if filters.operation_type and record.operation_type != filters.operation_type:
        return False
    return True
