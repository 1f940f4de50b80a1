"""Transaction history queries."""

import logging
from collections import Counter
from datetime import timedelta
from decimal import Decimal

from yieldfarm.core.exceptions import TransactionNotFound
from yieldfarm.repositories.transaction import TransactionRepository
from yieldfarm.services.transactions.schemas import (
    OperationType,
    Pagination,
    TransactionFilter,
    TransactionPage,
    TransactionRecord,
    TransactionStats,
    TransactionStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class TransactionHistoryService:
    """Read-only access to persisted transaction records."""

    def __init__(self, repository: TransactionRepository):
        self.repository = repository

    async def list_transactions(
        self,
        filters: TransactionFilter,
        limit: int = 20,
        offset: int = 0,
    ) -> TransactionPage:
        """List records newest first.

        Args:
            filters: User, status and type filters
            limit: Page size
            offset: Records to skip

        Returns:
            One page of records with pagination metadata
        """
        records, total = await self.repository.find(filters, limit=limit, offset=offset)
        return TransactionPage(
            transactions=records,
            pagination=Pagination(
                limit=limit,
                offset=offset,
                total=total,
                has_more=offset + len(records) < total,
            ),
            filters=filters,
        )

    async def get_transaction(self, internal_id: str) -> TransactionRecord:
        record = await self.repository.get(internal_id)
        if record is None:
            raise TransactionNotFound(internal_id)
        return record

    async def get_stats(self, user_id: str | None = None, days: int = 30) -> TransactionStats:
        """Aggregate records created in the last ``days`` days.

        Args:
            user_id: Restrict to one user
            days: Look-back period

        Returns:
            Counts by status and type, success rate and volume
        """
        since = utcnow() - timedelta(days=days)
        records = await self.repository.find_since(user_id, since)

        by_status = Counter(r.status.value for r in records)
        by_type = Counter(r.operation_type.value for r in records)
        finished = sum(1 for r in records if r.is_terminal)
        completed = by_status.get(TransactionStatus.COMPLETED.value, 0)
        volume = sum((r.amount for r in records), Decimal("0"))

        return TransactionStats(
            user_id=user_id.lower() if user_id else None,
            period_days=days,
            total=len(records),
            by_status={s.value: by_status.get(s.value, 0) for s in TransactionStatus},
            by_type={t.value: by_type.get(t.value, 0) for t in OperationType},
            success_rate=round(completed / finished, 4) if finished else 0.0,
            total_volume=volume,
            average_amount=(volume / len(records)) if records else Decimal("0"),
        )
