"""Tests for transaction storage, lifecycle rules and history queries."""

from datetime import timedelta
from decimal import Decimal

import pytest

from tests.fakes import OTHER_USER, USER
from yieldfarm.core.exceptions import TransactionNotFound
from yieldfarm.repositories import InMemoryTransactionRepository
from yieldfarm.services.transactions import (
    OperationType,
    TransactionFilter,
    TransactionRecord,
    TransactionStatus,
    can_transition,
    generate_internal_id,
)
from yieldfarm.services.transactions.schemas import utcnow
from yieldfarm.services.transactions.service import TransactionHistoryService


def make_record(**overrides) -> TransactionRecord:
    data = {
        "chain_tx_ref": "0xabc",
        "user_id": USER,
        "operation_type": OperationType.DEPOSIT,
        "amount": Decimal("10"),
        "token_symbol": "EURe",
        "source_chain": "polygon",
        "destination_chain": "gnosis",
        "slippage_tolerance": Decimal("0.5"),
    }
    data.update(overrides)
    return TransactionRecord(**data)


class TestLifecycleRules:
    """Tests for status transitions and ids."""

    def test_terminal_statuses_have_no_exits(self):
        """Terminal records accept no further transition."""
        for status in (
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.TIMEOUT,
            TransactionStatus.CANCELLED,
        ):
            assert status.is_terminal
            assert not any(can_transition(status, target) for target in TransactionStatus)

    def test_cancel_only_from_pending(self):
        """Cancellation is allowed from pending only."""
        assert can_transition(TransactionStatus.PENDING, TransactionStatus.CANCELLED)
        assert not can_transition(TransactionStatus.MONITORING, TransactionStatus.CANCELLED)

    def test_rank_is_monotonic(self):
        assert TransactionStatus.MONITORING.rank < TransactionStatus.PENDING.rank
        assert TransactionStatus.PENDING.rank < TransactionStatus.COMPLETED.rank

    def test_internal_id_format(self):
        """Ids are prefixed and unique."""
        first = generate_internal_id()
        second = generate_internal_id("retry")

        assert first.startswith("tx_")
        assert second.startswith("retry_")
        assert first != generate_internal_id()

    def test_user_id_lowercased(self):
        record = make_record(user_id="0xABCDEFabcdef0000000000000000000000000000")

        assert record.user_id == "0xabcdefabcdef0000000000000000000000000000"


class TestInMemoryRepository:
    """Tests for InMemoryTransactionRepository."""

    def setup_method(self):
        self.repository = InMemoryTransactionRepository()

    @pytest.mark.asyncio
    async def test_save_and_get(self):
        """Saved records are returned as independent copies."""
        record = await self.repository.save(make_record())

        fetched = await self.repository.get(record.internal_id)
        fetched.details["mutated"] = True

        again = await self.repository.get(record.internal_id)
        assert again.internal_id == record.internal_id
        assert "mutated" not in again.details

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self):
        record = await self.repository.save(make_record())

        with pytest.raises(ValueError):
            await self.repository.save(record)

    @pytest.mark.asyncio
    async def test_update(self):
        """Updates merge changes and bump updated_at."""
        record = await self.repository.save(make_record())

        updated = await self.repository.update(
            record.internal_id, {"status": TransactionStatus.PENDING, "retry_count": 2}
        )

        assert updated.status == TransactionStatus.PENDING
        assert updated.retry_count == 2
        assert updated.updated_at >= record.updated_at

    @pytest.mark.asyncio
    async def test_update_missing(self):
        assert await self.repository.update("tx_missing", {"retry_count": 1}) is None

    @pytest.mark.asyncio
    async def test_find_filters_and_pages(self):
        """find filters by user, status and type and pages newest first."""
        now = utcnow()
        for minutes in range(5):
            await self.repository.save(make_record(created_at=now - timedelta(minutes=minutes)))
        await self.repository.save(make_record(user_id=OTHER_USER))
        await self.repository.save(
            make_record(operation_type=OperationType.WITHDRAW, status=TransactionStatus.FAILED)
        )

        page, total = await self.repository.find(
            TransactionFilter(user_id=USER, operation_type=OperationType.DEPOSIT),
            limit=2,
            offset=1,
        )
        failed, failed_total = await self.repository.find(
            TransactionFilter(status=TransactionStatus.FAILED)
        )

        assert total == 5
        assert len(page) == 2
        assert page[0].created_at > page[1].created_at
        assert failed_total == 1
        assert failed[0].operation_type == OperationType.WITHDRAW

    @pytest.mark.asyncio
    async def test_find_active(self):
        """Only monitoring and pending records within the window are active."""
        now = utcnow()
        await self.repository.save(make_record(status=TransactionStatus.PENDING))
        await self.repository.save(make_record(status=TransactionStatus.COMPLETED))
        await self.repository.save(make_record(created_at=now - timedelta(hours=30)))

        recent = await self.repository.find_active(created_after=now - timedelta(hours=24))
        everything = await self.repository.find_active()

        assert [r.status for r in recent] == [TransactionStatus.PENDING]
        assert len(everything) == 2
        assert everything[0].created_at < everything[1].created_at


class TestTransactionHistoryService:
    """Tests for TransactionHistoryService."""

    def setup_method(self):
        self.repository = InMemoryTransactionRepository()
        self.service = TransactionHistoryService(self.repository)

    @pytest.mark.asyncio
    async def test_list_pagination(self):
        """has_more reflects records beyond the page."""
        for _ in range(3):
            await self.repository.save(make_record())

        page = await self.service.list_transactions(TransactionFilter(user_id=USER), limit=2)

        assert page.pagination.total == 3
        assert page.pagination.has_more is True
        assert len(page.transactions) == 2

    @pytest.mark.asyncio
    async def test_get_missing(self):
        with pytest.raises(TransactionNotFound):
            await self.service.get_transaction("tx_missing")

    @pytest.mark.asyncio
    async def test_stats(self):
        """Stats count statuses and types over the period."""
        await self.repository.save(make_record(status=TransactionStatus.COMPLETED))
        await self.repository.save(make_record(status=TransactionStatus.FAILED))
        await self.repository.save(
            make_record(operation_type=OperationType.COMPOUND, amount=Decimal("4"))
        )
        await self.repository.save(
            make_record(created_at=utcnow() - timedelta(days=40), amount=Decimal("1000"))
        )

        stats = await self.service.get_stats(USER, days=30)

        assert stats.total == 3
        assert stats.by_status["completed"] == 1
        assert stats.by_status["failed"] == 1
        assert stats.by_status["monitoring"] == 1
        assert stats.by_type == {"deposit": 2, "withdraw": 0, "compound": 1}
        assert stats.success_rate == 0.5
        assert stats.total_volume == Decimal("24")
        assert stats.average_amount == Decimal("8")

    @pytest.mark.asyncio
    async def test_stats_empty(self):
        stats = await self.service.get_stats(USER)

        assert stats.total == 0
        assert stats.success_rate == 0.0
        assert stats.average_amount == Decimal("0")
