"""Tests for the transaction lifecycle monitor."""

import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from tests.fakes import (
    OTHER_USER,
    USER,
    FakeChainClient,
    FlakyRepository,
    ParkedSleep,
    RecordingTransport,
    confirmation,
    no_sleep,
)
from yieldfarm.core.exceptions import InvalidTransactionState, TransactionNotFound
from yieldfarm.infrastructure.chain import PollResult
from yieldfarm.repositories import InMemoryTransactionRepository
from yieldfarm.services.monitor import MonitorConfig, TransactionMonitor
from yieldfarm.services.notifications import Channel, NotificationHub
from yieldfarm.services.transactions import OperationType, TransactionRecord, TransactionStatus
from yieldfarm.services.transactions.schemas import utcnow


def make_record(**overrides) -> TransactionRecord:
    fields = {
        "chain_tx_ref": "0xabc",
        "user_id": USER,
        "operation_type": OperationType.DEPOSIT,
        "amount": Decimal("100"),
        "token_symbol": "EURe",
        "source_chain": "polygon",
        "destination_chain": "gnosis",
        "slippage_tolerance": Decimal("0.5"),
    }
    fields.update(overrides)
    return TransactionRecord(**fields)


class GatedChainClient(FakeChainClient):
    """Blocks the N-th poll until ``release`` is set."""

    def __init__(self, gate_on: int, **kwargs):
        super().__init__(**kwargs)
        self.gate_on = gate_on
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def get_operation_status(self, chain_tx_ref: str) -> PollResult:
        if len(self.polls) + 1 == self.gate_on:
            self.entered.set()
            await self.release.wait()
        return await super().get_operation_status(chain_tx_ref)


async def subscribed_transport(
    hub: NotificationHub, user: str = USER, channel: Channel = Channel.TRANSACTIONS
) -> RecordingTransport:
    transport = RecordingTransport()
    connection = await hub.connect(transport)
    await hub.subscribe(connection.connection_id, user, channel)
    return transport


def build_monitor(chain, repository, hub, sleep=no_sleep, **kwargs) -> TransactionMonitor:
    return TransactionMonitor(
        chain,
        repository,
        hub,
        config=MonitorConfig(poll_interval=0.01, max_retries=5),
        sleep=sleep,
        **kwargs,
    )


class TestRegistration:
    """Tests for starting and stopping monitoring."""

    def setup_method(self):
        self.repository = InMemoryTransactionRepository()
        self.hub = NotificationHub()

    @pytest.mark.asyncio
    async def test_second_registration_is_noop(self):
        """Registering an active id again starts no second task."""
        sleep = ParkedSleep()
        chain = FakeChainClient()
        monitor = build_monitor(chain, self.repository, self.hub, sleep=sleep)
        record = await self.repository.save(make_record())

        assert await monitor.start_monitoring(record) is True
        assert await monitor.start_monitoring(record) is False
        await sleep.sleeping.wait()

        assert monitor.active_count == 1
        assert len(chain.polls) == 1
        await monitor.stop_all()

    @pytest.mark.asyncio
    async def test_terminal_record_not_monitored(self):
        """A record already in a terminal state is refused."""
        chain = FakeChainClient()
        monitor = build_monitor(chain, self.repository, self.hub)
        record = await self.repository.save(make_record(status=TransactionStatus.COMPLETED))

        assert await monitor.start_monitoring(record) is False
        assert monitor.active_count == 0
        assert chain.polls == []

    @pytest.mark.asyncio
    async def test_registration_sets_started_monitoring_at(self):
        """First registration stamps the monitoring start time."""
        sleep = ParkedSleep()
        monitor = build_monitor(FakeChainClient(), self.repository, self.hub, sleep=sleep)
        record = await self.repository.save(make_record())

        await monitor.start_monitoring(record)
        stored = await self.repository.get(record.internal_id)

        assert stored.started_monitoring_at is not None
        await monitor.stop_all()

    @pytest.mark.asyncio
    async def test_stop_all_keeps_status(self):
        """Shutdown drops entries without a state transition."""
        sleep = ParkedSleep()
        monitor = build_monitor(FakeChainClient(), self.repository, self.hub, sleep=sleep)
        record = await self.repository.save(make_record())
        await monitor.start_monitoring(record)
        await sleep.sleeping.wait()

        stopped = await monitor.stop_all()
        stored = await self.repository.get(record.internal_id)

        assert stopped == 1
        assert monitor.active_count == 0
        assert stored.status == TransactionStatus.PENDING

    @pytest.mark.asyncio
    async def test_stop_monitoring_unknown(self):
        """Stopping an id that is not active reports False."""
        monitor = build_monitor(FakeChainClient(), self.repository, self.hub)

        assert await monitor.stop_monitoring("tx_missing") is False


class TestPolling:
    """Tests for the poll loop and its transitions."""

    def setup_method(self):
        self.repository = InMemoryTransactionRepository()
        self.hub = NotificationHub()

    @pytest.mark.asyncio
    async def test_pending_pending_completed(self):
        """Two pending polls then completion: three polls, one completed update."""
        chain = FakeChainClient(
            outcomes=[
                PollResult.still_pending(),
                PollResult.still_pending(),
                PollResult.completed(confirmation()),
            ]
        )
        monitor = build_monitor(chain, self.repository, self.hub)
        transport = await subscribed_transport(self.hub)
        record = await self.repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()
        await self.hub.drain()

        stored = await self.repository.get(record.internal_id)
        statuses = [u["status"] for u in transport.events("transaction:update")]
        assert len(chain.polls) == 3
        assert stored.status == TransactionStatus.COMPLETED
        assert stored.retry_count == 2
        assert stored.confirmation.block_number == 40_000_123
        assert stored.completed_at is not None
        assert stored.duration_seconds is not None
        assert statuses == ["monitoring", "pending", "pending", "completed"]
        assert monitor.active_count == 0

    @pytest.mark.asyncio
    async def test_retry_bound_ends_in_timeout(self):
        """Without a definitive outcome the monitor polls exactly max_retries times."""
        chain = FakeChainClient()
        monitor = build_monitor(chain, self.repository, self.hub)
        transport = await subscribed_transport(self.hub)
        record = await self.repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()
        await self.hub.drain()

        stored = await self.repository.get(record.internal_id)
        notifications = transport.events("user:notification")
        assert len(chain.polls) == 5
        assert stored.status == TransactionStatus.TIMEOUT
        assert stored.retry_count == 5
        assert stored.error_detail
        assert any(n["type"] == "warning" for n in notifications)

    @pytest.mark.asyncio
    async def test_poll_errors_count_as_pending(self):
        """A raising poll increments retry_count like still_pending."""
        chain = FakeChainClient(
            outcomes=[
                RuntimeError("rpc timeout"),
                RuntimeError("rpc timeout"),
                PollResult.completed(confirmation()),
            ]
        )
        monitor = build_monitor(chain, self.repository, self.hub)
        record = await self.repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()

        stored = await self.repository.get(record.internal_id)
        assert stored.status == TransactionStatus.COMPLETED
        assert stored.retry_count == 2

    @pytest.mark.asyncio
    async def test_definitive_failure(self):
        """A failed poll ends monitoring with the error recorded."""
        chain = FakeChainClient(outcomes=[PollResult.failed("Cross-chain execution reverted")])
        monitor = build_monitor(chain, self.repository, self.hub)
        transport = await subscribed_transport(self.hub, channel=Channel.BALANCES)
        record = await self.repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()
        await self.hub.drain()

        stored = await self.repository.get(record.internal_id)
        notifications = transport.events("user:notification")
        assert len(chain.polls) == 1
        assert stored.status == TransactionStatus.FAILED
        assert stored.error_detail == "Cross-chain execution reverted"
        assert [n["title"] for n in notifications] == ["Transaction Failed"]

    @pytest.mark.asyncio
    async def test_completed_record_cannot_restart(self):
        """Once terminal, a record is never monitored again."""
        chain = FakeChainClient(outcomes=[PollResult.completed(confirmation())])
        monitor = build_monitor(chain, self.repository, self.hub)
        record = await self.repository.save(make_record())
        await monitor.start_monitoring(record)
        await monitor.join()

        stored = await self.repository.get(record.internal_id)

        assert await monitor.start_monitoring(stored) is False
        assert len(chain.polls) == 1

    @pytest.mark.asyncio
    async def test_no_subscribers_is_not_an_error(self):
        """Lifecycle completes when nobody listens."""
        chain = FakeChainClient(outcomes=[PollResult.completed(confirmation())])
        monitor = build_monitor(chain, self.repository, self.hub)
        record = await self.repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()
        await self.hub.drain()

        stored = await self.repository.get(record.internal_id)
        assert stored.status == TransactionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_two_connections_both_receive_completion(self):
        """Every connection in the user's room gets the completion once."""
        chain = FakeChainClient(outcomes=[PollResult.completed(confirmation())])
        monitor = build_monitor(chain, self.repository, self.hub)
        first = await subscribed_transport(self.hub)
        second = await subscribed_transport(self.hub)
        stranger = await subscribed_transport(self.hub, user=OTHER_USER)
        record = await self.repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()
        await self.hub.drain()

        for transport in (first, second):
            statuses = [u["status"] for u in transport.events("transaction:update")]
            assert statuses.count("completed") == 1
        assert stranger.events("transaction:update") == []


def status_is(status: TransactionStatus):
    return lambda changes: changes.get("status") == status


class TestStorageFailures:
    """Tests for repository writes that fail while a transaction is monitored."""

    def setup_method(self):
        self.hub = NotificationHub()

    @pytest.mark.asyncio
    async def test_pending_write_failure_keeps_polling(self):
        """A failed pending write is logged and the lifecycle still completes."""
        repository = FlakyRepository(status_is(TransactionStatus.PENDING), failures=1)
        chain = FakeChainClient(
            outcomes=[
                PollResult.still_pending(),
                PollResult.still_pending(),
                PollResult.completed(confirmation()),
            ]
        )
        monitor = build_monitor(chain, repository, self.hub)
        transport = await subscribed_transport(self.hub)
        record = await repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()
        await self.hub.drain()

        stored = await repository.get(record.internal_id)
        statuses = [u["status"] for u in transport.events("transaction:update")]
        assert len(repository.failed_writes) == 1
        assert len(chain.polls) == 3
        assert stored.status == TransactionStatus.COMPLETED
        assert stored.retry_count == 2
        assert statuses == ["monitoring", "pending", "pending", "completed"]
        assert monitor.active_count == 0

    @pytest.mark.asyncio
    async def test_failed_pending_writes_still_bounded(self):
        """Unstored checks count toward max_retries."""
        repository = FlakyRepository(status_is(TransactionStatus.PENDING), failures=100)
        chain = FakeChainClient()
        monitor = build_monitor(chain, repository, self.hub)
        record = await repository.save(make_record())

        await monitor.start_monitoring(record)
        await asyncio.wait_for(monitor.join(), timeout=5)

        stored = await repository.get(record.internal_id)
        assert len(chain.polls) == 5
        assert stored.status == TransactionStatus.TIMEOUT
        assert stored.retry_count == 5

    @pytest.mark.asyncio
    async def test_start_write_failure_still_monitors(self):
        """A failed start stamp does not abandon the transaction."""
        repository = FlakyRepository(lambda changes: "status" not in changes, failures=1)
        chain = FakeChainClient(outcomes=[PollResult.completed(confirmation())])
        monitor = build_monitor(chain, repository, self.hub)
        record = await repository.save(make_record())

        started = await monitor.start_monitoring(record)
        await monitor.join()

        stored = await repository.get(record.internal_id)
        assert started is True
        assert len(repository.failed_writes) == 1
        assert stored.status == TransactionStatus.COMPLETED
        assert stored.started_monitoring_at is not None

    @pytest.mark.asyncio
    async def test_terminal_write_retried(self):
        """A completion whose first write fails is stored on the next attempt."""
        repository = FlakyRepository(status_is(TransactionStatus.COMPLETED), failures=1)
        chain = FakeChainClient(outcomes=[PollResult.completed(confirmation())])
        monitor = build_monitor(chain, repository, self.hub)
        record = await repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()

        stored = await repository.get(record.internal_id)
        assert len(repository.failed_writes) == 1
        assert stored.status == TransactionStatus.COMPLETED
        assert len(chain.polls) == 1

    @pytest.mark.asyncio
    async def test_unstorable_completion_falls_back_to_timeout(self):
        """When completion cannot be stored the record ends in timeout."""
        repository = FlakyRepository(status_is(TransactionStatus.COMPLETED), failures=100)
        chain = FakeChainClient(outcomes=[PollResult.completed(confirmation())])
        monitor = build_monitor(chain, repository, self.hub)
        transport = await subscribed_transport(self.hub)
        record = await repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()
        await self.hub.drain()

        stored = await repository.get(record.internal_id)
        statuses = [u["status"] for u in transport.events("transaction:update")]
        titles = [n["title"] for n in transport.events("user:notification")]
        assert len(repository.failed_writes) == monitor.config.persist_attempts
        assert stored.status == TransactionStatus.TIMEOUT
        assert "completed" in stored.error_detail
        assert statuses == ["monitoring", "timeout"]
        assert titles == ["Transaction Status Unknown"]
        assert monitor.active_count == 0


class TestJoin:
    """Tests for waiting on monitor tasks."""

    @pytest.mark.asyncio
    async def test_crashed_loop_is_dropped(self):
        """A loop that raises outside polling leaves the active set."""

        async def broken_sleep(_seconds: float) -> None:
            raise RuntimeError("event loop shutting down")

        repository = InMemoryTransactionRepository()
        monitor = build_monitor(
            FakeChainClient(), repository, NotificationHub(), sleep=broken_sleep
        )
        record = await repository.save(make_record())

        await monitor.start_monitoring(record)
        await asyncio.wait_for(monitor.join(), timeout=1)

        assert monitor.is_active(record.internal_id) is False

    @pytest.mark.asyncio
    async def test_join_returns_when_task_gone(self):
        """join() stops once every collected task is done, even if its entry remains."""
        repository = InMemoryTransactionRepository()
        sleep = ParkedSleep()
        monitor = build_monitor(FakeChainClient(), repository, NotificationHub(), sleep=sleep)
        record = await repository.save(make_record())
        await monitor.start_monitoring(record)
        await sleep.sleeping.wait()
        task = monitor._active[record.internal_id].task
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        await asyncio.wait_for(monitor.join(), timeout=1)

        assert monitor.is_active(record.internal_id) is True
        await monitor.stop_all()


class TestBalanceRefresh:
    """Tests for the completion balance-refresh signal."""

    @pytest.mark.asyncio
    async def test_refresh_called_on_completion(self):
        """Completion calls the refresh callback with the user id."""
        refresh = AsyncMock()
        repository = InMemoryTransactionRepository()
        chain = FakeChainClient(outcomes=[PollResult.completed(confirmation())])
        monitor = build_monitor(chain, repository, NotificationHub(), balance_refresh=refresh)
        record = await repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()

        refresh.assert_awaited_once_with(USER)

    @pytest.mark.asyncio
    async def test_refresh_error_is_contained(self):
        """A failing refresh leaves the completed record intact."""
        refresh = AsyncMock(side_effect=RuntimeError("rpc down"))
        repository = InMemoryTransactionRepository()
        chain = FakeChainClient(outcomes=[PollResult.completed(confirmation())])
        monitor = build_monitor(chain, repository, NotificationHub(), balance_refresh=refresh)
        record = await repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()

        stored = await repository.get(record.internal_id)
        assert stored.status == TransactionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_no_refresh_on_failure(self):
        """Failed transactions do not trigger a refresh."""
        refresh = AsyncMock()
        repository = InMemoryTransactionRepository()
        chain = FakeChainClient(outcomes=[PollResult.failed("reverted")])
        monitor = build_monitor(chain, repository, NotificationHub(), balance_refresh=refresh)
        record = await repository.save(make_record())

        await monitor.start_monitoring(record)
        await monitor.join()

        refresh.assert_not_awaited()


class TestCancellation:
    """Tests for user cancellation."""

    def setup_method(self):
        self.repository = InMemoryTransactionRepository()
        self.hub = NotificationHub()

    @pytest.mark.asyncio
    async def test_cancel_during_inflight_poll_discards_result(self):
        """A poll in flight when cancelled finishes but its result is dropped."""
        chain = GatedChainClient(
            gate_on=2,
            outcomes=[PollResult.still_pending(), PollResult.completed(confirmation())],
        )
        monitor = build_monitor(chain, self.repository, self.hub)
        transport = await subscribed_transport(self.hub)
        record = await self.repository.save(make_record())
        await monitor.start_monitoring(record)
        await chain.entered.wait()
        task = monitor._active[record.internal_id].task

        cancelled = await monitor.cancel(record.internal_id)
        chain.release.set()
        await task
        await self.hub.drain()

        stored = await self.repository.get(record.internal_id)
        statuses = [u["status"] for u in transport.events("transaction:update")]
        assert cancelled.status == TransactionStatus.CANCELLED
        assert stored.status == TransactionStatus.CANCELLED
        assert stored.completed_at is None
        assert stored.cancelled_at is not None
        assert "completed" not in statuses
        assert statuses.count("cancelled") == 1
        assert monitor.is_active(record.internal_id) is False

    @pytest.mark.asyncio
    async def test_cancel_while_sleeping_cancels_task(self):
        """A task waiting between polls is cancelled outright."""
        sleep = ParkedSleep()
        chain = FakeChainClient()
        monitor = build_monitor(chain, self.repository, self.hub, sleep=sleep)
        record = await self.repository.save(make_record())
        await monitor.start_monitoring(record)
        await sleep.sleeping.wait()
        task = monitor._active[record.internal_id].task

        await monitor.cancel(record.internal_id)
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert len(chain.polls) == 1

    @pytest.mark.asyncio
    async def test_cancel_requires_pending(self):
        """A transaction still in monitoring status cannot be cancelled."""
        chain = GatedChainClient(gate_on=1)
        monitor = build_monitor(chain, self.repository, self.hub)
        record = await self.repository.save(make_record())
        await monitor.start_monitoring(record)
        await chain.entered.wait()

        with pytest.raises(InvalidTransactionState) as exc_info:
            await monitor.cancel(record.internal_id)

        assert exc_info.value.current_status == "monitoring"
        await monitor.stop_all()

    @pytest.mark.asyncio
    async def test_cancel_terminal_rejected(self):
        """Completed transactions stay completed."""
        monitor = build_monitor(FakeChainClient(), self.repository, self.hub)
        record = await self.repository.save(make_record(status=TransactionStatus.COMPLETED))

        with pytest.raises(InvalidTransactionState):
            await monitor.cancel(record.internal_id)

    @pytest.mark.asyncio
    async def test_cancel_unknown(self):
        """Unknown ids raise TransactionNotFound."""
        monitor = build_monitor(FakeChainClient(), self.repository, self.hub)

        with pytest.raises(TransactionNotFound):
            await monitor.cancel("tx_missing")

    @pytest.mark.asyncio
    async def test_cancel_unwatched_pending_record(self):
        """A pending record that is not being polled can still be cancelled."""
        monitor = build_monitor(FakeChainClient(), self.repository, self.hub)
        record = await self.repository.save(make_record(status=TransactionStatus.PENDING))

        cancelled = await monitor.cancel(record.internal_id)

        assert cancelled.status == TransactionStatus.CANCELLED


class TestResumeAndStats:
    """Tests for startup resume and statistics."""

    @pytest.mark.asyncio
    async def test_resume_pending_within_window(self):
        """Only recent unfinished records are resumed."""
        repository = InMemoryTransactionRepository()
        sleep = ParkedSleep()
        monitor = build_monitor(FakeChainClient(), repository, NotificationHub(), sleep=sleep)
        recent = await repository.save(make_record(status=TransactionStatus.PENDING))
        await repository.save(
            make_record(
                status=TransactionStatus.PENDING,
                created_at=utcnow() - timedelta(hours=48),
            )
        )
        await repository.save(make_record(status=TransactionStatus.COMPLETED))

        resumed = await monitor.resume_pending()

        assert resumed == 1
        assert monitor.is_active(recent.internal_id)
        await monitor.stop_all()

    @pytest.mark.asyncio
    async def test_stats_by_type(self):
        """Stats count active transactions by type and status."""
        repository = InMemoryTransactionRepository()
        sleep = ParkedSleep()
        monitor = build_monitor(FakeChainClient(), repository, NotificationHub(), sleep=sleep)
        for operation in (OperationType.DEPOSIT, OperationType.DEPOSIT, OperationType.WITHDRAW):
            record = await repository.save(make_record(operation_type=operation))
            await monitor.start_monitoring(record)
        await asyncio.sleep(0)

        stats = monitor.get_stats()

        assert stats.active_count == 3
        assert stats.by_type == {"deposit": 2, "withdraw": 1}
        assert stats.max_retries == 5
        await monitor.stop_all()
