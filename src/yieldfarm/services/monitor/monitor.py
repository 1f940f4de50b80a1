"""Transaction lifecycle monitor.

Each active transaction owns one asyncio task that polls the chain client,
applies the resulting transition and then sleeps before the next poll:

    monitoring -> pending -> completed | failed | timeout
                  pending -> cancelled (user request)

Any poll that does not report a definitive outcome, including one that
raises, increments ``retry_count``; reaching ``max_retries`` ends in
``timeout``. A transition is applied only while the transaction is still in
the active set, so a poll result that arrives after cancellation or
shutdown is discarded.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from yieldfarm.core.exceptions import InvalidTransactionState, TransactionNotFound
from yieldfarm.infrastructure.chain.client import ChainClient, PollOutcome, PollResult
from yieldfarm.repositories.transaction import TransactionRepository
from yieldfarm.services.monitor.schemas import MonitorConfig, MonitorStats
from yieldfarm.services.notifications.hub import NotificationHub
from yieldfarm.services.notifications.schemas import EventType, NotificationLevel
from yieldfarm.services.transactions.schemas import (
    OperationType,
    TransactionRecord,
    TransactionStatus,
    can_transition,
    utcnow,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], datetime]
BalanceRefresh = Callable[[str], Awaitable[Any]]


@dataclass
class MonitorEntry:
    """In-memory state of one actively monitored transaction."""

    internal_id: str
    chain_tx_ref: str | None
    user_id: str
    operation_type: OperationType
    status: TransactionStatus
    retry_count: int
    started_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
    last_checked_at: datetime | None = None
    polling: bool = False
    task: asyncio.Task | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class TransactionMonitor:
    """Owns the lifecycle of submitted transactions until a terminal state."""

    def __init__(
        self,
        chain_client: ChainClient,
        repository: TransactionRepository,
        hub: NotificationHub,
        config: MonitorConfig | None = None,
        balance_refresh: BalanceRefresh | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = utcnow,
    ):
        """Initialize monitor.

        Args:
            chain_client: Source of status polls
            repository: Durable transaction records
            hub: Notification fan-out
            config: Poll interval and retry bound
            balance_refresh: Called with the user id after a completion
            sleep: Coroutine used to wait between polls
            clock: Source of the current time
        """
        self.chain_client = chain_client
        self.repository = repository
        self.hub = hub
        self.config = config if config is not None else MonitorConfig()
        self._balance_refresh = balance_refresh
        self._sleep = sleep
        self._clock = clock
        self._active: dict[str, MonitorEntry] = {}
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return len(self._active)

    def is_active(self, internal_id: str) -> bool:
        return internal_id in self._active

    # Registration

    async def start_monitoring(self, record: TransactionRecord) -> bool:
        """Register a transaction and start its polling task.

        Registering an id that is already active is a no-op.

        Args:
            record: Persisted record in monitoring or pending status

        Returns:
            True if a new polling task was started
        """
        if record.status.is_terminal:
            logger.warning(
                f"Refusing to monitor {record.internal_id} in terminal status {record.status.value}"
            )
            return False

        now = self._clock()
        started_at = record.started_monitoring_at or now
        async with self._lock:
            if record.internal_id in self._active:
                logger.warning(f"Transaction {record.internal_id} already being monitored")
                return False
            entry = MonitorEntry(
                internal_id=record.internal_id,
                chain_tx_ref=record.chain_tx_ref,
                user_id=record.user_id,
                operation_type=record.operation_type,
                status=record.status,
                retry_count=record.retry_count,
                started_at=started_at,
                details=dict(record.details),
            )
            self._active[record.internal_id] = entry

        if record.started_monitoring_at is None:
            try:
                await self.repository.update(
                    record.internal_id, {"started_monitoring_at": started_at}
                )
            except Exception as e:
                # Written again with the first status change
                logger.warning(
                    f"Could not store monitoring start for {record.internal_id}: {e}"
                )

        logger.info(
            f"Started monitoring {entry.internal_id} ({entry.operation_type.value}) "
            f"tx={entry.chain_tx_ref} user={entry.user_id}"
        )
        self._publish_update(
            entry,
            message="Transaction monitoring started",
        )
        entry.task = asyncio.create_task(
            self._run(entry), name=f"monitor:{entry.internal_id}"
        )
        return True

    async def resume_pending(self) -> int:
        """Re-register unfinished records created within the resume window.

        Returns:
            Number of transactions resumed
        """
        since = self._clock() - timedelta(hours=self.config.resume_window_hours)
        records = await self.repository.find_active(created_after=since)
        resumed = 0
        for record in records:
            if await self.start_monitoring(record):
                resumed += 1
        if resumed:
            logger.info(f"Resumed monitoring of {resumed} unfinished transactions")
        return resumed

    # Polling loop

    async def _run(self, entry: MonitorEntry) -> None:
        try:
            while self._active.get(entry.internal_id) is entry:
                entry.polling = True
                result = await self._poll(entry)
                keep_polling = await self._apply(entry, result)
                entry.polling = False
                if not keep_polling:
                    return
                await self._sleep(self.config.poll_interval)
        except Exception:
            logger.exception(f"Monitoring loop for {entry.internal_id} crashed")
            await self._drop(entry)

    async def _poll(self, entry: MonitorEntry) -> PollResult:
        entry.last_checked_at = self._clock()
        try:
            if not entry.chain_tx_ref:
                raise RuntimeError("transaction has no chain reference")
            return await self.chain_client.get_operation_status(entry.chain_tx_ref)
        except Exception as e:
            logger.warning(f"Status check for {entry.internal_id} failed: {e}")
            return PollResult.still_pending()

    async def _apply(self, entry: MonitorEntry, result: PollResult) -> bool:
        """Apply one poll result. Returns True if polling should continue."""
        async with entry.lock:
            if result.outcome == PollOutcome.COMPLETED:
                target = TransactionStatus.COMPLETED
            elif result.outcome == PollOutcome.FAILED:
                target = TransactionStatus.FAILED
            elif entry.retry_count + 1 >= self.config.max_retries:
                target = TransactionStatus.TIMEOUT
            else:
                target = TransactionStatus.PENDING

            async with self._lock:
                if self._active.get(entry.internal_id) is not entry:
                    logger.info(
                        f"Discarding {result.outcome.value} result for inactive "
                        f"{entry.internal_id}"
                    )
                    return False
                if not can_transition(entry.status, target):
                    logger.error(
                        f"Illegal transition {entry.status.value} -> {target.value} "
                        f"for {entry.internal_id}"
                    )
                    del self._active[entry.internal_id]
                    return False

            if target == TransactionStatus.PENDING:
                await self._mark_pending(entry)
                return True

            # The entry stays registered until the terminal write is done, so a
            # concurrent cancel waits on entry.lock and then sees the final status.
            try:
                if target == TransactionStatus.COMPLETED:
                    await self._mark_completed(entry, result)
                elif target == TransactionStatus.FAILED:
                    await self._mark_failed(entry, result)
                else:
                    await self._mark_timeout(entry)
            finally:
                await self._drop(entry)
            return False

    async def _persist_terminal(self, entry: MonitorEntry, changes: dict[str, Any]) -> bool:
        """Store a terminal status, retrying the write before falling back to timeout.

        Returns:
            True if the requested status was stored
        """
        status = changes["status"]
        for attempt in range(1, self.config.persist_attempts + 1):
            try:
                await self.repository.update(entry.internal_id, changes)
                return True
            except Exception as e:
                logger.warning(
                    f"Storing {status.value} for {entry.internal_id} failed "
                    f"(attempt {attempt}/{self.config.persist_attempts}): {e}"
                )
                if attempt < self.config.persist_attempts:
                    await self._sleep(self.config.poll_interval)

        if status != TransactionStatus.TIMEOUT:
            entry.status = TransactionStatus.TIMEOUT
            try:
                await self.repository.update(
                    entry.internal_id,
                    {
                        "status": TransactionStatus.TIMEOUT,
                        "started_monitoring_at": entry.started_at,
                        "error_detail": f"Chain reported {status.value} but it could not be stored",
                        "last_checked_at": entry.last_checked_at,
                    },
                )
            except Exception as e:
                logger.error(f"Could not store any terminal status for {entry.internal_id}: {e}")
        return False

    # Transitions

    async def _mark_pending(self, entry: MonitorEntry) -> None:
        entry.retry_count += 1
        entry.status = TransactionStatus.PENDING
        try:
            await self.repository.update(
                entry.internal_id,
                {
                    "status": TransactionStatus.PENDING,
                    "retry_count": entry.retry_count,
                    "started_monitoring_at": entry.started_at,
                    "last_checked_at": entry.last_checked_at,
                },
            )
        except Exception as e:
            # Counted like a non-definitive poll; the next write carries the same fields
            logger.warning(
                f"Could not store pending check {entry.retry_count} for {entry.internal_id}: {e}"
            )
        self._publish_update(
            entry,
            message=(
                f"Transaction pending (check {entry.retry_count}/{self.config.max_retries})"
            ),
            retryCount=entry.retry_count,
            maxRetries=self.config.max_retries,
        )

    async def _mark_completed(self, entry: MonitorEntry, result: PollResult) -> None:
        entry.status = TransactionStatus.COMPLETED
        now = self._clock()
        duration = self._duration(entry, now)
        stored = await self._persist_terminal(
            entry,
            {
                "status": TransactionStatus.COMPLETED,
                "confirmation": result.confirmation,
                "started_monitoring_at": entry.started_at,
                "completed_at": now,
                "duration_seconds": duration,
                "last_checked_at": entry.last_checked_at,
            },
        )
        if not stored:
            self._announce_timeout(entry, duration)
            return
        logger.info(
            f"Transaction {entry.internal_id} completed in {duration:.1f}s "
            f"tx={entry.chain_tx_ref}"
        )
        confirmation = result.confirmation
        self._publish_update(
            entry,
            message="Transaction completed successfully",
            result=confirmation.model_dump(mode="json", by_alias=True) if confirmation else None,
            duration=duration,
        )
        self._notify_user(
            entry,
            NotificationLevel.SUCCESS,
            "Transaction Successful",
            f"Your {entry.operation_type.value} transaction has been completed successfully",
        )
        self._trigger_balance_refresh(entry.user_id)

    async def _mark_failed(self, entry: MonitorEntry, result: PollResult) -> None:
        entry.status = TransactionStatus.FAILED
        error = result.error or "Transaction failed"
        duration = self._duration(entry, self._clock())
        stored = await self._persist_terminal(
            entry,
            {
                "status": TransactionStatus.FAILED,
                "error_detail": error,
                "started_monitoring_at": entry.started_at,
                "duration_seconds": duration,
                "last_checked_at": entry.last_checked_at,
            },
        )
        if not stored:
            self._announce_timeout(entry, duration)
            return
        logger.error(f"Transaction {entry.internal_id} failed: {error}")
        self._publish_update(
            entry,
            message="Transaction failed",
            error=error,
            duration=duration,
        )
        self._notify_user(
            entry,
            NotificationLevel.ERROR,
            "Transaction Failed",
            f"Your {entry.operation_type.value} transaction failed: {error}",
        )

    async def _mark_timeout(self, entry: MonitorEntry) -> None:
        entry.retry_count += 1
        entry.status = TransactionStatus.TIMEOUT
        duration = self._duration(entry, self._clock())
        error = (
            f"No definitive status after {entry.retry_count} checks; "
            "the transaction may still settle"
        )
        await self._persist_terminal(
            entry,
            {
                "status": TransactionStatus.TIMEOUT,
                "retry_count": entry.retry_count,
                "error_detail": error,
                "started_monitoring_at": entry.started_at,
                "duration_seconds": duration,
                "last_checked_at": entry.last_checked_at,
            },
        )
        logger.warning(
            f"Monitoring of {entry.internal_id} timed out after {entry.retry_count} checks"
        )
        self._announce_timeout(entry, duration)

    def _announce_timeout(self, entry: MonitorEntry, duration: float) -> None:
        self._publish_update(
            entry,
            message="Transaction monitoring timed out - check manually",
            retryCount=entry.retry_count,
            duration=duration,
        )
        self._notify_user(
            entry,
            NotificationLevel.WARNING,
            "Transaction Status Unknown",
            f"Unable to confirm {entry.operation_type.value} transaction status. "
            "Please check manually.",
        )

    # Cancellation and shutdown

    async def cancel(self, internal_id: str) -> TransactionRecord:
        """Cancel a pending transaction.

        An in-flight poll is left to finish; its result is discarded. A task
        sleeping between polls is cancelled.

        Args:
            internal_id: Transaction to cancel

        Returns:
            The cancelled record

        Raises:
            TransactionNotFound: If no record exists
            InvalidTransactionState: If the transaction is not pending
        """
        entry = self._active.get(internal_id)
        if entry is not None:
            async with entry.lock:
                async with self._lock:
                    still_active = self._active.get(internal_id) is entry
                    if still_active and entry.status == TransactionStatus.PENDING:
                        del self._active[internal_id]
                        entry.status = TransactionStatus.CANCELLED
                        if not entry.polling and entry.task is not None:
                            entry.task.cancel()
                if entry.status == TransactionStatus.CANCELLED:
                    return await self._persist_cancellation(
                        internal_id, entry.user_id, entry
                    )

        record = await self.repository.get(internal_id)
        if record is None:
            raise TransactionNotFound(internal_id)
        if record.status != TransactionStatus.PENDING or self.is_active(internal_id):
            raise InvalidTransactionState(
                "Only pending transactions can be cancelled",
                current_status=record.status.value,
            )
        # Pending in storage but not being watched (e.g. not resumed after restart)
        return await self._persist_cancellation(internal_id, record.user_id, None)

    async def _persist_cancellation(
        self, internal_id: str, user_id: str, entry: MonitorEntry | None
    ) -> TransactionRecord:
        now = self._clock()
        record = await self.repository.update(
            internal_id,
            {"status": TransactionStatus.CANCELLED, "cancelled_at": now},
        )
        if record is None:
            raise TransactionNotFound(internal_id)
        logger.info(f"Transaction {internal_id} cancelled by user {user_id}")
        if entry is not None:
            self._publish_update(entry, message="Transaction cancelled by user")
        else:
            self.hub.broadcast_to_user(
                user_id,
                EventType.TRANSACTION_UPDATE,
                {
                    "txId": record.internal_id,
                    "txHash": record.chain_tx_ref,
                    "userId": record.user_id,
                    "type": record.operation_type.value,
                    "status": TransactionStatus.CANCELLED.value,
                    "message": "Transaction cancelled by user",
                },
            )
        return record

    async def stop_monitoring(self, internal_id: str) -> bool:
        """Stop watching a transaction without changing its status.

        Returns:
            True if the transaction was active
        """
        async with self._lock:
            entry = self._active.pop(internal_id, None)
        if entry is None:
            return False
        if entry.task is not None:
            entry.task.cancel()
        logger.info(f"Stopped monitoring transaction {internal_id}")
        return True

    async def _drop(self, entry: MonitorEntry) -> None:
        async with self._lock:
            if self._active.get(entry.internal_id) is entry:
                del self._active[entry.internal_id]

    async def stop_all(self) -> int:
        """Stop every polling task and wait for them to exit.

        Returns:
            Number of transactions that were active
        """
        async with self._lock:
            entries = list(self._active.values())
            self._active.clear()
        tasks = [e.task for e in entries if e.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, *self._background, return_exceptions=True)
        logger.info(f"Stopped all transaction monitoring ({len(entries)} active)")
        return len(entries)

    async def join(self) -> None:
        """Wait for every polling task and background refresh to finish."""
        while True:
            tasks = [e.task for e in self._active.values() if e.task is not None]
            tasks.extend(self._background)
            # An entry left behind by a finished task must not be waited on again
            tasks = [t for t in tasks if not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    # Notifications

    def _publish_update(self, entry: MonitorEntry, message: str, **extra: Any) -> None:
        payload: dict[str, Any] = {
            "txId": entry.internal_id,
            "txHash": entry.chain_tx_ref,
            "userId": entry.user_id,
            "type": entry.operation_type.value,
            "status": entry.status.value,
            "message": message,
            "details": entry.details,
        }
        payload.update({k: v for k, v in extra.items() if v is not None})
        self.hub.broadcast_to_user(entry.user_id, EventType.TRANSACTION_UPDATE, payload)

    def _notify_user(
        self,
        entry: MonitorEntry,
        level: NotificationLevel,
        title: str,
        message: str,
    ) -> None:
        self.hub.broadcast_to_user(
            entry.user_id,
            EventType.USER_NOTIFICATION,
            {
                "userId": entry.user_id,
                "type": level.value,
                "title": title,
                "message": message,
                "txId": entry.internal_id,
                "txHash": entry.chain_tx_ref,
            },
        )

    def _trigger_balance_refresh(self, user_id: str) -> None:
        self.hub.broadcast_to_user(
            user_id,
            EventType.USER_NOTIFICATION,
            {
                "userId": user_id,
                "type": NotificationLevel.INFO.value,
                "title": "Balance Update",
                "message": "Your balances have been updated",
                "action": "refresh_balances",
            },
        )
        if self._balance_refresh is None:
            return
        task = asyncio.create_task(self._refresh_balances(user_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_balances(self, user_id: str) -> None:
        try:
            await self._balance_refresh(user_id)
        except Exception as e:
            logger.error(f"Balance refresh for {user_id} failed: {e}")

    def _duration(self, entry: MonitorEntry, now: datetime) -> float:
        return max((now - entry.started_at).total_seconds(), 0.0)

    # Stats

    def get_stats(self) -> MonitorStats:
        """Get statistics about the active monitor set."""
        entries = list(self._active.values())
        now = self._clock()
        average = (
            sum(self._duration(e, now) for e in entries) / len(entries) if entries else 0.0
        )
        return MonitorStats(
            active_count=len(entries),
            by_type=dict(Counter(e.operation_type.value for e in entries)),
            by_status=dict(Counter(e.status.value for e in entries)),
            average_monitoring_seconds=average,
            max_retries=self.config.max_retries,
            poll_interval=self.config.poll_interval,
        )
