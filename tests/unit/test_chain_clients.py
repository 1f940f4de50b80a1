"""Tests for the simulated chain client and RPC failover."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from tests.fakes import USER
from yieldfarm.core.exceptions import ChainUnavailable
from yieldfarm.infrastructure.chain import (
    PollOutcome,
    RpcEndpointPool,
    SimulatedChainClient,
    SubmissionRequest,
)
from yieldfarm.infrastructure.chain.tokens import EURE, FARMING_PAIR, LP_EURE
from yieldfarm.services.transactions import OperationType


def deposit_request(amount: str = "100") -> SubmissionRequest:
    return SubmissionRequest(
        operation_type=OperationType.DEPOSIT,
        user_id=USER,
        amount=Decimal(amount),
        slippage=Decimal("0.5"),
        source_chain="polygon",
        destination_chain="gnosis",
        token_symbol="EURe",
    )


class TestSimulatedChainClient:
    """Tests for SimulatedChainClient."""

    @pytest.mark.asyncio
    async def test_default_balances(self):
        """Unseen wallets start with the configured EURe balance."""
        client = SimulatedChainClient(initial_balance=Decimal("250"), seed=1)

        assert await client.get_token_balance(USER, EURE) == Decimal("250")
        assert await client.get_token_balance(USER, LP_EURE) == Decimal("0")
        assert await client.get_native_balance(USER, "polygon") == Decimal("10")

    @pytest.mark.asyncio
    async def test_set_balance_case_insensitive(self):
        client = SimulatedChainClient(seed=1)
        mixed = "0xAbCd000000000000000000000000000000000001"

        client.set_balance(mixed, "LP-EURe", Decimal("5"))

        assert await client.get_token_balance(mixed.lower(), LP_EURE) == Decimal("5")

    @pytest.mark.asyncio
    async def test_gas_prices(self):
        client = SimulatedChainClient()

        assert await client.get_gas_price("polygon") == 30_000_000_000
        assert await client.get_gas_price("gnosis") == 2_000_000_000

    @pytest.mark.asyncio
    async def test_submission_returns_hash(self):
        """Submissions return 32-byte hex hashes after the simulated latency."""
        sleep = AsyncMock()
        client = SimulatedChainClient(latency_seconds=0.5, seed=7, sleep=sleep)

        tx_hash = await client.submit_operation(deposit_request())

        assert tx_hash.startswith("0x")
        assert len(tx_hash) == 66
        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_completion_moves_balances(self):
        """A completed deposit moves EURe into LP tokens."""
        client = SimulatedChainClient(
            success_rate=1.0, failure_rate=0.0, latency_seconds=0, seed=3
        )
        tx_hash = await client.submit_operation(deposit_request("100"))

        result = await client.get_operation_status(tx_hash)

        assert result.outcome == PollOutcome.COMPLETED
        assert result.confirmation.confirmations == 12
        assert await client.get_token_balance(USER, FARMING_PAIR.deposit) == Decimal("900")
        assert await client.get_token_balance(USER, FARMING_PAIR.reward) == Decimal("100")

    @pytest.mark.asyncio
    async def test_failure_outcome(self):
        client = SimulatedChainClient(
            success_rate=0.0, failure_rate=1.0, latency_seconds=0, seed=3
        )
        tx_hash = await client.submit_operation(deposit_request())

        result = await client.get_operation_status(tx_hash)

        assert result.outcome == PollOutcome.FAILED
        assert result.error
        assert await client.get_token_balance(USER, EURE) == Decimal("1000")

    @pytest.mark.asyncio
    async def test_pending_outcome(self):
        client = SimulatedChainClient(success_rate=0.0, failure_rate=0.0, latency_seconds=0)

        result = await client.get_operation_status("0xabc")

        assert result.outcome == PollOutcome.STILL_PENDING

    def test_rates_validated(self):
        with pytest.raises(ValueError):
            SimulatedChainClient(success_rate=0.8, failure_rate=0.3)


class TestRpcEndpointPool:
    """Tests for RpcEndpointPool failover."""

    def setup_method(self):
        self.pool = RpcEndpointPool(
            "polygon", ["https://primary", "https://backup"], max_retries=2, retry_delay=0
        )

    @pytest.mark.asyncio
    async def test_first_endpoint_succeeds(self):
        operation = AsyncMock(return_value=42)

        assert await self.pool.execute(operation) == 42
        operation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fails_over_to_backup(self):
        """After the primary exhausts its retries the backup is used and kept."""
        primary = self.pool._get_web3(0)

        async def operation(w3):
            if w3 is primary:
                raise ConnectionError("primary down")
            return "ok"

        assert await self.pool.execute(operation) == "ok"
        assert self.pool._current_rpc_index == 1

    @pytest.mark.asyncio
    async def test_all_endpoints_down(self):
        """ChainUnavailable is raised when every endpoint fails."""
        operation = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ChainUnavailable) as exc_info:
            await self.pool.execute(operation)

        assert operation.await_count == 4
        assert exc_info.value.details["chain"] == "polygon"

    def test_requires_endpoints(self):
        with pytest.raises(ValueError):
            RpcEndpointPool("gnosis", [])
