"""Construction of the long-lived application components."""

import logging
from dataclasses import dataclass

from yieldfarm.core.config import Settings
from yieldfarm.infrastructure.chain import ChainClient, RpcChainClient, SimulatedChainClient
from yieldfarm.repositories import (
    InMemoryTransactionRepository,
    SqlTransactionRepository,
    TransactionRepository,
)
from yieldfarm.services.auth import WalletAuthService
from yieldfarm.services.balances import BalanceService
from yieldfarm.services.farming import EarningsCalculator, FarmingLimits, OperationOrchestrator
from yieldfarm.services.monitor import MonitorConfig, TransactionMonitor
from yieldfarm.services.notifications import NotificationHub
from yieldfarm.services.security import RateLimitConfig, RateLimiter
from yieldfarm.services.transactions.service import TransactionHistoryService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Every component a request handler may need, built once per app."""

    settings: Settings
    chain_client: ChainClient
    repository: TransactionRepository
    auth_service: WalletAuthService
    hub: NotificationHub
    balances: BalanceService
    monitor: TransactionMonitor
    earnings: EarningsCalculator
    orchestrator: OperationOrchestrator
    history: TransactionHistoryService
    rate_limiter: RateLimiter

    @property
    def uses_database(self) -> bool:
        return isinstance(self.repository, SqlTransactionRepository)


def build_chain_client(settings: Settings) -> ChainClient:
    """Select the chain client named by ``ff_chain_client``."""
    simulation = {
        "success_rate": settings.sim_success_rate,
        "failure_rate": settings.sim_failure_rate,
        "latency_seconds": settings.sim_latency_seconds,
        "initial_balance": settings.sim_initial_balance,
        "seed": settings.sim_seed,
    }
    if settings.ff_chain_client == "real":
        return RpcChainClient(
            rpc_urls={
                "polygon": settings.polygon_rpc_urls,
                "gnosis": settings.gnosis_rpc_urls,
            },
            **simulation,
        )
    return SimulatedChainClient(**simulation)


def build_repository(settings: Settings) -> TransactionRepository:
    """Select the record store named by ``ff_transaction_store``."""
    if settings.ff_transaction_store == "database":
        # Imported lazily so memory mode never creates an engine
        from yieldfarm.infrastructure.database import get_session_factory

        return SqlTransactionRepository(get_session_factory())
    return InMemoryTransactionRepository()


def build_container(
    settings: Settings,
    chain_client: ChainClient | None = None,
    repository: TransactionRepository | None = None,
) -> ServiceContainer:
    """Wire the application components together.

    Args:
        settings: Application settings
        chain_client: Overrides the flag-selected chain client
        repository: Overrides the flag-selected record store

    Returns:
        Fully wired container
    """
    if chain_client is None:
        chain_client = build_chain_client(settings)
    if repository is None:
        repository = build_repository(settings)

    auth_service = WalletAuthService(
        app_name=settings.app_name,
        nonce_expire_seconds=settings.ws_nonce_expire_seconds,
    )
    hub = NotificationHub(
        auth_service=auth_service,
        require_signature=settings.ws_require_signature,
    )
    balances = BalanceService(chain_client, hub)
    monitor = TransactionMonitor(
        chain_client,
        repository,
        hub,
        config=MonitorConfig.from_settings(settings),
        balance_refresh=balances.refresh,
    )
    earnings = EarningsCalculator(chain_client, rate=settings.earnings_rate)
    orchestrator = OperationOrchestrator(
        chain_client,
        repository,
        monitor,
        hub,
        earnings,
        limits=FarmingLimits.from_settings(settings),
    )

    logger.info(
        f"Components built: chain={type(chain_client).__name__}, "
        f"store={type(repository).__name__}"
    )
    return ServiceContainer(
        settings=settings,
        chain_client=chain_client,
        repository=repository,
        auth_service=auth_service,
        hub=hub,
        balances=balances,
        monitor=monitor,
        earnings=earnings,
        orchestrator=orchestrator,
        history=TransactionHistoryService(repository),
        rate_limiter=RateLimiter(RateLimitConfig.from_settings(settings)),
    )
