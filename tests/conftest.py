"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from tests.fakes import FakeChainClient, no_sleep
from yieldfarm.core.config import Settings
from yieldfarm.repositories import InMemoryTransactionRepository
from yieldfarm.services.monitor import MonitorConfig, TransactionMonitor
from yieldfarm.services.notifications import NotificationHub


@pytest.fixture
def settings():
    """Create settings instance for testing."""
    return Settings(
        environment="testing",
        monitor_poll_interval=3600,
        monitor_resume_on_startup=False,
        rate_limit_enabled=False,
        log_format="console",
    )


@pytest.fixture
def fake_chain():
    return FakeChainClient()


@pytest.fixture
def repository():
    return InMemoryTransactionRepository()


@pytest.fixture
def hub():
    return NotificationHub()


@pytest.fixture
def monitor(fake_chain, repository, hub):
    return TransactionMonitor(
        fake_chain,
        repository,
        hub,
        config=MonitorConfig(poll_interval=0.01, max_retries=5),
        sleep=no_sleep,
    )


@pytest.fixture
def app(settings, fake_chain, repository):
    """Create FastAPI application for testing."""
    from yieldfarm.main import create_app

    return create_app(settings, chain_client=fake_chain, repository=repository)


@pytest.fixture
def client(app):
    """Create test client."""
    with TestClient(app) as client:
        yield client
