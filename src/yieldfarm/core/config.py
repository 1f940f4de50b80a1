"""Application configuration management using pydantic-settings."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="yieldfarm-backend", description="Application name")
    environment: Literal["development", "testing", "staging", "production"] = Field(
        default="development", description="Runtime environment"
    )
    debug: bool = Field(default=False, description="Debug mode flag")

    # API
    api_prefix: str = Field(default="/api", description="API route prefix")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="CORS allowed origins",
    )

    # Database
    db_host: str = Field(default="localhost", description="PostgreSQL host")
    db_port: int = Field(default=5432, description="PostgreSQL port")
    db_user: str = Field(default="postgres", description="PostgreSQL user")
    db_password: str = Field(default="postgres", description="PostgreSQL password")
    db_name: str = Field(default="yieldfarm", description="PostgreSQL database name")

    # Chains
    polygon_rpc_url: str = Field(
        default="https://polygon-rpc.com", description="Polygon RPC endpoint"
    )
    polygon_backup_rpc_urls: list[str] = Field(
        default=["https://polygon-bor-rpc.publicnode.com"],
        description="Backup Polygon RPC endpoints",
    )
    gnosis_rpc_url: str = Field(
        default="https://rpc.gnosischain.com", description="Gnosis RPC endpoint"
    )
    gnosis_backup_rpc_urls: list[str] = Field(
        default=["https://gnosis-rpc.publicnode.com"],
        description="Backup Gnosis RPC endpoints",
    )

    # Feature Flags
    ff_chain_client: Literal["mock", "real"] = Field(
        default="mock", description="Chain client implementation"
    )
    ff_transaction_store: Literal["memory", "database"] = Field(
        default="memory", description="Transaction record storage backend"
    )

    # Transaction monitoring
    monitor_poll_interval: float = Field(
        default=30.0, gt=0, description="Seconds between status polls"
    )
    monitor_max_retries: int = Field(
        default=5, ge=1, description="Polls without a definitive outcome before timeout"
    )
    monitor_resume_on_startup: bool = Field(
        default=True, description="Resume monitoring of unfinished records at startup"
    )
    monitor_resume_window_hours: int = Field(
        default=24, ge=1, description="Only resume records created within this window"
    )
    monitor_persist_attempts: int = Field(
        default=3, ge=1, description="Attempts to store a terminal status before giving up"
    )

    # Farming
    min_compound_earnings: Decimal = Field(
        default=Decimal("0.01"), description="Minimum earnings required to compound"
    )
    min_slippage: Decimal = Field(default=Decimal("0.1"), description="Minimum slippage %")
    max_slippage: Decimal = Field(default=Decimal("5"), description="Maximum slippage %")
    default_slippage: Decimal = Field(default=Decimal("0.5"), description="Default slippage %")
    earnings_rate: Decimal = Field(
        default=Decimal("0.01"), description="Simulated earnings as a share of LP balance"
    )

    # Simulation (mock chain client)
    sim_success_rate: float = Field(
        default=0.7, ge=0, le=1, description="Share of polls reporting completion"
    )
    sim_failure_rate: float = Field(
        default=0.1, ge=0, le=1, description="Share of polls reporting failure"
    )
    sim_latency_seconds: float = Field(
        default=1.0, ge=0, description="Simulated network latency"
    )
    sim_seed: int | None = Field(default=None, description="Seed for simulated outcomes")
    sim_initial_balance: Decimal = Field(
        default=Decimal("1000"), ge=0, description="Starting EURe balance of unseen wallets"
    )

    # WebSocket
    ws_require_signature: bool = Field(
        default=False, description="Require a wallet signature to authenticate sockets"
    )
    ws_nonce_expire_seconds: int = Field(
        default=300, description="Validity of sign-in nonces in seconds"
    )

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, description="Enable rate limiting")
    rate_limit_per_minute: int = Field(default=100, description="Requests per minute")
    rate_limit_per_hour: int = Field(default=1000, description="Requests per hour")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] = Field(
        default="json", description="Log output format"
    )

    @computed_field
    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @computed_field
    @property
    def polygon_rpc_urls(self) -> list[str]:
        """Primary and backup Polygon endpoints in failover order."""
        return [self.polygon_rpc_url, *self.polygon_backup_rpc_urls]

    @computed_field
    @property
    def gnosis_rpc_urls(self) -> list[str]:
        """Primary and backup Gnosis endpoints in failover order."""
        return [self.gnosis_rpc_url, *self.gnosis_backup_rpc_urls]

    @computed_field
    @property
    def is_development(self) -> bool:
        """Whether error details may be exposed to clients."""
        return self.environment == "development" or self.debug


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
