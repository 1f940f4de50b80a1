"""Schemas for the transaction lifecycle monitor."""

from datetime import datetime

from pydantic import BaseModel, Field

from yieldfarm.core.config import Settings
from yieldfarm.core.schemas import CamelModel
from yieldfarm.services.transactions.schemas import utcnow


class MonitorConfig(BaseModel):
    """Polling parameters."""

    poll_interval: float = Field(default=30.0, gt=0, description="Seconds between polls")
    max_retries: int = Field(
        default=5, ge=1, description="Non-definitive polls before timeout"
    )
    resume_window_hours: int = Field(
        default=24, ge=1, description="Age limit for records resumed at startup"
    )
    persist_attempts: int = Field(
        default=3, ge=1, description="Store writes tried before a terminal result is abandoned"
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "MonitorConfig":
        return cls(
            poll_interval=settings.monitor_poll_interval,
            max_retries=settings.monitor_max_retries,
            resume_window_hours=settings.monitor_resume_window_hours,
            persist_attempts=settings.monitor_persist_attempts,
        )


class MonitorStats(CamelModel):
    """Snapshot of the active monitor set."""

    active_count: int
    by_type: dict[str, int]
    by_status: dict[str, int]
    average_monitoring_seconds: float
    max_retries: int
    poll_interval: float
    timestamp: datetime = Field(default_factory=utcnow)


class StopReceipt(CamelModel):
    """Outcome of stopping the watch on one transaction."""

    transaction_id: str
    stopped: bool
    message: str
