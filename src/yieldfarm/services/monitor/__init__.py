"""Transaction lifecycle monitoring."""

from yieldfarm.services.monitor.monitor import MonitorEntry, TransactionMonitor
from yieldfarm.services.monitor.schemas import MonitorConfig, MonitorStats, StopReceipt

__all__ = [
    "MonitorConfig",
    "MonitorEntry",
    "MonitorStats",
    "StopReceipt",
    "TransactionMonitor",
]
