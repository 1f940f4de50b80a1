"""Database infrastructure module."""

from yieldfarm.infrastructure.database.session import (
    create_tables,
    get_async_engine,
    get_session_factory,
)

__all__ = [
    "get_async_engine",
    "get_session_factory",
    "create_tables",
]
