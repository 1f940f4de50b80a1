"""Farming transaction model."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Float,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from yieldfarm.models.base import Base, TimestampMixin

JSONType = JSON().with_variant(JSONB, "postgresql")


class FarmingTransaction(Base, TimestampMixin):
    """Durable history of deposit/withdraw/compound operations."""

    __tablename__ = "farming_transactions"

    # Primary key
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    # Identifiers
    internal_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )
    chain_tx_ref: Mapped[Optional[str]] = mapped_column(
        String(66), nullable=True, index=True
    )

    # Operation
    user_id: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    operation_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(16), nullable=False)
    source_chain: Mapped[str] = mapped_column(String(20), nullable=False)
    destination_chain: Mapped[str] = mapped_column(String(20), nullable=False)
    slippage_tolerance: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)

    # Monitoring state
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confirmation: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Timing
    started_monitoring_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Manual retry linkage
    retry_of: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    retry_attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
