"""Reward grant ledger and maturity sweep audit models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from loyalvest_api.db.base import Base, enum_values


class RewardGrantStatus(str, Enum):
    """Lifecycle statuses for notional reward grants."""

    VESTING = "vesting"
    VESTED = "vested"
    CANCELLED = "cancelled"


class RewardGrant(Base):
    """Notional reward recorded for a merchant transaction.

    Rows are append-only: only ``status``, ``cancelled_at`` and ``vested_at``
    change after insert, and only out of ``vesting``.
    """

    __tablename__ = "reward_grants"
    __table_args__ = (
        CheckConstraint("vesting_end_at > vesting_start_at", name="vesting_window_positive"),
        CheckConstraint("amount >= 0", name="amount_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    transaction_id = Column(String, nullable=False, unique=True, index=True)
    holder_id = Column(String, nullable=False, index=True)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id"), nullable=True, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    status = Column(
        SqlEnum(RewardGrantStatus, name="reward_grant_status", values_callable=enum_values),
        nullable=False,
        default=RewardGrantStatus.VESTING,
        server_default=RewardGrantStatus.VESTING.value,
        index=True,
    )
    vesting_start_at = Column(DateTime(timezone=True), nullable=False)
    vesting_end_at = Column(DateTime(timezone=True), nullable=False, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    vested_at = Column(DateTime(timezone=True), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class MaturitySweepRun(Base):
    """Audit row for each maturity sweep execution."""

    __tablename__ = "maturity_sweep_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    triggered_by = Column(String, nullable=False, default="scheduler")
    status = Column(String, nullable=False, default="running", server_default="running")
    reference_time = Column(DateTime(timezone=True), nullable=True)
    matured_count = Column(Integer, nullable=False, default=0, server_default="0")
    error_message = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)


__all__ = ["MaturitySweepRun", "RewardGrant", "RewardGrantStatus"]
