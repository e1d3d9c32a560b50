"""Merchant, subscription plan and monthly distribution period models."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from loyalvest_api.db.base import Base


class SubscriptionPlan(Base):
    """Merchant subscription plan; owned by the billing collaborator."""

    __tablename__ = "subscription_plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False, unique=True)
    monthly_points_cap = Column(Numeric(14, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    merchants = relationship("Merchant", back_populates="subscription_plan")


class Merchant(Base):
    """Merchant identity as consumed by the rewards engine."""

    __tablename__ = "merchants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    subscription_plan_id = Column(UUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=True)
    default_reward_percentage = Column(Numeric(5, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    subscription_plan = relationship("SubscriptionPlan", back_populates="merchants")
    monthly_periods = relationship("MerchantMonthlyPeriod", back_populates="merchant")


class MerchantMonthlyPeriod(Base):
    """Per-merchant calendar month distribution counter.

    ``points_cap`` is copied from the merchant's plan when the period is
    created and never follows later plan changes.
    """

    __tablename__ = "merchant_monthly_points"
    __table_args__ = (
        UniqueConstraint("merchant_id", "year", "month", name="uq_merchant_monthly_points_period"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("merchants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    points_distributed = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    points_cap = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    merchant = relationship("Merchant", back_populates="monthly_periods")


__all__ = ["Merchant", "MerchantMonthlyPeriod", "SubscriptionPlan"]
