"""Governed change requests, linked DAO proposals and governed parameters."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
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


class LoyaltyChangeType(str, Enum):
    """Classes of loyalty behaviour that may only change through governance."""

    POINT_RELEASE_DELAY = "point_release_delay"
    REFERRAL_PARAMETERS = "referral_parameters"
    NFT_EARNING_RATIOS = "nft_earning_ratios"
    LOYALTY_NETWORK_SETTINGS = "loyalty_network_settings"
    MERCHANT_LIMITS = "merchant_limits"
    INACTIVITY_TIMEOUT = "inactivity_timeout"
    SMS_OTP_SETTINGS = "sms_otp_settings"
    SUBSCRIPTION_PLANS = "subscription_plans"
    ASSET_INITIATIVE_SELECTION = "asset_initiative_selection"
    WALLET_MANAGEMENT = "wallet_management"
    PAYMENT_GATEWAY = "payment_gateway"
    EMAIL_NOTIFICATIONS = "email_notifications"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title().replace("Nft", "NFT").replace("Sms Otp", "SMS OTP")


CHANGE_TYPE_ENUM = SqlEnum(LoyaltyChangeType, name="loyalty_change_type", values_callable=enum_values)


class ChangeRequestStatus(str, Enum):
    """Lifecycle statuses for loyalty change requests."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPLEMENTED = "implemented"


class ProposalStatus(str, Enum):
    """Statuses owned by the DAO voting subsystem."""

    DRAFT = "draft"
    ACTIVE = "active"
    PASSED = "passed"
    REJECTED = "rejected"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


class VotingType(str, Enum):
    """Voting threshold tiers requested from the DAO."""

    SIMPLE_MAJORITY = "simple_majority"
    SUPER_MAJORITY = "super_majority"


class ChangeRequest(Base):
    """Proposed modification to a governed parameter."""

    __tablename__ = "loyalty_change_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    change_type = Column(CHANGE_TYPE_ENUM, nullable=False)
    parameter_name = Column(String, nullable=False, index=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    reason = Column(Text, nullable=False)
    proposed_by = Column(String, nullable=False)
    status = Column(
        SqlEnum(ChangeRequestStatus, name="loyalty_change_status", values_callable=enum_values),
        nullable=False,
        default=ChangeRequestStatus.PENDING,
        server_default=ChangeRequestStatus.PENDING.value,
        index=True,
    )
    # Set in the same unit of work that inserts the proposal.
    linked_proposal_id = Column(UUID(as_uuid=True), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    implemented_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class GovernanceProposal(Base):
    """DAO proposal linked to a change request.

    The engine writes the routing fields at creation and afterwards only
    reads ``status``. Tally columns belong to the voting subsystem.
    """

    __tablename__ = "dao_proposals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    full_description = Column(Text, nullable=True)
    category = Column(String, nullable=False, index=True)
    governance_domain = Column(String, nullable=False)
    batch = Column(String, nullable=True)
    priority = Column(String, nullable=False)
    voting_type = Column(
        SqlEnum(VotingType, name="dao_voting_type", values_callable=enum_values),
        nullable=False,
    )
    status = Column(
        SqlEnum(ProposalStatus, name="dao_proposal_status", values_callable=enum_values),
        nullable=False,
        default=ProposalStatus.DRAFT,
        server_default=ProposalStatus.DRAFT.value,
    )
    yes_votes = Column(Integer, nullable=False, default=0, server_default="0")
    no_votes = Column(Integer, nullable=False, default=0, server_default="0")
    total_votes = Column(Integer, nullable=False, default=0, server_default="0")
    tags = Column(JSON, nullable=False, default=list)
    treasury_impact_amount = Column(Numeric(14, 2), nullable=False, default=0, server_default="0")
    treasury_impact_currency = Column(String, nullable=False, default="SOL", server_default="SOL")
    linked_change_request_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loyalty_change_requests.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    decided_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class EngineParameter(Base):
    """Current value of a governed parameter, written only by executed changes."""

    __tablename__ = "engine_parameters"

    name = Column(String, primary_key=True)
    change_type = Column(CHANGE_TYPE_ENUM, nullable=False)
    value = Column(JSON, nullable=True)
    change_request_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loyalty_change_requests.id"),
        nullable=False,
    )
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = [
    "ChangeRequest",
    "ChangeRequestStatus",
    "EngineParameter",
    "GovernanceProposal",
    "LoyaltyChangeType",
    "ProposalStatus",
    "VotingType",
]
