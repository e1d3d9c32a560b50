"""Reward vesting, monthly caps and governed change tables.

Revision ID: 20261017_01
Revises:
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261017_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS: dict[str, tuple[str, ...]] = {
    "reward_grant_status": ("vesting", "vested", "cancelled"),
    "loyalty_change_type": (
        "point_release_delay",
        "referral_parameters",
        "nft_earning_ratios",
        "loyalty_network_settings",
        "merchant_limits",
        "inactivity_timeout",
        "sms_otp_settings",
        "subscription_plans",
        "asset_initiative_selection",
        "wallet_management",
        "payment_gateway",
        "email_notifications",
    ),
    "loyalty_change_status": ("pending", "approved", "rejected", "implemented"),
    "dao_voting_type": ("simple_majority", "super_majority"),
    "dao_proposal_status": ("draft", "active", "passed", "rejected", "executed", "cancelled"),
}


def _is_postgres() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def _enum(name: str) -> sa.types.TypeEngine:
    if _is_postgres():
        return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)
    return sa.Enum(*ENUMS[name], name=name)


def _uuid() -> sa.types.TypeEngine:
    return postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    if _is_postgres():
        bind = op.get_bind()
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "subscription_plans",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("monthly_points_cap", sa.Numeric(14, 2), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "merchants",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("subscription_plan_id", _uuid(), nullable=True),
        sa.Column("default_reward_percentage", sa.Numeric(5, 2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["subscription_plan_id"], ["subscription_plans.id"]),
    )

    op.create_table(
        "merchant_monthly_points",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("merchant_id", _uuid(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("points_distributed", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("points_cap", sa.Numeric(14, 2), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("merchant_id", "year", "month", name="uq_merchant_monthly_points_period"),
    )
    op.create_index("ix_merchant_monthly_points_merchant_id", "merchant_monthly_points", ["merchant_id"])

    op.create_table(
        "nft_tiers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("slug", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("multiplier", sa.Numeric(6, 3), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "holder_nft_tiers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("holder_id", sa.String(), nullable=False, unique=True),
        sa.Column("tier_id", _uuid(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["tier_id"], ["nft_tiers.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "reward_grants",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("transaction_id", sa.String(), nullable=False, unique=True),
        sa.Column("holder_id", sa.String(), nullable=False),
        sa.Column("merchant_id", _uuid(), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", _enum("reward_grant_status"), nullable=False, server_default="vesting"),
        sa.Column("vesting_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("vesting_end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["merchant_id"], ["merchants.id"]),
        sa.CheckConstraint("vesting_end_at > vesting_start_at", name="ck_reward_grants_vesting_window_positive"),
        sa.CheckConstraint("amount >= 0", name="ck_reward_grants_amount_non_negative"),
    )
    op.create_index("ix_reward_grants_holder_id", "reward_grants", ["holder_id"])
    op.create_index("ix_reward_grants_merchant_id", "reward_grants", ["merchant_id"])
    op.create_index("ix_reward_grants_status", "reward_grants", ["status"])
    op.create_index("ix_reward_grants_vesting_end_at", "reward_grants", ["vesting_end_at"])

    op.create_table(
        "maturity_sweep_runs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("triggered_by", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="running"),
        sa.Column("reference_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("matured_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "loyalty_change_requests",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("change_type", _enum("loyalty_change_type"), nullable=False),
        sa.Column("parameter_name", sa.String(), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("proposed_by", sa.String(), nullable=False),
        sa.Column("status", _enum("loyalty_change_status"), nullable=False, server_default="pending"),
        sa.Column("linked_proposal_id", _uuid(), nullable=True, unique=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_loyalty_change_requests_parameter_name", "loyalty_change_requests", ["parameter_name"])
    op.create_index("ix_loyalty_change_requests_status", "loyalty_change_requests", ["status"])

    op.create_table(
        "dao_proposals",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("full_description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("governance_domain", sa.String(), nullable=False),
        sa.Column("batch", sa.String(), nullable=True),
        sa.Column("priority", sa.String(), nullable=False),
        sa.Column("voting_type", _enum("dao_voting_type"), nullable=False),
        sa.Column("status", _enum("dao_proposal_status"), nullable=False, server_default="draft"),
        sa.Column("yes_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("no_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("treasury_impact_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("treasury_impact_currency", sa.String(), nullable=False, server_default="SOL"),
        sa.Column("linked_change_request_id", _uuid(), nullable=False, unique=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["linked_change_request_id"], ["loyalty_change_requests.id"], ondelete="RESTRICT"
        ),
    )
    op.create_index("ix_dao_proposals_category", "dao_proposals", ["category"])

    op.create_table(
        "engine_parameters",
        sa.Column("name", sa.String(), primary_key=True),
        sa.Column("change_type", _enum("loyalty_change_type"), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("change_request_id", _uuid(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["change_request_id"], ["loyalty_change_requests.id"]),
    )


def downgrade() -> None:
    op.drop_table("engine_parameters")
    op.drop_index("ix_dao_proposals_category", table_name="dao_proposals")
    op.drop_table("dao_proposals")
    op.drop_index("ix_loyalty_change_requests_status", table_name="loyalty_change_requests")
    op.drop_index("ix_loyalty_change_requests_parameter_name", table_name="loyalty_change_requests")
    op.drop_table("loyalty_change_requests")
    op.drop_table("maturity_sweep_runs")
    for index in (
        "ix_reward_grants_vesting_end_at",
        "ix_reward_grants_status",
        "ix_reward_grants_merchant_id",
        "ix_reward_grants_holder_id",
    ):
        op.drop_index(index, table_name="reward_grants")
    op.drop_table("reward_grants")
    op.drop_table("holder_nft_tiers")
    op.drop_table("nft_tiers")
    op.drop_index("ix_merchant_monthly_points_merchant_id", table_name="merchant_monthly_points")
    op.drop_table("merchant_monthly_points")
    op.drop_table("merchants")
    op.drop_table("subscription_plans")

    if _is_postgres():
        bind = op.get_bind()
        for name, values in reversed(list(ENUMS.items())):
            postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
