"""SQLAlchemy models package."""

from .governance import (  # noqa: F401
    ChangeRequest,
    ChangeRequestStatus,
    EngineParameter,
    GovernanceProposal,
    LoyaltyChangeType,
    ProposalStatus,
    VotingType,
)
from .merchant import Merchant, MerchantMonthlyPeriod, SubscriptionPlan  # noqa: F401
from .nft import HolderNftTier, NftTier  # noqa: F401
from .vesting import MaturitySweepRun, RewardGrant, RewardGrantStatus  # noqa: F401

__all__ = [
    "ChangeRequest",
    "ChangeRequestStatus",
    "EngineParameter",
    "GovernanceProposal",
    "HolderNftTier",
    "LoyaltyChangeType",
    "MaturitySweepRun",
    "Merchant",
    "MerchantMonthlyPeriod",
    "NftTier",
    "ProposalStatus",
    "RewardGrant",
    "RewardGrantStatus",
    "SubscriptionPlan",
    "VotingType",
]
