"""Reward service exports."""

from .calculator import NftMultiplierDirectory, compute_reward  # noqa: F401
from .cap_tracker import CapAuthorization, MonthlyCapTracker, PeriodUsage, usage_status  # noqa: F401
from .processor import TransactionProcessor, TransactionResult  # noqa: F401
from .repository import MerchantRepository, MonthlyPeriodRepository  # noqa: F401
