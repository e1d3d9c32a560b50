"""Vesting ledger exports."""

from .ledger import (  # noqa: F401
    GrantView,
    StatusTotals,
    VestingLedger,
    VestingSummary,
    days_remaining,
    vesting_progress,
)
from .repository import RewardGrantRepository  # noqa: F401
