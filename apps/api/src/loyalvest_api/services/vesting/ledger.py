"""Reward grant lifecycle: vesting -> vested | cancelled.

Transitions out of ``vesting`` are guarded updates that only succeed while the
row is still ``vesting``. A cancellation racing the maturity sweep therefore
either wins outright or observes the new state and raises.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.core.clock import ensure_utc, utcnow
from loyalvest_api.models.vesting import RewardGrant, RewardGrantStatus
from loyalvest_api.observability.engine import EngineObservabilityStore, get_engine_store
from loyalvest_api.services.errors import (
    AlreadyCancelledError,
    AlreadyVestedError,
    DuplicateTransactionError,
    InvalidInputError,
    NotFoundError,
)
from loyalvest_api.services.governance.parameters import EngineParameters

from .repository import RewardGrantRepository


_DAY = timedelta(days=1)


def vesting_progress(grant: RewardGrant, now: datetime | None = None) -> float:
    """Percentage of the vesting window elapsed, clamped to [0, 100]."""

    reference = ensure_utc(now or utcnow())
    start = ensure_utc(grant.vesting_start_at)
    end = ensure_utc(grant.vesting_end_at)
    window = (end - start).total_seconds()
    if window <= 0:
        return 100.0
    elapsed = (reference - start).total_seconds()
    return max(0.0, min(100.0, 100.0 * elapsed / window))


def days_remaining(grant: RewardGrant, now: datetime | None = None) -> int:
    """Whole days until maturity, rounded up; zero once the window has passed."""

    reference = ensure_utc(now or utcnow())
    remaining = ensure_utc(grant.vesting_end_at) - reference
    if remaining <= timedelta(0):
        return 0
    return math.ceil(remaining / _DAY)


@dataclass
class GrantView:
    grant: RewardGrant
    progress: float | None = None
    days_remaining: int | None = None


@dataclass
class StatusTotals:
    count: int = 0
    amount: Decimal = Decimal("0")


@dataclass
class VestingSummary:
    """Per-holder aggregation for display layers."""

    holder_id: str
    vesting: list[GrantView] = field(default_factory=list)
    vested: list[GrantView] = field(default_factory=list)
    cancelled: list[GrantView] = field(default_factory=list)
    totals: dict[str, StatusTotals] = field(
        default_factory=lambda: {status.value: StatusTotals() for status in RewardGrantStatus}
    )


class VestingLedger:
    """Owns creation and state transitions of reward grants.

    ``create_grant`` only flushes so it can join the caller's unit of work;
    ``cancel_grant`` and ``sweep_maturities`` commit their own transitions.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        parameters: EngineParameters | None = None,
        observability: EngineObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._grants = RewardGrantRepository(db_session)
        self._parameters = parameters or EngineParameters(db_session)
        self._observability = observability or get_engine_store()

    async def create_grant(
        self,
        transaction_id: str,
        holder_id: str,
        amount: Decimal | int | str,
        *,
        merchant_id: UUID | None = None,
        now: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> RewardGrant:
        if not transaction_id or not str(transaction_id).strip():
            raise InvalidInputError("transactionId is required")
        if not holder_id or not str(holder_id).strip():
            raise InvalidInputError("holderId is required")
        value = Decimal(str(amount))
        if not value.is_finite() or value < 0:
            raise InvalidInputError("Grant amount must be a non-negative number", amount=str(amount))

        existing = await self._grants.get_by_transaction(transaction_id)
        if existing is not None:
            raise DuplicateTransactionError(transaction_id, existing.id)

        start = ensure_utc(now or utcnow())
        window = await self._parameters.vesting_window()
        grant = await self._grants.add(
            RewardGrant(
                transaction_id=transaction_id,
                holder_id=holder_id,
                merchant_id=merchant_id,
                amount=value,
                status=RewardGrantStatus.VESTING,
                vesting_start_at=start,
                vesting_end_at=start + window,
                metadata_json=metadata,
            )
        )
        logger.info(
            "Reward grant created",
            grant_id=str(grant.id),
            transaction_id=transaction_id,
            holder_id=holder_id,
            amount=str(value),
            vesting_end_at=grant.vesting_end_at.isoformat(),
        )
        return grant

    async def cancel_grant(self, grant_id: UUID, *, now: datetime | None = None) -> RewardGrant:
        """Cancel a vesting grant before its window closes."""

        reference = ensure_utc(now or utcnow())
        grace = await self._parameters.cancellation_grace_period()
        cancelled = await self._grants.transition(
            grant_id,
            expected=RewardGrantStatus.VESTING,
            target=RewardGrantStatus.CANCELLED,
            values={"cancelled_at": reference},
            vesting_end_after=reference + grace,
        )
        if not cancelled:
            await self._db.rollback()
            grant = await self._grants.get(grant_id, fresh=True)
            if grant is None:
                raise NotFoundError(f"Reward grant {grant_id} not found", grant_id=grant_id)
            status = grant.status.value
            logger.warning("Grant cancellation rejected", grant_id=str(grant_id), status=status)
            if grant.status == RewardGrantStatus.CANCELLED:
                raise AlreadyCancelledError(
                    f"Reward grant {grant_id} is already cancelled", grant_id=grant_id, status=status
                )
            if grant.status == RewardGrantStatus.VESTED:
                raise AlreadyVestedError(
                    f"Reward grant {grant_id} has already vested", grant_id=grant_id, status=status
                )
            raise AlreadyVestedError(
                f"Vesting window for reward grant {grant_id} has closed",
                grant_id=grant_id,
                status=status,
            )

        await self._db.commit()
        grant = await self._grants.get(grant_id, fresh=True)
        self._observability.record_grant_event("cancelled")
        logger.info("Reward grant cancelled", grant_id=str(grant_id), transaction_id=grant.transaction_id)
        return grant

    async def sweep_maturities(self, now: datetime | None = None, *, limit: int | None = None) -> int:
        """Vest every grant whose window has ended; returns the count matured."""

        reference = ensure_utc(now or utcnow())
        if limit is not None and limit <= 0:
            raise InvalidInputError("Sweep limit must be positive", limit=limit)
        try:
            matured = await self._grants.mature_due(reference, limit=limit)
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise
        self._observability.record_sweep(matured)
        if matured:
            logger.info("Vesting grants matured", matured=matured, reference_time=reference.isoformat())
        return matured

    async def get_grant(self, grant_id: UUID) -> RewardGrant:
        grant = await self._grants.get(grant_id, fresh=True)
        if grant is None:
            raise NotFoundError(f"Reward grant {grant_id} not found", grant_id=grant_id)
        return grant

    async def get_grant_by_transaction(self, transaction_id: str) -> RewardGrant | None:
        return await self._grants.get_by_transaction(transaction_id)

    async def list_grants(
        self,
        holder_id: str,
        *,
        status: RewardGrantStatus | None = None,
    ) -> list[RewardGrant]:
        return await self._grants.list_for_holder(holder_id, status=status)

    async def summary(self, holder_id: str, *, now: datetime | None = None) -> VestingSummary:
        reference = ensure_utc(now or utcnow())
        result = VestingSummary(holder_id=holder_id)
        for grant in await self._grants.list_for_holder(holder_id):
            totals = result.totals[grant.status.value]
            totals.count += 1
            totals.amount += Decimal(grant.amount)
            if grant.status == RewardGrantStatus.VESTING:
                result.vesting.append(
                    GrantView(
                        grant=grant,
                        progress=vesting_progress(grant, reference),
                        days_remaining=days_remaining(grant, reference),
                    )
                )
            elif grant.status == RewardGrantStatus.VESTED:
                result.vested.append(GrantView(grant=grant, progress=100.0, days_remaining=0))
            else:
                result.cancelled.append(GrantView(grant=grant))
        return result


__all__ = [
    "GrantView",
    "StatusTotals",
    "VestingLedger",
    "VestingSummary",
    "days_remaining",
    "vesting_progress",
]
