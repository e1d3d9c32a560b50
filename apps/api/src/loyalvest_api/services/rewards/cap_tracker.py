"""Per-merchant monthly distribution caps."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.core.clock import ensure_utc, utcnow
from loyalvest_api.models.merchant import Merchant
from loyalvest_api.observability.engine import EngineObservabilityStore, get_engine_store
from loyalvest_api.services.errors import CapExceededError, InvalidInputError, NotFoundError
from loyalvest_api.services.governance.parameters import EngineParameters

from .repository import MerchantRepository, MonthlyPeriodRepository


WARNING_THRESHOLD = Decimal("75")
NEAR_LIMIT_THRESHOLD = Decimal("90")


@dataclass
class CapAuthorization:
    accepted: bool
    remaining: Decimal
    points_cap: Decimal
    points_distributed: Decimal
    period_id: UUID


@dataclass
class PeriodUsage:
    """Merchant usage indicator for the current calendar month."""

    merchant_id: UUID
    year: int
    month: int
    points_distributed: Decimal
    points_cap: Decimal
    remaining: Decimal
    usage_percentage: float
    status: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "merchantId": str(self.merchant_id),
            "year": self.year,
            "month": self.month,
            "pointsDistributed": float(self.points_distributed),
            "pointsCap": float(self.points_cap),
            "remaining": float(self.remaining),
            "usagePercentage": self.usage_percentage,
            "status": self.status,
        }


def usage_status(percentage: Decimal) -> str:
    if percentage >= NEAR_LIMIT_THRESHOLD:
        return "near_limit"
    if percentage >= WARNING_THRESHOLD:
        return "warning"
    return "healthy"


class MonthlyCapTracker:
    """Gates merchant distributions against the cap of the current month.

    ``authorize_distribution`` flushes but never commits; it is meant to run
    inside the same transaction as the grant it authorizes.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        parameters: EngineParameters | None = None,
        observability: EngineObservabilityStore | None = None,
    ) -> None:
        self._merchants = MerchantRepository(db_session)
        self._periods = MonthlyPeriodRepository(db_session)
        self._parameters = parameters or EngineParameters(db_session)
        self._observability = observability or get_engine_store()

    async def get_merchant(self, merchant_id: UUID) -> Merchant:
        merchant = await self._merchants.get(merchant_id)
        if merchant is None:
            raise NotFoundError(f"Merchant {merchant_id} not found", merchant_id=merchant_id)
        return merchant

    async def current_cap(self, merchant: Merchant) -> Decimal:
        """Cap a new period would receive: plan cap, else the governed default."""

        plan = merchant.subscription_plan
        if plan is not None and plan.monthly_points_cap is not None:
            return Decimal(str(plan.monthly_points_cap))
        return await self._parameters.default_monthly_points_cap()

    async def authorize_distribution(
        self,
        merchant_id: UUID,
        amount: Decimal | int | str,
        now: datetime | None = None,
    ) -> CapAuthorization:
        value = Decimal(str(amount))
        if not value.is_finite() or value < 0:
            raise InvalidInputError("Distribution amount must be a non-negative number", amount=str(amount))

        reference = ensure_utc(now or utcnow())
        merchant = await self.get_merchant(merchant_id)
        period = await self._periods.get(merchant_id, reference.year, reference.month, for_update=True)
        if period is None:
            points_cap = await self.current_cap(merchant)
            period = await self._periods.create(
                merchant_id, reference.year, reference.month, points_cap=points_cap
            )
            logger.info(
                "Monthly points period opened",
                merchant_id=str(merchant_id),
                year=reference.year,
                month=reference.month,
                points_cap=str(points_cap),
            )

        if not await self._periods.increment_within_cap(period.id, value):
            await self._periods.refresh(period)
            points_cap = Decimal(str(period.points_cap))
            remaining = max(points_cap - Decimal(str(period.points_distributed)), Decimal("0"))
            self._observability.record_transaction_event("cap_rejected")
            logger.warning(
                "Distribution rejected by monthly cap",
                merchant_id=str(merchant_id),
                requested=str(value),
                remaining=str(remaining),
                points_cap=str(points_cap),
            )
            raise CapExceededError(requested=value, remaining=remaining, points_cap=points_cap)

        await self._periods.refresh(period)
        points_cap = Decimal(str(period.points_cap))
        distributed = Decimal(str(period.points_distributed))
        logger.info(
            "Distribution authorized",
            merchant_id=str(merchant_id),
            amount=str(value),
            points_distributed=str(distributed),
        )
        return CapAuthorization(
            accepted=True,
            remaining=points_cap - distributed,
            points_cap=points_cap,
            points_distributed=distributed,
            period_id=period.id,
        )

    async def get_period_usage(self, merchant_id: UUID, now: datetime | None = None) -> PeriodUsage:
        """Read usage for the month of ``now`` without opening a period."""

        reference = ensure_utc(now or utcnow())
        merchant = await self.get_merchant(merchant_id)
        period = await self._periods.get(merchant_id, reference.year, reference.month)
        if period is None:
            points_cap = await self.current_cap(merchant)
            distributed = Decimal("0")
        else:
            points_cap = Decimal(str(period.points_cap))
            distributed = Decimal(str(period.points_distributed))

        if points_cap > 0:
            percentage = distributed / points_cap * 100
        else:
            percentage = Decimal("100")
        return PeriodUsage(
            merchant_id=merchant_id,
            year=reference.year,
            month=reference.month,
            points_distributed=distributed,
            points_cap=points_cap,
            remaining=max(points_cap - distributed, Decimal("0")),
            usage_percentage=round(float(percentage), 2),
            status=usage_status(percentage),
        )


__all__ = [
    "CapAuthorization",
    "MonthlyCapTracker",
    "PeriodUsage",
    "usage_status",
]
