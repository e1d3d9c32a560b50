"""Persistence adapters for merchants and monthly distribution periods."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loyalvest_api.models.merchant import Merchant, MerchantMonthlyPeriod


class MerchantRepository:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get(self, merchant_id: UUID) -> Merchant | None:
        stmt = (
            select(Merchant)
            .options(selectinload(Merchant.subscription_plan))
            .where(Merchant.id == merchant_id)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()


class MonthlyPeriodRepository:
    """Row access for ``merchant_monthly_points``."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get(
        self,
        merchant_id: UUID,
        year: int,
        month: int,
        *,
        for_update: bool = False,
    ) -> MerchantMonthlyPeriod | None:
        stmt = select(MerchantMonthlyPeriod).where(
            MerchantMonthlyPeriod.merchant_id == merchant_id,
            MerchantMonthlyPeriod.year == year,
            MerchantMonthlyPeriod.month == month,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        merchant_id: UUID,
        year: int,
        month: int,
        *,
        points_cap: Decimal,
    ) -> MerchantMonthlyPeriod:
        period = MerchantMonthlyPeriod(
            merchant_id=merchant_id,
            year=year,
            month=month,
            points_distributed=Decimal("0"),
            points_cap=points_cap,
        )
        self._db.add(period)
        await self._db.flush()
        return period

    async def increment_within_cap(self, period_id: UUID, amount: Decimal) -> bool:
        """Atomically add ``amount`` unless it would exceed the period cap."""

        stmt = (
            update(MerchantMonthlyPeriod)
            .where(
                MerchantMonthlyPeriod.id == period_id,
                MerchantMonthlyPeriod.points_distributed + amount <= MerchantMonthlyPeriod.points_cap,
            )
            .values(points_distributed=MerchantMonthlyPeriod.points_distributed + amount)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        return result.rowcount == 1

    async def refresh(self, period: MerchantMonthlyPeriod) -> MerchantMonthlyPeriod:
        await self._db.refresh(period)
        return period


__all__ = ["MerchantRepository", "MonthlyPeriodRepository"]
