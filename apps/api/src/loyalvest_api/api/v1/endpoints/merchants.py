"""Merchant points usage endpoint."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.db.session import get_session
from loyalvest_api.services.rewards import MonthlyCapTracker


router = APIRouter(prefix="/merchants", tags=["merchants"])


class PointsUsageResponse(BaseModel):
    merchantId: UUID
    year: int
    month: int
    pointsDistributed: float
    pointsCap: float
    remaining: float
    usagePercentage: float
    status: str


@router.get(
    "/{merchant_id}/points-usage",
    response_model=PointsUsageResponse,
    summary="Monthly points usage for a merchant",
)
async def get_points_usage(
    merchant_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> PointsUsageResponse:
    usage = await MonthlyCapTracker(db).get_period_usage(merchant_id)
    return PointsUsageResponse(**usage.as_dict())
