"""API endpoints for merchant transactions and reward vesting."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.api.dependencies.security import require_engine_api_key
from loyalvest_api.core.clock import ensure_utc
from loyalvest_api.db.session import get_session
from loyalvest_api.jobs.vesting import sweep_and_record
from loyalvest_api.models.vesting import RewardGrant
from loyalvest_api.services.rewards import TransactionProcessor
from loyalvest_api.services.vesting import GrantView, VestingLedger, VestingSummary


router = APIRouter(prefix="/rewards", tags=["rewards"])


class TransactionRequest(BaseModel):
    merchantId: UUID
    holderId: str = Field(..., min_length=1)
    transactionId: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, description="Transaction amount in merchant currency")
    rewardPercentage: Optional[float] = Field(
        None,
        ge=0,
        le=100,
        description="Reward percentage; merchant or governed default when omitted",
    )


class TransactionResponse(BaseModel):
    grantId: UUID
    transactionId: str
    amount: float
    status: str
    vestingEndAt: datetime
    remainingMonthlyPoints: float


class GrantResponse(BaseModel):
    id: UUID
    transactionId: str
    holderId: str
    merchantId: Optional[UUID]
    amount: float
    status: str
    vestingStartAt: datetime
    vestingEndAt: datetime
    cancelledAt: Optional[datetime]
    vestedAt: Optional[datetime]
    progress: Optional[float] = None
    daysRemaining: Optional[int] = None


class StatusTotalsResponse(BaseModel):
    count: int
    amount: float


class VestingSummaryResponse(BaseModel):
    holderId: str
    vesting: List[GrantResponse]
    vested: List[GrantResponse]
    cancelled: List[GrantResponse]
    totals: dict[str, StatusTotalsResponse]


class MaturitySweepRequest(BaseModel):
    limit: Optional[int] = Field(None, gt=0, description="Maximum grants to vest in this run")
    referenceTime: Optional[datetime] = Field(None, description="Sweep as of this instant instead of now")


def _grant_response(grant: RewardGrant, *, progress: float | None = None, days: int | None = None) -> GrantResponse:
    return GrantResponse(
        id=grant.id,
        transactionId=grant.transaction_id,
        holderId=grant.holder_id,
        merchantId=grant.merchant_id,
        amount=float(grant.amount),
        status=grant.status.value,
        vestingStartAt=ensure_utc(grant.vesting_start_at),
        vestingEndAt=ensure_utc(grant.vesting_end_at),
        cancelledAt=ensure_utc(grant.cancelled_at) if grant.cancelled_at else None,
        vestedAt=ensure_utc(grant.vested_at) if grant.vested_at else None,
        progress=progress,
        daysRemaining=days,
    )


def _view_response(view: GrantView) -> GrantResponse:
    return _grant_response(view.grant, progress=view.progress, days=view.days_remaining)


def _summary_response(summary: VestingSummary) -> VestingSummaryResponse:
    return VestingSummaryResponse(
        holderId=summary.holder_id,
        vesting=[_view_response(view) for view in summary.vesting],
        vested=[_view_response(view) for view in summary.vested],
        cancelled=[_view_response(view) for view in summary.cancelled],
        totals={
            key: StatusTotalsResponse(count=totals.count, amount=float(totals.amount))
            for key, totals in summary.totals.items()
        },
    )


@router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Authorize a merchant transaction and record its vesting reward",
)
async def process_transaction(
    payload: TransactionRequest,
    db: AsyncSession = Depends(get_session),
) -> TransactionResponse:
    processor = TransactionProcessor(db)
    result = await processor.process_transaction(
        payload.merchantId,
        payload.holderId,
        payload.transactionId,
        str(payload.amount),
        str(payload.rewardPercentage) if payload.rewardPercentage is not None else None,
    )
    return TransactionResponse(
        grantId=result.grant_id,
        transactionId=result.transaction_id,
        amount=float(result.amount),
        status=result.status.value,
        vestingEndAt=ensure_utc(result.vesting_end_at),
        remainingMonthlyPoints=float(result.remaining),
    )


@router.post(
    "/transactions/{transaction_id}/cancel",
    response_model=GrantResponse,
    summary="Cancel the vesting reward of a transaction",
)
async def cancel_transaction(
    transaction_id: str,
    db: AsyncSession = Depends(get_session),
) -> GrantResponse:
    grant = await TransactionProcessor(db).cancel_transaction(transaction_id)
    return _grant_response(grant)


@router.get(
    "/holders/{holder_id}/vesting",
    response_model=VestingSummaryResponse,
    summary="Vesting summary for a reward holder",
)
async def get_vesting_summary(
    holder_id: str,
    db: AsyncSession = Depends(get_session),
) -> VestingSummaryResponse:
    summary = await TransactionProcessor(db).get_vesting_summary(holder_id)
    return _summary_response(summary)


@router.get(
    "/grants/{grant_id}",
    response_model=GrantResponse,
    summary="Fetch a single reward grant",
)
async def get_grant(
    grant_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> GrantResponse:
    grant = await VestingLedger(db).get_grant(grant_id)
    return _grant_response(grant)


@router.post(
    "/maturity-sweeps",
    dependencies=[Depends(require_engine_api_key)],
    summary="Run one vesting maturity sweep",
)
async def trigger_maturity_sweep(
    payload: MaturitySweepRequest | None = None,
    db: AsyncSession = Depends(get_session),
    triggered_by: str = Query("api", description="Label stored on the sweep run"),
) -> dict[str, Any]:
    request = payload or MaturitySweepRequest()
    return await sweep_and_record(
        db,
        now=request.referenceTime,
        limit=request.limit,
        triggered_by=triggered_by,
    )
