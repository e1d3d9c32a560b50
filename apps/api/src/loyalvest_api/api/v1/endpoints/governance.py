"""API endpoints for governed loyalty changes and the DAO proposal callback."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.api.dependencies.security import require_engine_api_key
from loyalvest_api.db.session import get_session
from loyalvest_api.models.governance import (
    ChangeRequest,
    ChangeRequestStatus,
    GovernanceProposal,
    ProposalStatus,
)
from loyalvest_api.services.governance import (
    ChangeGovernor,
    ChangeRecord,
    EngineParameters,
    GovernanceProposalRepository,
    available_categories,
    categories_by_priority,
    main_domains,
)


router = APIRouter(prefix="/governance", tags=["governance"])


class ChangeProposalRequest(BaseModel):
    changeType: str = Field(..., description="Loyalty change type, e.g. point_release_delay")
    parameterName: str = Field(..., min_length=1)
    oldValue: Any = None
    newValue: Any = Field(..., description="Proposed value")
    reason: str = Field(..., min_length=1)
    proposedBy: str = Field(..., min_length=1)
    category: Optional[str] = Field(None, description="Proposal category; derived from the change type when omitted")


class ChangeProposalResponse(BaseModel):
    changeRequestId: UUID
    proposalId: UUID
    category: str
    governanceDomain: str
    priority: str
    votingType: str


class ProposalResponse(BaseModel):
    id: UUID
    title: str
    description: str
    category: str
    governanceDomain: str
    priority: str
    votingType: str
    status: str
    yesVotes: int
    noVotes: int
    totalVotes: int
    tags: List[str]
    decidedAt: Optional[datetime]


class ChangeRequestResponse(BaseModel):
    id: UUID
    changeType: str
    parameterName: str
    oldValue: Any
    newValue: Any
    reason: str
    proposedBy: str
    status: str
    createdAt: datetime
    approvedAt: Optional[datetime]
    rejectedAt: Optional[datetime]
    implementedAt: Optional[datetime]
    proposal: Optional[ProposalResponse]


class ApprovalResponse(BaseModel):
    changeRequestId: UUID
    approved: bool
    changeStatus: str
    proposalId: Optional[UUID]
    proposalStatus: Optional[str]


class ProposalOutcomeRequest(BaseModel):
    status: ProposalStatus
    yesVotes: Optional[int] = Field(None, ge=0)
    noVotes: Optional[int] = Field(None, ge=0)
    totalVotes: Optional[int] = Field(None, ge=0)


def _proposal_response(proposal: GovernanceProposal) -> ProposalResponse:
    return ProposalResponse(
        id=proposal.id,
        title=proposal.title,
        description=proposal.description,
        category=proposal.category,
        governanceDomain=proposal.governance_domain,
        priority=proposal.priority,
        votingType=proposal.voting_type.value,
        status=proposal.status.value,
        yesVotes=proposal.yes_votes or 0,
        noVotes=proposal.no_votes or 0,
        totalVotes=proposal.total_votes or 0,
        tags=list(proposal.tags or []),
        decidedAt=proposal.decided_at,
    )


def _change_response(change: ChangeRequest, proposal: GovernanceProposal | None) -> ChangeRequestResponse:
    return ChangeRequestResponse(
        id=change.id,
        changeType=change.change_type.value,
        parameterName=change.parameter_name,
        oldValue=change.old_value,
        newValue=change.new_value,
        reason=change.reason,
        proposedBy=change.proposed_by,
        status=change.status.value,
        createdAt=change.created_at,
        approvedAt=change.approved_at,
        rejectedAt=change.rejected_at,
        implementedAt=change.implemented_at,
        proposal=_proposal_response(proposal) if proposal is not None else None,
    )


def _record_response(record: ChangeRecord) -> ChangeRequestResponse:
    return _change_response(record.change, record.proposal)


@router.post(
    "/changes",
    response_model=ChangeProposalResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_engine_api_key)],
    summary="Propose a governed loyalty change",
)
async def propose_change(
    payload: ChangeProposalRequest,
    db: AsyncSession = Depends(get_session),
) -> ChangeProposalResponse:
    receipt = await ChangeGovernor(db).propose_change(
        payload.changeType,
        payload.parameterName,
        payload.oldValue,
        payload.newValue,
        payload.reason,
        payload.proposedBy,
        category=payload.category,
    )
    return ChangeProposalResponse(
        changeRequestId=receipt.change_request_id,
        proposalId=receipt.proposal_id,
        category=receipt.route.category.value,
        governanceDomain=receipt.route.domain.value,
        priority=receipt.route.priority.value,
        votingType=receipt.route.voting_type.value,
    )


@router.get(
    "/changes",
    response_model=List[ChangeRequestResponse],
    summary="List change requests",
)
async def list_changes(
    status_filter: Optional[str] = Query("pending", alias="status", description="Change request status"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> List[ChangeRequestResponse]:
    governor = ChangeGovernor(db)
    if status_filter == ChangeRequestStatus.PENDING.value:
        records = await governor.list_pending_changes(limit=limit)
        return [_record_response(record) for record in records]

    statuses = None
    if status_filter:
        try:
            statuses = [ChangeRequestStatus(status_filter)]
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Unsupported change status: {status_filter}") from exc
    records = await governor.list_changes(statuses=statuses, limit=limit)
    return [_record_response(record) for record in records]


@router.get(
    "/changes/{change_request_id}",
    response_model=ChangeRequestResponse,
    summary="Fetch a change request with its proposal",
)
async def get_change(
    change_request_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> ChangeRequestResponse:
    """Read-only; decision syncing happens on the approval, execute and outcome routes."""

    return _record_response(await ChangeGovernor(db).get_change(change_request_id))


@router.get(
    "/changes/{change_request_id}/approval",
    response_model=ApprovalResponse,
    summary="Check whether a change request's proposal has passed",
)
async def get_approval(
    change_request_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> ApprovalResponse:
    check = await ChangeGovernor(db).validate_approval(change_request_id)
    return ApprovalResponse(
        changeRequestId=check.change_request_id,
        approved=check.approved,
        changeStatus=check.change_status.value,
        proposalId=check.proposal_id,
        proposalStatus=check.proposal_status.value if check.proposal_status else None,
    )


@router.post(
    "/changes/{change_request_id}/execute",
    response_model=ChangeRequestResponse,
    dependencies=[Depends(require_engine_api_key)],
    summary="Apply an approved change",
)
async def execute_change(
    change_request_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> ChangeRequestResponse:
    governor = ChangeGovernor(db)
    await governor.execute_approved_change(change_request_id)
    return _record_response(await governor.get_change(change_request_id))


@router.post(
    "/proposals/{proposal_id}/outcome",
    response_model=ProposalResponse,
    dependencies=[Depends(require_engine_api_key)],
    summary="DAO callback recording a proposal's lifecycle status",
)
async def record_proposal_outcome(
    proposal_id: UUID,
    payload: ProposalOutcomeRequest,
    db: AsyncSession = Depends(get_session),
) -> ProposalResponse:
    proposals = GovernanceProposalRepository(db)
    proposal = await proposals.get(proposal_id, fresh=True)
    if proposal is None:
        raise HTTPException(status_code=404, detail="Proposal not found")
    await proposals.record_outcome(
        proposal,
        payload.status,
        yes_votes=payload.yesVotes,
        no_votes=payload.noVotes,
        total_votes=payload.totalVotes,
    )
    await db.commit()
    await ChangeGovernor(db).validate_approval(proposal.linked_change_request_id)
    return _proposal_response(proposal)


@router.get("/categories", summary="Proposal category routing table")
async def list_categories() -> dict[str, Any]:
    return {
        "domains": main_domains(),
        "categories": [route.as_dict() for route in available_categories()],
        "byPriority": {
            priority: [route.category.value for route in routes]
            for priority, routes in categories_by_priority().items()
        },
    }


@router.get("/parameters", summary="Current governed engine parameters")
async def get_parameters(db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    return {"parameters": await EngineParameters(db).snapshot()}
