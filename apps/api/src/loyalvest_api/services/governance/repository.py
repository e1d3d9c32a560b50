"""Persistence adapters for change requests, DAO proposals and parameters."""

from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.core.clock import utcnow
from loyalvest_api.models.governance import (
    ChangeRequest,
    ChangeRequestStatus,
    EngineParameter,
    GovernanceProposal,
    LoyaltyChangeType,
    ProposalStatus,
)


class ChangeRequestRepository:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def add(self, change: ChangeRequest) -> ChangeRequest:
        self._db.add(change)
        await self._db.flush()
        return change

    async def get(self, change_request_id: UUID, *, fresh: bool = False) -> ChangeRequest | None:
        return await self._db.get(ChangeRequest, change_request_id, populate_existing=fresh)

    async def list_changes(
        self,
        *,
        statuses: Sequence[ChangeRequestStatus] | None = None,
        limit: int = 100,
    ) -> list[ChangeRequest]:
        stmt = select(ChangeRequest).order_by(ChangeRequest.created_at.desc(), ChangeRequest.id).limit(limit)
        if statuses:
            stmt = stmt.where(ChangeRequest.status.in_(list(statuses)))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


class GovernanceProposalRepository:
    """Boundary with the DAO voting subsystem."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def add(self, proposal: GovernanceProposal) -> GovernanceProposal:
        self._db.add(proposal)
        await self._db.flush()
        return proposal

    async def get(self, proposal_id: UUID, *, fresh: bool = False) -> GovernanceProposal | None:
        return await self._db.get(GovernanceProposal, proposal_id, populate_existing=fresh)

    async def get_status(self, proposal_id: UUID) -> ProposalStatus | None:
        """Read the proposal status fresh from the store."""

        stmt = select(GovernanceProposal.status).where(GovernanceProposal.id == proposal_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def record_outcome(
        self,
        proposal: GovernanceProposal,
        status: ProposalStatus,
        *,
        yes_votes: int | None = None,
        no_votes: int | None = None,
        total_votes: int | None = None,
    ) -> GovernanceProposal:
        proposal.status = status
        if yes_votes is not None:
            proposal.yes_votes = yes_votes
        if no_votes is not None:
            proposal.no_votes = no_votes
        if total_votes is not None:
            proposal.total_votes = total_votes
        if status in {ProposalStatus.PASSED, ProposalStatus.REJECTED, ProposalStatus.CANCELLED}:
            proposal.decided_at = utcnow()
        await self._db.flush()
        return proposal


class EngineParameterRepository:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get(self, name: str) -> EngineParameter | None:
        return await self._db.get(EngineParameter, name)

    async def list_all(self) -> list[EngineParameter]:
        result = await self._db.execute(select(EngineParameter).order_by(EngineParameter.name))
        return list(result.scalars().all())

    async def upsert(
        self,
        name: str,
        *,
        change_type: LoyaltyChangeType,
        value: Any,
        change_request_id: UUID,
    ) -> EngineParameter:
        record = await self.get(name)
        if record is None:
            record = EngineParameter(name=name)
            self._db.add(record)
        record.change_type = change_type
        record.value = value
        record.change_request_id = change_request_id
        await self._db.flush()
        return record


__all__ = [
    "ChangeRequestRepository",
    "EngineParameterRepository",
    "GovernanceProposalRepository",
]
