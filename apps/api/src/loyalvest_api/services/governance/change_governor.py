"""Governance gate for changes to loyalty engine behaviour.

Every behaviour change becomes a change request with a linked DAO proposal.
The change can only be applied once that proposal has passed, and the
approval is re-read from the store on every execution attempt.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.core.clock import utcnow
from loyalvest_api.models.governance import (
    ChangeRequest,
    ChangeRequestStatus,
    GovernanceProposal,
    LoyaltyChangeType,
    ProposalStatus,
)
from loyalvest_api.observability.engine import EngineObservabilityStore, get_engine_store
from loyalvest_api.services.errors import InvalidInputError, NotApprovedError, NotFoundError

from .category_router import (
    CATEGORY_ROUTES,
    PRIORITY_RANK,
    CategoryRoute,
    ProposalCategory,
    parse_category,
    route_category,
)
from .parameters import (
    APPROVED_PROPOSAL_STATUS,
    ENGINE_CHANGE_TYPES,
    EngineParameters,
    validate_proposed_value,
)
from .repository import ChangeRequestRepository, GovernanceProposalRepository


DEFAULT_CATEGORY_BY_CHANGE_TYPE: dict[LoyaltyChangeType, ProposalCategory] = {
    LoyaltyChangeType.POINT_RELEASE_DELAY: ProposalCategory.TECHNICAL,
    LoyaltyChangeType.REFERRAL_PARAMETERS: ProposalCategory.REWARDS,
    LoyaltyChangeType.NFT_EARNING_RATIOS: ProposalCategory.NFT,
    LoyaltyChangeType.LOYALTY_NETWORK_SETTINGS: ProposalCategory.ECOSYSTEM,
    LoyaltyChangeType.MERCHANT_LIMITS: ProposalCategory.MERCHANT,
    LoyaltyChangeType.INACTIVITY_TIMEOUT: ProposalCategory.SECURITY,
    LoyaltyChangeType.SMS_OTP_SETTINGS: ProposalCategory.SECURITY,
    LoyaltyChangeType.SUBSCRIPTION_PLANS: ProposalCategory.BUSINESS,
    LoyaltyChangeType.ASSET_INITIATIVE_SELECTION: ProposalCategory.ASSET,
    LoyaltyChangeType.WALLET_MANAGEMENT: ProposalCategory.BLOCKCHAIN,
    LoyaltyChangeType.PAYMENT_GATEWAY: ProposalCategory.TREASURY,
    LoyaltyChangeType.EMAIL_NOTIFICATIONS: ProposalCategory.COMMUNITY,
}

_REJECTING_PROPOSAL_STATUSES = frozenset({ProposalStatus.REJECTED, ProposalStatus.CANCELLED})


@dataclass
class ChangeProposalReceipt:
    """Identifiers and routing for a freshly proposed change."""

    change_request_id: UUID
    proposal_id: UUID
    route: CategoryRoute


@dataclass
class ApprovalCheck:
    """Result of reading the linked proposal for a change request."""

    approved: bool
    change_request_id: UUID
    change_status: ChangeRequestStatus
    proposal_id: UUID | None
    proposal_status: ProposalStatus | None


@dataclass
class ChangeRecord:
    """Change request together with its linked proposal."""

    change: ChangeRequest
    proposal: GovernanceProposal | None


def parse_change_type(raw: str | LoyaltyChangeType) -> LoyaltyChangeType:
    if isinstance(raw, LoyaltyChangeType):
        return raw
    try:
        return LoyaltyChangeType(str(raw).strip().lower())
    except ValueError as exc:
        raise InvalidInputError(f"Unsupported change type: {raw}", change_type=str(raw)) from exc


def _render(value: Any) -> str:
    return json.dumps(value, default=str)


def build_proposal_text(
    change_type: LoyaltyChangeType,
    parameter_name: str,
    old_value: Any,
    new_value: Any,
    reason: str,
) -> tuple[str, str, str]:
    """Return (title, description, full description) for the DAO proposal."""

    title = f"Loyalty Change: {change_type.display_name} - {parameter_name}"
    description = f"Change {parameter_name} from {_render(old_value)} to {_render(new_value)}"
    full_description = "\n".join(
        [
            "# Loyalty Application Behavior Change",
            "",
            "## Change Type",
            change_type.display_name,
            "",
            "## Parameter",
            parameter_name,
            "",
            "## Current Value",
            _render(old_value),
            "",
            "## Proposed Value",
            _render(new_value),
            "",
            "## Reason for Change",
            reason,
            "",
            "## Impact Assessment",
            "This change alters loyalty engine behaviour and takes effect only after the DAO approves it.",
        ]
    )
    return title, description, full_description


class ChangeGovernor:
    """Creates governed change requests and gates their execution."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        parameters: EngineParameters | None = None,
        observability: EngineObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._changes = ChangeRequestRepository(db_session)
        self._proposals = GovernanceProposalRepository(db_session)
        self._parameters = parameters or EngineParameters(db_session)
        self._observability = observability or get_engine_store()
        self._appliers: dict[LoyaltyChangeType, Callable[[ChangeRequest, GovernanceProposal], Awaitable[None]]] = {
            LoyaltyChangeType.POINT_RELEASE_DELAY: self._apply_point_release_delay,
            LoyaltyChangeType.NFT_EARNING_RATIOS: self._apply_earning_ratios,
            LoyaltyChangeType.MERCHANT_LIMITS: self._apply_merchant_limits,
        }

    async def propose_change(
        self,
        change_type: str | LoyaltyChangeType,
        parameter_name: str,
        old_value: Any,
        new_value: Any,
        reason: str,
        proposed_by: str,
        *,
        category: str | None = None,
    ) -> ChangeProposalReceipt:
        """Record a change request and its linked proposal in one transaction."""

        resolved_type = parse_change_type(change_type)
        if not reason or not reason.strip():
            raise InvalidInputError("A reason is required for governed changes")
        if not proposed_by or not proposed_by.strip():
            raise InvalidInputError("proposedBy is required for governed changes")
        parameter_name = (parameter_name or "").strip()
        normalized_value = validate_proposed_value(resolved_type, parameter_name, new_value)

        requested_category = category or DEFAULT_CATEGORY_BY_CHANGE_TYPE[resolved_type].value
        if parse_category(requested_category) is None:
            logger.warning(
                "Unknown proposal category routed to core platform",
                category=requested_category,
                change_type=resolved_type.value,
            )
        route = route_category(requested_category)
        if resolved_type in ENGINE_CHANGE_TYPES:
            floor = CATEGORY_ROUTES[DEFAULT_CATEGORY_BY_CHANGE_TYPE[resolved_type]]
            if PRIORITY_RANK[route.priority] < PRIORITY_RANK[floor.priority]:
                raise InvalidInputError(
                    f"Category {route.category.value} is below the {floor.priority.value} priority "
                    f"required for {resolved_type.value} changes",
                    category=route.category.value,
                    change_type=resolved_type.value,
                    minimum_priority=floor.priority.value,
                )
        title, description, full_description = build_proposal_text(
            resolved_type, parameter_name, old_value, normalized_value, reason
        )

        try:
            change = await self._changes.add(
                ChangeRequest(
                    change_type=resolved_type,
                    parameter_name=parameter_name,
                    old_value=old_value,
                    new_value=normalized_value,
                    reason=reason.strip(),
                    proposed_by=proposed_by.strip(),
                    status=ChangeRequestStatus.PENDING,
                )
            )
            proposal = await self._proposals.add(
                GovernanceProposal(
                    title=title,
                    description=description,
                    full_description=full_description,
                    category=route.category.value,
                    governance_domain=route.domain.value,
                    batch=route.batch,
                    priority=route.priority.value,
                    voting_type=route.voting_type,
                    status=ProposalStatus.DRAFT,
                    tags=["loyalty", "governance", resolved_type.value],
                    treasury_impact_amount=0,
                    treasury_impact_currency="SOL",
                    linked_change_request_id=change.id,
                )
            )
            change.linked_proposal_id = proposal.id
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        self._observability.record_change_event("proposed")
        logger.info(
            "Governed change proposed",
            change_request_id=str(change.id),
            proposal_id=str(proposal.id),
            change_type=resolved_type.value,
            parameter=parameter_name,
            domain=route.domain.value,
            voting_type=route.voting_type.value,
        )
        return ChangeProposalReceipt(change_request_id=change.id, proposal_id=proposal.id, route=route)

    async def get_change(self, change_request_id: UUID) -> ChangeRecord:
        change = await self._changes.get(change_request_id, fresh=True)
        if change is None:
            raise NotFoundError(f"Change request {change_request_id} not found", change_request_id=change_request_id)
        proposal = None
        if change.linked_proposal_id is not None:
            proposal = await self._proposals.get(change.linked_proposal_id, fresh=True)
        return ChangeRecord(change=change, proposal=proposal)

    async def list_pending_changes(self, *, limit: int = 100) -> list[ChangeRecord]:
        return await self.list_changes(statuses=[ChangeRequestStatus.PENDING], limit=limit)

    async def list_changes(
        self,
        *,
        statuses: list[ChangeRequestStatus] | None = None,
        limit: int = 100,
    ) -> list[ChangeRecord]:
        changes = await self._changes.list_changes(statuses=statuses, limit=limit)
        records: list[ChangeRecord] = []
        for change in changes:
            proposal = None
            if change.linked_proposal_id is not None:
                proposal = await self._proposals.get(change.linked_proposal_id)
            records.append(ChangeRecord(change=change, proposal=proposal))
        return records

    async def validate_approval(self, change_request_id: UUID) -> ApprovalCheck:
        """Read the linked proposal status and report whether it has passed.

        Pending change requests are moved to approved or rejected to mirror
        a decided proposal.
        """

        change = await self._changes.get(change_request_id, fresh=True)
        if change is None:
            raise NotFoundError(f"Change request {change_request_id} not found", change_request_id=change_request_id)

        proposal_status: ProposalStatus | None = None
        if change.linked_proposal_id is not None:
            proposal_status = await self._proposals.get_status(change.linked_proposal_id)

        if change.status == ChangeRequestStatus.PENDING and proposal_status is not None:
            if proposal_status == APPROVED_PROPOSAL_STATUS:
                change.status = ChangeRequestStatus.APPROVED
                change.approved_at = utcnow()
            elif proposal_status in _REJECTING_PROPOSAL_STATUSES:
                change.status = ChangeRequestStatus.REJECTED
                change.rejected_at = utcnow()
            if change.status != ChangeRequestStatus.PENDING:
                await self._db.commit()
                logger.info(
                    "Change request decision synchronised",
                    change_request_id=str(change.id),
                    status=change.status.value,
                    proposal_status=proposal_status.value,
                )

        approved = (
            proposal_status == APPROVED_PROPOSAL_STATUS
            and change.status in {ChangeRequestStatus.APPROVED, ChangeRequestStatus.IMPLEMENTED}
        )
        return ApprovalCheck(
            approved=approved,
            change_request_id=change.id,
            change_status=change.status,
            proposal_id=change.linked_proposal_id,
            proposal_status=proposal_status,
        )

    async def execute_approved_change(self, change_request_id: UUID) -> ChangeRequest:
        """Apply an approved change and mark it implemented.

        Raises :class:`NotApprovedError` unless the linked proposal has passed.
        """

        check = await self.validate_approval(change_request_id)
        if check.change_status == ChangeRequestStatus.IMPLEMENTED:
            record = await self.get_change(change_request_id)
            logger.info("Change request already implemented", change_request_id=str(change_request_id))
            return record.change

        if not check.approved:
            self._observability.record_change_event("blocked")
            logger.warning(
                "Governed change blocked at approval gate",
                change_request_id=str(change_request_id),
                change_status=check.change_status.value,
                proposal_status=check.proposal_status.value if check.proposal_status else None,
            )
            raise NotApprovedError(
                change_request_id,
                change_status=check.change_status.value,
                proposal_status=check.proposal_status.value if check.proposal_status else None,
            )

        record = await self.get_change(change_request_id)
        change, proposal = record.change, record.proposal
        try:
            claimed = await self._db.execute(
                update(ChangeRequest)
                .where(
                    ChangeRequest.id == change.id,
                    ChangeRequest.status == ChangeRequestStatus.APPROVED,
                )
                .values(status=ChangeRequestStatus.IMPLEMENTED, implemented_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                await self._db.rollback()
                record = await self.get_change(change_request_id)
                return record.change

            applier = self._appliers.get(change.change_type, self._apply_collaborator_setting)
            await applier(change, proposal)
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        await self._db.refresh(change)
        self._observability.record_change_event("implemented")
        logger.info(
            "Governed change implemented",
            change_request_id=str(change.id),
            change_type=change.change_type.value,
            parameter=change.parameter_name,
        )
        return change

    async def _apply_point_release_delay(self, change: ChangeRequest, proposal: GovernanceProposal) -> None:
        await self._parameters.apply_change(change, proposal)
        logger.info(
            "Vesting timing updated; existing grants keep their maturity",
            parameter=change.parameter_name,
            value=change.new_value,
        )

    async def _apply_earning_ratios(self, change: ChangeRequest, proposal: GovernanceProposal) -> None:
        await self._parameters.apply_change(change, proposal)
        logger.info(
            "Reward earning ratio updated for subsequent transactions",
            parameter=change.parameter_name,
            value=change.new_value,
        )

    async def _apply_merchant_limits(self, change: ChangeRequest, proposal: GovernanceProposal) -> None:
        await self._parameters.apply_change(change, proposal)
        logger.info(
            "Merchant cap default updated; open monthly periods keep their frozen cap",
            parameter=change.parameter_name,
            value=change.new_value,
        )

    async def _apply_collaborator_setting(self, change: ChangeRequest, proposal: GovernanceProposal) -> None:
        await self._parameters.apply_change(change, proposal)
        logger.info(
            "Collaborator setting recorded for downstream consumers",
            change_type=change.change_type.value,
            parameter=change.parameter_name,
        )


__all__ = [
    "ApprovalCheck",
    "ChangeGovernor",
    "ChangeProposalReceipt",
    "ChangeRecord",
    "DEFAULT_CATEGORY_BY_CHANGE_TYPE",
    "build_proposal_text",
    "parse_change_type",
]
