"""Error taxonomy for the reward vesting and governed-change engine."""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID


class EngineError(RuntimeError):
    """Base exception for recoverable engine failures."""

    code = "engine_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        for key, value in self.details.items():
            if isinstance(value, (UUID, Decimal)):
                value = str(value)
            payload[key] = value
        return payload


class InvalidInputError(EngineError):
    """Raised when callers pass arguments outside the accepted domain."""

    code = "invalid_input"


class NotFoundError(EngineError):
    """Raised when a referenced grant, merchant or change request is missing."""

    code = "not_found"


class DuplicateTransactionError(EngineError):
    """Raised when a transaction already produced a grant."""

    code = "duplicate_transaction"

    def __init__(self, transaction_id: str, grant_id: UUID | None = None) -> None:
        super().__init__(
            f"Transaction {transaction_id} already has a reward grant",
            transaction_id=transaction_id,
            grant_id=grant_id,
        )
        self.transaction_id = transaction_id
        self.grant_id = grant_id


class CapExceededError(EngineError):
    """Raised when a distribution would push a merchant past its monthly cap."""

    code = "monthly_points_limit_reached"

    def __init__(self, *, requested: Decimal, remaining: Decimal, points_cap: Decimal) -> None:
        super().__init__(
            f"Monthly points limit reached: {remaining} of {points_cap} points remaining, {requested} requested",
            requested=requested,
            remaining=remaining,
            points_cap=points_cap,
        )
        self.requested = requested
        self.remaining = remaining
        self.points_cap = points_cap


class GrantStateError(EngineError):
    """Base for stale-state races on a grant; callers should re-fetch."""

    code = "grant_state_conflict"

    def __init__(self, message: str, *, grant_id: UUID, status: str) -> None:
        super().__init__(message, grant_id=grant_id, status=status)
        self.grant_id = grant_id
        self.status = status


class AlreadyVestedError(GrantStateError):
    code = "already_vested"


class AlreadyCancelledError(GrantStateError):
    code = "already_cancelled"


class NotApprovedError(EngineError):
    """Raised when a governed change is executed without an approved proposal."""

    code = "change_not_approved"

    def __init__(
        self,
        change_request_id: UUID,
        *,
        change_status: str,
        proposal_status: str | None,
    ) -> None:
        outcome = "rejected" if change_status == "rejected" else "pending"
        if outcome == "rejected":
            message = f"Change {change_request_id} was rejected by governance vote"
        elif change_status == "pending":
            message = (
                f"Change {change_request_id} is still awaiting governance approval "
                f"(proposal status: {proposal_status or 'missing'})"
            )
        else:
            message = (
                f"Change {change_request_id} is {change_status} but its proposal is "
                f"{proposal_status or 'missing'}, not passed"
            )
        super().__init__(
            message,
            change_request_id=change_request_id,
            status=outcome,
            change_status=change_status,
            proposal_status=proposal_status,
        )
        self.change_request_id = change_request_id
        self.outcome = outcome
        self.change_status = change_status
        self.proposal_status = proposal_status


class TransactionProcessingError(EngineError):
    """Raised when the authorize + grant unit of work fails after all retries."""

    code = "transaction_processing_failed"


__all__ = [
    "AlreadyCancelledError",
    "AlreadyVestedError",
    "CapExceededError",
    "DuplicateTransactionError",
    "EngineError",
    "GrantStateError",
    "InvalidInputError",
    "NotApprovedError",
    "NotFoundError",
    "TransactionProcessingError",
]
