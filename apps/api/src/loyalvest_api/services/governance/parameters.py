"""Governed engine parameters.

Values fall back to configuration defaults until an executed change request
records a governed value. Writes go through :meth:`EngineParameters.apply_change`,
which only accepts a change whose linked proposal has passed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.core.settings import Settings, settings as default_settings
from loyalvest_api.models.governance import (
    ChangeRequest,
    GovernanceProposal,
    LoyaltyChangeType,
    ProposalStatus,
)
from loyalvest_api.services.errors import InvalidInputError, NotApprovedError

from .repository import EngineParameterRepository


APPROVED_PROPOSAL_STATUS = ProposalStatus.PASSED


def _positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f"{name} must be an integer", parameter=name)
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{name} must be an integer", parameter=name) from exc
    if number != Decimal(str(value)) or number <= 0:
        raise InvalidInputError(f"{name} must be a positive integer", parameter=name)
    return number


def _non_negative_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(f"{name} must be an integer", parameter=name)
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{name} must be an integer", parameter=name) from exc
    if number != Decimal(str(value)) or number < 0:
        raise InvalidInputError(f"{name} must be a non-negative integer", parameter=name)
    return number


def _decimal_between(low: Decimal, high: Decimal | None) -> Callable[[str, Any], str]:
    def _coerce(name: str, value: Any) -> str:
        if isinstance(value, bool):
            raise InvalidInputError(f"{name} must be numeric", parameter=name)
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidInputError(f"{name} must be numeric", parameter=name) from exc
        if not number.is_finite() or number < low or (high is not None and number > high):
            bound = f"between {low} and {high}" if high is not None else f"at least {low}"
            raise InvalidInputError(f"{name} must be {bound}", parameter=name)
        return str(number)

    return _coerce


@dataclass(frozen=True, slots=True)
class ParameterDefinition:
    """Engine parameter owned by a specific change type."""

    name: str
    change_type: LoyaltyChangeType
    coerce: Callable[[str, Any], Any]
    settings_attr: str

    def default(self, config: Settings) -> Any:
        value = getattr(config, self.settings_attr)
        return self.coerce(self.name, value)


GOVERNED_PARAMETERS: dict[str, ParameterDefinition] = {
    definition.name: definition
    for definition in (
        ParameterDefinition(
            "vesting_window_days",
            LoyaltyChangeType.POINT_RELEASE_DELAY,
            _positive_int,
            "vesting_window_days",
        ),
        ParameterDefinition(
            "cancellation_grace_period_hours",
            LoyaltyChangeType.POINT_RELEASE_DELAY,
            _non_negative_int,
            "cancellation_grace_period_hours",
        ),
        ParameterDefinition(
            "default_reward_percentage",
            LoyaltyChangeType.NFT_EARNING_RATIOS,
            _decimal_between(Decimal("0"), Decimal("100")),
            "default_reward_percentage",
        ),
        ParameterDefinition(
            "max_nft_multiplier",
            LoyaltyChangeType.NFT_EARNING_RATIOS,
            _decimal_between(Decimal("1"), None),
            "max_nft_multiplier",
        ),
        ParameterDefinition(
            "default_monthly_points_cap",
            LoyaltyChangeType.MERCHANT_LIMITS,
            _non_negative_int,
            "default_monthly_points_cap",
        ),
    )
}

ENGINE_CHANGE_TYPES = frozenset(definition.change_type for definition in GOVERNED_PARAMETERS.values())


def validate_proposed_value(change_type: LoyaltyChangeType, parameter_name: str, new_value: Any) -> Any:
    """Normalise ``new_value`` for engine parameters; other settings stay opaque."""

    if not parameter_name or not parameter_name.strip():
        raise InvalidInputError("parameterName is required")

    definition = GOVERNED_PARAMETERS.get(parameter_name)
    if definition is None:
        if change_type in ENGINE_CHANGE_TYPES:
            allowed = sorted(
                name for name, item in GOVERNED_PARAMETERS.items() if item.change_type == change_type
            )
            raise InvalidInputError(
                f"{parameter_name} is not governed by {change_type.value}",
                parameter=parameter_name,
                allowed=allowed,
            )
        return new_value

    if definition.change_type != change_type:
        raise InvalidInputError(
            f"{parameter_name} must be proposed as {definition.change_type.value}",
            parameter=parameter_name,
            expected_change_type=definition.change_type.value,
        )
    return definition.coerce(parameter_name, new_value)


class EngineParameters:
    """Read governed parameters; write them only from approved changes."""

    def __init__(self, db_session: AsyncSession, *, config: Settings | None = None) -> None:
        self._config = config or default_settings
        self._repository = EngineParameterRepository(db_session)

    async def get(self, name: str) -> Any:
        record = await self._repository.get(name)
        if record is not None:
            return record.value
        definition = GOVERNED_PARAMETERS.get(name)
        if definition is None:
            return None
        return definition.default(self._config)

    async def snapshot(self) -> dict[str, Any]:
        values = {name: definition.default(self._config) for name, definition in GOVERNED_PARAMETERS.items()}
        for record in await self._repository.list_all():
            values[record.name] = record.value
        return values

    async def vesting_window(self) -> timedelta:
        return timedelta(days=int(await self.get("vesting_window_days")))

    async def cancellation_grace_period(self) -> timedelta:
        return timedelta(hours=int(await self.get("cancellation_grace_period_hours")))

    async def default_reward_percentage(self) -> Decimal:
        return Decimal(str(await self.get("default_reward_percentage")))

    async def max_nft_multiplier(self) -> Decimal:
        return Decimal(str(await self.get("max_nft_multiplier")))

    async def default_monthly_points_cap(self) -> Decimal:
        return Decimal(str(await self.get("default_monthly_points_cap")))

    async def apply_change(self, change: ChangeRequest, proposal: GovernanceProposal | None) -> None:
        """Persist ``change.new_value``; refuses anything without a passed proposal."""

        if (
            proposal is None
            or change.linked_proposal_id is None
            or proposal.id != change.linked_proposal_id
            or proposal.status != APPROVED_PROPOSAL_STATUS
        ):
            raise NotApprovedError(
                change.id,
                change_status=change.status.value,
                proposal_status=proposal.status.value if proposal is not None else None,
            )

        value = validate_proposed_value(change.change_type, change.parameter_name, change.new_value)
        if change.parameter_name == "cancellation_grace_period_hours":
            window_hours = int(await self.get("vesting_window_days")) * 24
            if int(value) >= window_hours:
                raise InvalidInputError(
                    "cancellation_grace_period_hours must be shorter than the vesting window",
                    parameter=change.parameter_name,
                )
        elif change.parameter_name == "vesting_window_days":
            grace_hours = int(await self.get("cancellation_grace_period_hours"))
            if int(value) * 24 <= grace_hours:
                raise InvalidInputError(
                    "vesting_window_days must exceed the cancellation grace period",
                    parameter=change.parameter_name,
                )

        await self._repository.upsert(
            change.parameter_name,
            change_type=change.change_type,
            value=value,
            change_request_id=change.id,
        )
        logger.info(
            "Governed parameter updated",
            parameter=change.parameter_name,
            change_type=change.change_type.value,
            change_request_id=str(change.id),
        )


__all__ = [
    "APPROVED_PROPOSAL_STATUS",
    "ENGINE_CHANGE_TYPES",
    "EngineParameters",
    "GOVERNED_PARAMETERS",
    "ParameterDefinition",
    "validate_proposed_value",
]
