"""Reward arithmetic and NFT tier multiplier lookup."""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.models.nft import HolderNftTier, NftTier
from loyalvest_api.services.errors import InvalidInputError
from loyalvest_api.services.governance.parameters import EngineParameters


ONE = Decimal("1")
HUNDRED = Decimal("100")


def _as_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInputError(f"{name} must be numeric", field=name)
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInputError(f"{name} must be numeric", field=name) from exc
    if not number.is_finite():
        raise InvalidInputError(f"{name} must be a finite number", field=name)
    return number


def compute_reward(transaction_amount: Any, reward_percentage: Any, nft_multiplier: Any) -> Decimal:
    """Return ``floor(amount * percentage / 100 * multiplier)`` in whole points.

    >>> compute_reward(200, 5, "2.0")
    Decimal('20')
    """

    amount = _as_decimal("transactionAmount", transaction_amount)
    percentage = _as_decimal("rewardPercentage", reward_percentage)
    multiplier = _as_decimal("nftMultiplier", nft_multiplier)

    if amount < 0:
        raise InvalidInputError("transactionAmount must not be negative", field="transactionAmount")
    if percentage < 0 or percentage > HUNDRED:
        raise InvalidInputError("rewardPercentage must be between 0 and 100", field="rewardPercentage")
    if multiplier < ONE:
        raise InvalidInputError("nftMultiplier must be at least 1", field="nftMultiplier")

    raw = amount * percentage / HUNDRED * multiplier
    return raw.to_integral_value(rounding=ROUND_FLOOR)


class NftMultiplierDirectory:
    """Resolves a holder's NFT tier multiplier, bounded by governance."""

    def __init__(self, db_session: AsyncSession, *, parameters: EngineParameters | None = None) -> None:
        self._db = db_session
        self._parameters = parameters or EngineParameters(db_session)

    async def resolve_multiplier(self, holder_id: str) -> Decimal:
        stmt = (
            select(NftTier.slug, NftTier.multiplier)
            .join(HolderNftTier, HolderNftTier.tier_id == NftTier.id)
            .where(HolderNftTier.holder_id == holder_id)
        )
        row = (await self._db.execute(stmt)).first()
        if row is None:
            return ONE

        multiplier = Decimal(str(row.multiplier))
        ceiling = await self._parameters.max_nft_multiplier()
        if multiplier < ONE:
            logger.warning("NFT tier multiplier below 1 ignored", holder_id=holder_id, tier=row.slug)
            return ONE
        if multiplier > ceiling:
            logger.warning(
                "NFT tier multiplier clamped to governed maximum",
                holder_id=holder_id,
                tier=row.slug,
                multiplier=str(multiplier),
                ceiling=str(ceiling),
            )
            return ceiling
        return multiplier


__all__ = ["NftMultiplierDirectory", "compute_reward"]
