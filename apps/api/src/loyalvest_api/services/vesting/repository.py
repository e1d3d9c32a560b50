"""Persistence adapter for reward grants."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.models.vesting import RewardGrant, RewardGrantStatus


class RewardGrantRepository:
    """Queries and guarded status transitions for ``reward_grants``."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def add(self, grant: RewardGrant) -> RewardGrant:
        self._db.add(grant)
        await self._db.flush()
        return grant

    async def get(self, grant_id: UUID, *, fresh: bool = False) -> RewardGrant | None:
        return await self._db.get(RewardGrant, grant_id, populate_existing=fresh)

    async def get_by_transaction(self, transaction_id: str) -> RewardGrant | None:
        stmt = select(RewardGrant).where(RewardGrant.transaction_id == transaction_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_holder(
        self,
        holder_id: str,
        *,
        status: RewardGrantStatus | None = None,
    ) -> list[RewardGrant]:
        stmt = (
            select(RewardGrant)
            .where(RewardGrant.holder_id == holder_id)
            .order_by(RewardGrant.vesting_start_at.desc(), RewardGrant.id)
        )
        if status is not None:
            stmt = stmt.where(RewardGrant.status == status)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def transition(
        self,
        grant_id: UUID,
        *,
        expected: RewardGrantStatus,
        target: RewardGrantStatus,
        values: dict[str, Any],
        vesting_end_after: datetime | None = None,
    ) -> bool:
        """Move a grant out of ``expected`` only if it is still there.

        Returns ``False`` when another writer changed the grant first.
        """

        stmt = (
            update(RewardGrant)
            .where(RewardGrant.id == grant_id, RewardGrant.status == expected)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        if vesting_end_after is not None:
            stmt = stmt.where(RewardGrant.vesting_end_at > vesting_end_after)
        result = await self._db.execute(stmt)
        return result.rowcount == 1

    async def mature_due(self, now: datetime, *, limit: int | None = None) -> int:
        """Flip every vesting grant whose window ended at or before ``now``."""

        conditions = (
            RewardGrant.status == RewardGrantStatus.VESTING,
            RewardGrant.vesting_end_at <= now,
        )
        stmt = update(RewardGrant).where(*conditions)
        if limit is not None:
            due_ids = (
                select(RewardGrant.id)
                .where(*conditions)
                .order_by(RewardGrant.vesting_end_at)
                .limit(limit)
            )
            ids = list((await self._db.execute(due_ids)).scalars().all())
            if not ids:
                return 0
            stmt = stmt.where(RewardGrant.id.in_(ids))
        stmt = stmt.values(status=RewardGrantStatus.VESTED, vested_at=now).execution_options(
            synchronize_session=False
        )
        result = await self._db.execute(stmt)
        return result.rowcount or 0


__all__ = ["RewardGrantRepository"]
