"""Maturity sweep job: vest every grant whose window has ended."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.core.clock import ensure_utc, utcnow
from loyalvest_api.models.vesting import MaturitySweepRun
from loyalvest_api.services.vesting import VestingLedger


# meta: job: vesting-maturity-sweep

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def sweep_and_record(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    limit: int | None = None,
    triggered_by: str = "scheduler",
) -> Dict[str, Any]:
    """Run one sweep on ``session`` and record it in ``maturity_sweep_runs``."""

    reference = ensure_utc(now or utcnow())
    run = MaturitySweepRun(
        triggered_by=triggered_by,
        reference_time=reference,
        metadata_json={"limit": limit},
    )
    session.add(run)
    await session.commit()
    run_id = run.id

    ledger = VestingLedger(session)
    try:
        matured = await ledger.sweep_maturities(reference, limit=limit)
    except Exception as exc:
        run.status = "failed"
        run.error_message = str(exc)
        run.completed_at = utcnow()
        session.add(run)
        await session.commit()
        logger.exception("Maturity sweep failed", run_id=str(run_id), trigger=triggered_by)
        raise

    run.status = "completed"
    run.matured_count = matured
    run.completed_at = utcnow()
    await session.commit()

    summary = {
        "run_id": str(run_id),
        "matured": matured,
        "reference_time": reference.isoformat(),
        "triggered_by": triggered_by,
    }
    logger.bind(sweep=summary).info("Maturity sweep completed")
    return summary


async def run_maturity_sweep(
    *,
    session_factory: SessionFactory,
    now: datetime | None = None,
    limit: int | None = None,
    triggered_by: str = "scheduler",
) -> Dict[str, Any]:
    """Scheduler entry point: open a session and sweep."""

    maybe_session = session_factory()
    session = maybe_session if isinstance(maybe_session, AsyncSession) else await maybe_session

    async with session as managed_session:
        return await sweep_and_record(managed_session, now=now, limit=limit, triggered_by=triggered_by)


__all__ = ["run_maturity_sweep", "sweep_and_record"]
