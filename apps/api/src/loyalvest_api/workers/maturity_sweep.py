"""Interval worker driving the vesting maturity sweep."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from loyalvest_api.core.settings import settings
from loyalvest_api.jobs.vesting import run_maturity_sweep

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class MaturitySweepWorker:
    """Periodically vests grants whose window has ended."""

    # meta: worker: vesting-maturity-sweep

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        limit: int | None = None,
        trigger_label: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.maturity_sweep_interval_seconds
        self._limit = limit if limit is not None else settings.maturity_sweep_batch_limit
        self._trigger_label = trigger_label or settings.maturity_sweep_trigger_label
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Maturity sweep worker started",
            interval_seconds=self.interval_seconds,
            limit=self._limit,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Maturity sweep worker stopped")

    async def run_once(self, *, triggered_by: str | None = None) -> Dict[str, Any]:
        return await run_maturity_sweep(
            session_factory=self._session_factory,
            limit=self._limit,
            triggered_by=triggered_by or self._trigger_label,
        )

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover - logged, loop continues
                logger.exception("Maturity sweep iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue


__all__ = ["MaturitySweepWorker"]
