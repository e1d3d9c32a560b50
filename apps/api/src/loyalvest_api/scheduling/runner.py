"""APScheduler runtime for cron-driven engine jobs."""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from importlib import import_module
from pathlib import Path
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from loyalvest_api.observability.engine import get_engine_store

from .config import JobDefinition, ScheduleConfig, load_job_definitions

SessionFactory = Callable[[], Awaitable[Any]] | Callable[[], Any]


def resolve_task(task: str) -> Callable[..., Awaitable[Any]]:
    """Import ``package.module.function`` and require an async callable."""

    module_name, _, attr = task.rpartition(".")
    if not module_name:
        raise ValueError(f"Invalid task path: {task}")
    func = getattr(import_module(module_name), attr, None)
    if func is None:
        raise AttributeError(f"Task {task} not found")
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"Task {task} must be an async function")
    return func


class EngineJobScheduler:
    """Register and run recurring engine jobs such as the maturity sweep."""

    # meta: scheduler: engine-jobs

    def __init__(self, *, session_factory: SessionFactory, config_path: Path) -> None:
        self._session_factory = session_factory
        self._config_path = config_path
        self._config: ScheduleConfig | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False
        self._observability = get_engine_store()

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        config = load_job_definitions(self._config_path)
        timezone = ZoneInfo(config.timezone)
        scheduler = AsyncIOScheduler(timezone=timezone)

        for job in config.jobs:
            func = resolve_task(job.task)
            trigger = CronTrigger.from_crontab(job.cron, timezone=timezone)
            scheduler.add_job(self.wrap(func, job), trigger=trigger, id=job.id, replace_existing=True)
            logger.info("Registered engine job", job_id=job.id, task=job.task, cron=job.cron)

        scheduler.start()
        self._config = config
        self._scheduler = scheduler
        self._is_running = True
        logger.info("Engine job scheduler started", jobs=len(config.jobs))

    async def stop(self) -> None:
        if not self._scheduler:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        self._is_running = False
        logger.info("Engine job scheduler stopped")

    def wrap(self, func: Callable[..., Awaitable[Any]], job: JobDefinition) -> Callable[[], Awaitable[bool]]:
        """Return a runner applying the job's retry and backoff policy.

        The runner resolves to ``True`` on success and ``False`` once attempts
        are exhausted.
        """

        async def _runner() -> bool:
            started_at = time.perf_counter()
            for attempt in range(1, job.max_attempts + 1):
                try:
                    await func(session_factory=self._session_factory, **job.kwargs)
                except Exception as exc:
                    if attempt >= job.max_attempts:
                        self._observability.record_job_run(job.id, "failed")
                        self._observability.record_alert("scheduled_job", f"{job.id}: {exc}")
                        logger.exception(
                            "Scheduled job failed after retries",
                            job_id=job.id,
                            task=job.task,
                            attempts=attempt,
                        )
                        return False
                    delay = job.backoff_for(attempt)
                    if job.jitter_seconds:
                        delay += random.uniform(0, job.jitter_seconds)
                    self._observability.record_job_run(job.id, "retried")
                    logger.warning(
                        "Scheduled job retrying",
                        job_id=job.id,
                        attempt=attempt + 1,
                        delay_seconds=delay,
                        error=str(exc),
                    )
                    if delay:
                        await asyncio.sleep(delay)
                    continue

                self._observability.record_job_run(job.id, "succeeded")
                logger.info(
                    "Scheduled job completed",
                    job_id=job.id,
                    attempts=attempt,
                    runtime_seconds=time.perf_counter() - started_at,
                )
                return True
            return False

        return _runner

    def health(self) -> dict[str, object]:
        jobs = self._config.jobs if self._config else []
        return {
            "running": self._is_running,
            "configured_jobs": len(jobs),
            "jobs": [
                {"id": job.id, "task": job.task, "cron": job.cron, "max_attempts": job.max_attempts}
                for job in jobs
            ],
        }


__all__ = ["EngineJobScheduler", "resolve_task"]
