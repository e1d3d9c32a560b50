"""TOML schedule loader for engine jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomllib
from loguru import logger


@dataclass(slots=True)
class JobDefinition:
    """A cron-triggered async job with retry policy."""

    id: str
    task: str
    cron: str
    kwargs: dict[str, Any] = field(default_factory=dict)
    max_attempts: int = 1
    base_backoff_seconds: float = 5.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 60.0
    jitter_seconds: float = 1.0

    def backoff_for(self, attempt: int) -> float:
        """Delay before retrying after failed ``attempt`` (jitter excluded)."""

        delay = self.base_backoff_seconds * (self.backoff_multiplier ** (attempt - 1))
        if self.max_backoff_seconds:
            delay = min(delay, self.max_backoff_seconds)
        return max(delay, 0.0)


@dataclass(slots=True)
class ScheduleConfig:
    timezone: str
    jobs: list[JobDefinition]


def _number(payload: dict[str, Any], key: str, default: float, floor: float) -> float:
    raw = payload.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = default
    return max(value, floor)


def load_job_definitions(config_path: Path) -> ScheduleConfig:
    """Parse ``[jobs.<name>]`` tables; malformed entries are skipped with a warning."""

    if not config_path.exists():
        raise FileNotFoundError(f"Schedule config not found: {config_path}")

    data = tomllib.loads(config_path.read_text())
    jobs: list[JobDefinition] = []
    for key, payload in data.get("jobs", {}).items():
        if not isinstance(payload, dict):
            logger.warning("Ignoring non-table schedule entry", job=key)
            continue
        task = payload.get("task")
        cron = payload.get("cron")
        if not isinstance(task, str) or not isinstance(cron, str):
            logger.warning("Ignoring schedule entry without task or cron", job=key)
            continue
        kwargs = payload.get("kwargs", {})
        jobs.append(
            JobDefinition(
                id=str(payload.get("id") or key),
                task=task,
                cron=cron,
                kwargs=kwargs if isinstance(kwargs, dict) else {},
                max_attempts=int(_number(payload, "max_attempts", 1, 1)),
                base_backoff_seconds=_number(payload, "base_backoff_seconds", 5.0, 0.0),
                backoff_multiplier=_number(payload, "backoff_multiplier", 2.0, 1.0),
                max_backoff_seconds=_number(payload, "max_backoff_seconds", 60.0, 0.0),
                jitter_seconds=_number(payload, "jitter_seconds", 1.0, 0.0),
            )
        )

    return ScheduleConfig(timezone=str(data.get("timezone", "UTC")), jobs=jobs)


__all__ = ["JobDefinition", "ScheduleConfig", "load_job_definitions"]
