"""Scheduling utilities for recurring engine jobs."""

from .config import JobDefinition, ScheduleConfig, load_job_definitions
from .runner import EngineJobScheduler, resolve_task

__all__ = ["EngineJobScheduler", "JobDefinition", "ScheduleConfig", "load_job_definitions", "resolve_task"]
