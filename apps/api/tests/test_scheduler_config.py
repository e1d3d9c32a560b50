from pathlib import Path

import pytest

from loyalvest_api.jobs.vesting import run_maturity_sweep
from loyalvest_api.observability.engine import get_engine_store
from loyalvest_api.scheduling import EngineJobScheduler, JobDefinition, load_job_definitions, resolve_task


CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "schedules.toml"


def test_shipped_schedule_registers_maturity_sweep() -> None:
    config = load_job_definitions(CONFIG_PATH)

    assert config.timezone == "UTC"
    [job] = config.jobs
    assert job.id == "vesting_maturity_sweep"
    assert job.cron == "0 * * * *"
    assert job.kwargs == {"triggered_by": "scheduler"}
    assert resolve_task(job.task) is run_maturity_sweep


def test_malformed_entries_are_skipped(tmp_path) -> None:
    path = tmp_path / "schedules.toml"
    path.write_text(
        """
[jobs.good]
task = "loyalvest_api.jobs.vesting.run_maturity_sweep"
cron = "*/5 * * * *"
max_attempts = "oops"

[jobs.missing_cron]
task = "loyalvest_api.jobs.vesting.run_maturity_sweep"
"""
    )

    config = load_job_definitions(path)

    assert [job.id for job in config.jobs] == ["good"]
    assert config.jobs[0].max_attempts == 1

    with pytest.raises(FileNotFoundError):
        load_job_definitions(tmp_path / "missing.toml")


def test_backoff_grows_and_is_capped() -> None:
    job = JobDefinition(
        id="sweep",
        task="x.y",
        cron="* * * * *",
        base_backoff_seconds=10,
        backoff_multiplier=2,
        max_backoff_seconds=30,
    )

    assert [job.backoff_for(attempt) for attempt in (1, 2, 3, 4)] == [10, 20, 30, 30]


@pytest.mark.parametrize(
    ("task", "error"),
    [
        ("no_module_path", ValueError),
        ("loyalvest_api.jobs.vesting.missing", AttributeError),
        ("loyalvest_api.services.rewards.compute_reward", TypeError),
    ],
)
def test_resolve_task_errors(task, error) -> None:
    with pytest.raises(error):
        resolve_task(task)


@pytest.mark.asyncio
async def test_wrapped_job_retries_then_reports_failure() -> None:
    calls: list[dict] = []

    async def always_fails(**kwargs):
        calls.append(kwargs)
        raise RuntimeError("store unavailable")

    scheduler = EngineJobScheduler(session_factory=lambda: None, config_path=CONFIG_PATH)
    job = JobDefinition(
        id="flaky",
        task="tests.flaky",
        cron="* * * * *",
        kwargs={"triggered_by": "scheduler"},
        max_attempts=2,
        base_backoff_seconds=0,
        jitter_seconds=0,
    )

    assert await scheduler.wrap(always_fails, job)() is False
    assert len(calls) == 2
    assert calls[0]["triggered_by"] == "scheduler"
    snapshot = get_engine_store().snapshot()
    assert snapshot.jobs["flaky"] == {"retried": 1, "failed": 1}
    assert snapshot.alerts["scheduled_job"] == 1


@pytest.mark.asyncio
async def test_wrapped_job_succeeds(session_factory) -> None:
    scheduler = EngineJobScheduler(session_factory=session_factory, config_path=CONFIG_PATH)
    job = load_job_definitions(CONFIG_PATH).jobs[0]

    assert await scheduler.wrap(resolve_task(job.task), job)() is True
    assert get_engine_store().snapshot().jobs[job.id] == {"succeeded": 1}
