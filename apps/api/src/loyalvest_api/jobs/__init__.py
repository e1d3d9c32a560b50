"""Scheduled engine jobs."""

from .vesting import run_maturity_sweep, sweep_and_record  # noqa: F401

__all__ = ["run_maturity_sweep", "sweep_and_record"]
