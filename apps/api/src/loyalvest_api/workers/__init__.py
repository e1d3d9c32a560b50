"""Background workers started from the application lifespan."""

from .maturity_sweep import MaturitySweepWorker  # noqa: F401

__all__ = ["MaturitySweepWorker"]
