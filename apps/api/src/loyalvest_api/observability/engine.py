"""In-memory observability store for the reward vesting engine."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Dict

from loyalvest_api.core.clock import utcnow


@dataclass
class EngineSnapshot:
    """Serializable snapshot returned to API consumers."""

    transactions: Dict[str, int]
    grants: Dict[str, int]
    changes: Dict[str, int]
    alerts: Dict[str, int]
    jobs: Dict[str, Dict[str, int]]
    last_sweep_at: datetime | None
    last_sweep_matured: int | None
    last_alert_at: datetime | None
    last_alert_message: str | None

    def as_dict(self) -> Dict[str, object]:
        return {
            "transactions": dict(self.transactions),
            "grants": dict(self.grants),
            "changes": dict(self.changes),
            "alerts": dict(self.alerts),
            "jobs": {job_id: dict(counts) for job_id, counts in self.jobs.items()},
            "sweeps": {
                "last_completed_at": self.last_sweep_at.isoformat() if self.last_sweep_at else None,
                "last_matured_count": self.last_sweep_matured,
            },
            "last_alert": {
                "at": self.last_alert_at.isoformat() if self.last_alert_at else None,
                "message": self.last_alert_message,
            },
        }


class EngineObservabilityStore:
    """Collect transaction, vesting and governance counters for dashboards."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._transactions: Dict[str, int] = defaultdict(int)
        self._grants: Dict[str, int] = defaultdict(int)
        self._changes: Dict[str, int] = defaultdict(int)
        self._alerts: Dict[str, int] = defaultdict(int)
        self._jobs: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._last_sweep_at: datetime | None = None
        self._last_sweep_matured: int | None = None
        self._last_alert_at: datetime | None = None
        self._last_alert_message: str | None = None

    def record_transaction_event(self, outcome: str) -> None:
        with self._lock:
            self._transactions[outcome] += 1

    def record_grant_event(self, event: str, count: int = 1) -> None:
        with self._lock:
            self._grants[event] += count

    def record_change_event(self, event: str) -> None:
        with self._lock:
            self._changes[event] += 1

    def record_sweep(self, matured: int) -> None:
        with self._lock:
            self._grants["matured"] += matured
            self._last_sweep_at = utcnow()
            self._last_sweep_matured = matured

    def record_job_run(self, job_id: str, outcome: str) -> None:
        with self._lock:
            self._jobs[job_id][outcome] += 1

    def record_alert(self, kind: str, message: str) -> None:
        """Operator alert raised when a unit of work cannot be completed."""

        with self._lock:
            self._alerts[kind] += 1
            self._last_alert_at = utcnow()
            self._last_alert_message = message

    def snapshot(self) -> EngineSnapshot:
        with self._lock:
            return EngineSnapshot(
                transactions=dict(self._transactions),
                grants=dict(self._grants),
                changes=dict(self._changes),
                alerts=dict(self._alerts),
                jobs={job_id: dict(counts) for job_id, counts in self._jobs.items()},
                last_sweep_at=self._last_sweep_at,
                last_sweep_matured=self._last_sweep_matured,
                last_alert_at=self._last_alert_at,
                last_alert_message=self._last_alert_message,
            )

    def reset(self) -> None:
        with self._lock:
            self._transactions.clear()
            self._grants.clear()
            self._changes.clear()
            self._alerts.clear()
            self._jobs.clear()
            self._last_sweep_at = None
            self._last_sweep_matured = None
            self._last_alert_at = None
            self._last_alert_message = None


_STORE = EngineObservabilityStore()


def get_engine_store() -> EngineObservabilityStore:
    return _STORE


__all__ = ["EngineObservabilityStore", "EngineSnapshot", "get_engine_store"]
