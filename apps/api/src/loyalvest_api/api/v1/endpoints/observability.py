"""Observability endpoints for engine counters and Prometheus scraping."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from loyalvest_api.api.dependencies.security import require_engine_api_key
from loyalvest_api.observability.engine import get_engine_store


router = APIRouter(prefix="/observability", tags=["Observability"])


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/engine",
    dependencies=[Depends(require_engine_api_key)],
    summary="Engine observability snapshot",
)
async def get_engine_snapshot() -> dict[str, object]:
    return get_engine_store().snapshot().as_dict()


@router.get(
    "/prometheus",
    dependencies=[Depends(require_engine_api_key)],
    summary="Prometheus-formatted engine metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_engine_store().snapshot()
    lines: list[str] = []

    for outcome, value in sorted(snapshot.transactions.items()):
        lines.extend(
            _format_metric(
                "loyalvest_transactions_total",
                "Merchant transactions grouped by outcome",
                value,
                labels={"outcome": outcome},
            )
        )
    for event, value in sorted(snapshot.grants.items()):
        lines.extend(
            _format_metric(
                "loyalvest_grant_transitions_total",
                "Reward grant transitions grouped by event",
                value,
                labels={"event": event},
            )
        )
    for event, value in sorted(snapshot.changes.items()):
        lines.extend(
            _format_metric(
                "loyalvest_governed_changes_total",
                "Governed change events grouped by outcome",
                value,
                labels={"event": event},
            )
        )
    for kind, value in sorted(snapshot.alerts.items()):
        lines.extend(
            _format_metric(
                "loyalvest_alerts_total",
                "Operator alerts raised by the engine",
                value,
                labels={"kind": kind},
            )
        )
    for job_id, counts in sorted(snapshot.jobs.items()):
        for outcome, value in sorted(counts.items()):
            lines.extend(
                _format_metric(
                    "loyalvest_scheduled_job_runs_total",
                    "Scheduled job runs grouped by outcome",
                    value,
                    labels={"job_id": job_id, "outcome": outcome},
                )
            )
    if snapshot.last_sweep_at:
        lines.extend(
            _format_metric(
                "loyalvest_maturity_sweep_last_completed_timestamp",
                "Completion time of the most recent maturity sweep",
                snapshot.last_sweep_at.timestamp(),
            )
        )

    body = "\n".join(lines) + "\n"
    return PlainTextResponse(content=body, media_type="text/plain; version=0.0.4")
