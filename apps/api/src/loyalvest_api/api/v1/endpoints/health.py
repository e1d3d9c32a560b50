from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from loyalvest_api.core.settings import settings


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class HealthPayload(BaseModel):
    status: Literal["ok", "degraded"]
    components: Dict[str, ComponentStatus]


def _component(enabled: bool, worker: object | None, label: str) -> ComponentStatus:
    if not enabled or worker is None:
        return ComponentStatus(status="disabled", detail=f"{label} disabled via settings")
    if getattr(worker, "is_running", False):
        return ComponentStatus(status="ready")
    return ComponentStatus(status="starting", detail=f"{label} not running")


@router.get("/health", summary="Service health and background worker status", response_model=HealthPayload)
async def service_health(request: Request) -> HealthPayload:
    components = {
        "maturity_sweep_worker": _component(
            settings.maturity_sweep_enabled and not settings.engine_job_scheduler_enabled,
            getattr(request.app.state, "maturity_sweep_worker", None),
            "Maturity sweep worker",
        ),
        "engine_job_scheduler": _component(
            settings.engine_job_scheduler_enabled,
            getattr(request.app.state, "engine_job_scheduler", None),
            "Engine job scheduler",
        ),
    }
    degraded = any(component.status == "starting" for component in components.values())
    return HealthPayload(status="degraded" if degraded else "ok", components=components)
