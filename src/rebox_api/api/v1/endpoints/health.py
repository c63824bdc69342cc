from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.db.session import get_session
from rebox_api.services.rewards import get_level_schedule


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except SQLAlchemyError as error:
        status = "error"
        components["database"] = ComponentStatus(
            status="error",
            detail=f"Database unreachable ({error.__class__.__name__})",
            last_error_at=datetime.now(timezone.utc).isoformat(),
        )

    try:
        schedule = get_level_schedule()
        components["level_schedule"] = ComponentStatus(
            status="ready",
            detail=f"Level schedule {schedule.version} ({len(schedule.levels)} levels)",
        )
    except (ValueError, OSError) as error:
        status = "error"
        components["level_schedule"] = ComponentStatus(status="error", detail=str(error))

    relay = getattr(request.app.state, "realtime_relay", None)
    if relay is None:
        components["realtime_relay"] = ComponentStatus(status="disabled", detail="Realtime relay not configured")
        if status == "ready":
            status = "degraded"
    else:
        components["realtime_relay"] = ComponentStatus(status="ready", detail=relay.__class__.__name__)

    return ReadinessPayload(status=status, components=components)
