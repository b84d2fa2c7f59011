from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sfa_api.core.settings import settings
from sfa_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")


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
        logger.warning("Readiness database probe failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail=type(error).__name__)
        status = "error"

    worker = getattr(request.app.state, "ledger_reconciliation_worker", None)
    if settings.ledger_reconciliation_worker_enabled and worker is not None:
        running = bool(getattr(worker, "is_running", False))
        worker_status: Literal["ready", "starting", "disabled", "error"] = "ready" if running else "starting"
        detail = None if running else "Ledger reconciliation worker not running"
        if not running:
            status = "degraded" if status != "error" else status
        components["ledger_reconciliation"] = ComponentStatus(status=worker_status, detail=detail)
    else:
        components["ledger_reconciliation"] = ComponentStatus(
            status="disabled",
            detail="Ledger reconciliation worker disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
