from fastapi import APIRouter

from .endpoints import (
    health,
    masons,
    observability,
)

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["Health"])
router.include_router(masons.router)
router.include_router(observability.router)
