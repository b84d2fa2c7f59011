from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from sfa_api.core.settings import settings
from sfa_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .workers import LedgerReconciliationWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    reconciliation_worker = LedgerReconciliationWorker(
        session_factory=_session_factory,
        interval_seconds=settings.ledger_reconciliation_interval_seconds,
        batch_size=settings.ledger_reconciliation_batch_size,
        repair=settings.ledger_reconciliation_repair,
    )
    app.state.ledger_reconciliation_worker = reconciliation_worker

    reconciliation_enabled = settings.ledger_reconciliation_worker_enabled
    if reconciliation_enabled:
        reconciliation_worker.start()
        logger.info(
            "Ledger reconciliation worker enabled",
            interval_seconds=reconciliation_worker.interval_seconds,
            repair=settings.ledger_reconciliation_repair,
        )
    else:
        logger.info(
            "Ledger reconciliation worker disabled",
            reason="ledger_reconciliation_worker_enabled is false",
        )

    try:
        yield
    finally:
        if reconciliation_enabled and reconciliation_worker.is_running:
            await reconciliation_worker.stop()


def create_app() -> FastAPI:
    """Application factory for the SFA back-office API."""
    configure_logging(
        service_name="sfa-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="SFA API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="sfa-api",
        service_version=APP_VERSION,
        environment=settings.environment,
        enabled=settings.tracing_enabled,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
