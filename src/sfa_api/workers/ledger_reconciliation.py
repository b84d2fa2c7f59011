"""Worker wiring for periodic points-ledger reconciliation sweeps."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from sfa_api.core.settings import settings
from sfa_api.services.loyalty.reconciliation import LedgerReconciliationService

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]


class LedgerReconciliationWorker:
    """Periodically checks mason counters against the points ledger."""

    # meta: worker: ledger-reconciliation

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        interval_seconds: int | None = None,
        batch_size: int | None = None,
        repair: bool | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.ledger_reconciliation_interval_seconds
        self._batch_size = batch_size or settings.ledger_reconciliation_batch_size
        self._repair = settings.ledger_reconciliation_repair if repair is None else repair
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info(
            "Ledger reconciliation worker started",
            interval_seconds=self.interval_seconds,
            batch_size=self._batch_size,
            repair=self._repair,
        )

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Ledger reconciliation worker stopped")

    async def run_once(self) -> Dict[str, int]:
        """Execute a single reconciliation sweep."""

        session = await self._ensure_session()
        async with session as managed_session:
            service = LedgerReconciliationService(managed_session)
            report = await service.reconcile(repair=self._repair, limit=self._batch_size)

        return {
            "checked": report.checked,
            "drifted": len(report.drifts),
            "repaired": report.repaired,
        }

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover
                logger.exception("Ledger reconciliation iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session


__all__ = ["LedgerReconciliationWorker"]
