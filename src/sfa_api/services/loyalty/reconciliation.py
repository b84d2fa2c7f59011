"""Compare cached mason counters against the ledger and approved bag lifts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sfa_api.db.unit_of_work import unit_of_work
from sfa_api.models.loyalty import BagLift, BagLiftStatus, PointsLedgerEntry
from sfa_api.models.mason import MasonAccount
from sfa_api.observability.loyalty import LoyaltyObservabilityStore, get_loyalty_store
from sfa_api.services.loyalty.ledger import PointsLedger


@dataclass(slots=True)
class MasonDrift:
    """Difference between a mason's counters and their sources of truth."""

    mason_id: UUID
    points_balance: int
    ledger_points: int
    bags_lifted: int
    approved_bags: int
    repaired: bool = False

    @property
    def points_drift(self) -> int:
        return self.ledger_points - self.points_balance

    @property
    def bags_drift(self) -> int:
        return self.approved_bags - self.bags_lifted

    def as_dict(self) -> dict[str, object]:
        return {
            "masonId": str(self.mason_id),
            "pointsBalance": self.points_balance,
            "ledgerPoints": self.ledger_points,
            "pointsDrift": self.points_drift,
            "bagsLifted": self.bags_lifted,
            "approvedBags": self.approved_bags,
            "bagsDrift": self.bags_drift,
            "repaired": self.repaired,
        }


@dataclass(slots=True)
class ReconciliationReport:
    checked: int = 0
    drifts: list[MasonDrift] = field(default_factory=list)

    @property
    def repaired(self) -> int:
        return sum(1 for drift in self.drifts if drift.repaired)

    def as_dict(self) -> dict[str, object]:
        return {
            "checked": self.checked,
            "drifted": len(self.drifts),
            "repaired": self.repaired,
            "drifts": [drift.as_dict() for drift in self.drifts],
        }


class LedgerReconciliationService:
    """Find masons whose balance or bag count disagrees with the records.

    The ledger is never modified; repair only moves the cached counters back
    onto the ledger sum and the approved bag total.
    """

    def __init__(self, session: AsyncSession, *, store: LoyaltyObservabilityStore | None = None) -> None:
        self._db = session
        self._store = store or get_loyalty_store()
        self._ledger = PointsLedger(session, store=self._store)

    async def reconcile(
        self,
        mason_ids: Iterable[UUID] | None = None,
        *,
        repair: bool = False,
        limit: int = 500,
    ) -> ReconciliationReport:
        report = ReconciliationReport()
        async with unit_of_work(self._db, label="ledger.reconcile"):
            stmt = select(MasonAccount.id, MasonAccount.points_balance, MasonAccount.bags_lifted).order_by(
                MasonAccount.id
            )
            if mason_ids is not None:
                stmt = stmt.where(MasonAccount.id.in_(list(mason_ids)))
            else:
                stmt = stmt.limit(max(limit, 1))
            if repair:
                stmt = stmt.with_for_update()
            masons = (await self._db.execute(stmt)).all()
            report.checked = len(masons)

            ids = [row.id for row in masons]
            ledger_points = await self._ledger_sums(ids)
            approved_bags = await self._approved_bag_sums(ids)

            for row in masons:
                drift = MasonDrift(
                    mason_id=row.id,
                    points_balance=row.points_balance,
                    ledger_points=ledger_points.get(row.id, 0),
                    bags_lifted=row.bags_lifted,
                    approved_bags=approved_bags.get(row.id, 0),
                )
                if drift.points_drift == 0 and drift.bags_drift == 0:
                    continue
                logger.warning(
                    "Mason counters drifted from ledger",
                    mason_id=str(drift.mason_id),
                    points_drift=drift.points_drift,
                    bags_drift=drift.bags_drift,
                )
                if repair:
                    await self._ledger.apply_delta(drift.mason_id, drift.points_drift, drift.bags_drift)
                    drift.repaired = True
                report.drifts.append(drift)

        self._store.record_reconciliation(
            checked=report.checked,
            drifted=len(report.drifts),
            repaired=report.repaired,
        )
        logger.info(
            "Ledger reconciliation completed",
            checked=report.checked,
            drifted=len(report.drifts),
            repaired=report.repaired,
        )
        return report

    async def _ledger_sums(self, mason_ids: list[UUID]) -> dict[UUID, int]:
        stmt = (
            select(PointsLedgerEntry.mason_id, func.sum(PointsLedgerEntry.points))
            .where(PointsLedgerEntry.mason_id.in_(mason_ids))
            .group_by(PointsLedgerEntry.mason_id)
        )
        return {mason_id: int(total or 0) for mason_id, total in (await self._db.execute(stmt)).all()}

    async def _approved_bag_sums(self, mason_ids: list[UUID]) -> dict[UUID, int]:
        stmt = (
            select(BagLift.mason_id, func.sum(BagLift.bag_count))
            .where(BagLift.mason_id.in_(mason_ids), BagLift.status == BagLiftStatus.APPROVED)
            .group_by(BagLift.mason_id)
        )
        return {mason_id: int(total or 0) for mason_id, total in (await self._db.execute(stmt)).all()}


__all__ = ["LedgerReconciliationService", "MasonDrift", "ReconciliationReport"]
