"""Append-only points ledger and the mason counters mirrored from it."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sfa_api.models.loyalty import PointsLedgerEntry, PointsSourceType
from sfa_api.models.mason import MasonAccount
from sfa_api.models.user import User
from sfa_api.observability.loyalty import LoyaltyObservabilityStore, get_loyalty_store
from sfa_api.services.loyalty.errors import DuplicateSourceError, NotFoundError


MAX_LEDGER_PAGE_SIZE = 500


@dataclass
class LedgerRow:
    """Ledger entry joined with the owning mason's display name."""

    entry: PointsLedgerEntry
    mason_name: str


@dataclass
class LedgerPage:
    entries: list[LedgerRow]
    total_count: int
    page: int
    page_size: int


class PointsLedger:
    """Writes ledger entries and applies the matching counter deltas.

    Nothing here commits: callers wrap every append/apply pair in one
    ``unit_of_work`` so the ledger and the counters move together.
    """

    def __init__(self, db_session: AsyncSession, *, store: LoyaltyObservabilityStore | None = None) -> None:
        self._db = db_session
        self._store = store or get_loyalty_store()

    async def append(
        self,
        mason_id: UUID,
        *,
        source_type: PointsSourceType,
        points: int,
        memo: str | None = None,
        source_id: UUID | None = None,
    ) -> PointsLedgerEntry:
        """Insert one ledger row; a reused ``source_id`` raises ``DuplicateSourceError``."""

        if source_id is not None and await self._source_taken(source_id):
            raise DuplicateSourceError(source_id)

        entry = PointsLedgerEntry(
            mason_id=mason_id,
            source_type=source_type,
            source_id=source_id,
            points=int(points),
            memo=memo,
        )
        self._db.add(entry)
        try:
            await self._db.flush()
        except IntegrityError as error:
            if source_id is None:
                raise
            # Concurrent writer claimed the same source between the check and the insert.
            raise DuplicateSourceError(source_id) from error

        self._store.record_ledger_entry(source_type.value, int(points))
        logger.info(
            "Appended points ledger entry",
            mason_id=str(mason_id),
            source_type=source_type.value,
            source_id=str(source_id) if source_id else None,
            points=int(points),
        )
        return entry

    async def has_entry(self, mason_id: UUID, source_type: PointsSourceType) -> bool:
        stmt = (
            select(PointsLedgerEntry.id)
            .where(PointsLedgerEntry.mason_id == mason_id, PointsLedgerEntry.source_type == source_type)
            .limit(1)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none() is not None

    async def _source_taken(self, source_id: UUID) -> bool:
        stmt = select(PointsLedgerEntry.id).where(PointsLedgerEntry.source_id == source_id)
        return (await self._db.execute(stmt)).scalar_one_or_none() is not None

    async def apply_delta(self, mason_id: UUID, points_delta: int, bags_delta: int = 0) -> None:
        """Shift the mason's cached counters by relative amounts."""

        values: dict[str, object] = {"points_balance": MasonAccount.points_balance + int(points_delta)}
        if bags_delta:
            values["bags_lifted"] = MasonAccount.bags_lifted + int(bags_delta)

        stmt = update(MasonAccount).where(MasonAccount.id == mason_id).values(**values)
        result = await self._db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError(f"Mason {mason_id} not found")

        logger.debug(
            "Applied mason counter delta",
            mason_id=str(mason_id),
            points_delta=int(points_delta),
            bags_delta=int(bags_delta),
        )

    async def post(
        self,
        mason_id: UUID,
        *,
        source_type: PointsSourceType,
        points: int,
        memo: str | None = None,
        source_id: UUID | None = None,
        bags_delta: int = 0,
    ) -> PointsLedgerEntry:
        """Append an entry and mirror it onto the mason counters."""

        entry = await self.append(
            mason_id,
            source_type=source_type,
            points=points,
            memo=memo,
            source_id=source_id,
        )
        await self.apply_delta(mason_id, points, bags_delta)
        return entry

    async def ledger_sum(self, mason_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(PointsLedgerEntry.points), 0)).where(
            PointsLedgerEntry.mason_id == mason_id
        )
        return int((await self._db.execute(stmt)).scalar_one())

    async def list_entries(
        self,
        company_id: int,
        *,
        page: int = 0,
        page_size: int = MAX_LEDGER_PAGE_SIZE,
        search: str | None = None,
        source_type: str | None = None,
    ) -> LedgerPage:
        """Ledger rows for masons assigned to the tenant, newest first."""

        page = max(page, 0)
        page_size = max(1, min(page_size, MAX_LEDGER_PAGE_SIZE))

        filters = [User.company_id == company_id]
        if search:
            pattern = f"%{search}%"
            filters.append(or_(MasonAccount.name.ilike(pattern), PointsLedgerEntry.memo.ilike(pattern)))
        if source_type and source_type != "all":
            filters.append(PointsLedgerEntry.source_type == PointsSourceType(source_type))

        base = (
            select(PointsLedgerEntry, MasonAccount.name)
            .join(MasonAccount, PointsLedgerEntry.mason_id == MasonAccount.id)
            .join(User, MasonAccount.user_id == User.id)
            .where(*filters)
        )
        stmt = (
            base.order_by(PointsLedgerEntry.created_at.desc(), PointsLedgerEntry.id.desc())
            .limit(page_size)
            .offset(page * page_size)
        )
        rows = (await self._db.execute(stmt)).all()

        count_stmt = select(func.count()).select_from(base.subquery())
        total = int((await self._db.execute(count_stmt)).scalar_one())

        return LedgerPage(
            entries=[LedgerRow(entry=entry, mason_name=name or "Unknown Mason") for entry, name in rows],
            total_count=total,
            page=page,
            page_size=page_size,
        )


__all__ = ["LedgerPage", "LedgerRow", "MAX_LEDGER_PAGE_SIZE", "PointsLedger"]
