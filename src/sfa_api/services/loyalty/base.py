"""Shared plumbing for the loyalty state machines."""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sfa_api.models.mason import MasonAccount
from sfa_api.models.user import User
from sfa_api.observability.loyalty import LoyaltyObservabilityStore, get_loyalty_store
from sfa_api.services.access import AccessPolicy, Actor, LoyaltyAction
from sfa_api.services.loyalty.errors import ForbiddenError, LoyaltyError, NotFoundError
from sfa_api.services.loyalty.ledger import PointsLedger


class LoyaltyWorkflow:
    """Common collaborators: session, access policy, ledger and telemetry."""

    kind: str = "loyalty"

    def __init__(
        self,
        session: AsyncSession,
        *,
        policy: AccessPolicy | None = None,
        store: LoyaltyObservabilityStore | None = None,
    ) -> None:
        self._db = session
        self._policy = policy or AccessPolicy.from_settings()
        self._store = store or get_loyalty_store()
        self._ledger = PointsLedger(session, store=self._store)

    def _authorize(self, actor: Actor, action: LoyaltyAction) -> None:
        if not self._policy.authorize(actor, action):
            raise ForbiddenError(f"Role {actor.role!r} may not perform {action.value}")

    async def _lock_mason(self, mason_id: UUID) -> MasonAccount:
        stmt = (
            select(MasonAccount)
            .where(MasonAccount.id == mason_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        mason = (await self._db.execute(stmt)).scalar_one_or_none()
        if mason is None:
            raise NotFoundError(f"Mason {mason_id} not found")
        return mason

    async def _lock_masons(self, mason_ids: Iterable[UUID]) -> dict[UUID, MasonAccount]:
        """Lock several masons in ascending id order; missing ids are left out."""

        stmt = (
            select(MasonAccount)
            .where(MasonAccount.id.in_(set(mason_ids)))
            .order_by(MasonAccount.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {mason.id: mason for mason in (await self._db.execute(stmt)).scalars()}

    async def _mason_company_id(self, mason: MasonAccount) -> int | None:
        if mason.user_id is None:
            return None
        stmt = select(User.company_id).where(User.id == mason.user_id)
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _ensure_tenant(self, mason: MasonAccount, actor: Actor, *, allow_unassigned: bool = False) -> None:
        company_id = await self._mason_company_id(mason)
        if company_id is None and allow_unassigned:
            return
        if company_id != actor.company_id:
            raise ForbiddenError("Record belongs to another organization")

    def _record_refusal(self, error: LoyaltyError, **context: object) -> None:
        self._store.record_refusal(self.kind, type(error).__name__)
        logger.warning(
            "Loyalty operation refused",
            kind=self.kind,
            error=type(error).__name__,
            reason=str(error),
            **{key: str(value) if value is not None else None for key, value in context.items()},
        )


__all__ = ["LoyaltyWorkflow"]
