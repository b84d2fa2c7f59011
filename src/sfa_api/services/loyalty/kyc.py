"""Mason KYC review and the one-time joining bonus it unlocks."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sfa_api.core.settings import settings
from sfa_api.db.unit_of_work import unit_of_work
from sfa_api.models.loyalty import PointsSourceType
from sfa_api.models.mason import KycSubmission, KycSubmissionStatus, MasonAccount, MasonKycStatus
from sfa_api.models.user import User
from sfa_api.observability.loyalty import LoyaltyObservabilityStore
from sfa_api.services.access import AccessPolicy, Actor, LoyaltyAction
from sfa_api.services.loyalty.base import LoyaltyWorkflow
from sfa_api.services.loyalty.bonus import calculate_joining_bonus_points
from sfa_api.services.loyalty.errors import ForbiddenError, LoyaltyError, NotFoundError


class KycOutcome(str, Enum):
    """Reviewer verdict on a mason's identity documents."""

    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


_MASON_STATUS = {
    KycOutcome.VERIFIED: MasonKycStatus.VERIFIED,
    KycOutcome.REJECTED: MasonKycStatus.NONE,
}
_SUBMISSION_STATUS = {
    KycOutcome.VERIFIED: KycSubmissionStatus.VERIFIED,
    KycOutcome.REJECTED: KycSubmissionStatus.REJECTED,
}

UNSET: Any = object()


class MasonKycService(LoyaltyWorkflow):
    """Record KYC outcomes and administrative edits on mason accounts."""

    kind = "kyc"

    def __init__(
        self,
        session: AsyncSession,
        *,
        policy: AccessPolicy | None = None,
        store: LoyaltyObservabilityStore | None = None,
        joining_bonus_points: int | None = None,
    ) -> None:
        super().__init__(session, policy=policy, store=store)
        self._joining_bonus_points = (
            settings.loyalty_joining_bonus_points if joining_bonus_points is None else joining_bonus_points
        )

    async def update_mason(
        self,
        mason_id: UUID,
        actor: Actor,
        *,
        verification_status: KycOutcome | None = None,
        admin_remarks: str | None = None,
        user_id: UUID | None = UNSET,
        dealer_id: str | None = UNSET,
        site_id: str | None = UNSET,
        clear_device: bool = False,
    ) -> MasonAccount:
        """Apply a KYC outcome plus any admin edits; grant the joining bonus once.

        Fields left as ``UNSET`` are not touched. The bonus is attached to the
        latest pending submission and is paid at most once per mason, however
        many times KYC is rejected and verified again.
        """

        try:
            self._authorize(actor, LoyaltyAction.MASON_KYC)
            async with unit_of_work(self._db, label="mason.kyc"):
                mason = await self._lock_mason(mason_id)
                await self._ensure_tenant(mason, actor, allow_unassigned=True)

                previous_status = mason.kyc_status
                submission = await self._latest_pending_submission(mason.id)

                if user_id is not UNSET:
                    if user_id is not None:
                        await self._ensure_assignable(user_id, actor)
                    mason.user_id = user_id
                if dealer_id is not UNSET:
                    mason.dealer_id = dealer_id
                if site_id is not UNSET:
                    mason.site_id = site_id
                if clear_device:
                    mason.device_id = None

                if verification_status is not None:
                    mason.kyc_status = _MASON_STATUS[verification_status]
                    if submission is not None:
                        submission.status = _SUBMISSION_STATUS[verification_status]
                        if admin_remarks is not None:
                            submission.remark = admin_remarks

                bonus = calculate_joining_bonus_points(amount=self._joining_bonus_points)
                if (
                    verification_status == KycOutcome.VERIFIED
                    and previous_status != MasonKycStatus.VERIFIED
                    and bonus > 0
                    and submission is not None
                    # A rejection resets the mason to ``none``; the bonus still pays once per mason.
                    and not await self._ledger.has_entry(mason.id, PointsSourceType.JOINING_BONUS)
                ):
                    verified_on = datetime.now(timezone.utc).date().isoformat()
                    await self._ledger.post(
                        mason.id,
                        source_type=PointsSourceType.JOINING_BONUS,
                        points=bonus,
                        memo=f"Joining Bonus: KYC Verified on {verified_on}",
                        source_id=submission.id,
                    )
        except LoyaltyError as error:
            self._record_refusal(
                error,
                mason_id=mason_id,
                requested_status=verification_status.value if verification_status else None,
            )
            raise

        await self._db.refresh(mason)
        if verification_status is not None:
            self._store.record_transition(self.kind, previous_status.value, mason.kyc_status.value)
        logger.info(
            "Mason KYC updated",
            mason_id=str(mason.id),
            from_status=previous_status.value,
            to_status=mason.kyc_status.value,
            submission_id=str(submission.id) if submission else None,
            actor_id=str(actor.user_id),
        )
        return mason

    async def _latest_pending_submission(self, mason_id: UUID) -> KycSubmission | None:
        stmt = (
            select(KycSubmission)
            .where(
                KycSubmission.mason_id == mason_id,
                KycSubmission.status == KycSubmissionStatus.PENDING,
            )
            .order_by(KycSubmission.created_at.desc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _ensure_assignable(self, user_id: UUID, actor: Actor) -> None:
        stmt = select(User.company_id).where(User.id == user_id)
        company_id = (await self._db.execute(stmt)).scalar_one_or_none()
        if company_id is None:
            raise NotFoundError(f"User {user_id} not found")
        if company_id != actor.company_id:
            raise ForbiddenError("Cannot assign a mason to a user from another organization")


__all__ = ["KycOutcome", "MasonKycService", "UNSET"]
