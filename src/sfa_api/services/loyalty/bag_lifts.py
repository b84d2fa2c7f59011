"""Bag lift review: approval credits points, rejection reverses them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sfa_api.core.settings import settings
from sfa_api.db.unit_of_work import unit_of_work
from sfa_api.models.loyalty import BagLift, BagLiftStatus, PointsSourceType
from sfa_api.models.mason import MasonAccount
from sfa_api.models.user import User
from sfa_api.observability.loyalty import LoyaltyObservabilityStore
from sfa_api.services.access import AccessPolicy, Actor, LoyaltyAction
from sfa_api.services.loyalty.base import LoyaltyWorkflow
from sfa_api.services.loyalty.bonus import (
    BonusThreshold,
    calculate_extra_bonus_points,
    check_referral_bonus_trigger,
    load_thresholds,
)
from sfa_api.services.loyalty.errors import (
    InvalidTransitionError,
    LoyaltyError,
    NoOpError,
    NotFoundError,
)


SLAB_BONUS_MEMO = "Extra Bonus for crossing bag slab."
REVERSAL_MEMO = "Debit: Bag Lift rejected by Admin."


@dataclass(slots=True)
class BagLiftRow:
    bag_lift: BagLift
    mason_name: str
    mason_phone: str | None


class BagLiftReviewService(LoyaltyWorkflow):
    """Approve or reject mason bag lifts and keep the ledger in step."""

    kind = "bag_lift"

    _ALLOWED_TRANSITIONS: dict[BagLiftStatus, set[BagLiftStatus]] = {
        BagLiftStatus.PENDING: {BagLiftStatus.APPROVED, BagLiftStatus.REJECTED},
        BagLiftStatus.APPROVED: {BagLiftStatus.REJECTED},
        BagLiftStatus.REJECTED: set(),
    }

    def __init__(
        self,
        session: AsyncSession,
        *,
        policy: AccessPolicy | None = None,
        store: LoyaltyObservabilityStore | None = None,
        slabs: Sequence[BonusThreshold] | None = None,
        milestones: Sequence[BonusThreshold] | None = None,
    ) -> None:
        super().__init__(session, policy=policy, store=store)
        self._slabs = list(slabs) if slabs is not None else load_thresholds(settings.loyalty_slab_bonuses)
        self._milestones = (
            list(milestones) if milestones is not None else load_thresholds(settings.loyalty_referral_milestones)
        )

    async def review(
        self,
        bag_lift_id: UUID,
        new_status: BagLiftStatus,
        actor: Actor,
        *,
        memo: str | None = None,
    ) -> BagLift:
        """Move a bag lift to ``new_status`` with all ledger effects in one transaction."""

        try:
            self._authorize(actor, LoyaltyAction.BAG_LIFT_REVIEW)
            async with unit_of_work(self._db, label="bag_lift.review"):
                bag_lift = await self._lock_bag_lift(bag_lift_id)
                masons = await self._lock_masons(await self._mason_and_referrer_ids(bag_lift.mason_id))
                mason = masons.get(bag_lift.mason_id)
                if mason is None:
                    raise NotFoundError(f"Mason {bag_lift.mason_id} not found")
                await self._ensure_tenant(mason, actor)

                current_status = bag_lift.status
                self._check_transition(current_status, new_status)

                if new_status == BagLiftStatus.APPROVED:
                    await self._approve(bag_lift, mason, masons.get(mason.referred_by_user), actor, memo)
                elif current_status == BagLiftStatus.APPROVED:
                    await self._reverse(bag_lift, actor, memo)
                else:
                    bag_lift.status = BagLiftStatus.REJECTED
                    bag_lift.approved_by = actor.user_id
        except LoyaltyError as error:
            self._record_refusal(error, bag_lift_id=bag_lift_id, requested_status=new_status.value)
            raise

        await self._db.refresh(bag_lift)
        self._store.record_transition(self.kind, current_status.value, new_status.value)
        logger.info(
            "Bag lift status transitioned",
            bag_lift_id=str(bag_lift.id),
            mason_id=str(bag_lift.mason_id),
            from_status=current_status.value,
            to_status=new_status.value,
            actor_id=str(actor.user_id),
        )
        return bag_lift

    async def list_bag_lifts(
        self,
        actor: Actor,
        *,
        status: BagLiftStatus | None = None,
        limit: int = 1000,
    ) -> list[BagLiftRow]:
        """Bag lifts of the actor's masons plus unassigned masons, newest purchase first."""

        self._authorize(actor, LoyaltyAction.BAG_LIFT_READ)
        stmt = (
            select(BagLift, MasonAccount.name, MasonAccount.phone_number)
            .join(MasonAccount, BagLift.mason_id == MasonAccount.id)
            .outerjoin(User, MasonAccount.user_id == User.id)
            .where(or_(User.company_id == actor.company_id, MasonAccount.user_id.is_(None)))
            .order_by(BagLift.purchase_date.desc(), BagLift.id)
            .limit(max(1, min(limit, 1000)))
        )
        if status is not None:
            stmt = stmt.where(BagLift.status == status)
        rows = (await self._db.execute(stmt)).all()
        return [BagLiftRow(bag_lift=row[0], mason_name=row[1], mason_phone=row[2]) for row in rows]

    def _check_transition(self, current_status: BagLiftStatus, new_status: BagLiftStatus) -> None:
        if new_status == current_status:
            raise NoOpError(current_status.value)
        if current_status == BagLiftStatus.REJECTED and new_status == BagLiftStatus.APPROVED:
            raise InvalidTransitionError(
                "Cannot approve rejected lift",
                current_status=current_status.value,
                requested_status=new_status.value,
            )
        if new_status not in self._ALLOWED_TRANSITIONS.get(current_status, set()):
            raise InvalidTransitionError(
                f"Cannot transition bag lift from {current_status.value} to {new_status.value}",
                current_status=current_status.value,
                requested_status=new_status.value,
            )

    async def _approve(
        self,
        bag_lift: BagLift,
        mason: MasonAccount,
        referrer: MasonAccount | None,
        actor: Actor,
        memo: str | None,
    ) -> None:
        prior_bags_lifted = mason.bags_lifted
        bag_count = bag_lift.bag_count

        bag_lift.status = BagLiftStatus.APPROVED
        bag_lift.approved_by = actor.user_id
        bag_lift.approved_at = datetime.now(timezone.utc)

        await self._ledger.post(
            mason.id,
            source_type=PointsSourceType.BAG_LIFT,
            points=bag_lift.points_credited,
            memo=memo or f"Credit for {bag_count} bags.",
            source_id=bag_lift.id,
            bags_delta=bag_count,
        )

        extra_bonus = calculate_extra_bonus_points(
            prior_bags_lifted, bag_count, bag_lift.purchase_date, slabs=self._slabs
        )
        if extra_bonus > 0:
            await self._ledger.post(
                mason.id,
                source_type=PointsSourceType.ADJUSTMENT,
                points=extra_bonus,
                memo=SLAB_BONUS_MEMO,
            )

        if mason.referred_by_user is None:
            return
        referral_points = check_referral_bonus_trigger(prior_bags_lifted, bag_count, milestones=self._milestones)
        if referral_points <= 0:
            return
        if referrer is None:
            logger.warning(
                "Referrer missing for referral bonus",
                mason_id=str(mason.id),
                referrer_id=str(mason.referred_by_user),
            )
            return
        await self._ledger.post(
            referrer.id,
            source_type=PointsSourceType.REFERRAL_BONUS,
            points=referral_points,
            memo=f"Referral bonus for Mason {mason.name} hitting milestone.",
        )

    async def _reverse(self, bag_lift: BagLift, actor: Actor, memo: str | None) -> None:
        bag_lift.status = BagLiftStatus.REJECTED
        bag_lift.approved_by = actor.user_id

        # Slab and referral bonuses granted at approval stay with the masons.
        await self._ledger.post(
            bag_lift.mason_id,
            source_type=PointsSourceType.ADJUSTMENT,
            points=-bag_lift.points_credited,
            memo=memo or REVERSAL_MEMO,
            bags_delta=-bag_lift.bag_count,
        )

    async def _mason_and_referrer_ids(self, mason_id: UUID) -> list[UUID]:
        # Both rows are locked together so mutual referrals cannot deadlock.
        stmt = select(MasonAccount.referred_by_user).where(MasonAccount.id == mason_id)
        referrer_id = (await self._db.execute(stmt)).scalar_one_or_none()
        return [mason_id] if referrer_id is None else [mason_id, referrer_id]

    async def _lock_bag_lift(self, bag_lift_id: UUID) -> BagLift:
        stmt = (
            select(BagLift)
            .where(BagLift.id == bag_lift_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        bag_lift = (await self._db.execute(stmt)).scalar_one_or_none()
        if bag_lift is None:
            raise NotFoundError(f"Bag lift {bag_lift_id} not found")
        return bag_lift


__all__ = ["BagLiftReviewService", "BagLiftRow", "REVERSAL_MEMO", "SLAB_BONUS_MEMO"]
