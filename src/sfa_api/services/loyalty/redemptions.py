"""Reward redemption fulfilment: stock reservation, refunds and delivery."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import or_, select, update

from sfa_api.db.unit_of_work import unit_of_work
from sfa_api.models.loyalty import PointsSourceType, RedemptionStatus, Reward, RewardRedemption
from sfa_api.models.mason import MasonAccount
from sfa_api.models.user import User
from sfa_api.services.access import Actor, LoyaltyAction
from sfa_api.services.loyalty.base import LoyaltyWorkflow
from sfa_api.services.loyalty.errors import (
    InsufficientStockError,
    InvalidTransitionError,
    LoyaltyError,
    NoOpError,
    NotFoundError,
    TerminalStateError,
)


# Statuses in which the redemption's quantity is held out of reward stock.
_STOCK_RESERVED = {RedemptionStatus.APPROVED, RedemptionStatus.SHIPPED}


@dataclass(slots=True)
class RedemptionRow:
    redemption: RewardRedemption
    mason_name: str
    reward_name: str


class RedemptionStatusService(LoyaltyWorkflow):
    """Drive redemptions from placement to delivery or rejection."""

    kind = "redemption"

    _ALLOWED_TRANSITIONS: dict[RedemptionStatus, set[RedemptionStatus]] = {
        RedemptionStatus.PLACED: {RedemptionStatus.APPROVED, RedemptionStatus.REJECTED},
        RedemptionStatus.APPROVED: {RedemptionStatus.SHIPPED, RedemptionStatus.REJECTED},
        RedemptionStatus.SHIPPED: {RedemptionStatus.DELIVERED, RedemptionStatus.REJECTED},
        RedemptionStatus.DELIVERED: set(),
        RedemptionStatus.REJECTED: set(),
    }

    async def update_status(
        self,
        redemption_id: UUID,
        new_status: RedemptionStatus,
        actor: Actor,
        *,
        fulfillment_notes: str | None = None,
    ) -> RewardRedemption:
        """Apply a status change together with its stock and refund effects."""

        try:
            self._authorize(actor, LoyaltyAction.REDEMPTION_UPDATE)
            async with unit_of_work(self._db, label="redemption.update_status"):
                redemption = await self._lock_redemption(redemption_id)
                mason = await self._lock_mason(redemption.mason_id)
                await self._ensure_tenant(mason, actor)

                current_status = redemption.status
                self._check_transition(current_status, new_status)

                if new_status == RedemptionStatus.APPROVED:
                    reward = await self._lock_reward(redemption.reward_id)
                    if reward.stock < redemption.quantity:
                        raise InsufficientStockError(reward.item_name, reward.stock, redemption.quantity)
                    await self._shift_stock(reward.id, -redemption.quantity)
                elif new_status == RedemptionStatus.REJECTED:
                    await self._refund(redemption, fulfillment_notes)
                    if current_status in _STOCK_RESERVED:
                        await self._lock_reward(redemption.reward_id)
                        await self._shift_stock(redemption.reward_id, redemption.quantity)

                redemption.status = new_status
                if fulfillment_notes is not None:
                    redemption.fulfillment_notes = fulfillment_notes
        except LoyaltyError as error:
            self._record_refusal(error, redemption_id=redemption_id, requested_status=new_status.value)
            raise

        await self._db.refresh(redemption)
        self._store.record_transition(self.kind, current_status.value, new_status.value)
        logger.info(
            "Redemption status transitioned",
            redemption_id=str(redemption.id),
            mason_id=str(redemption.mason_id),
            from_status=current_status.value,
            to_status=new_status.value,
            actor_id=str(actor.user_id),
        )
        return redemption

    async def list_redemptions(
        self,
        actor: Actor,
        *,
        status: RedemptionStatus | None = None,
        limit: int = 1000,
    ) -> list[RedemptionRow]:
        self._authorize(actor, LoyaltyAction.REDEMPTION_READ)
        stmt = (
            select(RewardRedemption, MasonAccount.name, Reward.item_name)
            .join(MasonAccount, RewardRedemption.mason_id == MasonAccount.id)
            .join(Reward, RewardRedemption.reward_id == Reward.id)
            .outerjoin(User, MasonAccount.user_id == User.id)
            .where(or_(User.company_id == actor.company_id, MasonAccount.user_id.is_(None)))
            .order_by(RewardRedemption.created_at.desc(), RewardRedemption.id)
            .limit(max(1, min(limit, 1000)))
        )
        if status is not None:
            stmt = stmt.where(RewardRedemption.status == status)
        rows = (await self._db.execute(stmt)).all()
        return [RedemptionRow(redemption=row[0], mason_name=row[1], reward_name=row[2]) for row in rows]

    def _check_transition(self, current_status: RedemptionStatus, new_status: RedemptionStatus) -> None:
        if current_status == RedemptionStatus.DELIVERED:
            raise TerminalStateError(current_status.value, new_status.value)
        if new_status == current_status:
            raise NoOpError(current_status.value)
        if new_status not in self._ALLOWED_TRANSITIONS.get(current_status, set()):
            raise InvalidTransitionError(
                f"Cannot transition redemption from {current_status.value} to {new_status.value}",
                current_status=current_status.value,
                requested_status=new_status.value,
            )

    async def _refund(self, redemption: RewardRedemption, notes: str | None) -> None:
        reason = notes or "Rejected by Admin"
        await self._ledger.post(
            redemption.mason_id,
            source_type=PointsSourceType.ADJUSTMENT,
            points=redemption.points_debited,
            memo=f"Refund for Order {str(redemption.id)[:8]}. Reason: {reason}",
            source_id=uuid4(),
        )

    async def _shift_stock(self, reward_id: UUID, delta: int) -> None:
        stmt = update(Reward).where(Reward.id == reward_id).values(stock=Reward.stock + delta)
        await self._db.execute(stmt)
        logger.debug("Adjusted reward stock", reward_id=str(reward_id), delta=delta)

    async def _lock_redemption(self, redemption_id: UUID) -> RewardRedemption:
        stmt = (
            select(RewardRedemption)
            .where(RewardRedemption.id == redemption_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        redemption = (await self._db.execute(stmt)).scalar_one_or_none()
        if redemption is None:
            raise NotFoundError(f"Redemption {redemption_id} not found")
        return redemption

    async def _lock_reward(self, reward_id: UUID) -> Reward:
        stmt = (
            select(Reward)
            .where(Reward.id == reward_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        reward = (await self._db.execute(stmt)).scalar_one_or_none()
        if reward is None:
            raise NotFoundError(f"Reward {reward_id} not found")
        return reward


__all__ = ["RedemptionRow", "RedemptionStatusService"]
