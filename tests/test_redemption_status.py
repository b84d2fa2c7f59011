from uuid import uuid4

import pytest
from sqlalchemy import select

from sfa_api.db.unit_of_work import unit_of_work
from sfa_api.models import MasonAccount
from sfa_api.models.loyalty import (
    PointsLedgerEntry,
    PointsSourceType,
    RedemptionStatus,
    Reward,
    RewardRedemption,
)
from sfa_api.services.loyalty import (
    ForbiddenError,
    InsufficientStockError,
    InvalidTransitionError,
    NoOpError,
    NotFoundError,
    PointsLedger,
    RedemptionStatusService,
    TerminalStateError,
)


async def _place(session_factory, world, *, quantity: int, points: int) -> object:
    """Create a placed redemption with its points debit already on the ledger."""

    async with session_factory() as session:
        redemption = RewardRedemption(
            mason_id=world.mason_id,
            reward_id=world.reward_id,
            quantity=quantity,
            points_debited=points,
            delivery_name="Suresh Patel",
            delivery_address="Plot 4, Industrial Area",
        )
        session.add(redemption)
        await session.flush()
        async with unit_of_work(session, label="test.place"):
            await PointsLedger(session).post(
                world.mason_id,
                source_type=PointsSourceType.REDEMPTION,
                points=-points,
                memo="Redeemed reward",
                source_id=redemption.id,
            )
        return redemption.id


async def _state(session_factory, world, redemption_id):
    async with session_factory() as session:
        redemption = await session.get(RewardRedemption, redemption_id)
        reward = await session.get(Reward, world.reward_id)
        mason = await session.get(MasonAccount, world.mason_id)
        entries = list(
            (
                await session.execute(
                    select(PointsLedgerEntry).where(PointsLedgerEntry.mason_id == world.mason_id)
                )
            ).scalars()
        )
        return redemption, reward, mason, entries


@pytest.mark.asyncio
async def test_approval_with_insufficient_stock_changes_nothing(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=5, points=100)

    async with session_factory() as session:
        with pytest.raises(InsufficientStockError, match="Insufficient stock for Cement Mixer. Available: 3"):
            await RedemptionStatusService(session).update_status(
                redemption_id, RedemptionStatus.APPROVED, loyalty_world.manager
            )

    redemption, reward, mason, entries = await _state(session_factory, loyalty_world, redemption_id)
    assert redemption.status == RedemptionStatus.PLACED
    assert reward.stock == 3
    assert mason.points_balance == -100
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_approval_reserves_stock(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=2, points=40)

    async with session_factory() as session:
        redemption = await RedemptionStatusService(session).update_status(
            redemption_id,
            RedemptionStatus.APPROVED,
            loyalty_world.manager,
            fulfillment_notes="Dispatch from Jaipur depot",
        )
        assert redemption.status == RedemptionStatus.APPROVED
        assert redemption.fulfillment_notes == "Dispatch from Jaipur depot"

    _, reward, mason, _ = await _state(session_factory, loyalty_world, redemption_id)
    assert reward.stock == 1
    assert mason.points_balance == -40


@pytest.mark.asyncio
async def test_rejecting_approved_redemption_refunds_and_restores_stock(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=2, points=40)

    async with session_factory() as session:
        service = RedemptionStatusService(session)
        await service.update_status(redemption_id, RedemptionStatus.APPROVED, loyalty_world.manager)
        redemption = await service.update_status(
            redemption_id,
            RedemptionStatus.REJECTED,
            loyalty_world.manager,
            fulfillment_notes="Out of delivery zone",
        )
        assert redemption.status == RedemptionStatus.REJECTED

    redemption, reward, mason, entries = await _state(session_factory, loyalty_world, redemption_id)
    assert reward.stock == 3
    assert mason.points_balance == 0
    assert redemption.fulfillment_notes == "Out of delivery zone"

    refund = next(entry for entry in entries if entry.points > 0)
    assert refund.points == 40
    assert refund.source_type == PointsSourceType.ADJUSTMENT
    assert refund.source_id is not None
    assert refund.source_id != redemption_id
    assert refund.memo == f"Refund for Order {str(redemption_id)[:8]}. Reason: Out of delivery zone"


@pytest.mark.asyncio
async def test_rejecting_placed_redemption_refunds_without_touching_stock(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=2, points=40)

    async with session_factory() as session:
        await RedemptionStatusService(session).update_status(
            redemption_id, RedemptionStatus.REJECTED, loyalty_world.manager
        )

    redemption, reward, mason, entries = await _state(session_factory, loyalty_world, redemption_id)
    assert redemption.status == RedemptionStatus.REJECTED
    assert reward.stock == 3
    assert mason.points_balance == 0
    assert sorted(entry.points for entry in entries) == [-40, 40]


@pytest.mark.asyncio
async def test_rejecting_shipped_redemption_restores_stock(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=1, points=20)

    async with session_factory() as session:
        service = RedemptionStatusService(session)
        await service.update_status(redemption_id, RedemptionStatus.APPROVED, loyalty_world.manager)
        await service.update_status(redemption_id, RedemptionStatus.SHIPPED, loyalty_world.manager)
        await service.update_status(redemption_id, RedemptionStatus.REJECTED, loyalty_world.manager)

    _, reward, mason, _ = await _state(session_factory, loyalty_world, redemption_id)
    assert reward.stock == 3
    assert mason.points_balance == 0


@pytest.mark.asyncio
async def test_delivered_redemption_is_terminal(session_factory, loyalty_world, reset_loyalty_store) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=1, points=20)

    async with session_factory() as session:
        service = RedemptionStatusService(session)
        for target in (RedemptionStatus.APPROVED, RedemptionStatus.SHIPPED, RedemptionStatus.DELIVERED):
            await service.update_status(redemption_id, target, loyalty_world.manager)

    for target in RedemptionStatus:
        async with session_factory() as session:
            with pytest.raises(TerminalStateError, match="Cannot update a delivered order."):
                await RedemptionStatusService(session).update_status(redemption_id, target, loyalty_world.manager)

    redemption, reward, mason, entries = await _state(session_factory, loyalty_world, redemption_id)
    assert redemption.status == RedemptionStatus.DELIVERED
    assert reward.stock == 2
    assert mason.points_balance == -20
    assert len(entries) == 1

    snapshot = reset_loyalty_store.snapshot()
    assert snapshot.transitions["redemption:shipped->delivered"] == 1
    assert snapshot.refusals["redemption:TerminalStateError"] == len(RedemptionStatus)


@pytest.mark.asyncio
async def test_skipping_ahead_or_repeating_status_is_refused(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=1, points=20)

    async with session_factory() as session:
        service = RedemptionStatusService(session)
        with pytest.raises(InvalidTransitionError):
            await service.update_status(redemption_id, RedemptionStatus.SHIPPED, loyalty_world.manager)

    async with session_factory() as session:
        service = RedemptionStatusService(session)
        await service.update_status(redemption_id, RedemptionStatus.APPROVED, loyalty_world.manager)
        with pytest.raises(NoOpError):
            await service.update_status(redemption_id, RedemptionStatus.APPROVED, loyalty_world.manager)

    redemption, reward, _, _ = await _state(session_factory, loyalty_world, redemption_id)
    assert redemption.status == RedemptionStatus.APPROVED
    assert reward.stock == 2


@pytest.mark.asyncio
async def test_rejected_redemption_cannot_be_refunded_twice(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=1, points=20)

    async with session_factory() as session:
        await RedemptionStatusService(session).update_status(
            redemption_id, RedemptionStatus.REJECTED, loyalty_world.manager
        )

    async with session_factory() as session:
        with pytest.raises(InvalidTransitionError):
            await RedemptionStatusService(session).update_status(
                redemption_id, RedemptionStatus.APPROVED, loyalty_world.manager
            )

    _, _, mason, _ = await _state(session_factory, loyalty_world, redemption_id)
    assert mason.points_balance == 0


@pytest.mark.asyncio
async def test_other_tenant_and_missing_redemption(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=1, points=20)

    async with session_factory() as session:
        service = RedemptionStatusService(session)
        with pytest.raises(ForbiddenError):
            await service.update_status(redemption_id, RedemptionStatus.APPROVED, loyalty_world.outsider)
        with pytest.raises(NotFoundError):
            await service.update_status(uuid4(), RedemptionStatus.APPROVED, loyalty_world.manager)

    redemption, reward, _, _ = await _state(session_factory, loyalty_world, redemption_id)
    assert redemption.status == RedemptionStatus.PLACED
    assert reward.stock == 3


@pytest.mark.asyncio
async def test_list_redemptions_requires_reader_role(session_factory, loyalty_world) -> None:
    redemption_id = await _place(session_factory, loyalty_world, quantity=1, points=20)

    async with session_factory() as session:
        service = RedemptionStatusService(session)
        rows = await service.list_redemptions(loyalty_world.manager)
        assert [(row.redemption.id, row.reward_name) for row in rows] == [(redemption_id, "Cement Mixer")]

        assert await service.list_redemptions(loyalty_world.manager, status=RedemptionStatus.DELIVERED) == []

        with pytest.raises(ForbiddenError):
            await service.list_redemptions(loyalty_world.executive)
