from datetime import datetime, timezone

import pytest
from sqlalchemy import select, update

from sfa_api.models import KycSubmission, KycSubmissionStatus, MasonAccount, MasonKycStatus
from sfa_api.models.loyalty import PointsLedgerEntry, PointsSourceType
from sfa_api.services.loyalty import (
    ForbiddenError,
    KycOutcome,
    MasonKycService,
)


async def _submit(session_factory, mason_id, *, submitted_at: datetime, aadhaar: str = "123412341234"):
    async with session_factory() as session:
        submission = KycSubmission(
            mason_id=mason_id,
            aadhaar_number=aadhaar,
            documents={"aadhaarFrontUrl": "https://files.example.com/a.jpg"},
            created_at=submitted_at,
        )
        session.add(submission)
        await session.execute(
            update(MasonAccount).where(MasonAccount.id == mason_id).values(kyc_status=MasonKycStatus.PENDING)
        )
        await session.commit()
        return submission.id


async def _joining_entries(session, mason_id) -> list[PointsLedgerEntry]:
    stmt = select(PointsLedgerEntry).where(
        PointsLedgerEntry.mason_id == mason_id,
        PointsLedgerEntry.source_type == PointsSourceType.JOINING_BONUS,
    )
    return list((await session.execute(stmt)).scalars())


@pytest.mark.asyncio
async def test_first_verification_grants_joining_bonus_once(session_factory, loyalty_world) -> None:
    submission_id = await _submit(
        session_factory, loyalty_world.mason_id, submitted_at=datetime(2026, 2, 1, tzinfo=timezone.utc)
    )

    async with session_factory() as session:
        mason = await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id,
            loyalty_world.manager,
            verification_status=KycOutcome.VERIFIED,
            admin_remarks="Documents match",
        )
        assert mason.kyc_status == MasonKycStatus.VERIFIED
        assert mason.points_balance == 100

    async with session_factory() as session:
        entries = await _joining_entries(session, loyalty_world.mason_id)
        assert len(entries) == 1
        assert entries[0].points == 100
        assert entries[0].source_id == submission_id
        assert entries[0].memo.startswith("Joining Bonus: KYC Verified on ")

        submission = await session.get(KycSubmission, submission_id)
        assert submission.status == KycSubmissionStatus.VERIFIED
        assert submission.remark == "Documents match"

    async with session_factory() as session:
        mason = await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id,
            loyalty_world.manager,
            verification_status=KycOutcome.VERIFIED,
        )
        assert mason.points_balance == 100

    async with session_factory() as session:
        assert len(await _joining_entries(session, loyalty_world.mason_id)) == 1


@pytest.mark.asyncio
async def test_bonus_attaches_to_latest_pending_submission(session_factory, loyalty_world) -> None:
    older_id = await _submit(
        session_factory, loyalty_world.mason_id, submitted_at=datetime(2026, 1, 1, tzinfo=timezone.utc)
    )
    newer_id = await _submit(
        session_factory,
        loyalty_world.mason_id,
        submitted_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
        aadhaar="999988887777",
    )

    async with session_factory() as session:
        await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id, loyalty_world.manager, verification_status=KycOutcome.VERIFIED
        )

    async with session_factory() as session:
        entries = await _joining_entries(session, loyalty_world.mason_id)
        assert [entry.source_id for entry in entries] == [newer_id]
        older = await session.get(KycSubmission, older_id)
        assert older.status == KycSubmissionStatus.PENDING


@pytest.mark.asyncio
async def test_rejection_resets_mason_status_without_points(session_factory, loyalty_world) -> None:
    submission_id = await _submit(
        session_factory, loyalty_world.mason_id, submitted_at=datetime(2026, 2, 1, tzinfo=timezone.utc)
    )

    async with session_factory() as session:
        mason = await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id,
            loyalty_world.manager,
            verification_status=KycOutcome.REJECTED,
            admin_remarks="PAN image unreadable",
        )
        assert mason.kyc_status == MasonKycStatus.NONE
        assert mason.points_balance == 0

    async with session_factory() as session:
        submission = await session.get(KycSubmission, submission_id)
        assert submission.status == KycSubmissionStatus.REJECTED
        assert submission.remark == "PAN image unreadable"
        assert await _joining_entries(session, loyalty_world.mason_id) == []


@pytest.mark.asyncio
async def test_verification_without_pending_submission_grants_nothing(session_factory, loyalty_world) -> None:
    async with session_factory() as session:
        mason = await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id, loyalty_world.manager, verification_status=KycOutcome.VERIFIED
        )
        assert mason.kyc_status == MasonKycStatus.VERIFIED
        assert mason.points_balance == 0


@pytest.mark.asyncio
async def test_disabled_joining_bonus_still_verifies(session_factory, loyalty_world) -> None:
    submission_id = await _submit(
        session_factory, loyalty_world.mason_id, submitted_at=datetime(2026, 2, 1, tzinfo=timezone.utc)
    )

    async with session_factory() as session:
        mason = await MasonKycService(session, joining_bonus_points=0).update_mason(
            loyalty_world.mason_id, loyalty_world.manager, verification_status=KycOutcome.VERIFIED
        )
        assert mason.kyc_status == MasonKycStatus.VERIFIED
        assert mason.points_balance == 0

    async with session_factory() as session:
        submission = await session.get(KycSubmission, submission_id)
        assert submission.status == KycSubmissionStatus.VERIFIED


@pytest.mark.asyncio
async def test_requeued_submission_grants_no_second_bonus(session_factory, loyalty_world) -> None:
    submission_id = await _submit(
        session_factory, loyalty_world.mason_id, submitted_at=datetime(2026, 2, 1, tzinfo=timezone.utc)
    )
    async with session_factory() as session:
        await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id, loyalty_world.manager, verification_status=KycOutcome.VERIFIED
        )

    # Manual data correction puts the same submission back in the queue.
    async with session_factory() as session:
        await session.execute(
            update(KycSubmission)
            .where(KycSubmission.id == submission_id)
            .values(status=KycSubmissionStatus.PENDING)
        )
        await session.execute(
            update(MasonAccount)
            .where(MasonAccount.id == loyalty_world.mason_id)
            .values(kyc_status=MasonKycStatus.PENDING)
        )
        await session.commit()

    async with session_factory() as session:
        mason = await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id, loyalty_world.manager, verification_status=KycOutcome.VERIFIED
        )
        assert mason.kyc_status == MasonKycStatus.VERIFIED
        assert mason.points_balance == 100

    async with session_factory() as session:
        assert len(await _joining_entries(session, loyalty_world.mason_id)) == 1


@pytest.mark.asyncio
async def test_reverification_after_rejection_pays_no_second_bonus(session_factory, loyalty_world) -> None:
    first_id = await _submit(
        session_factory, loyalty_world.mason_id, submitted_at=datetime(2026, 1, 1, tzinfo=timezone.utc)
    )
    async with session_factory() as session:
        await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id, loyalty_world.manager, verification_status=KycOutcome.VERIFIED
        )
    async with session_factory() as session:
        mason = await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id,
            loyalty_world.manager,
            verification_status=KycOutcome.REJECTED,
            admin_remarks="Aadhaar photo expired",
        )
        assert mason.kyc_status == MasonKycStatus.NONE

    second_id = await _submit(
        session_factory,
        loyalty_world.mason_id,
        submitted_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        aadhaar="555566667777",
    )
    async with session_factory() as session:
        mason = await MasonKycService(session, joining_bonus_points=100).update_mason(
            loyalty_world.mason_id, loyalty_world.manager, verification_status=KycOutcome.VERIFIED
        )
        assert mason.kyc_status == MasonKycStatus.VERIFIED
        assert mason.points_balance == 100

    async with session_factory() as session:
        entries = await _joining_entries(session, loyalty_world.mason_id)
        assert [entry.source_id for entry in entries] == [first_id]
        resubmission = await session.get(KycSubmission, second_id)
        assert resubmission.status == KycSubmissionStatus.VERIFIED


@pytest.mark.asyncio
async def test_admin_edits_apply_without_verdict(session_factory, loyalty_world) -> None:
    async with session_factory() as session:
        await session.execute(
            update(MasonAccount).where(MasonAccount.id == loyalty_world.unassigned_id).values(device_id="device-42")
        )
        await session.commit()

    async with session_factory() as session:
        mason = await MasonKycService(session).update_mason(
            loyalty_world.unassigned_id,
            loyalty_world.manager,
            user_id=loyalty_world.manager_id,
            dealer_id="DLR-17",
            site_id="SITE-3",
            clear_device=True,
        )
        assert mason.user_id == loyalty_world.manager_id
        assert mason.dealer_id == "DLR-17"
        assert mason.site_id == "SITE-3"
        assert mason.device_id is None
        assert mason.kyc_status == MasonKycStatus.NONE

    async with session_factory() as session:
        mason = await MasonKycService(session).update_mason(
            loyalty_world.unassigned_id, loyalty_world.manager, dealer_id=None
        )
        assert mason.dealer_id is None
        assert mason.site_id == "SITE-3"


@pytest.mark.asyncio
async def test_tenant_boundaries_for_kyc(session_factory, loyalty_world) -> None:
    async with session_factory() as session:
        service = MasonKycService(session)
        with pytest.raises(ForbiddenError):
            await service.update_mason(
                loyalty_world.mason_id, loyalty_world.outsider, verification_status=KycOutcome.VERIFIED
            )

    async with session_factory() as session:
        service = MasonKycService(session)
        with pytest.raises(ForbiddenError):
            await service.update_mason(
                loyalty_world.unassigned_id, loyalty_world.manager, user_id=loyalty_world.outsider_id
            )

    async with session_factory() as session:
        mason = await session.get(MasonAccount, loyalty_world.unassigned_id)
        assert mason.user_id is None
        verified = await session.get(MasonAccount, loyalty_world.mason_id)
        assert verified.kyc_status == MasonKycStatus.NONE
