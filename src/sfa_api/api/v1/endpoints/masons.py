"""API endpoints for mason bag lifts, reward redemptions, KYC and the points ledger."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, NoReturn, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from sfa_api.api.dependencies.access import get_access_policy
from sfa_api.api.dependencies.security import require_admin_api_key
from sfa_api.api.dependencies.session import require_actor
from sfa_api.db.session import get_session
from sfa_api.models.loyalty import BagLift, BagLiftStatus, PointsSourceType, RedemptionStatus, RewardRedemption
from sfa_api.models.mason import MasonAccount
from sfa_api.services.access import AccessPolicy, Actor, LoyaltyAction
from sfa_api.services.loyalty import (
    BagLiftReviewService,
    DuplicateSourceError,
    ForbiddenError,
    InsufficientStockError,
    InvalidTransitionError,
    KycOutcome,
    LedgerReconciliationService,
    LoyaltyError,
    MasonKycService,
    NotFoundError,
    PointsLedger,
    RedemptionStatusService,
)
from sfa_api.services.loyalty.ledger import MAX_LEDGER_PAGE_SIZE, LedgerRow


router = APIRouter(prefix="/masons", tags=["masons"])


class BagLiftUpdateRequest(BaseModel):
    status: Literal["approved", "rejected"]
    memo: Optional[str] = Field(None, max_length=500, description="Ledger memo for the credit or debit")


class BagLiftResponse(BaseModel):
    id: UUID
    masonId: UUID
    masonName: Optional[str] = None
    dealerId: Optional[str]
    purchaseDate: datetime
    bagCount: int
    pointsCredited: int
    status: str
    approvedBy: Optional[UUID]
    approvedAt: Optional[datetime]
    imageUrl: Optional[str]
    createdAt: datetime


class RedemptionUpdateRequest(BaseModel):
    status: Literal["approved", "shipped", "delivered", "rejected"]
    fulfillmentNotes: Optional[str] = Field(None, max_length=1000)


class RedemptionResponse(BaseModel):
    id: UUID
    masonId: UUID
    masonName: Optional[str] = None
    rewardId: UUID
    rewardName: Optional[str] = None
    quantity: int
    status: str
    pointsDebited: int
    fulfillmentNotes: Optional[str]
    deliveryName: Optional[str]
    deliveryPhone: Optional[str]
    deliveryAddress: Optional[str]
    createdAt: datetime
    updatedAt: datetime


class MasonUpdateRequest(BaseModel):
    verificationStatus: Optional[KycOutcome] = None
    adminRemarks: Optional[str] = Field(None, max_length=500)
    userId: Optional[UUID] = None
    dealerId: Optional[str] = None
    siteId: Optional[str] = None
    clearDevice: bool = False


class MasonResponse(BaseModel):
    id: UUID
    name: str
    phoneNumber: str
    kycStatus: str
    bagsLifted: int
    pointsBalance: int
    isReferred: bool
    referredByUser: Optional[UUID]
    dealerId: Optional[str]
    siteId: Optional[str]
    deviceId: Optional[str]
    userId: Optional[UUID]
    updatedAt: datetime


class LedgerEntryResponse(BaseModel):
    id: UUID
    masonId: UUID
    masonName: str
    sourceType: str
    sourceId: Optional[UUID]
    points: int
    memo: Optional[str]
    createdAt: datetime


class LedgerPageResponse(BaseModel):
    items: List[LedgerEntryResponse]
    totalCount: int
    page: int
    pageSize: int


class ReconcileRequest(BaseModel):
    masonIds: Optional[List[UUID]] = Field(None, description="Restrict the sweep to these masons")
    repair: bool = Field(False, description="Move drifted counters back onto the ledger")
    limit: int = Field(500, ge=1, le=5000)


def _raise_http(error: LoyaltyError) -> NoReturn:
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)) from error
    if isinstance(error, ForbiddenError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error)) from error
    if isinstance(error, DuplicateSourceError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error)) from error
    if isinstance(error, (InvalidTransitionError, InsufficientStockError)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error)) from error


def _serialize_bag_lift(bag_lift: BagLift, mason_name: str | None = None) -> BagLiftResponse:
    return BagLiftResponse(
        id=bag_lift.id,
        masonId=bag_lift.mason_id,
        masonName=mason_name,
        dealerId=bag_lift.dealer_id,
        purchaseDate=bag_lift.purchase_date,
        bagCount=bag_lift.bag_count,
        pointsCredited=bag_lift.points_credited,
        status=bag_lift.status.value,
        approvedBy=bag_lift.approved_by,
        approvedAt=bag_lift.approved_at,
        imageUrl=bag_lift.image_url,
        createdAt=bag_lift.created_at,
    )


def _serialize_redemption(
    redemption: RewardRedemption,
    mason_name: str | None = None,
    reward_name: str | None = None,
) -> RedemptionResponse:
    return RedemptionResponse(
        id=redemption.id,
        masonId=redemption.mason_id,
        masonName=mason_name,
        rewardId=redemption.reward_id,
        rewardName=reward_name,
        quantity=redemption.quantity,
        status=redemption.status.value,
        pointsDebited=redemption.points_debited,
        fulfillmentNotes=redemption.fulfillment_notes,
        deliveryName=redemption.delivery_name,
        deliveryPhone=redemption.delivery_phone,
        deliveryAddress=redemption.delivery_address,
        createdAt=redemption.created_at,
        updatedAt=redemption.updated_at,
    )


def _serialize_mason(mason: MasonAccount) -> MasonResponse:
    return MasonResponse(
        id=mason.id,
        name=mason.name,
        phoneNumber=mason.phone_number,
        kycStatus=mason.kyc_status.value,
        bagsLifted=mason.bags_lifted,
        pointsBalance=mason.points_balance,
        isReferred=mason.is_referred,
        referredByUser=mason.referred_by_user,
        dealerId=mason.dealer_id,
        siteId=mason.site_id,
        deviceId=mason.device_id,
        userId=mason.user_id,
        updatedAt=mason.updated_at,
    )


def _serialize_ledger_row(row: LedgerRow) -> LedgerEntryResponse:
    entry = row.entry
    return LedgerEntryResponse(
        id=entry.id,
        masonId=entry.mason_id,
        masonName=row.mason_name,
        sourceType=entry.source_type.value,
        sourceId=entry.source_id,
        points=entry.points,
        memo=entry.memo,
        createdAt=entry.created_at,
    )


@router.get("/bag-lifts", response_model=List[BagLiftResponse])
async def list_bag_lifts(
    status_filter: Optional[BagLiftStatus] = Query(None, alias="status"),
    actor: Actor = Depends(require_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_session),
) -> List[BagLiftResponse]:
    """List bag lifts for the actor's masons and unassigned masons."""

    service = BagLiftReviewService(db, policy=policy)
    try:
        rows = await service.list_bag_lifts(actor, status=status_filter)
    except LoyaltyError as error:
        _raise_http(error)
    return [_serialize_bag_lift(row.bag_lift, row.mason_name) for row in rows]


@router.patch("/bag-lifts/{bag_lift_id}", response_model=BagLiftResponse)
async def review_bag_lift(
    bag_lift_id: UUID,
    request: BagLiftUpdateRequest,
    actor: Actor = Depends(require_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_session),
) -> BagLiftResponse:
    """Approve or reject a bag lift."""

    service = BagLiftReviewService(db, policy=policy)
    try:
        bag_lift = await service.review(bag_lift_id, BagLiftStatus(request.status), actor, memo=request.memo)
    except LoyaltyError as error:
        _raise_http(error)
    return _serialize_bag_lift(bag_lift)


@router.get("/redemptions", response_model=List[RedemptionResponse])
async def list_redemptions(
    status_filter: Optional[RedemptionStatus] = Query(None, alias="status"),
    actor: Actor = Depends(require_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_session),
) -> List[RedemptionResponse]:
    service = RedemptionStatusService(db, policy=policy)
    try:
        rows = await service.list_redemptions(actor, status=status_filter)
    except LoyaltyError as error:
        _raise_http(error)
    return [_serialize_redemption(row.redemption, row.mason_name, row.reward_name) for row in rows]


@router.patch("/redemptions/{redemption_id}", response_model=RedemptionResponse)
async def update_redemption(
    redemption_id: UUID,
    request: RedemptionUpdateRequest,
    actor: Actor = Depends(require_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    """Advance, deliver or reject a reward redemption."""

    service = RedemptionStatusService(db, policy=policy)
    try:
        redemption = await service.update_status(
            redemption_id,
            RedemptionStatus(request.status),
            actor,
            fulfillment_notes=request.fulfillmentNotes,
        )
    except LoyaltyError as error:
        _raise_http(error)
    return _serialize_redemption(redemption)


@router.get("/points-ledger", response_model=LedgerPageResponse)
async def list_points_ledger(
    page: int = Query(0, ge=0),
    page_size: int = Query(MAX_LEDGER_PAGE_SIZE, ge=1, le=MAX_LEDGER_PAGE_SIZE, alias="pageSize"),
    search: Optional[str] = Query(None, max_length=200),
    source_type: Optional[str] = Query(None, alias="sourceType"),
    actor: Actor = Depends(require_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_session),
) -> LedgerPageResponse:
    """Paginated points ledger for masons assigned to the actor's organization."""

    if not policy.authorize(actor, LoyaltyAction.POINTS_LEDGER_READ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role for points ledger")
    if source_type and source_type != "all":
        try:
            PointsSourceType(source_type)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"Unsupported source type: {source_type}") from exc

    ledger = PointsLedger(db)
    result = await ledger.list_entries(
        actor.company_id,
        page=page,
        page_size=page_size,
        search=search.strip() if search else None,
        source_type=source_type,
    )
    return LedgerPageResponse(
        items=[_serialize_ledger_row(row) for row in result.entries],
        totalCount=result.total_count,
        page=result.page,
        pageSize=result.page_size,
    )


@router.post(
    "/points-ledger/reconcile",
    dependencies=[Depends(require_admin_api_key)],
    summary="Compare mason counters with the points ledger",
)
async def reconcile_points_ledger(
    request: ReconcileRequest,
    db: AsyncSession = Depends(get_session),
) -> dict[str, object]:
    service = LedgerReconciliationService(db)
    report = await service.reconcile(request.masonIds, repair=request.repair, limit=request.limit)
    return report.as_dict()


@router.patch("/{mason_id}", response_model=MasonResponse)
async def update_mason(
    mason_id: UUID,
    request: MasonUpdateRequest,
    actor: Actor = Depends(require_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    db: AsyncSession = Depends(get_session),
) -> MasonResponse:
    """Record a KYC verdict and administrative edits on a mason."""

    provided = request.model_fields_set
    edits: dict[str, object] = {}
    if "userId" in provided:
        edits["user_id"] = request.userId
    if "dealerId" in provided:
        edits["dealer_id"] = request.dealerId
    if "siteId" in provided:
        edits["site_id"] = request.siteId

    service = MasonKycService(db, policy=policy)
    try:
        mason = await service.update_mason(
            mason_id,
            actor,
            verification_status=request.verificationStatus,
            admin_remarks=request.adminRemarks,
            clear_device=request.clearDevice,
            **edits,
        )
    except LoyaltyError as error:
        _raise_http(error)
    return _serialize_mason(mason)
