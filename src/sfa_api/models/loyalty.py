"""Points ledger, bag lifts, rewards and redemptions for the mason loyalty program."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from sfa_api.db.base import Base


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class PointsSourceType(str, Enum):
    """What produced a ledger entry."""

    BAG_LIFT = "bag_lift"
    ADJUSTMENT = "adjustment"
    REFERRAL_BONUS = "referral_bonus"
    JOINING_BONUS = "joining_bonus"
    REDEMPTION = "redemption"


class PointsLedgerEntry(Base):
    """Immutable signed point delta for a mason.

    ``source_id`` is unique across the ledger so the same bag lift or KYC
    submission can never be credited twice.
    """

    __tablename__ = "points_ledger"
    __table_args__ = (
        UniqueConstraint("source_id", name="points_ledger_source_id_unique"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    mason_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mason_pc_side.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_type = Column(
        SqlEnum(PointsSourceType, name="points_source_type", values_callable=_enum_values),
        nullable=False,
    )
    source_id = Column(UUID(as_uuid=True), nullable=True)
    points = Column(Integer, nullable=False)
    memo = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    mason = relationship("MasonAccount")


class BagLiftStatus(str, Enum):
    """Review lifecycle for bag lift submissions."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BagLift(Base):
    """A mason's recorded purchase of cement bags awaiting point credit."""

    __tablename__ = "bag_lifts"
    __table_args__ = (
        CheckConstraint("bag_count > 0", name="ck_bag_lifts_bag_count_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    mason_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mason_pc_side.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    dealer_id = Column(String(255), nullable=True, index=True)
    purchase_date = Column(DateTime(timezone=True), nullable=False)
    bag_count = Column(Integer, nullable=False)
    points_credited = Column(Integer, nullable=False)
    status = Column(
        SqlEnum(BagLiftStatus, name="bag_lift_status", values_callable=_enum_values),
        nullable=False,
        default=BagLiftStatus.PENDING,
        server_default=BagLiftStatus.PENDING.value,
        index=True,
    )
    approved_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    mason = relationship("MasonAccount")
    approver = relationship("User")


class Reward(Base):
    """Catalogue item masons can redeem points for."""

    __tablename__ = "rewards"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_rewards_stock_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    item_name = Column(String(255), nullable=False, unique=True)
    point_cost = Column(Integer, nullable=False)
    stock = Column(Integer, nullable=False, default=0, server_default="0")
    total_available_quantity = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    redemptions = relationship("RewardRedemption", back_populates="reward")


class RedemptionStatus(str, Enum):
    """Fulfilment lifecycle for reward redemptions."""

    PLACED = "placed"
    APPROVED = "approved"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    REJECTED = "rejected"


class RewardRedemption(Base):
    """Reward order placed by a mason; points are debited at placement."""

    __tablename__ = "reward_redemptions"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_reward_redemptions_quantity_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    mason_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mason_pc_side.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reward_id = Column(UUID(as_uuid=True), ForeignKey("rewards.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1, server_default="1")
    status = Column(
        SqlEnum(RedemptionStatus, name="reward_redemption_status", values_callable=_enum_values),
        nullable=False,
        default=RedemptionStatus.PLACED,
        server_default=RedemptionStatus.PLACED.value,
        index=True,
    )
    points_debited = Column(Integer, nullable=False)
    fulfillment_notes = Column(Text, nullable=True)
    delivery_name = Column(String(160), nullable=True)
    delivery_phone = Column(String(20), nullable=True)
    delivery_address = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    mason = relationship("MasonAccount")
    reward = relationship("Reward", back_populates="redemptions")
