"""Mason (petty contractor) accounts and their KYC submissions."""

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
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from sfa_api.db.base import Base


class MasonKycStatus(str, Enum):
    """KYC posture stored on the mason account."""

    NONE = "none"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class KycSubmissionStatus(str, Enum):
    """Review status of an individual KYC submission."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class MasonAccount(Base):
    """Mason loyalty account.

    ``points_balance`` and ``bags_lifted`` mirror the ledger and the approved bag
    lifts; they are only ever moved by relative deltas.
    """

    __tablename__ = "mason_pc_side"
    __table_args__ = (
        CheckConstraint("bags_lifted >= 0", name="ck_mason_pc_side_bags_lifted_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    phone_number = Column(String(50), nullable=False)
    kyc_doc_name = Column(String(100), nullable=True)
    kyc_doc_id_num = Column(String(150), nullable=True)
    kyc_status = Column(
        SqlEnum(MasonKycStatus, name="mason_kyc_status", values_callable=lambda enum: [e.value for e in enum]),
        nullable=False,
        default=MasonKycStatus.NONE,
        server_default=MasonKycStatus.NONE.value,
    )
    bags_lifted = Column(Integer, nullable=False, default=0, server_default="0")
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    is_referred = Column(Boolean, nullable=False, default=False, server_default="false")
    referred_by_user = Column(
        UUID(as_uuid=True),
        ForeignKey("mason_pc_side.id", ondelete="SET NULL"),
        nullable=True,
    )
    referred_to_user = Column(String(255), nullable=True)
    dealer_id = Column(String(255), nullable=True)
    site_id = Column(String(255), nullable=True)
    device_id = Column(String(255), nullable=True, unique=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User")
    referrer = relationship("MasonAccount", remote_side=[id])
    kyc_submissions = relationship(
        "KycSubmission", back_populates="mason", cascade="all, delete-orphan"
    )


class KycSubmission(Base):
    """Identity documents submitted by a mason for verification."""

    __tablename__ = "kyc_submissions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    mason_id = Column(
        UUID(as_uuid=True),
        ForeignKey("mason_pc_side.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    aadhaar_number = Column(String(20), nullable=True)
    pan_number = Column(String(20), nullable=True)
    voter_id_number = Column(String(20), nullable=True)
    documents = Column(JSON, nullable=True)
    status = Column(
        SqlEnum(
            KycSubmissionStatus,
            name="kyc_submission_status",
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=KycSubmissionStatus.PENDING,
        server_default=KycSubmissionStatus.PENDING.value,
    )
    remark = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    mason = relationship("MasonAccount", back_populates="kyc_submissions")
