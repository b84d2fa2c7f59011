"""Mason loyalty core: users, masons, KYC, points ledger, bag lifts, rewards.

Revision ID: 20260101_01
Revises:
Create Date: 2026-01-01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20260101_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


UUID = sa.dialects.postgresql.UUID(as_uuid=True)

mason_kyc_status = sa.Enum("none", "pending", "verified", "rejected", name="mason_kyc_status")
kyc_submission_status = sa.Enum("pending", "verified", "rejected", name="kyc_submission_status")
points_source_type = sa.Enum(
    "bag_lift", "adjustment", "referral_bonus", "joining_bonus", "redemption", name="points_source_type"
)
bag_lift_status = sa.Enum("pending", "approved", "rejected", name="bag_lift_status")
reward_redemption_status = sa.Enum(
    "placed", "approved", "shipped", "delivered", "rejected", name="reward_redemption_status"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=64), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_company_id", "users", ["company_id"])

    op.create_table(
        "mason_pc_side",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("phone_number", sa.String(length=50), nullable=False),
        sa.Column("kyc_doc_name", sa.String(length=100), nullable=True),
        sa.Column("kyc_doc_id_num", sa.String(length=150), nullable=True),
        sa.Column("kyc_status", mason_kyc_status, nullable=False, server_default="none"),
        sa.Column("bags_lifted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_referred", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "referred_by_user",
            UUID,
            sa.ForeignKey("mason_pc_side.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("referred_to_user", sa.String(length=255), nullable=True),
        sa.Column("dealer_id", sa.String(length=255), nullable=True),
        sa.Column("site_id", sa.String(length=255), nullable=True),
        sa.Column("device_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("bags_lifted >= 0", name="ck_mason_pc_side_bags_lifted_non_negative"),
    )

    op.create_table(
        "kyc_submissions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("mason_id", UUID, sa.ForeignKey("mason_pc_side.id", ondelete="CASCADE"), nullable=False),
        sa.Column("aadhaar_number", sa.String(length=20), nullable=True),
        sa.Column("pan_number", sa.String(length=20), nullable=True),
        sa.Column("voter_id_number", sa.String(length=20), nullable=True),
        sa.Column("documents", sa.JSON(), nullable=True),
        sa.Column("status", kyc_submission_status, nullable=False, server_default="pending"),
        sa.Column("remark", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_kyc_submissions_mason_id", "kyc_submissions", ["mason_id"])

    op.create_table(
        "points_ledger",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("mason_id", UUID, sa.ForeignKey("mason_pc_side.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_type", points_source_type, nullable=False),
        sa.Column("source_id", UUID, nullable=True),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("source_id", name="points_ledger_source_id_unique"),
    )
    op.create_index("ix_points_ledger_mason_id", "points_ledger", ["mason_id"])

    op.create_table(
        "bag_lifts",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("mason_id", UUID, sa.ForeignKey("mason_pc_side.id", ondelete="CASCADE"), nullable=False),
        sa.Column("dealer_id", sa.String(length=255), nullable=True),
        sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("bag_count", sa.Integer(), nullable=False),
        sa.Column("points_credited", sa.Integer(), nullable=False),
        sa.Column("status", bag_lift_status, nullable=False, server_default="pending"),
        sa.Column("approved_by", UUID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("bag_count > 0", name="ck_bag_lifts_bag_count_positive"),
    )
    op.create_index("ix_bag_lifts_mason_id", "bag_lifts", ["mason_id"])
    op.create_index("ix_bag_lifts_dealer_id", "bag_lifts", ["dealer_id"])
    op.create_index("ix_bag_lifts_status", "bag_lifts", ["status"])

    op.create_table(
        "rewards",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("item_name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("point_cost", sa.Integer(), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_available_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("meta", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("stock >= 0", name="ck_rewards_stock_non_negative"),
    )

    op.create_table(
        "reward_redemptions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("mason_id", UUID, sa.ForeignKey("mason_pc_side.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reward_id", UUID, sa.ForeignKey("rewards.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", reward_redemption_status, nullable=False, server_default="placed"),
        sa.Column("points_debited", sa.Integer(), nullable=False),
        sa.Column("fulfillment_notes", sa.Text(), nullable=True),
        sa.Column("delivery_name", sa.String(length=160), nullable=True),
        sa.Column("delivery_phone", sa.String(length=20), nullable=True),
        sa.Column("delivery_address", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_reward_redemptions_quantity_positive"),
    )
    op.create_index("ix_reward_redemptions_mason_id", "reward_redemptions", ["mason_id"])
    op.create_index("ix_reward_redemptions_status", "reward_redemptions", ["status"])


def downgrade() -> None:
    op.drop_index("ix_reward_redemptions_status", table_name="reward_redemptions")
    op.drop_index("ix_reward_redemptions_mason_id", table_name="reward_redemptions")
    op.drop_table("reward_redemptions")
    op.drop_table("rewards")
    op.drop_index("ix_bag_lifts_status", table_name="bag_lifts")
    op.drop_index("ix_bag_lifts_dealer_id", table_name="bag_lifts")
    op.drop_index("ix_bag_lifts_mason_id", table_name="bag_lifts")
    op.drop_table("bag_lifts")
    op.drop_index("ix_points_ledger_mason_id", table_name="points_ledger")
    op.drop_table("points_ledger")
    op.drop_index("ix_kyc_submissions_mason_id", table_name="kyc_submissions")
    op.drop_table("kyc_submissions")
    op.drop_table("mason_pc_side")
    op.drop_index("ix_users_company_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (
        reward_redemption_status,
        bag_lift_status,
        points_source_type,
        kyc_submission_status,
        mason_kyc_status,
    ):
        enum_type.drop(bind, checkfirst=True)
