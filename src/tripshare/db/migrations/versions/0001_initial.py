"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-01-12 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("tg_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("username", sa.Text()),
        sa.Column("display_name", sa.Text()),
        sa.Column("promptpay_id", sa.Text()),
        sa.Column("promptpay_kind", sa.Text()),
        sa.CheckConstraint(
            "promptpay_kind in ('PHONE','NATIONAL_ID','EWALLET','UNKNOWN')",
            name="users_promptpay_kind_check",
        ),
    )

    op.create_table(
        "trips",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("code", sa.String(length=6), nullable=False, unique=True),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "trip_members",
        sa.Column("trip_id", sa.BigInteger(), sa.ForeignKey("trips.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "sub_groups",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("trip_id", sa.BigInteger(), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "sub_group_members",
        sa.Column(
            "sub_group_id",
            sa.BigInteger(),
            sa.ForeignKey("sub_groups.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("trip_id", sa.BigInteger(), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payer_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id")),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("split_type", sa.Text(), nullable=False, server_default="EQUAL"),
        sa.Column("split_target", sa.Text(), nullable=False, server_default="ALL"),
        sa.Column("split_group_id", sa.BigInteger(), sa.ForeignKey("sub_groups.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("split_type in ('EQUAL','EXACT')", name="expenses_split_type_check"),
        sa.CheckConstraint("split_target in ('ALL','GROUP','CUSTOM')", name="expenses_split_target_check"),
    )

    op.create_table(
        "expense_shares",
        sa.Column("expense_id", sa.BigInteger(), sa.ForeignKey("expenses.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("trip_id", sa.BigInteger(), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False),
        sa.Column("from_user_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("to_user_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("slip_url", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_index("idx_trip_members_user", "trip_members", ["user_id"])
    op.create_index("idx_sub_groups_trip", "sub_groups", ["trip_id"])
    op.create_index("idx_expenses_trip", "expenses", ["trip_id"])
    op.create_index("idx_payments_trip", "payments", ["trip_id"])


def downgrade() -> None:
    op.drop_index("idx_payments_trip", table_name="payments")
    op.drop_index("idx_expenses_trip", table_name="expenses")
    op.drop_index("idx_sub_groups_trip", table_name="sub_groups")
    op.drop_index("idx_trip_members_user", table_name="trip_members")

    op.drop_table("payments")
    op.drop_table("expense_shares")
    op.drop_table("expenses")
    op.drop_table("sub_group_members")
    op.drop_table("sub_groups")
    op.drop_table("trip_members")
    op.drop_table("trips")
    op.drop_table("users")
