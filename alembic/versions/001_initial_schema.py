"""Initial schema: users, camps, campers, registrations with waitlist indexes.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users table (account holders)
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Camps table
    op.create_table(
        "camps",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("location_name", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(50), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("waitlist_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("capacity IS NULL OR capacity > 0", name="check_camp_capacity_positive"),
        sa.CheckConstraint(
            "status IN ('draft', 'published', 'registration_open', 'closed')",
            name="check_camp_status",
        ),
    )
    op.create_index("ix_camps_tenant_id", "camps", ["tenant_id"])
    # Nearby-camp suggestions: "upcoming camps of this tenant, soonest first"
    op.create_index("ix_camps_tenant_start", "camps", ["tenant_id", "start_date"])

    # Campers table
    op.create_table(
        "campers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("parent_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_campers_parent_id", "campers", ["parent_id"])

    # Registrations table: reservations and waitlist entries
    op.create_table(
        "registrations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("camp_id", sa.String(36), sa.ForeignKey("camps.id"), nullable=False),
        sa.Column("camper_id", sa.String(36), sa.ForeignKey("campers.id"), nullable=False),
        sa.Column("parent_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("base_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("promo_discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("addons_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("promo_code_id", sa.String(36), nullable=True),
        sa.Column("shirt_size", sa.String(10), nullable=True),
        sa.Column("special_considerations", sa.String(1000), nullable=True),
        sa.Column("friend_requests", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("waitlist_position", sa.Integer(), nullable=True),
        sa.Column("waitlist_joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("offer_token", sa.String(64), nullable=True, unique=True),
        sa.Column("offer_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("offer_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("offer_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("checkout_session_id", sa.String(255), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'waitlisted', 'cancelled', 'refunded')",
            name="check_registration_status",
        ),
        sa.CheckConstraint(
            "waitlist_position IS NULL OR waitlist_position > 0",
            name="check_waitlist_position_positive",
        ),
    )
    op.create_index("ix_registrations_camp_id", "registrations", ["camp_id"])
    op.create_index("ix_registrations_camper_id", "registrations", ["camper_id"])
    op.create_index("ix_registrations_parent_id", "registrations", ["parent_id"])
    # Two waitlisted entries of one camp can never share a position
    op.create_index(
        "uq_registrations_waitlist_position",
        "registrations",
        ["camp_id", "waitlist_position"],
        unique=True,
        postgresql_where=sa.text("status = 'waitlisted'"),
    )
    # One seat or queue slot per camper per camp
    op.create_index(
        "uq_registrations_active_camper",
        "registrations",
        ["camp_id", "camper_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('waitlisted', 'pending', 'confirmed')"),
    )
    # Expiry sweep scans waitlisted rows by offer deadline across all camps
    op.create_index("ix_registrations_offer_expires_at", "registrations", ["status", "offer_expires_at"])


def downgrade() -> None:
    op.drop_table("registrations")
    op.drop_table("campers")
    op.drop_table("camps")
    op.drop_table("users")
