"""
Registration model: confirmed reservations and waitlist entries share a row.

Key design decisions:
- `status` discriminates waitlist entries from reservations; rows are never
  deleted, terminal states are kept for audit
- Partial unique index on (camp_id, waitlist_position) for waitlisted rows
  backs the contiguous FIFO ordering
- Partial unique index on (camp_id, camper_id) for active rows: one seat or
  queue slot per camper per camp
- Offer state is data-driven: an offer is live while offer_expires_at > now,
  no timer is involved
"""

import uuid

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, JSON, text,
)
from sqlalchemy.orm import relationship

from campwaitlist.db.base import Base, TimestampMixin


class Registration(Base, TimestampMixin):
    __tablename__ = "registrations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False)
    camp_id = Column(String(36), ForeignKey("camps.id"), nullable=False, index=True)
    camper_id = Column(String(36), ForeignKey("campers.id"), nullable=False, index=True)
    parent_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")

    # Pricing, carried through to the confirmed reservation unchanged
    base_price_cents = Column(Integer, nullable=False, default=0)
    discount_cents = Column(Integer, nullable=False, default=0)
    promo_discount_cents = Column(Integer, nullable=False, default=0)
    addons_total_cents = Column(Integer, nullable=False, default=0)
    tax_cents = Column(Integer, nullable=False, default=0)
    total_price_cents = Column(Integer, nullable=False, default=0)
    promo_code_id = Column(String(36), nullable=True)
    shirt_size = Column(String(10), nullable=True)
    special_considerations = Column(String(1000), nullable=True)
    friend_requests = Column(JSON, nullable=False, default=list)

    # Waitlist
    waitlist_position = Column(Integer, nullable=True)
    waitlist_joined_at = Column(DateTime(timezone=True), nullable=True)
    offer_token = Column(String(64), nullable=True, unique=True)
    offer_sent_at = Column(DateTime(timezone=True), nullable=True)
    offer_expires_at = Column(DateTime(timezone=True), nullable=True)
    offer_count = Column(Integer, nullable=False, default=0)

    # Payment / cancellation
    checkout_session_id = Column(String(255), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    camp = relationship("Camp", back_populates="registrations")
    camper = relationship("Camper")
    parent = relationship("User")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'waitlisted', 'cancelled', 'refunded')",
            name="check_registration_status",
        ),
        CheckConstraint(
            "waitlist_position IS NULL OR waitlist_position > 0",
            name="check_waitlist_position_positive",
        ),
        Index(
            "uq_registrations_waitlist_position",
            "camp_id",
            "waitlist_position",
            unique=True,
            postgresql_where=text("status = 'waitlisted'"),
        ),
        # One active registration per camper per camp
        Index(
            "uq_registrations_active_camper",
            "camp_id",
            "camper_id",
            unique=True,
            postgresql_where=text("status IN ('waitlisted', 'pending', 'confirmed')"),
        ),
        # Sweep: stale offers across all camps
        Index("ix_registrations_offer_expires_at", "status", "offer_expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Registration(id={self.id}, camp={self.camp_id}, status={self.status}, "
            f"position={self.waitlist_position})>"
        )
