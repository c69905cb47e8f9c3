"""
Camp session model with capacity.

Key design decisions:
- `capacity` is nullable: an uncapped camp never fills, so nobody is waitlisted
- Occupancy is derived from registrations rather than denormalized, because
  live waitlist offers count against capacity and expire by time alone
- The camp row doubles as the per-camp lock (SELECT ... FOR UPDATE) for
  waitlist position assignment and offer issuance
"""

import uuid

from sqlalchemy import Column, Integer, String, Boolean, Date, Index, CheckConstraint
from sqlalchemy.orm import relationship

from campwaitlist.db.base import Base, TimestampMixin


class Camp(Base, TimestampMixin):
    __tablename__ = "camps"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    location_name = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=True)
    status = Column(String(30), nullable=False, default="draft")
    waitlist_enabled = Column(Boolean, nullable=False, default=True)

    registrations = relationship("Registration", back_populates="camp", lazy="noload")

    __table_args__ = (
        CheckConstraint("capacity IS NULL OR capacity > 0", name="check_camp_capacity_positive"),
        CheckConstraint(
            "status IN ('draft', 'published', 'registration_open', 'closed')",
            name="check_camp_status",
        ),
        # Nearby-camp suggestions: upcoming camps per tenant by start date
        Index("ix_camps_tenant_start", "tenant_id", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Camp(id={self.id}, name={self.name}, capacity={self.capacity})>"
