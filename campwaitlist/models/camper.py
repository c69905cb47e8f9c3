"""
Camper model: the person being admitted to a camp.
"""

import uuid

from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship

from campwaitlist.db.base import Base, TimestampMixin


class Camper(Base, TimestampMixin):
    __tablename__ = "campers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    parent_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    parent = relationship("User", back_populates="campers")

    def __repr__(self) -> str:
        return f"<Camper(id={self.id}, name={self.first_name} {self.last_name})>"
