# backend/availability_engine/models/organizer.py
"""
Organizer model.

Organizers own availability rules and receive bookings. Profiles are managed
by the dashboard; the engine reads timezone and reasonable hours and owns
the rules_generation stamp.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Organizer(Base):
    """Organizer profile plus the versioned rule-set stamp."""

    __tablename__ = "organizers"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=False, default="")
    timezone = Column(String(64), nullable=False, default="UTC")
    reasonable_hours_start = Column(Integer, nullable=False, default=9)
    reasonable_hours_end = Column(Integer, nullable=False, default=17)
    is_active = Column(Boolean, nullable=False, default=True)

    # Generation stamp: bumped in the same transaction as every rule mutation
    rules_generation = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event_types = relationship(
        "EventType", back_populates="organizer", cascade="all, delete-orphan"
    )
    buffer_time = relationship(
        "BufferTime", back_populates="organizer", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Organizer {self.slug} tz={self.timezone} gen={self.rules_generation}>"
