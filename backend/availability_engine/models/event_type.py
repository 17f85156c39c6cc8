# backend/availability_engine/models/event_type.py
"""Event type model (owned by the dashboard, read by the engine)."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class EventType(Base):
    """
    A bookable meeting type.

    Buffer and slot interval columns are nullable: NULL means the organizer's
    BufferTime defaults apply.
    """

    __tablename__ = "event_types"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    organizer_id = Column(
        String(26), ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slug = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False, default="")
    duration = Column(Integer, nullable=False, default=30)  # minutes
    max_attendees = Column(Integer, nullable=False, default=1)
    is_group_event = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    min_scheduling_notice = Column(Integer, nullable=False, default=60)  # minutes
    max_scheduling_horizon = Column(Integer, nullable=False, default=60)  # days
    buffer_time_before = Column(Integer, nullable=True)
    buffer_time_after = Column(Integer, nullable=True)
    slot_interval_minutes = Column(Integer, nullable=True)
    max_bookings_per_day = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    organizer = relationship("Organizer", back_populates="event_types")

    __table_args__ = (UniqueConstraint("organizer_id", "slug", name="uq_event_type_slug"),)

    def __repr__(self) -> str:
        return f"<EventType {self.slug} {self.duration}min>"
