# backend/availability_engine/models/booking.py
"""
Booking model.

Bookings are written by the booking store; the engine only reads confirmed
bookings as additional blocked intervals.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from ..core.constants import BOOKING_STATUS_CONFIRMED
from ..core.ulid_helper import generate_ulid
from ..database import Base


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    organizer_id = Column(
        String(26), ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False
    )
    event_type_id = Column(
        String(26), ForeignKey("event_types.id", ondelete="CASCADE"), nullable=False
    )
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default=BOOKING_STATUS_CONFIRMED)
    attendee_count = Column(Integer, nullable=False, default=1)

    __table_args__ = (Index("idx_bookings_organizer_start", "organizer_id", "start_time"),)

    def __repr__(self) -> str:
        return f"<Booking {self.start_time} - {self.end_time} {self.status}>"
