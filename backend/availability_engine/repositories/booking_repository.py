# backend/availability_engine/repositories/booking_repository.py
"""
Read-only access to the booking store.

Bookings are written by the external booking service; the engine only reads
confirmed bookings as additional blocked time.
"""

from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from ..core.constants import BOOKING_STATUS_CONFIRMED
from ..core.timezone_utils import ensure_utc
from ..domain.rules import BookedMeeting
from ..models.booking import Booking
from .base_repository import BaseRepository


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_confirmed_in_window(
        self, organizer_id: str, window_start: datetime, window_end: datetime
    ) -> List[Booking]:
        """Confirmed bookings overlapping [window_start, window_end)."""
        return self._execute_query(
            self._build_query()
            .filter(
                Booking.organizer_id == organizer_id,
                Booking.status == BOOKING_STATUS_CONFIRMED,
                Booking.start_time < ensure_utc(window_end),
                Booking.end_time > ensure_utc(window_start),
            )
            .order_by(Booking.start_time)
        )

    def get_booked_meetings(
        self, organizer_id: str, window_start: datetime, window_end: datetime
    ) -> List[BookedMeeting]:
        return [
            BookedMeeting(
                start=ensure_utc(b.start_time),
                end=ensure_utc(b.end_time),
                event_type_id=b.event_type_id,
                attendee_count=b.attendee_count or 1,
            )
            for b in self.get_confirmed_in_window(organizer_id, window_start, window_end)
        ]
