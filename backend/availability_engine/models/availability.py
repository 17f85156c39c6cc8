# backend/availability_engine/models/availability.py
"""
Availability rule models.

This module defines the database models holding an organizer's availability
rule set: weekly rules, date overrides, absolute blocked times, recurring
blocks and buffer settings.

Classes:
    AvailabilityRule: Weekly open hours, optionally scoped to event types
    DateOverrideRule: Replaces weekly rules for one calendar date
    BlockedTime: Absolute time block (manual or synced from a calendar)
    RecurringBlockedTime: Weekly block with an optional validity window
    BufferTime: Per-organizer slot spacing defaults
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base

availability_rule_event_types = Table(
    "availability_rule_event_types",
    Base.metadata,
    Column(
        "rule_id",
        String(26),
        ForeignKey("availability_rules.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "event_type_id",
        String(26),
        ForeignKey("event_types.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

date_override_event_types = Table(
    "date_override_event_types",
    Base.metadata,
    Column(
        "override_id",
        String(26),
        ForeignKey("date_override_rules.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "event_type_id",
        String(26),
        ForeignKey("event_types.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class AvailabilityRule(Base):
    """Weekly open hours. No scoped event types means the rule applies to all."""

    __tablename__ = "availability_rules"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    organizer_id = Column(
        String(26), ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    spans_midnight = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event_types = relationship("EventType", secondary=availability_rule_event_types)

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_rule_day_of_week"),
        Index("idx_availability_rules_organizer_day", "organizer_id", "day_of_week"),
    )

    def __repr__(self) -> str:
        return f"<AvailabilityRule day={self.day_of_week} {self.start_time}-{self.end_time}>"


class DateOverrideRule(Base):
    """Replaces all weekly rules for one organizer-local calendar date."""

    __tablename__ = "date_override_rules"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    organizer_id = Column(
        String(26), ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False
    )
    date = Column(Date, nullable=False)
    is_available = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    spans_midnight = Column(Boolean, nullable=False, default=False)
    reason = Column(String(255), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event_types = relationship("EventType", secondary=date_override_event_types)

    __table_args__ = (Index("idx_date_overrides_organizer_date", "organizer_id", "date"),)

    def __repr__(self) -> str:
        state = "available" if self.is_available else "unavailable"
        return f"<DateOverrideRule {self.date} {state}>"


class BlockedTime(Base):
    """Absolute block, always subtracted regardless of the weekly pattern."""

    __tablename__ = "blocked_times"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    organizer_id = Column(
        String(26), ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False
    )
    start_datetime = Column(DateTime(timezone=True), nullable=False)
    end_datetime = Column(DateTime(timezone=True), nullable=False)
    reason = Column(String(255), nullable=False, default="")
    source = Column(String(32), nullable=False, default="manual")
    external_id = Column(String(255), nullable=False, default="")
    external_updated_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_blocked_times_organizer_start", "organizer_id", "start_datetime"),
    )

    def __repr__(self) -> str:
        return f"<BlockedTime {self.start_datetime} - {self.end_datetime} ({self.source})>"


class RecurringBlockedTime(Base):
    """Weekly block, optionally bounded by start_date/end_date (inclusive)."""

    __tablename__ = "recurring_blocked_times"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    organizer_id = Column(
        String(26), ForeignKey("organizers.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(255), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    spans_midnight = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "day_of_week >= 0 AND day_of_week <= 6", name="ck_recurring_block_day_of_week"
        ),
    )

    def __repr__(self) -> str:
        return f"<RecurringBlockedTime {self.name} day={self.day_of_week}>"


class BufferTime(Base):
    """One row per organizer: slot spacing defaults."""

    __tablename__ = "buffer_times"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    organizer_id = Column(
        String(26),
        ForeignKey("organizers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    default_buffer_before = Column(Integer, nullable=False, default=0)
    default_buffer_after = Column(Integer, nullable=False, default=0)
    minimum_gap = Column(Integer, nullable=False, default=0)
    slot_interval_minutes = Column(Integer, nullable=False, default=15)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    organizer = relationship("Organizer", back_populates="buffer_time")

    def __repr__(self) -> str:
        return (
            f"<BufferTime before={self.default_buffer_before} after={self.default_buffer_after} "
            f"gap={self.minimum_gap} interval={self.slot_interval_minutes}>"
        )
