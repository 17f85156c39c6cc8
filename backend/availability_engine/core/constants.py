"""Application-wide constants for the availability engine."""

API_TITLE = "Availability Engine API"
API_VERSION = "0.1.0"
API_DESCRIPTION = "Slot computation, availability rules and slot cache management"

# Day of week mapping (0 = Monday, matching date.weekday())
DAYS_OF_WEEK = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

MINUTES_PER_DAY = 24 * 60

# Buffer settings bounds (minutes)
MAX_BUFFER_MINUTES = 120
MAX_MINIMUM_GAP_MINUTES = 60
MIN_SLOT_INTERVAL_MINUTES = 5
MAX_SLOT_INTERVAL_MINUTES = 60

BOOKING_STATUS_CONFIRMED = "confirmed"
