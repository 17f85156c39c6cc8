# backend/availability_engine/services/availability_stats_service.py
"""
Availability statistics for the organizer dashboard.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.constants import DAYS_OF_WEEK
from ..core.exceptions import InvalidConfigurationException
from ..domain.rules import window_minutes
from ..repositories import RepositoryFactory
from ..schemas.availability_rules import AvailabilityStats
from .base import BaseService
from .slot_cache_service import SlotCacheService

logger = logging.getLogger(__name__)


def _merged_minutes(windows: List[Tuple[int, int]]) -> int:
    total = 0
    current_start: Optional[int] = None
    current_end = 0
    for start, end in sorted(windows):
        if current_start is None or start > current_end:
            if current_start is not None:
                total += current_end - current_start
            current_start, current_end = start, end
        else:
            current_end = max(current_end, end)
    if current_start is not None:
        total += current_end - current_start
    return total


class AvailabilityStatsService(BaseService):
    def __init__(self, db: Session, cache: Optional[SlotCacheService] = None):
        super().__init__(db)
        self.cache = cache or SlotCacheService(db)
        self.rule_repository = RepositoryFactory.create_availability_rule_repository(db)
        self.override_repository = RepositoryFactory.create_date_override_repository(db)
        self.blocked_repository = RepositoryFactory.create_blocked_time_repository(db)
        self.recurring_repository = RepositoryFactory.create_recurring_blocked_time_repository(db)

    def _daily_hours(self, organizer_id: str) -> Dict[str, float]:
        """Open hours per weekday from active weekly rules, overlaps counted once."""
        windows: Dict[int, List[Tuple[int, int]]] = {day: [] for day in range(7)}
        for rule in self.rule_repository.list_for_organizer(organizer_id, active_only=True):
            try:
                start, end = window_minutes(rule.start_time, rule.end_time, rule.spans_midnight)
            except InvalidConfigurationException:
                continue
            windows[rule.day_of_week].append((start, end))
        return {
            DAYS_OF_WEEK[day]: round(_merged_minutes(day_windows) / 60, 2)
            for day, day_windows in windows.items()
        }

    @BaseService.measure_operation("get_availability_stats")
    def get_stats(self, organizer_id: str) -> AvailabilityStats:
        daily_hours = self._daily_hours(organizer_id)
        weekly_hours = round(sum(daily_hours.values()), 2)
        busiest_day = ""
        if weekly_hours > 0:
            busiest_day = max(DAYS_OF_WEEK, key=lambda day: daily_hours[day])

        return AvailabilityStats(
            total_rules=self.rule_repository.count(organizer_id=organizer_id),
            active_rules=self.rule_repository.count(organizer_id=organizer_id, is_active=True),
            total_overrides=self.override_repository.count(organizer_id=organizer_id),
            total_blocks=self.blocked_repository.count(organizer_id=organizer_id),
            total_recurring_blocks=self.recurring_repository.count(organizer_id=organizer_id),
            average_weekly_hours=weekly_hours,
            busiest_day=busiest_day,
            daily_hours=daily_hours,
            cache_hit_rate=self.cache.hit_rate(organizer_id),
        )
