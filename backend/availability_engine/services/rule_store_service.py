# backend/availability_engine/services/rule_store_service.py
"""
Rule Store Service

CRUD for an organizer's availability rule set: weekly rules, date overrides,
blocked times, recurring blocks and buffer settings.

Every mutation validates the resulting row, writes it and bumps the
organizer's rules generation inside one transaction. The mutation is only
acknowledged after that commit, so any later slot query sees the new
generation and never serves slots cached under the old rules.
"""

from datetime import date, datetime, time
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    MAX_BUFFER_MINUTES,
    MAX_MINIMUM_GAP_MINUTES,
    MAX_SLOT_INTERVAL_MINUTES,
    MIN_SLOT_INTERVAL_MINUTES,
)
from ..core.exceptions import InvalidConfigurationException, NotFoundException
from ..core.timezone_utils import ensure_utc
from ..domain.rules import window_minutes
from ..models.availability import (
    AvailabilityRule,
    BlockedTime,
    BufferTime,
    DateOverrideRule,
    RecurringBlockedTime,
)
from ..models.event_type import EventType
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class RuleStoreService(BaseService):
    """Validated, generation-bumping CRUD for availability rules."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.organizer_repository = RepositoryFactory.create_organizer_repository(db)
        self.event_type_repository = RepositoryFactory.create_event_type_repository(db)
        self.rule_repository = RepositoryFactory.create_availability_rule_repository(db)
        self.override_repository = RepositoryFactory.create_date_override_repository(db)
        self.blocked_repository = RepositoryFactory.create_blocked_time_repository(db)
        self.recurring_repository = RepositoryFactory.create_recurring_blocked_time_repository(db)
        self.buffer_repository = RepositoryFactory.create_buffer_time_repository(db)

    # Validation helpers

    @staticmethod
    def _reject_nulls(organizer_id: str, data: Dict[str, Any], fields: Tuple[str, ...]) -> None:
        """Reject explicit nulls on non-nullable columns."""
        for field in fields:
            if field in data and data[field] is None:
                raise InvalidConfigurationException(
                    f"{field} cannot be null", field=field, organizer_id=organizer_id
                )

    @staticmethod
    def _validate_window(
        organizer_id: str,
        start_time: Optional[time],
        end_time: Optional[time],
        spans_midnight: bool,
    ) -> None:
        if start_time is None:
            raise InvalidConfigurationException(
                "start_time is required", field="start_time", organizer_id=organizer_id
            )
        if end_time is None:
            raise InvalidConfigurationException(
                "end_time is required", field="end_time", organizer_id=organizer_id
            )
        try:
            window_minutes(start_time, end_time, spans_midnight)
        except InvalidConfigurationException as e:
            e.details["organizer_id"] = organizer_id
            raise

    def _resolve_event_types(
        self, organizer_id: str, event_type_ids: Optional[List[str]]
    ) -> List[EventType]:
        if not event_type_ids:
            return []
        wanted = list(dict.fromkeys(event_type_ids))
        found = self.event_type_repository.get_many(organizer_id, wanted)
        missing = sorted(set(wanted) - {et.id for et in found})
        if missing:
            raise InvalidConfigurationException(
                f"Unknown event types: {', '.join(missing)}",
                field="event_types",
                organizer_id=organizer_id,
                details={"event_types": missing},
            )
        return found

    def _bump(self, organizer_id: str) -> int:
        generation = self.organizer_repository.bump_generation(organizer_id)
        self.logger.info(
            f"Rules changed for organizer {organizer_id}; generation now {generation}"
        )
        return generation

    def _after_commit(self) -> None:
        prometheus_metrics.inc_cache_invalidation("rule_change")

    @staticmethod
    def _not_found(kind: str, organizer_id: str, entity_id: str) -> NotFoundException:
        return NotFoundException(
            f"{kind} not found",
            code=f"{kind.upper().replace(' ', '_')}_NOT_FOUND",
            details={"organizer_id": organizer_id, "id": entity_id},
        )

    # Weekly rules

    def list_rules(self, organizer_id: str) -> List[AvailabilityRule]:
        return self.rule_repository.list_for_organizer(organizer_id)

    @BaseService.measure_operation("create_availability_rule")
    def create_rule(self, organizer_id: str, data: Dict[str, Any]) -> AvailabilityRule:
        self._validate_window(
            organizer_id,
            data.get("start_time"),
            data.get("end_time"),
            bool(data.get("spans_midnight", False)),
        )
        with self.transaction():
            event_types = self._resolve_event_types(organizer_id, data.get("event_types"))
            rule = self.rule_repository.create(
                organizer_id=organizer_id,
                day_of_week=data["day_of_week"],
                start_time=data["start_time"],
                end_time=data["end_time"],
                spans_midnight=bool(data.get("spans_midnight", False)),
                is_active=data.get("is_active", True),
            )
            rule.event_types = event_types
            self._bump(organizer_id)
        self._after_commit()
        return rule

    @BaseService.measure_operation("update_availability_rule")
    def update_rule(
        self, organizer_id: str, rule_id: str, data: Dict[str, Any]
    ) -> AvailabilityRule:
        rule = self.rule_repository.get_for_organizer(rule_id, organizer_id)
        if not rule:
            raise self._not_found("Availability rule", organizer_id, rule_id)

        self._validate_window(
            organizer_id,
            data.get("start_time", rule.start_time),
            data.get("end_time", rule.end_time),
            bool(data.get("spans_midnight", rule.spans_midnight)),
        )
        with self.transaction():
            if "event_types" in data:
                rule.event_types = self._resolve_event_types(organizer_id, data["event_types"])
            for field in ("day_of_week", "start_time", "end_time", "spans_midnight", "is_active"):
                if field in data and data[field] is not None:
                    setattr(rule, field, data[field])
            self.db.flush()
            self._bump(organizer_id)
        self._after_commit()
        return rule

    @BaseService.measure_operation("delete_availability_rule")
    def delete_rule(self, organizer_id: str, rule_id: str) -> None:
        rule = self.rule_repository.get_for_organizer(rule_id, organizer_id)
        if not rule:
            raise self._not_found("Availability rule", organizer_id, rule_id)
        with self.transaction():
            self.rule_repository.delete(rule.id)
            self._bump(organizer_id)
        self._after_commit()

    # Date overrides

    def list_overrides(self, organizer_id: str) -> List[DateOverrideRule]:
        return self.override_repository.list_for_organizer(organizer_id)

    def _validate_override(
        self,
        organizer_id: str,
        is_available: bool,
        start_time: Optional[time],
        end_time: Optional[time],
        spans_midnight: bool,
    ) -> None:
        if not is_available:
            # Hours on an unavailable override are ignored: the whole date is blocked
            return
        if start_time is None or end_time is None:
            raise InvalidConfigurationException(
                "An available date override must define start_time and end_time",
                field="start_time" if start_time is None else "end_time",
                organizer_id=organizer_id,
            )
        self._validate_window(organizer_id, start_time, end_time, spans_midnight)

    @BaseService.measure_operation("create_date_override")
    def create_override(self, organizer_id: str, data: Dict[str, Any]) -> DateOverrideRule:
        self._validate_override(
            organizer_id,
            bool(data.get("is_available", False)),
            data.get("start_time"),
            data.get("end_time"),
            bool(data.get("spans_midnight", False)),
        )
        with self.transaction():
            event_types = self._resolve_event_types(organizer_id, data.get("event_types"))
            override = self.override_repository.create(
                organizer_id=organizer_id,
                date=data["date"],
                is_available=bool(data.get("is_available", False)),
                start_time=data.get("start_time"),
                end_time=data.get("end_time"),
                spans_midnight=bool(data.get("spans_midnight", False)),
                reason=data.get("reason") or "",
                is_active=data.get("is_active", True),
            )
            override.event_types = event_types
            self._bump(organizer_id)
        self._after_commit()
        return override

    @BaseService.measure_operation("update_date_override")
    def update_override(
        self, organizer_id: str, override_id: str, data: Dict[str, Any]
    ) -> DateOverrideRule:
        override = self.override_repository.get_for_organizer(override_id, organizer_id)
        if not override:
            raise self._not_found("Date override", organizer_id, override_id)

        self._reject_nulls(
            organizer_id, data, ("date", "is_available", "spans_midnight", "reason", "is_active")
        )
        self._validate_override(
            organizer_id,
            bool(data.get("is_available", override.is_available)),
            data.get("start_time", override.start_time),
            data.get("end_time", override.end_time),
            bool(data.get("spans_midnight", override.spans_midnight)),
        )
        with self.transaction():
            if "event_types" in data:
                override.event_types = self._resolve_event_types(
                    organizer_id, data["event_types"]
                )
            for field in (
                "date",
                "is_available",
                "start_time",
                "end_time",
                "spans_midnight",
                "reason",
                "is_active",
            ):
                if field in data:
                    setattr(override, field, data[field])
            self.db.flush()
            self._bump(organizer_id)
        self._after_commit()
        return override

    @BaseService.measure_operation("delete_date_override")
    def delete_override(self, organizer_id: str, override_id: str) -> None:
        override = self.override_repository.get_for_organizer(override_id, organizer_id)
        if not override:
            raise self._not_found("Date override", organizer_id, override_id)
        with self.transaction():
            self.override_repository.delete(override.id)
            self._bump(organizer_id)
        self._after_commit()

    # Blocked times

    def list_blocked_times(self, organizer_id: str) -> List[BlockedTime]:
        return self.blocked_repository.list_for_organizer(organizer_id)

    @staticmethod
    def _validate_block_range(organizer_id: str, start: datetime, end: datetime) -> None:
        if ensure_utc(end) <= ensure_utc(start):
            raise InvalidConfigurationException(
                "end_datetime must be after start_datetime",
                field="end_datetime",
                organizer_id=organizer_id,
            )

    @BaseService.measure_operation("create_blocked_time")
    def create_blocked_time(self, organizer_id: str, data: Dict[str, Any]) -> BlockedTime:
        self._validate_block_range(organizer_id, data["start_datetime"], data["end_datetime"])
        with self.transaction():
            block = self.blocked_repository.create(
                organizer_id=organizer_id,
                start_datetime=ensure_utc(data["start_datetime"]),
                end_datetime=ensure_utc(data["end_datetime"]),
                reason=data.get("reason") or "",
                source=data.get("source") or "manual",
                external_id=data.get("external_id") or "",
                external_updated_at=data.get("external_updated_at"),
                is_active=data.get("is_active", True),
            )
            self._bump(organizer_id)
        self._after_commit()
        return block

    @BaseService.measure_operation("update_blocked_time")
    def update_blocked_time(
        self, organizer_id: str, block_id: str, data: Dict[str, Any]
    ) -> BlockedTime:
        block = self.blocked_repository.get_for_organizer(block_id, organizer_id)
        if not block:
            raise self._not_found("Blocked time", organizer_id, block_id)

        start = data.get("start_datetime") or block.start_datetime
        end = data.get("end_datetime") or block.end_datetime
        self._validate_block_range(organizer_id, start, end)
        with self.transaction():
            for field in ("reason", "source", "external_id", "external_updated_at", "is_active"):
                if field in data and data[field] is not None:
                    setattr(block, field, data[field])
            block.start_datetime = ensure_utc(start)
            block.end_datetime = ensure_utc(end)
            self.db.flush()
            self._bump(organizer_id)
        self._after_commit()
        return block

    @BaseService.measure_operation("delete_blocked_time")
    def delete_blocked_time(self, organizer_id: str, block_id: str) -> None:
        block = self.blocked_repository.get_for_organizer(block_id, organizer_id)
        if not block:
            raise self._not_found("Blocked time", organizer_id, block_id)
        with self.transaction():
            self.blocked_repository.delete(block.id)
            self._bump(organizer_id)
        self._after_commit()

    # Recurring blocks

    def list_recurring_blocks(self, organizer_id: str) -> List[RecurringBlockedTime]:
        return self.recurring_repository.list_for_organizer(organizer_id)

    def _validate_recurring(
        self,
        organizer_id: str,
        start_time: Optional[time],
        end_time: Optional[time],
        spans_midnight: bool,
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> None:
        self._validate_window(organizer_id, start_time, end_time, spans_midnight)
        if start_date and end_date and end_date < start_date:
            raise InvalidConfigurationException(
                "end_date must not be before start_date",
                field="end_date",
                organizer_id=organizer_id,
            )

    @BaseService.measure_operation("create_recurring_block")
    def create_recurring_block(
        self, organizer_id: str, data: Dict[str, Any]
    ) -> RecurringBlockedTime:
        self._validate_recurring(
            organizer_id,
            data.get("start_time"),
            data.get("end_time"),
            bool(data.get("spans_midnight", False)),
            data.get("start_date"),
            data.get("end_date"),
        )
        with self.transaction():
            block = self.recurring_repository.create(
                organizer_id=organizer_id,
                name=data["name"],
                day_of_week=data["day_of_week"],
                start_time=data["start_time"],
                end_time=data["end_time"],
                start_date=data.get("start_date"),
                end_date=data.get("end_date"),
                spans_midnight=bool(data.get("spans_midnight", False)),
                is_active=data.get("is_active", True),
            )
            self._bump(organizer_id)
        self._after_commit()
        return block

    @BaseService.measure_operation("update_recurring_block")
    def update_recurring_block(
        self, organizer_id: str, block_id: str, data: Dict[str, Any]
    ) -> RecurringBlockedTime:
        block = self.recurring_repository.get_for_organizer(block_id, organizer_id)
        if not block:
            raise self._not_found("Recurring block", organizer_id, block_id)

        self._reject_nulls(
            organizer_id,
            data,
            ("name", "day_of_week", "start_time", "end_time", "spans_midnight", "is_active"),
        )
        self._validate_recurring(
            organizer_id,
            data.get("start_time", block.start_time),
            data.get("end_time", block.end_time),
            bool(data.get("spans_midnight", block.spans_midnight)),
            data.get("start_date", block.start_date),
            data.get("end_date", block.end_date),
        )
        with self.transaction():
            for field in (
                "name",
                "day_of_week",
                "start_time",
                "end_time",
                "start_date",
                "end_date",
                "spans_midnight",
                "is_active",
            ):
                if field in data:
                    setattr(block, field, data[field])
            self.db.flush()
            self._bump(organizer_id)
        self._after_commit()
        return block

    @BaseService.measure_operation("delete_recurring_block")
    def delete_recurring_block(self, organizer_id: str, block_id: str) -> None:
        block = self.recurring_repository.get_for_organizer(block_id, organizer_id)
        if not block:
            raise self._not_found("Recurring block", organizer_id, block_id)
        with self.transaction():
            self.recurring_repository.delete(block.id)
            self._bump(organizer_id)
        self._after_commit()

    # Buffer settings

    def get_buffer_settings(self, organizer_id: str) -> BufferTime:
        existing = self.buffer_repository.get_for_organizer(organizer_id)
        if existing:
            return existing
        with self.transaction():
            return self.buffer_repository.get_or_create(
                organizer_id, settings.default_slot_interval_minutes
            )

    @staticmethod
    def _validate_buffer_values(organizer_id: str, data: Dict[str, Any]) -> None:
        bounds = {
            "default_buffer_before": (0, MAX_BUFFER_MINUTES),
            "default_buffer_after": (0, MAX_BUFFER_MINUTES),
            "minimum_gap": (0, MAX_MINIMUM_GAP_MINUTES),
            "slot_interval_minutes": (MIN_SLOT_INTERVAL_MINUTES, MAX_SLOT_INTERVAL_MINUTES),
        }
        for field, (low, high) in bounds.items():
            value = data.get(field)
            if value is not None and not low <= value <= high:
                raise InvalidConfigurationException(
                    f"{field} must be between {low} and {high} minutes",
                    field=field,
                    organizer_id=organizer_id,
                )

    @BaseService.measure_operation("update_buffer_settings")
    def update_buffer_settings(self, organizer_id: str, data: Dict[str, Any]) -> BufferTime:
        self._validate_buffer_values(organizer_id, data)
        with self.transaction():
            buffer_time = self.buffer_repository.get_or_create(
                organizer_id, settings.default_slot_interval_minutes
            )
            for field in (
                "default_buffer_before",
                "default_buffer_after",
                "minimum_gap",
                "slot_interval_minutes",
            ):
                if data.get(field) is not None:
                    setattr(buffer_time, field, data[field])
            self.db.flush()
            self._bump(organizer_id)
        self._after_commit()
        return buffer_time
