# backend/availability_engine/repositories/organizer_repository.py
"""
Organizer and event type data access.

Holds the rules generation counter: bump_generation() runs inside the
caller's transaction, so a rule mutation and its cache invalidation commit
together.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.event_type import EventType
from ..models.organizer import Organizer
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class OrganizerRepository(BaseRepository[Organizer]):
    def __init__(self, db: Session):
        super().__init__(db, Organizer)

    def get_by_slug(self, slug: str) -> Optional[Organizer]:
        return self.find_one_by(slug=slug, is_active=True)

    def list_active_ids(self) -> List[str]:
        try:
            rows = self.db.query(Organizer.id).filter(Organizer.is_active.is_(True)).all()
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing active organizers: {str(e)}")
            raise RepositoryException(f"Failed to list organizers: {str(e)}")

    def get_generation(self, organizer_id: str) -> int:
        """Current rules generation, read from the database (not the identity map)."""
        value = self._execute_scalar(
            self.db.query(Organizer.rules_generation).filter(Organizer.id == organizer_id)
        )
        return int(value or 0)

    def bump_generation(self, organizer_id: str) -> int:
        """Increment the rules generation in the current transaction and return it."""
        try:
            self.db.query(Organizer).filter(Organizer.id == organizer_id).update(
                {Organizer.rules_generation: Organizer.rules_generation + 1},
                synchronize_session="fetch",
            )
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error bumping generation for {organizer_id}: {str(e)}")
            raise RepositoryException(f"Failed to bump rules generation: {str(e)}")
        return self.get_generation(organizer_id)


class EventTypeRepository(BaseRepository[EventType]):
    def __init__(self, db: Session):
        super().__init__(db, EventType)

    def get_by_slug(self, organizer_id: str, slug: str) -> Optional[EventType]:
        return self.find_one_by(organizer_id=organizer_id, slug=slug, is_active=True)

    def list_active(self, organizer_id: str) -> List[EventType]:
        return self._execute_query(
            self._build_query()
            .filter(EventType.organizer_id == organizer_id, EventType.is_active.is_(True))
            .order_by(EventType.slug)
        )

    def get_many(self, organizer_id: str, ids: List[str]) -> List[EventType]:
        if not ids:
            return []
        return self._execute_query(
            self._build_query().filter(
                EventType.organizer_id == organizer_id, EventType.id.in_(ids)
            )
        )
