# backend/availability_engine/api/dependencies/auth.py
"""
Organizer identification for management endpoints.

Authentication happens upstream; the gateway forwards the authenticated
organizer id in the X-Organizer-Id header.
"""

import asyncio
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ...models.organizer import Organizer
from ...repositories import RepositoryFactory
from .database import get_db

logger = logging.getLogger(__name__)

ORGANIZER_HEADER = "X-Organizer-Id"


async def get_current_organizer(
    organizer_id: Optional[str] = Header(default=None, alias=ORGANIZER_HEADER),
    db: Session = Depends(get_db),
) -> Organizer:
    """
    Resolve the organizer the request acts for.

    Raises:
        HTTPException: 401 without the header, 404 for unknown or inactive organizers
    """
    if not organizer_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {ORGANIZER_HEADER} header",
        )

    repository = RepositoryFactory.create_organizer_repository(db)
    organizer = await asyncio.to_thread(
        repository.get_by_id, organizer_id, load_relationships=False
    )
    if organizer is None or not organizer.is_active:
        logger.info(f"Rejected request for unknown organizer {organizer_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "message": "Organizer not found",
                "code": "ORGANIZER_NOT_FOUND",
                "details": {"organizer_id": organizer_id},
            },
        )
    return organizer
