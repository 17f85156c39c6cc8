# backend/availability_engine/core/exceptions.py
"""
Domain-specific exceptions for the availability engine.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Every exception carries enough context (organizer, event type,
offending field) for a caller to correct configuration.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Availability-specific exceptions


class InvalidConfigurationException(ValidationException):
    """Raised when a rule is malformed at write time (e.g. zero-length interval)."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        organizer_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        payload: Dict[str, Any] = dict(details or {})
        if field:
            payload["field"] = field
        if organizer_id:
            payload["organizer_id"] = organizer_id
        super().__init__(message=message, code="INVALID_CONFIGURATION", details=payload)


class OutOfRangeException(ValidationException):
    """Raised when a requested date window exceeds the scheduling horizon."""

    def __init__(
        self,
        message: str,
        *,
        field: str = "end_date",
        boundary: Optional[str] = None,
        organizer_slug: Optional[str] = None,
        event_type_slug: Optional[str] = None,
    ):
        details: Dict[str, Any] = {"field": field}
        if boundary is not None:
            details["boundary"] = boundary
        if organizer_slug:
            details["organizer_slug"] = organizer_slug
        if event_type_slug:
            details["event_type_slug"] = event_type_slug
        super().__init__(message=message, code="OUT_OF_RANGE", details=details)


class InvalidTimezoneException(ValidationException):
    """Raised when a timezone identifier cannot be resolved."""

    def __init__(self, timezone_name: Optional[str], *, field: str = "timezone"):
        super().__init__(
            message=f"Unknown timezone: {timezone_name!r}",
            code="INVALID_TIMEZONE",
            details={"field": field, "timezone": timezone_name},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
