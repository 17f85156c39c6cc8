# backend/availability_engine/routes/v1/__init__.py
"""API v1 routers, mounted under /api/v1 in main.py."""

from . import availability, events

__all__ = ["availability", "events"]
