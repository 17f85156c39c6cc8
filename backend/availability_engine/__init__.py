"""Availability resolution engine for the meeting scheduling platform."""

__version__ = "0.1.0"
