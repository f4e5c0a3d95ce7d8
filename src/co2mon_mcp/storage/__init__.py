"""Persistent sinks for decoded readings."""

from .reading_log import ReadingLog
