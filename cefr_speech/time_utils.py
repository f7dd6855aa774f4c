"""Utility helpers for timezone-aware timestamps."""

from __future__ import annotations

from datetime import datetime

from .config import TIMEZONE


def utc_now() -> datetime:
    """Return the current datetime in UTC."""
    return datetime.now(TIMEZONE)


def now_ms() -> int:
    """Return the current UTC time as epoch milliseconds."""
    return int(utc_now().timestamp() * 1000)


def iso_from_ms(ts_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(ts_ms / 1000, TIMEZONE).isoformat()
