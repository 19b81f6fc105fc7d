"""Exames Common Utilities - DateTime and Validation helpers."""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse


class DateTimeUtils:
    """Timezone-aware datetime utilities."""

    @staticmethod
    def utc_now() -> datetime:
        """Get current UTC datetime with timezone info."""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """Treat naive datetimes as UTC and convert aware ones to UTC."""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def to_iso_string(dt: datetime) -> str:
        return DateTimeUtils.ensure_utc(dt).isoformat()

    @staticmethod
    def from_iso_string(iso_str: str) -> datetime:
        return DateTimeUtils.ensure_utc(datetime.fromisoformat(iso_str))

    @staticmethod
    def add_months(dt: datetime, months: int) -> datetime:
        """
        Calendar month arithmetic.

        The day is clamped to the length of the target month, so
        2024-01-31 plus one month is 2024-02-29.
        """
        month_index = dt.month - 1 + months
        year = dt.year + month_index // 12
        month = month_index % 12 + 1
        day = min(dt.day, calendar.monthrange(year, month)[1])
        return dt.replace(year=year, month=month, day=day)

    @staticmethod
    def days_ago(days: int) -> datetime:
        return DateTimeUtils.utc_now() - timedelta(days=days)


class ValidationPatterns:
    """Compiled regex patterns for common validations."""
    EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class ValidationUtils:
    """Input validation utilities."""

    @staticmethod
    def is_valid_email(email: str) -> bool:
        return bool(ValidationPatterns.EMAIL.match(email))

    @staticmethod
    def is_valid_uuid(value: str) -> bool:
        return bool(ValidationPatterns.UUID.match(value))

    @staticmethod
    def is_http_url(value: str) -> bool:
        """True for absolute http(s) URLs with a host."""
        try:
            parsed = urlparse(value)
        except ValueError:
            return False
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)
