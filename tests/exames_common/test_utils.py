"""
Unit tests for Exames utilities.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from exames_common.utils import DateTimeUtils, ValidationUtils


class TestDateTimeUtils:
    """Tests for DateTimeUtils."""

    def test_utc_now_is_aware(self) -> None:
        assert DateTimeUtils.utc_now().tzinfo is not None

    def test_ensure_utc_naive(self) -> None:
        dt = DateTimeUtils.ensure_utc(datetime(2024, 1, 1, 12, 0))
        assert dt.tzinfo == timezone.utc
        assert dt.hour == 12

    def test_ensure_utc_converts_offset(self) -> None:
        brt = timezone(timedelta(hours=-3))
        dt = DateTimeUtils.ensure_utc(datetime(2024, 1, 1, 9, 0, tzinfo=brt))
        assert dt.hour == 12

    def test_iso_round_trip(self) -> None:
        dt = datetime(2024, 5, 17, 8, 30, tzinfo=timezone.utc)
        assert DateTimeUtils.from_iso_string(DateTimeUtils.to_iso_string(dt)) == dt

    @pytest.mark.parametrize("start,months,expected", [
        (datetime(2024, 1, 31), 1, datetime(2024, 2, 29)),
        (datetime(2023, 1, 31), 1, datetime(2023, 2, 28)),
        (datetime(2024, 11, 15), 3, datetime(2025, 2, 15)),
        (datetime(2022, 6, 30), 24, datetime(2024, 6, 30)),
        (datetime(2024, 3, 31), -1, datetime(2024, 2, 29)),
    ])
    def test_add_months_clamps_day(self, start: datetime, months: int, expected: datetime) -> None:
        assert DateTimeUtils.add_months(start, months) == expected

    def test_days_ago(self) -> None:
        delta = DateTimeUtils.utc_now() - DateTimeUtils.days_ago(7)
        assert timedelta(days=7) <= delta < timedelta(days=7, seconds=5)


class TestValidationUtils:
    """Tests for ValidationUtils."""

    @pytest.mark.parametrize("email,valid", [
        ("a@x.com", True),
        ("first.last@sub.domain.org", True),
        ("no-at-sign.com", False),
        ("a@nodot", False),
        ("with space@x.com", False),
    ])
    def test_is_valid_email(self, email: str, valid: bool) -> None:
        assert ValidationUtils.is_valid_email(email) is valid

    def test_is_valid_uuid(self) -> None:
        assert ValidationUtils.is_valid_uuid("123e4567-e89b-12d3-a456-426614174000")
        assert not ValidationUtils.is_valid_uuid("not-a-uuid")

    @pytest.mark.parametrize("url,valid", [
        ("https://cdn.example.com/a.png", True),
        ("http://example.com", True),
        ("ftp://example.com/a.png", False),
        ("/relative/path.png", False),
        ("https://", False),
    ])
    def test_is_http_url(self, url: str, valid: bool) -> None:
        assert ValidationUtils.is_http_url(url) is valid
