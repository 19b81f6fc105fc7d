"""Exames Base SQLAlchemy Models - Foundation for all database entities.

Provides:
- Async-capable declarative base
- Automatic timestamp tracking in UTC
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from exames_common.utils import DateTimeUtils


class Base(AsyncAttrs, DeclarativeBase):
    """SQLAlchemy declarative base with async support."""


class TimestampMixin:
    """Mixin providing created_at/updated_at columns.

    Values are normally supplied by the aggregate; the defaults cover rows
    written outside the domain layer.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=DateTimeUtils.utc_now,
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=DateTimeUtils.utc_now,
        nullable=False,
    )
