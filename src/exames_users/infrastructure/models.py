"""
Exames Users - ORM Models.

SQLAlchemy tables backing the User and Consent repositories. Column names
match the aggregates' persistence rows so mapping is a straight copy.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from exames_infrastructure.database import Base, TimestampMixin


class UserModel(Base, TimestampMixin):
    """Users table; email is unique."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bio: Mapped[str | None] = mapped_column(String(500), nullable=True)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    theme: Mapped[str] = mapped_column(String(20), nullable=False, default="light")
    primary_color: Mapped[str] = mapped_column(String(20), nullable=False, default="blue")
    secondary_color: Mapped[str] = mapped_column(String(20), nullable=False, default="gray")
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subscription_tier: Mapped[str] = mapped_column(String(20), nullable=False, default="free", index=True)
    subscription_status: Mapped[str] = mapped_column(String(20), nullable=False, default="inactive")

    _COLUMNS = (
        "id", "email", "name", "bio", "image", "theme", "primary_color", "secondary_color",
        "email_verified", "two_factor_enabled", "subscription_tier", "subscription_status",
        "created_at", "updated_at",
    )

    def to_row(self) -> dict[str, Any]:
        return {column: getattr(self, column) for column in self._COLUMNS}

    def apply_row(self, row: dict[str, Any]) -> None:
        for column in self._COLUMNS:
            setattr(self, column, row[column])


class ConsentModel(Base, TimestampMixin):
    """LGPD consent records; one row per user, data type and purpose."""

    __tablename__ = "lgpd_consents"
    __table_args__ = (
        UniqueConstraint("user_id", "data_type", "purpose", name="uq_consent_user_type_purpose"),
        Index("ix_consent_active", "consent_given", "consent_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    data_type: Mapped[str] = mapped_column(String(50), nullable=False)
    purpose: Mapped[str] = mapped_column(String(50), nullable=False)
    consent_given: Mapped[bool] = mapped_column(Boolean, nullable=False)
    consent_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    legal_basis: Mapped[str] = mapped_column(String(30), nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[str | None] = mapped_column("metadata", Text, nullable=True)

    _COLUMNS = (
        "id", "user_id", "data_type", "purpose", "consent_given", "consent_date", "revoked_date",
        "source", "legal_basis", "created_at", "updated_at",
    )

    def to_row(self) -> dict[str, Any]:
        row = {column: getattr(self, column) for column in self._COLUMNS}
        row["metadata"] = self.metadata_json
        return row

    def apply_row(self, row: dict[str, Any]) -> None:
        for column in self._COLUMNS:
            setattr(self, column, row[column])
        self.metadata_json = row["metadata"]
