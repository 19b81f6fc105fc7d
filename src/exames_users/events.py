"""
Exames Users - Domain Events.

Domain events represent significant state changes of the User and Consent
aggregates. They are queued on the aggregate and published by the
repository after a successful save.

Architecture Layer: Domain
Principles: Pub/Sub, Immutability
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field, model_validator

from exames_common.domain import DomainEvent


class EventType(str, Enum):
    """Domain event types of the user and privacy domains."""

    USER_REGISTERED = "user.registered"
    USER_PROFILE_UPDATED = "user.profile.updated"
    USER_PREFERENCES_UPDATED = "user.preferences.updated"
    USER_EMAIL_VERIFIED = "user.email.verified"

    USER_LOGGED_IN = "auth.user.logged_in"
    TWO_FACTOR_ENABLED = "auth.two_factor.enabled"
    TWO_FACTOR_DISABLED = "auth.two_factor.disabled"

    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"

    CONSENT_GRANTED = "consent.granted"
    CONSENT_REVOKED = "consent.revoked"


class UserDomainEvent(DomainEvent):
    """Event about a user; the acting user is mirrored into metadata for auditing."""

    aggregate_type: str = Field(default="user")
    user_id: str

    @model_validator(mode="before")
    @classmethod
    def _attribute_user(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("user_id"):
            metadata = dict(data.get("metadata") or {})
            metadata.setdefault("user_id", data["user_id"])
            data = {**data, "metadata": metadata}
            data.setdefault("aggregate_id", data["user_id"])
        return data


class UserProfileUpdatedEvent(UserDomainEvent):
    """Published when one or more profile fields changed."""
    event_type: str = Field(default=EventType.USER_PROFILE_UPDATED.value)
    updated_fields: list[str]


class UserPreferencesUpdatedEvent(UserDomainEvent):
    """Published when theme or palette choices changed."""
    event_type: str = Field(default=EventType.USER_PREFERENCES_UPDATED.value)
    updated_fields: list[str]


class UserEmailVerifiedEvent(UserDomainEvent):
    """Published the first time a user's email is verified."""
    event_type: str = Field(default=EventType.USER_EMAIL_VERIFIED.value)
    email: str


class ConsentGrantedEvent(UserDomainEvent):
    """Published when a consent becomes active (new or renewed)."""
    event_type: str = Field(default=EventType.CONSENT_GRANTED.value)
    aggregate_type: str = Field(default="consent")
    consent_id: str
    data_type: str
    purpose: str


class ConsentRevokedEvent(UserDomainEvent):
    """Published when an active consent is revoked."""
    event_type: str = Field(default=EventType.CONSENT_REVOKED.value)
    aggregate_type: str = Field(default="consent")
    consent_id: str
    data_type: str
    purpose: str
    reason: str | None = None
