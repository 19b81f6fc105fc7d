"""
Exames Users - Domain Entities.

The User aggregate: identity, profile, preferences, security flags and
subscription entitlements. State changes that other parts of the system care
about queue domain events; the repository publishes them after saving.

Architecture Layer: Domain
Principles: Clean Architecture, Aggregate Consistency Boundary
"""
from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Final

from pydantic import Field
import structlog

from exames_common.domain import AggregateRoot, generate_id
from exames_common.exceptions import UserError
from exames_common.utils import DateTimeUtils

from ..events import UserEmailVerifiedEvent, UserPreferencesUpdatedEvent, UserProfileUpdatedEvent
from .value_objects import ColorPalette, Theme, UserEmail, UserPreferences, UserProfile

logger = structlog.get_logger(__name__)


class _Unset:
    """Marker for 'field not supplied' in partial updates."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()


class SubscriptionTier(str, Enum):
    """Billing tier of a user."""

    FREE = "free"
    PRO = "pro"
    FAMILY = "family"

    @property
    def max_uploads_per_month(self) -> int:
        return {SubscriptionTier.FREE: 5, SubscriptionTier.PRO: 50, SubscriptionTier.FAMILY: 200}[self]


class SubscriptionStatus(str, Enum):
    """Billing status of a user; owned by the billing collaborator."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"


class User(AggregateRoot[str]):
    """
    User aggregate root.

    Business Rules:
    - Profile and preference updates that change nothing are no-ops: no
      timestamp bump and no event
    - Email verification is idempotent
    - Two-factor toggles are strict: enabling an enabled flag is an error
    - Subscription updates are unconditional and raise no event; billing
      owns subscription events

    Invariants:
    - id and created_at never change
    - updated_at only advances on a state-changing mutation
    """

    _entity_type: ClassVar[str] = "user"

    email: UserEmail
    profile: UserProfile
    preferences: UserPreferences = Field(default_factory=UserPreferences.default)
    is_email_verified: bool = Field(default=False)
    is_two_factor_enabled: bool = Field(default=False)
    subscription_tier: SubscriptionTier = Field(default=SubscriptionTier.FREE)
    subscription_status: SubscriptionStatus = Field(default=SubscriptionStatus.INACTIVE)

    @classmethod
    def create(
        cls,
        email: UserEmail,
        profile: UserProfile,
        preferences: UserPreferences | None = None,
        *,
        is_email_verified: bool = False,
        is_two_factor_enabled: bool = False,
        subscription_tier: SubscriptionTier = SubscriptionTier.FREE,
        subscription_status: SubscriptionStatus = SubscriptionStatus.INACTIVE,
    ) -> User:
        """Factory for a brand new user with fresh id and timestamps."""
        now = DateTimeUtils.utc_now()
        return cls(
            id=generate_id(),
            email=email,
            profile=profile,
            preferences=preferences or UserPreferences.default(),
            is_email_verified=is_email_verified,
            is_two_factor_enabled=is_two_factor_enabled,
            subscription_tier=subscription_tier,
            subscription_status=subscription_status,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def from_persistence(cls, data: dict[str, Any]) -> User:
        """Rehydrate from a storage row; missing optional columns take defaults."""
        return cls(
            id=data["id"],
            email=UserEmail.create(data["email"]),
            profile=UserProfile.create(
                name=data["name"], bio=data.get("bio"), image_url=data.get("image"),
            ),
            preferences=UserPreferences.create(
                theme=data.get("theme") or Theme.LIGHT,
                primary_color=data.get("primary_color") or ColorPalette.BLUE,
                secondary_color=data.get("secondary_color") or ColorPalette.GRAY,
            ),
            is_email_verified=bool(data.get("email_verified") or False),
            is_two_factor_enabled=bool(data.get("two_factor_enabled") or False),
            subscription_tier=data.get("subscription_tier") or SubscriptionTier.FREE,
            subscription_status=data.get("subscription_status") or SubscriptionStatus.INACTIVE,
            created_at=DateTimeUtils.ensure_utc(data["created_at"]),
            updated_at=DateTimeUtils.ensure_utc(data["updated_at"]),
        )

    def update_profile(
        self,
        *,
        name: str | _Unset = UNSET,
        bio: str | None | _Unset = UNSET,
        image_url: str | None | _Unset = UNSET,
    ) -> list[str]:
        """
        Apply a partial profile update.

        The candidate profile is built first and compared field by field with
        the current one, so supplying a value equal to the current value (after
        normalization) is not a change.

        Returns:
            Names of the fields that actually changed, in name/bio/image_url order

        Raises:
            ValidationError: If the resulting profile is invalid
        """
        current = self.profile
        candidate = UserProfile.create(
            name=current.name if isinstance(name, _Unset) else name,
            bio=current.bio if isinstance(bio, _Unset) else bio,
            image_url=current.image_url if isinstance(image_url, _Unset) else image_url,
        )
        updated_fields = [
            field_name
            for field_name in ("name", "bio", "image_url")
            if getattr(candidate, field_name) != getattr(current, field_name)
        ]
        if not updated_fields:
            return []

        self.profile = candidate
        self.touch()
        self._raise_event(UserProfileUpdatedEvent(
            aggregate_id=self.id, user_id=self.id, updated_fields=updated_fields,
        ))
        logger.info("user_profile_updated", user_id=self.id, updated_fields=updated_fields)
        return updated_fields

    def update_preferences(
        self,
        *,
        theme: Theme | str | None = None,
        primary_color: ColorPalette | str | None = None,
        secondary_color: ColorPalette | str | None = None,
    ) -> list[str]:
        """Apply a partial preferences update; returns the changed field names."""
        current = self.preferences
        candidate = UserPreferences.create(
            theme=theme if theme is not None else current.theme,
            primary_color=primary_color if primary_color is not None else current.primary_color,
            secondary_color=secondary_color if secondary_color is not None else current.secondary_color,
        )
        updated_fields = [
            field_name
            for field_name in ("theme", "primary_color", "secondary_color")
            if getattr(candidate, field_name) != getattr(current, field_name)
        ]
        if not updated_fields:
            return []

        self.preferences = candidate
        self.touch()
        self._raise_event(UserPreferencesUpdatedEvent(
            aggregate_id=self.id, user_id=self.id, updated_fields=updated_fields,
        ))
        return updated_fields

    def verify_email(self) -> None:
        """Mark the email verified. Idempotent."""
        if self.is_email_verified:
            return
        self.is_email_verified = True
        self.touch()
        self._raise_event(UserEmailVerifiedEvent(
            aggregate_id=self.id, user_id=self.id, email=self.email.value,
        ))
        logger.info("user_email_verified", user_id=self.id)

    def enable_two_factor(self) -> None:
        if self.is_two_factor_enabled:
            raise UserError("Two-factor authentication is already enabled",
                            context={"user_id": self.id})
        self.is_two_factor_enabled = True
        self.touch()
        logger.info("user_two_factor_enabled", user_id=self.id)

    def disable_two_factor(self) -> None:
        if not self.is_two_factor_enabled:
            raise UserError("Two-factor authentication is already disabled",
                            context={"user_id": self.id})
        self.is_two_factor_enabled = False
        self.touch()
        logger.info("user_two_factor_disabled", user_id=self.id)

    def update_subscription(self, tier: SubscriptionTier | str,
                            status: SubscriptionStatus | str) -> None:
        """Overwrite tier and status."""
        self.subscription_tier = SubscriptionTier(tier)
        self.subscription_status = SubscriptionStatus(status)
        self.touch()

    def can_access_pro_features(self) -> bool:
        return (self.subscription_tier != SubscriptionTier.FREE
                and self.subscription_status == SubscriptionStatus.ACTIVE)

    def can_manage_family_accounts(self) -> bool:
        return (self.subscription_tier == SubscriptionTier.FAMILY
                and self.subscription_status == SubscriptionStatus.ACTIVE)

    def get_max_uploads_per_month(self) -> int:
        return self.subscription_tier.max_uploads_per_month

    def to_persistence(self) -> dict[str, Any]:
        """Flat storage row."""
        return {
            "id": self.id,
            "email": self.email.value,
            "name": self.profile.name,
            "bio": self.profile.bio,
            "image": self.profile.image_url,
            "theme": self.preferences.theme.value,
            "primary_color": self.preferences.primary_color.value,
            "secondary_color": self.preferences.secondary_color.value,
            "email_verified": self.is_email_verified,
            "two_factor_enabled": self.is_two_factor_enabled,
            "subscription_tier": self.subscription_tier.value,
            "subscription_status": self.subscription_status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_response(self) -> dict[str, Any]:
        """API representation."""
        return {
            "id": self.id,
            "email": self.email.value,
            "profile": self.profile.to_dict(),
            "preferences": self.preferences.to_dict(),
            "email_verified": self.is_email_verified,
            "two_factor_enabled": self.is_two_factor_enabled,
            "subscription": {
                "tier": self.subscription_tier.value,
                "status": self.subscription_status.value,
                "max_uploads_per_month": self.get_max_uploads_per_month(),
                "can_access_pro_features": self.can_access_pro_features(),
                "can_manage_family_accounts": self.can_manage_family_accounts(),
            },
            "created_at": DateTimeUtils.to_iso_string(self.created_at),
            "updated_at": DateTimeUtils.to_iso_string(self.updated_at),
        }
