"""
Exames Users - Domain Layer.

Aggregates (User, Consent), value objects and consent templates.
"""
from .consent import (
    Consent,
    ConsentSource,
    ConsentTemplates,
    LegalBasis,
    LGPDDataType,
    LGPDPurpose,
)
from .entities import UNSET, SubscriptionStatus, SubscriptionTier, User
from .value_objects import (
    ColorPalette,
    Password,
    PasswordHashingService,
    Theme,
    UserEmail,
    UserPreferences,
    UserProfile,
)

__all__ = [
    "User",
    "UNSET",
    "SubscriptionTier",
    "SubscriptionStatus",
    "Consent",
    "ConsentTemplates",
    "ConsentSource",
    "LegalBasis",
    "LGPDDataType",
    "LGPDPurpose",
    "UserEmail",
    "UserProfile",
    "UserPreferences",
    "Password",
    "PasswordHashingService",
    "Theme",
    "ColorPalette",
]
