"""
Exames Users - Application Layer.

Use cases orchestrating authorization, validation, repositories and metrics.
"""
from .manage_consent import (
    ConsentSummary,
    GetUserConsentsRequest,
    GrantConsentRequest,
    ManageConsentRequest,
    ManageConsentUseCase,
    RevokeConsentRequest,
    UserConsentsResponse,
)
from .update_user_profile import (
    ProfileUpdateData,
    UpdateUserProfileRequest,
    UpdateUserProfileResponse,
    UpdateUserProfileUseCase,
    validate_profile_data,
)

__all__ = [
    "UpdateUserProfileUseCase",
    "UpdateUserProfileRequest",
    "UpdateUserProfileResponse",
    "ProfileUpdateData",
    "validate_profile_data",
    "ManageConsentUseCase",
    "ManageConsentRequest",
    "GrantConsentRequest",
    "RevokeConsentRequest",
    "GetUserConsentsRequest",
    "UserConsentsResponse",
    "ConsentSummary",
]
