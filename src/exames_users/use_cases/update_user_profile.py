"""
Exames Users - Update User Profile Use Case.

Partial profile update on behalf of the profile owner.

Architecture Layer: Application
Principles: Single Responsibility, Explicit Result, Fail Fast on Input
"""
from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from exames_common.domain import Result, UseCase
from exames_common.exceptions import (
    AuthorizationError,
    ExamesError,
    InfrastructureError,
    UserNotFoundError,
    ValidationError,
)
from exames_common.utils import ValidationUtils
from exames_infrastructure.observability import (
    Metrics,
    MetricsRegistry,
    bind_log_context,
    measure_performance,
)

from ..domain.entities import User
from ..domain.value_objects import UserProfile
from ..infrastructure.repository import UserRepository

PROFILE_FIELDS = ("name", "bio", "image_url")


class ProfileUpdateData(BaseModel):
    """Fields a caller may change; only the fields actually sent are applied."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    bio: str | None = None
    image_url: str | None = None

    @property
    def supplied_fields(self) -> list[str]:
        return [f for f in PROFILE_FIELDS if f in self.model_fields_set]


class UpdateUserProfileRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    requesting_user_id: str = Field(..., min_length=1)
    profile_data: ProfileUpdateData = Field(default_factory=ProfileUpdateData)


class UpdateUserProfileResponse(BaseModel):
    user: User
    updated_fields: list[str]

    def to_response(self) -> dict[str, Any]:
        return {"user": self.user.to_response(), "updated_fields": list(self.updated_fields)}


def validate_profile_data(data: ProfileUpdateData) -> ValidationError | None:
    """
    Check the raw update before touching the aggregate.

    All field failures are folded into one ValidationError.
    """
    supplied = data.supplied_fields
    if not supplied:
        return ValidationError("profile_data", {},
                               "At least one profile field must be provided for update")

    errors: list[ValidationError] = []
    if "name" in supplied:
        name = (data.name or "").strip()
        if not name:
            errors.append(ValidationError("name", data.name, "Name is required"))
        elif len(name) < UserProfile.NAME_MIN:
            errors.append(ValidationError("name", data.name, "Name must be at least 2 characters"))
        elif len(name) > UserProfile.NAME_MAX:
            errors.append(ValidationError("name", data.name, "Name is too long (max 100 characters)"))
    if "bio" in supplied and data.bio and len(data.bio.strip()) > UserProfile.BIO_MAX:
        errors.append(ValidationError("bio", data.bio, "Bio is too long (max 500 characters)"))
    if ("image_url" in supplied and data.image_url and data.image_url.strip()
            and not ValidationUtils.is_http_url(data.image_url.strip())):
        errors.append(ValidationError("image_url", data.image_url, "Invalid image URL format"))
    return ValidationError.aggregate(errors) if errors else None


class UpdateUserProfileUseCase(UseCase[UpdateUserProfileRequest, UpdateUserProfileResponse]):
    """
    Update name, bio and image of the requesting user's own profile.

    Flow: authorize, validate input, load user, apply the update, skip the
    save when nothing changed, otherwise save (which publishes
    UserProfileUpdatedEvent).
    """

    def __init__(self, user_repository: UserRepository, metrics: Metrics | None = None) -> None:
        self._users = user_repository
        self._metrics: Metrics = metrics or MetricsRegistry()

    async def execute(
        self, request: UpdateUserProfileRequest,
    ) -> Result[UpdateUserProfileResponse, ExamesError]:
        log = bind_log_context(domain="users", usecase="update_user_profile",
                               layer="application", user_id=request.user_id)
        start = time.perf_counter()
        status = "error"
        try:
            if request.user_id != request.requesting_user_id:
                status = "unauthorized"
                log.warning("profile_update_unauthorized",
                            requesting_user_id=request.requesting_user_id)
                return Result.failure(AuthorizationError("Users can only update their own profiles"))

            validation_error = validate_profile_data(request.profile_data)
            if validation_error is not None:
                status = "validation_failed"
                log.info("profile_update_validation_failed", error=validation_error.message)
                return Result.failure(validation_error)

            user = await self._users.find_by_id(request.user_id)
            if user is None:
                status = "user_not_found"
                return Result.failure(UserNotFoundError(request.user_id))

            supplied = request.profile_data.supplied_fields
            changes = {f: getattr(request.profile_data, f) for f in supplied}
            updated_fields = [f for f in user.update_profile(**changes) if f in supplied]

            if not updated_fields:
                status = "no_changes"
                log.info("profile_update_no_changes")
                return Result.success(UpdateUserProfileResponse(user=user, updated_fields=[]))

            async with measure_performance("user_repository.save", metrics=self._metrics,
                                           domain="users", user_id=user.id):
                await self._users.save(user)

            status = "success"
            for field_name in updated_fields:
                self._metrics.counter("user_profile_fields_updated_total", labels={"field": field_name})
            log.info("profile_updated", updated_fields=updated_fields)
            return Result.success(UpdateUserProfileResponse(user=user, updated_fields=updated_fields))
        except ExamesError as e:
            if isinstance(e, ValidationError):
                status = "validation_failed"
            log.error("profile_update_failed", error_code=e.code, error=e.message)
            return Result.failure(e)
        except Exception as e:
            log.error("profile_update_failed", error_type=type(e).__name__, error=str(e))
            return Result.failure(InfrastructureError(str(e), "UserService", cause=e))
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self._metrics.counter("user_profile_update_attempts_total", labels={"status": status})
            self._metrics.histogram("user_profile_update_duration_ms", duration_ms)
            log.debug("profile_update_finished", status=status, duration_ms=round(duration_ms, 3))
