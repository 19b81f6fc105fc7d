"""
Exames Users - REST API Endpoints.

Thin HTTP adapter over the use cases. Authentication happens upstream; the
authenticated subject arrives in the X-User-Id header and is passed to the
use cases as the requesting user.

Architecture Layer: Presentation
Principles: Thin Controllers, Dependency Injection, DTOs
"""
from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import structlog

from exames_common.domain import Result
from exames_common.exceptions import AuthenticationError, ErrorHandler

from .container import ServiceContainer
from .domain.consent import ConsentSource, LegalBasis, LGPDDataType, LGPDPurpose
from .use_cases import (
    GetUserConsentsRequest,
    GrantConsentRequest,
    ManageConsentRequest,
    ProfileUpdateData,
    RevokeConsentRequest,
    UpdateUserProfileRequest,
)

logger = structlog.get_logger(__name__)
router = APIRouter()


# --- Request Models ---


class GrantConsentBody(BaseModel):
    """Consent grant payload."""
    data_type: LGPDDataType
    purpose: LGPDPurpose
    legal_basis: LegalBasis = LegalBasis.CONSENT
    source: ConsentSource = ConsentSource.EXPLICIT_REQUEST
    metadata: dict[str, Any] | None = None


class RevokeConsentBody(BaseModel):
    """Consent revocation payload; consent_id or data_type plus purpose."""
    consent_id: str | None = None
    data_type: LGPDDataType | None = None
    purpose: LGPDPurpose | None = None
    reason: str | None = Field(default=None, max_length=500)


class ManageConsentBody(BaseModel):
    """Generic consent payload routed by ManageConsentUseCase.execute."""
    consent_id: str | None = None
    data_type: LGPDDataType | None = None
    purpose: LGPDPurpose | None = None
    reason: str | None = Field(default=None, max_length=500)
    legal_basis: LegalBasis = LegalBasis.CONSENT
    source: ConsentSource = ConsentSource.EXPLICIT_REQUEST
    metadata: dict[str, Any] | None = None
    include_revoked: bool = False


# --- Dependencies ---


def get_container(request: Request) -> ServiceContainer:
    """Get service container from app state."""
    container = getattr(request.app.state, "container", None)
    if container is None or not container.started:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not available",
        )
    return container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]
RequesterHeader = Annotated[str | None, Header(alias="X-User-Id")]


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_response"):
        return value.to_response()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return jsonable_encoder(value)


def result_to_response(result: Result[Any, Any], *, expose_details: bool = False,
                       success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Render a use-case Result: the payload on success, an ErrorResponse on failure."""
    if result.is_success():
        return JSONResponse(status_code=success_status, content=_serialize(result.get_value()))
    error = ErrorHandler.get_error_response(result.get_error(), expose_details=expose_details)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error))


def _unauthenticated() -> Result[Any, Any]:
    return Result.failure(AuthenticationError("Missing X-User-Id header"))


# --- Endpoints ---


@router.patch("/users/{user_id}/profile")
async def update_profile(user_id: str, body: ProfileUpdateData, container: ContainerDep,
                         x_user_id: RequesterHeader = None) -> JSONResponse:
    """Partially update the requesting user's profile."""
    expose = container.settings.is_development
    if not x_user_id:
        return result_to_response(_unauthenticated(), expose_details=expose)
    result = await container.update_user_profile.execute(UpdateUserProfileRequest(
        user_id=user_id, requesting_user_id=x_user_id, profile_data=body,
    ))
    return result_to_response(result, expose_details=expose)


@router.get("/users/{user_id}/consents")
async def list_consents(
    user_id: str,
    container: ContainerDep,
    x_user_id: RequesterHeader = None,
    include_revoked: bool = Query(default=False),
    data_type: LGPDDataType | None = Query(default=None),
    purpose: LGPDPurpose | None = Query(default=None),
) -> JSONResponse:
    """List the user's consents with a summary."""
    expose = container.settings.is_development
    if not x_user_id:
        return result_to_response(_unauthenticated(), expose_details=expose)
    result = await container.manage_consent.get_user_consents(GetUserConsentsRequest(
        user_id=user_id, requesting_user_id=x_user_id, include_revoked=include_revoked,
        data_type=data_type, purpose=purpose,
    ))
    return result_to_response(result, expose_details=expose)


@router.post("/users/{user_id}/consents")
async def grant_consent(user_id: str, body: GrantConsentBody, container: ContainerDep,
                        x_user_id: RequesterHeader = None) -> JSONResponse:
    """Grant (or renew) a consent."""
    expose = container.settings.is_development
    if not x_user_id:
        return result_to_response(_unauthenticated(), expose_details=expose)
    result = await container.manage_consent.grant_consent(GrantConsentRequest(
        user_id=user_id, requesting_user_id=x_user_id, **body.model_dump(),
    ))
    return result_to_response(result, expose_details=expose)


@router.post("/users/{user_id}/consents/revoke")
async def revoke_consent(user_id: str, body: RevokeConsentBody, container: ContainerDep,
                         x_user_id: RequesterHeader = None) -> JSONResponse:
    """Revoke a consent by id or by data type and purpose."""
    expose = container.settings.is_development
    if not x_user_id:
        return result_to_response(_unauthenticated(), expose_details=expose)
    result = await container.manage_consent.revoke_consent(RevokeConsentRequest(
        user_id=user_id, requesting_user_id=x_user_id, **body.model_dump(),
    ))
    return result_to_response(result, expose_details=expose)


@router.post("/users/{user_id}/consents/manage")
async def manage_consent(user_id: str, body: ManageConsentBody, container: ContainerDep,
                         x_user_id: RequesterHeader = None) -> JSONResponse:
    """Single generic consent endpoint."""
    expose = container.settings.is_development
    if not x_user_id:
        return result_to_response(_unauthenticated(), expose_details=expose)
    result = await container.manage_consent.execute(ManageConsentRequest(
        user_id=user_id, requesting_user_id=x_user_id, **body.model_dump(),
    ))
    return result_to_response(result, expose_details=expose)


@router.get("/health")
async def health(container: ContainerDep) -> JSONResponse:
    """Aggregated component health."""
    result = await container.check_health()
    code = (status.HTTP_503_SERVICE_UNAVAILABLE if result.status.value == "unhealthy"
            else status.HTTP_200_OK)
    return JSONResponse(status_code=code, content=jsonable_encoder(result))


@router.get("/live", include_in_schema=False)
async def liveness() -> dict[str, str]:
    """Liveness probe; does not touch dependencies."""
    return {"status": "alive"}
