"""
Exames Users - Manage Consent Use Case.

LGPD consent lifecycle on behalf of the data subject: grant, revoke, list,
and seeding of the default consents at registration.

Architecture Layer: Application
Principles: Explicit Entry Points, Explicit Result, Idempotent Grants
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from exames_common.domain import Result, UseCase
from exames_common.exceptions import (
    AuthorizationError,
    ExamesError,
    InfrastructureError,
    ValidationError,
)
from exames_infrastructure.observability import Metrics, MetricsRegistry, bind_log_context

from ..config import ConsentPolicyConfig
from ..domain.consent import (
    Consent,
    ConsentSource,
    ConsentTemplates,
    LegalBasis,
    LGPDDataType,
    LGPDPurpose,
)
from ..infrastructure.repository import ConsentRepository, ConsentSearchOptions

MANAGE_OWN_CONSENT = "Users can only manage their own consent"
VIEW_OWN_CONSENT = "Users can only view their own consent"


class GrantConsentRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    requesting_user_id: str = Field(..., min_length=1)
    data_type: LGPDDataType
    purpose: LGPDPurpose
    legal_basis: LegalBasis = LegalBasis.CONSENT
    source: ConsentSource = ConsentSource.EXPLICIT_REQUEST
    metadata: dict[str, Any] | None = None


class RevokeConsentRequest(BaseModel):
    """Target either by consent_id or by (data_type, purpose)."""

    user_id: str = Field(..., min_length=1)
    requesting_user_id: str = Field(..., min_length=1)
    consent_id: str | None = None
    data_type: LGPDDataType | None = None
    purpose: LGPDPurpose | None = None
    reason: str | None = Field(default=None, max_length=500)


class GetUserConsentsRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    requesting_user_id: str = Field(..., min_length=1)
    include_revoked: bool = False
    data_type: LGPDDataType | None = None
    purpose: LGPDPurpose | None = None


class ManageConsentRequest(BaseModel):
    """Generic request for the single-endpoint adapter; see ManageConsentUseCase.execute."""

    user_id: str = Field(..., min_length=1)
    requesting_user_id: str = Field(..., min_length=1)
    consent_id: str | None = None
    data_type: LGPDDataType | None = None
    purpose: LGPDPurpose | None = None
    reason: str | None = Field(default=None, max_length=500)
    legal_basis: LegalBasis = LegalBasis.CONSENT
    source: ConsentSource = ConsentSource.EXPLICIT_REQUEST
    metadata: dict[str, Any] | None = None
    include_revoked: bool = False


class ConsentSummary(BaseModel):
    total_active: int = 0
    total_revoked: int = 0
    needing_renewal: int = 0
    expired: int = 0


class UserConsentsResponse(BaseModel):
    consents: list[Consent]
    summary: ConsentSummary

    def to_response(self) -> dict[str, Any]:
        return {"consents": [c.to_response() for c in self.consents],
                "summary": self.summary.model_dump()}


class ManageConsentUseCase(UseCase[ManageConsentRequest, Any]):
    """
    Consent management for the requesting user.

    Every entry point checks that the requester is the data subject before
    touching storage. Events are queued on the Consent aggregate and
    published by the repository on save.
    """

    def __init__(self, consent_repository: ConsentRepository, metrics: Metrics | None = None,
                 policy: ConsentPolicyConfig | None = None) -> None:
        self._consents = consent_repository
        self._metrics: Metrics = metrics or MetricsRegistry()
        self._policy = policy or ConsentPolicyConfig()

    def _fail(self, operation: str, error: ExamesError) -> Result[Any, ExamesError]:
        self._metrics.counter("lgpd_consent_errors_total",
                              labels={"operation": operation, "code": error.code})
        return Result.failure(error)

    def _unexpected(self, operation: str, error: Exception) -> Result[Any, ExamesError]:
        return self._fail(operation, InfrastructureError(str(error), "ConsentService", cause=error))

    async def grant_consent(self, request: GrantConsentRequest) -> Result[Consent, ExamesError]:
        """
        Grant consent for a data type and purpose.

        Idempotent: an active consent is returned unchanged, an inactive one is
        renewed in place, otherwise a new consent is created.
        """
        log = bind_log_context(domain="privacy", usecase="grant_consent", layer="application",
                               user_id=request.user_id)
        if request.user_id != request.requesting_user_id:
            return self._fail("grant", AuthorizationError(MANAGE_OWN_CONSENT))
        try:
            consent = await self._consents.find_by_user_and_type(
                request.user_id, request.data_type, request.purpose,
            )
            if consent is not None and consent.is_active():
                log.debug("consent_already_active", consent_id=consent.id)
                self._count_grant(request, "unchanged")
                return Result.success(consent)
            if consent is not None:
                consent.renew(request.source)
                action = "renewed"
            else:
                consent = Consent.create(
                    request.user_id, request.data_type, request.purpose,
                    consent_given=True, source=request.source,
                    legal_basis=request.legal_basis, metadata=request.metadata,
                )
                action = "created"
            await self._consents.save(consent)
        except ExamesError as e:
            log.error("consent_grant_failed", error_code=e.code, error=e.message)
            return self._fail("grant", e)
        except Exception as e:
            log.error("consent_grant_failed", error_type=type(e).__name__, error=str(e))
            return self._unexpected("grant", e)

        self._count_grant(request, action)
        log.info("consent_granted", consent_id=consent.id, action=action,
                 data_type=request.data_type.value, purpose=request.purpose.value)
        return Result.success(consent)

    def _count_grant(self, request: GrantConsentRequest, action: str) -> None:
        self._metrics.counter("lgpd_consent_granted_total", labels={
            "data_type": request.data_type.value,
            "purpose": request.purpose.value,
            "action": action,
        })

    async def revoke_consent(self, request: RevokeConsentRequest) -> Result[Consent, ExamesError]:
        """
        Revoke one consent, found by id or by its active (data_type, purpose) record.
        """
        log = bind_log_context(domain="privacy", usecase="revoke_consent", layer="application",
                               user_id=request.user_id)
        if request.user_id != request.requesting_user_id:
            return self._fail("revoke", AuthorizationError(MANAGE_OWN_CONSENT))
        try:
            if request.consent_id:
                consent = await self._consents.find_by_id(request.consent_id)
                if consent is None:
                    return self._fail("revoke", ValidationError(
                        "consent_id", request.consent_id, "Consent not found"))
                if consent.user_id != request.user_id:
                    return self._fail("revoke", AuthorizationError(
                        "Cannot revoke consent belonging to another user"))
            elif request.data_type is not None and request.purpose is not None:
                consent = await self._consents.find_active_by_user_and_type(
                    request.user_id, request.data_type, request.purpose,
                )
                if consent is None:
                    return self._fail("revoke", ValidationError(
                        "consent", f"{request.data_type.value}:{request.purpose.value}",
                        "No active consent found for specified type and purpose"))
            else:
                return self._fail("revoke", ValidationError(
                    "request", None,
                    "Either consent_id or both data_type and purpose must be provided"))

            consent.revoke(request.reason)
            await self._consents.save(consent)
        except ExamesError as e:
            log.error("consent_revoke_failed", error_code=e.code, error=e.message)
            return self._fail("revoke", e)
        except Exception as e:
            log.error("consent_revoke_failed", error_type=type(e).__name__, error=str(e))
            return self._unexpected("revoke", e)

        self._metrics.counter("lgpd_consent_revoked_total",
                              labels={"has_reason": "yes" if request.reason else "no"})
        log.info("consent_revoked", consent_id=consent.id, data_type=consent.data_type.value,
                 purpose=consent.purpose.value, reason=request.reason)
        return Result.success(consent)

    async def get_user_consents(
        self, request: GetUserConsentsRequest,
    ) -> Result[UserConsentsResponse, ExamesError]:
        """List a user's consents with active/revoked/renewal/expiry counts."""
        log = bind_log_context(domain="privacy", usecase="get_user_consents", layer="application",
                               user_id=request.user_id)
        if request.user_id != request.requesting_user_id:
            return self._fail("list", AuthorizationError(VIEW_OWN_CONSENT))
        try:
            consents = await self._consents.find_by_user(request.user_id, ConsentSearchOptions(
                include_revoked=request.include_revoked,
                data_type=request.data_type,
                purpose=request.purpose,
            ))
        except ExamesError as e:
            return self._fail("list", e)
        except Exception as e:
            return self._unexpected("list", e)

        active = [c for c in consents if c.is_active()]
        summary = ConsentSummary(
            total_active=len(active),
            total_revoked=len(consents) - len(active),
            needing_renewal=sum(
                1 for c in active if c.needs_renewal(self._policy.renewal_threshold_months)
            ),
            expired=sum(1 for c in active if c.is_expired(self._policy.max_age_months)),
        )
        log.debug("user_consents_retrieved", **summary.model_dump())
        return Result.success(UserConsentsResponse(consents=consents, summary=summary))

    async def execute(self, request: ManageConsentRequest) -> Result[Any, ExamesError]:
        """
        Route a generic request.

        A reason means revoke; data_type plus purpose without a consent_id
        means grant; anything else is a read, so a bare consent_id never
        withdraws a consent.
        """
        fields = request.model_dump()
        if request.reason:
            return await self.revoke_consent(RevokeConsentRequest.model_validate(fields))
        if (request.consent_id is None and request.data_type is not None
                and request.purpose is not None):
            return await self.grant_consent(GrantConsentRequest.model_validate(fields))
        return await self.get_user_consents(GetUserConsentsRequest.model_validate(fields))

    async def initialize_default_consents(self, user_id: str) -> Result[list[Consent], ExamesError]:
        """
        Seed the registration consents.

        Saves run one by one with no rollback: on failure the consents already
        saved stay and the error is returned. Records that already exist for
        the same data type and purpose are skipped, so calling this again
        completes a partial run.
        """
        log = bind_log_context(domain="privacy", usecase="initialize_default_consents",
                               layer="application", user_id=user_id)
        saved: list[Consent] = []
        try:
            for consent in ConsentTemplates.registration_defaults(user_id):
                existing = await self._consents.find_by_user_and_type(
                    user_id, consent.data_type, consent.purpose,
                )
                if existing is not None:
                    saved.append(existing)
                    continue
                saved.append(await self._consents.save(consent))
        except ExamesError as e:
            log.error("default_consents_failed", saved_count=len(saved), error_code=e.code)
            return self._fail("initialize", e)
        except Exception as e:
            log.error("default_consents_failed", saved_count=len(saved),
                      error_type=type(e).__name__)
            return self._unexpected("initialize", e)

        log.info("default_consents_initialized", consent_count=len(saved))
        return Result.success(saved)
