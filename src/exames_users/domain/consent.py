"""
Exames Users - LGPD Consent Aggregate.

A Consent records that a user allowed (or declined) processing of one
category of data for one purpose under one legal basis. Consents are
revocable and renewable, and age out after a policy-defined number of months.

Architecture Layer: Domain
Principles: Aggregate Consistency Boundary, Explicit Lifecycle
"""
from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import Field
import structlog

from exames_common.domain import AggregateRoot, generate_id
from exames_common.exceptions import PrivacyError
from exames_common.utils import DateTimeUtils

from ..events import ConsentGrantedEvent, ConsentRevokedEvent

logger = structlog.get_logger(__name__)

REVOCATION_REASON_KEY = "revocation_reason"
DEFAULT_MAX_AGE_MONTHS = 24
DEFAULT_RENEWAL_THRESHOLD_MONTHS = 18


class LGPDDataType(str, Enum):
    """Categories of personal data covered by LGPD consent."""

    PERSONAL_DATA = "personal_data"
    SENSITIVE_DATA = "sensitive_data"
    HEALTH_DATA = "health_data"
    BIOMETRIC_DATA = "biometric_data"
    LOCATION_DATA = "location_data"
    BEHAVIORAL_DATA = "behavioral_data"
    FINANCIAL_DATA = "financial_data"


class LGPDPurpose(str, Enum):
    """Processing purposes."""

    SERVICE_PROVISION = "service_provision"
    CUSTOMER_SUPPORT = "customer_support"
    SECURITY = "security"
    ANALYTICS = "analytics"
    MARKETING = "marketing"
    RESEARCH = "research"
    LEGAL_COMPLIANCE = "legal_compliance"
    FRAUD_PREVENTION = "fraud_prevention"


class ConsentSource(str, Enum):
    """Where in the product the consent was captured."""

    REGISTRATION = "registration"
    PROFILE_UPDATE = "profile_update"
    FEATURE_ACCESS = "feature_access"
    EXPLICIT_REQUEST = "explicit_request"


class LegalBasis(str, Enum):
    """LGPD legal bases for processing."""

    CONSENT = "consent"
    LEGITIMATE_INTEREST = "legitimate_interest"
    LEGAL_OBLIGATION = "legal_obligation"
    VITAL_INTERESTS = "vital_interests"
    PUBLIC_TASK = "public_task"
    CONTRACT = "contract"


class Consent(AggregateRoot[str]):
    """
    LGPD consent record.

    Business Rules:
    - Active means given and never revoked since the last grant
    - revoke() requires an active consent
    - renew() requires an inactive consent; it restarts the consent clock
    - A revocation reason lives in metadata and is dropped on renewal

    Invariants:
    - A consent that was never revoked has revoked_date None
    - user_id, data_type and purpose never change
    """

    _entity_type: ClassVar[str] = "consent"

    user_id: str = Field(..., min_length=1)
    data_type: LGPDDataType
    purpose: LGPDPurpose
    consent_given: bool
    consent_date: datetime
    revoked_date: datetime | None = None
    source: ConsentSource
    legal_basis: LegalBasis
    metadata: dict[str, Any] | None = None

    @classmethod
    def create(
        cls,
        user_id: str,
        data_type: LGPDDataType | str,
        purpose: LGPDPurpose | str,
        *,
        consent_given: bool = True,
        source: ConsentSource | str = ConsentSource.EXPLICIT_REQUEST,
        legal_basis: LegalBasis | str = LegalBasis.CONSENT,
        metadata: dict[str, Any] | None = None,
        consent_date: datetime | None = None,
    ) -> Consent:
        """Factory for a new consent; a granted one queues ConsentGrantedEvent."""
        now = DateTimeUtils.utc_now()
        consent = cls(
            id=generate_id(),
            user_id=user_id,
            data_type=data_type,
            purpose=purpose,
            consent_given=consent_given,
            consent_date=consent_date or now,
            source=source,
            legal_basis=legal_basis,
            metadata=dict(metadata) if metadata else None,
            created_at=now,
            updated_at=now,
        )
        if consent.consent_given:
            consent._raise_granted()
        return consent

    @classmethod
    def from_persistence(cls, data: dict[str, Any]) -> Consent:
        metadata = data.get("metadata")
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        revoked_date = data.get("revoked_date")
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            data_type=data["data_type"],
            purpose=data["purpose"],
            consent_given=bool(data["consent_given"]),
            consent_date=DateTimeUtils.ensure_utc(data["consent_date"]),
            revoked_date=DateTimeUtils.ensure_utc(revoked_date) if revoked_date else None,
            source=data["source"],
            legal_basis=data["legal_basis"],
            metadata=metadata or None,
            created_at=DateTimeUtils.ensure_utc(data["created_at"]),
            updated_at=DateTimeUtils.ensure_utc(data["updated_at"]),
        )

    def revoke(self, reason: str | None = None) -> None:
        """
        Withdraw the consent.

        Raises:
            PrivacyError: If the consent is not currently active
        """
        if not self.consent_given:
            raise PrivacyError("Consent is already revoked", context={"consent_id": self.id})
        if self.revoked_date is not None:
            raise PrivacyError("Consent has already been revoked", context={"consent_id": self.id})

        now = DateTimeUtils.utc_now()
        self.consent_given = False
        self.revoked_date = now
        if reason:
            self.metadata = {**(self.metadata or {}), REVOCATION_REASON_KEY: reason}
        self.touch()
        self._raise_event(ConsentRevokedEvent(
            aggregate_id=self.id, user_id=self.user_id, consent_id=self.id,
            data_type=self.data_type.value, purpose=self.purpose.value, reason=reason,
        ))
        logger.info("consent_revoked", consent_id=self.id, user_id=self.user_id,
                    data_type=self.data_type.value, purpose=self.purpose.value)

    def renew(self, source: ConsentSource | str) -> None:
        """
        Grant an inactive consent again.

        Raises:
            PrivacyError: If the consent is already active
        """
        if self.is_active():
            raise PrivacyError("Consent is already active", context={"consent_id": self.id})

        self.consent_given = True
        self.consent_date = DateTimeUtils.utc_now()
        self.revoked_date = None
        self.source = ConsentSource(source)
        if self.metadata and REVOCATION_REASON_KEY in self.metadata:
            remaining = {k: v for k, v in self.metadata.items() if k != REVOCATION_REASON_KEY}
            self.metadata = remaining or None
        self.touch()
        self._raise_granted()
        logger.info("consent_renewed", consent_id=self.id, user_id=self.user_id)

    def _raise_granted(self) -> None:
        self._raise_event(ConsentGrantedEvent(
            aggregate_id=self.id, user_id=self.user_id, consent_id=self.id,
            data_type=self.data_type.value, purpose=self.purpose.value,
        ))

    def is_active(self) -> bool:
        return self.consent_given and self.revoked_date is None

    def is_expired(self, max_age_months: int = DEFAULT_MAX_AGE_MONTHS,
                   now: datetime | None = None) -> bool:
        expires_at = DateTimeUtils.add_months(self.consent_date, max_age_months)
        return (now or DateTimeUtils.utc_now()) > expires_at

    def needs_renewal(self, renewal_threshold_months: int = DEFAULT_RENEWAL_THRESHOLD_MONTHS,
                      now: datetime | None = None) -> bool:
        renew_at = DateTimeUtils.add_months(self.consent_date, renewal_threshold_months)
        return (now or DateTimeUtils.utc_now()) > renew_at

    @property
    def revocation_reason(self) -> str | None:
        return (self.metadata or {}).get(REVOCATION_REASON_KEY)

    def to_persistence(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "data_type": self.data_type.value,
            "purpose": self.purpose.value,
            "consent_given": self.consent_given,
            "consent_date": self.consent_date,
            "revoked_date": self.revoked_date,
            "source": self.source.value,
            "legal_basis": self.legal_basis.value,
            "metadata": json.dumps(self.metadata) if self.metadata else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_response(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "data_type": self.data_type.value,
            "purpose": self.purpose.value,
            "consent_given": self.consent_given,
            "consent_date": DateTimeUtils.to_iso_string(self.consent_date),
            "revoked_date": (DateTimeUtils.to_iso_string(self.revoked_date)
                             if self.revoked_date else None),
            "source": self.source.value,
            "legal_basis": self.legal_basis.value,
            "is_active": self.is_active(),
            "is_expired": self.is_expired(),
            "needs_renewal": self.needs_renewal(),
            "created_at": DateTimeUtils.to_iso_string(self.created_at),
            "updated_at": DateTimeUtils.to_iso_string(self.updated_at),
        }


class ConsentTemplates:
    """Canned consents seeded at registration."""

    @staticmethod
    def health_data_processing(user_id: str) -> Consent:
        return Consent.create(
            user_id, LGPDDataType.HEALTH_DATA, LGPDPurpose.SERVICE_PROVISION,
            consent_given=True, source=ConsentSource.REGISTRATION, legal_basis=LegalBasis.CONSENT,
            metadata={
                "description": "Processamento de dados de saúde para análise de exames médicos",
                "data_retention_period": "5 years",
                "sharing_with_third_parties": False,
            },
        )

    @staticmethod
    def personal_data_processing(user_id: str) -> Consent:
        return Consent.create(
            user_id, LGPDDataType.PERSONAL_DATA, LGPDPurpose.SERVICE_PROVISION,
            consent_given=True, source=ConsentSource.REGISTRATION, legal_basis=LegalBasis.CONSENT,
            metadata={
                "description": "Processamento de dados pessoais para fornecimento do serviço",
                "data_retention_period": "2 years after account closure",
                "sharing_with_third_parties": False,
            },
        )

    @staticmethod
    def marketing_communications(user_id: str) -> Consent:
        """Marketing is opt-in: the template is not granted."""
        return Consent.create(
            user_id, LGPDDataType.PERSONAL_DATA, LGPDPurpose.MARKETING,
            consent_given=False, source=ConsentSource.EXPLICIT_REQUEST,
            legal_basis=LegalBasis.CONSENT,
            metadata={
                "description": "Envio de comunicações de marketing e promocionais",
                "data_retention_period": "Until consent is revoked",
                "sharing_with_third_parties": False,
            },
        )

    @staticmethod
    def analytics_processing(user_id: str) -> Consent:
        return Consent.create(
            user_id, LGPDDataType.BEHAVIORAL_DATA, LGPDPurpose.ANALYTICS,
            consent_given=True, source=ConsentSource.REGISTRATION,
            legal_basis=LegalBasis.LEGITIMATE_INTEREST,
            metadata={
                "description": "Análise de comportamento para melhoria do serviço",
                "data_retention_period": "1 year",
                "anonymized": True,
            },
        )

    @classmethod
    def defaults(cls, user_id: str) -> list[Consent]:
        return [
            cls.health_data_processing(user_id),
            cls.personal_data_processing(user_id),
            cls.marketing_communications(user_id),
            cls.analytics_processing(user_id),
        ]

    @classmethod
    def registration_defaults(cls, user_id: str) -> list[Consent]:
        """Consents granted at sign-up. Marketing stays opt-in and is not seeded."""
        return [
            cls.personal_data_processing(user_id),
            cls.health_data_processing(user_id),
            cls.analytics_processing(user_id),
        ]
