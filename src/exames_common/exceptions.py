"""
Exames Exception Hierarchy.
Typed domain and infrastructure errors with stable codes and HTTP status classes.
"""
from __future__ import annotations
import uuid
from enum import Enum
from typing import Any, cast
from pydantic import BaseModel, Field
import structlog

logger = structlog.get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    SUBSCRIPTION = "subscription"
    PRIVACY = "privacy"
    RATE_LIMIT = "rate_limit"
    EXTERNAL_SERVICE = "external_service"
    DATABASE = "database"
    INTERNAL = "internal"


class ExamesError(Exception):
    """Base exception for all Exames errors with structured context."""
    code: str = "EXAMES_ERROR"
    status_code: int = 500
    category: ErrorCategory = ErrorCategory.INTERNAL
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, *, context: dict[str, Any] | None = None,
                 cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.correlation_id = str(uuid.uuid4())
        self._log_error()

    def _log_error(self) -> None:
        log_data: dict[str, Any] = {
            "error_code": self.code, "category": self.category.value,
            "severity": self.severity.value, "correlation_id": self.correlation_id,
        }
        if self.cause:
            log_data["cause_type"] = type(self.cause).__name__
            log_data["cause_message"] = str(self.cause)
        if self.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            logger.error(self.message, **log_data)
        else:
            logger.debug(self.message, **log_data)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message,
                "status_code": self.status_code, "context": self.context or None}


# Domain errors
class DomainError(ExamesError):
    code = "DOMAIN_ERROR"
    status_code = 400
    category = ErrorCategory.BUSINESS_RULE


class AuthenticationError(DomainError):
    code = "AUTH_ERROR"
    status_code = 401
    category = ErrorCategory.AUTHENTICATION


class InvalidCredentialsError(AuthenticationError):
    code = "INVALID_CREDENTIALS"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("Invalid email or password", **kwargs)


class TwoFactorRequiredError(AuthenticationError):
    code = "TWO_FACTOR_REQUIRED"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("Two-factor authentication is required", **kwargs)


class InvalidTwoFactorCodeError(AuthenticationError):
    code = "INVALID_2FA_CODE"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("Invalid two-factor authentication code", **kwargs)


class AccountNotVerifiedError(AuthenticationError):
    code = "ACCOUNT_NOT_VERIFIED"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("Email address not verified", **kwargs)


class AuthorizationError(DomainError):
    code = "AUTHORIZATION_ERROR"
    status_code = 403
    category = ErrorCategory.AUTHORIZATION


class InsufficientPermissionsError(AuthorizationError):
    code = "INSUFFICIENT_PERMISSIONS"

    def __init__(self, required_role: str | None = None, **kwargs: Any) -> None:
        message = (f"Requires {required_role} role to access this resource" if required_role
                   else "Insufficient permissions to access this resource")
        context = kwargs.pop("context", {})
        if required_role:
            context["required_role"] = required_role
        super().__init__(message, context=context, **kwargs)
        self.required_role = required_role


class UserError(DomainError):
    code = "USER_ERROR"
    status_code = 400


class UserNotFoundError(UserError):
    code = "USER_NOT_FOUND"
    status_code = 404
    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW

    def __init__(self, identifier: str | None = None, **kwargs: Any) -> None:
        message = f"User not found: {identifier}" if identifier else "User not found"
        super().__init__(message, **kwargs)
        self.identifier = identifier


class EmailAlreadyExistsError(UserError):
    code = "EMAIL_ALREADY_EXISTS"
    status_code = 409
    category = ErrorCategory.CONFLICT

    def __init__(self, email: str, **kwargs: Any) -> None:
        super().__init__(f"Email already exists: {email}", **kwargs)
        self.email = email


class WeakPasswordError(UserError):
    code = "WEAK_PASSWORD"
    category = ErrorCategory.VALIDATION

    def __init__(self, requirements: list[str] | None = None, **kwargs: Any) -> None:
        message = (f"Password must meet requirements: {', '.join(requirements)}" if requirements
                   else "Password does not meet security requirements")
        super().__init__(message, **kwargs)
        self.requirements = requirements or []


class SubscriptionError(DomainError):
    code = "SUBSCRIPTION_ERROR"
    status_code = 400
    category = ErrorCategory.SUBSCRIPTION


class SubscriptionNotFoundError(SubscriptionError):
    code = "SUBSCRIPTION_NOT_FOUND"
    status_code = 404

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("Active subscription not found", **kwargs)


class PaymentRequiredError(SubscriptionError):
    code = "PAYMENT_REQUIRED"
    status_code = 402

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("Payment required to access this feature", **kwargs)


class SubscriptionLimitExceededError(SubscriptionError):
    code = "SUBSCRIPTION_LIMIT_EXCEEDED"

    def __init__(self, feature: str, limit: int, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        context.update({"feature": feature, "limit": limit})
        super().__init__(f"{feature} limit exceeded: {limit}", context=context, **kwargs)
        self.feature, self.limit = feature, limit


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 400
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW

    def __init__(self, field: str, value: Any, constraint: str, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        context.update({"field": field, "value": value, "constraint": constraint})
        super().__init__(f"Validation failed for field '{field}': {constraint}",
                         context=context, **kwargs)
        self.field, self.value, self.constraint = field, value, constraint

    @classmethod
    def aggregate(cls, errors: list[ValidationError]) -> ValidationError:
        """Fold several field failures into one error; the first one names the field."""
        if len(errors) == 1:
            return errors[0]
        first = errors[0]
        return cls(first.field, first.value, "; ".join(e.constraint for e in errors),
                   context={"errors": [{"field": e.field, "constraint": e.constraint}
                                       for e in errors]})


class RateLimitExceededError(DomainError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429
    category = ErrorCategory.RATE_LIMIT
    severity = ErrorSeverity.LOW

    def __init__(self, limit: int, window: str, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        context.update({"limit": limit, "window": window})
        super().__init__(f"Rate limit exceeded: {limit} requests per {window}",
                         context=context, **kwargs)
        self.limit, self.window = limit, window


class PrivacyError(DomainError):
    code = "PRIVACY_ERROR"
    status_code = 400
    category = ErrorCategory.PRIVACY


class ConsentRequiredError(PrivacyError):
    code = "CONSENT_REQUIRED"

    def __init__(self, data_type: str, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        context["data_type"] = data_type
        super().__init__(f"User consent required for processing {data_type}",
                         context=context, **kwargs)
        self.data_type = data_type


class ConsentNotFoundError(PrivacyError):
    code = "CONSENT_NOT_FOUND"
    status_code = 404
    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW

    def __init__(self, consent_id: str, **kwargs: Any) -> None:
        super().__init__(f"Consent not found: {consent_id}", **kwargs)
        self.consent_id = consent_id


class ConsentAlreadyExistsError(PrivacyError):
    code = "CONSENT_ALREADY_EXISTS"
    status_code = 409
    category = ErrorCategory.CONFLICT

    def __init__(self, user_id: str, data_type: str, purpose: str, **kwargs: Any) -> None:
        context = kwargs.pop("context", {})
        context.update({"user_id": user_id, "data_type": data_type, "purpose": purpose})
        super().__init__(f"Consent already exists for {data_type}/{purpose}",
                         context=context, **kwargs)


class DataRetentionError(PrivacyError):
    code = "DATA_RETENTION_ERROR"

    def __init__(self, reason: str, **kwargs: Any) -> None:
        super().__init__(f"Data retention policy violation: {reason}", **kwargs)
        self.reason = reason


# Infrastructure errors
class InfrastructureError(ExamesError):
    code = "INFRASTRUCTURE_ERROR"
    status_code = 500
    category = ErrorCategory.EXTERNAL_SERVICE
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, service: str, **kwargs: Any) -> None:
        super().__init__(f"{service}: {message}", **kwargs)
        self.service = service


class DatabaseError(InfrastructureError):
    category = ErrorCategory.DATABASE

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, "Database", **kwargs)


class ExternalServiceError(InfrastructureError):

    def __init__(self, service: str, message: str, **kwargs: Any) -> None:
        super().__init__(message, service, **kwargs)


class ErrorResponse(BaseModel):
    """Uniform error payload rendered at the outer boundary."""
    code: str
    message: str
    status_code: int
    context: dict[str, Any] | None = Field(default=None)
    model_config = {"frozen": True}


class ErrorHandler:
    """Maps any caught exception to an ErrorResponse."""

    @staticmethod
    def is_domain_error(error: BaseException) -> bool:
        return isinstance(error, DomainError)

    @staticmethod
    def is_infrastructure_error(error: BaseException) -> bool:
        return isinstance(error, InfrastructureError)

    @classmethod
    def get_error_response(cls, error: BaseException, *,
                           expose_details: bool = False) -> ErrorResponse:
        """
        Build the response for an error.

        Unknown errors are masked unless expose_details is set, which callers
        only do in development mode.
        """
        if cls.is_domain_error(error):
            domain_error = cast(DomainError, error)
            return ErrorResponse(code=domain_error.code, message=domain_error.message,
                                 status_code=domain_error.status_code,
                                 context=domain_error.context or None)
        if cls.is_infrastructure_error(error):
            infra_error = cast(InfrastructureError, error)
            return ErrorResponse(code=infra_error.code, message=infra_error.message,
                                 status_code=infra_error.status_code)
        logger.error("unhandled_error", error_type=type(error).__name__, error=str(error))
        return ErrorResponse(
            code="INTERNAL_ERROR",
            message=str(error) if expose_details else GENERIC_ERROR_MESSAGE,
            status_code=500,
        )
