from enum import Enum
from typing import Any, Dict, List, Optional


class FailureReason(str, Enum):
    """Reason codes written to the audit log and returned to callers."""

    MISSING_CREDENTIALS = "missingCredentials"
    INVALID_EMAIL = "invalidEmail"
    UNKNOWN_TENANT_OVERRIDE = "unknownTenantOverride"
    DOMAIN_UNMAPPED = "domainUnmapped"
    REMOTE_ERROR = "remoteError"
    AUTH_FAILED = "authFailed"
    INTERNAL_ERROR = "internalError"


# Reasons that would reveal which tenants exist or were tried; callers see
# these as a plain authentication failure.
MASKED_REASONS = frozenset(
    {
        FailureReason.UNKNOWN_TENANT_OVERRIDE,
        FailureReason.DOMAIN_UNMAPPED,
        FailureReason.AUTH_FAILED,
    }
)


#       BASE EXCEPTIONS
# ------------------------------


class PortalError(Exception):
    """
    Base exception for all Preauth Portal errors.
    """

    reason: FailureReason = FailureReason.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: str = "PORTAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


#       LOGIN EXCEPTIONS
# ------------------------------


class LoginError(PortalError):
    """
    A login call that terminated without issuing a token.

    ``public_reason`` is what the HTTP caller sees; ``reason`` is what the
    audit log records.
    """

    public_message = "Login failed"

    @property
    def public_reason(self) -> FailureReason:
        if self.reason in MASKED_REASONS:
            return FailureReason.AUTH_FAILED
        return self.reason

    def to_public_dict(self) -> Dict[str, Any]:
        return {"reason": self.public_reason.value, "message": self.public_message}


class MissingCredentialsError(LoginError):
    """Raised when identifier or password is empty."""

    reason = FailureReason.MISSING_CREDENTIALS

    def __init__(self, message: str = "Identifier and password are required", **kwargs):
        super().__init__(
            message=message,
            code="MISSING_CREDENTIALS",
            status_code=400,
            **kwargs,
        )


class InvalidEmailError(LoginError):
    """Raised when the identifier has no resolvable domain."""

    reason = FailureReason.INVALID_EMAIL

    def __init__(self, message: str = "Identifier has no email domain", **kwargs):
        super().__init__(
            message=message,
            code="INVALID_EMAIL",
            status_code=400,
            **kwargs,
        )


class UnknownTenantOverrideError(LoginError):
    """Raised when the caller forces a tenant key that is not configured."""

    reason = FailureReason.UNKNOWN_TENANT_OVERRIDE

    def __init__(self, tenant_key: str, **kwargs):
        super().__init__(
            message=f"Unknown tenant key: {tenant_key}",
            code="UNKNOWN_TENANT_OVERRIDE",
            status_code=401,
            **kwargs,
        )
        self.tenant_key = tenant_key


class DomainUnmappedError(LoginError):
    """Raised when no tenant claims the resolved domain."""

    reason = FailureReason.DOMAIN_UNMAPPED

    def __init__(self, domain: str, **kwargs):
        super().__init__(
            message=f"Domain {domain} is not mapped to any tenant",
            code="DOMAIN_UNMAPPED",
            status_code=401,
            **kwargs,
        )
        self.domain = domain


class RemoteVerificationError(LoginError):
    """
    Raised by the verifier when a candidate's call fails at the transport or
    TLS layer. Absorbed by the failover controller.
    """

    reason = FailureReason.REMOTE_ERROR

    def __init__(self, message: str = "Remote verification failed", **kwargs):
        super().__init__(
            message=message,
            code="REMOTE_VERIFICATION_ERROR",
            status_code=502,
            **kwargs,
        )


class AuthFailedError(LoginError):
    """Raised when every candidate tenant rejected or failed the credential."""

    reason = FailureReason.AUTH_FAILED

    def __init__(
        self,
        attempted_tenant_keys: List[str],
        last_error: str = "",
        **kwargs,
    ):
        super().__init__(
            message="Authentication failed for all candidate tenants",
            code="AUTHENTICATION_FAILED",
            status_code=401,
            **kwargs,
        )
        self.attempted_tenant_keys = list(attempted_tenant_keys)
        self.last_error = last_error


class InternalPortalError(LoginError):
    """Unexpected failure outside the login taxonomy (e.g. signing)."""

    reason = FailureReason.INTERNAL_ERROR
    public_message = "Internal error"

    def __init__(self, message: str = "Internal error", **kwargs):
        super().__init__(
            message=message,
            code="INTERNAL_ERROR",
            status_code=500,
            **kwargs,
        )


#       TENANT CONFIGURATION EXCEPTIONS
# -------------------------------------------


class ConfigSourceError(PortalError):
    """Raised when the tenant configuration cannot be read or written."""

    def __init__(self, message: str = "Tenant configuration unavailable", **kwargs):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            status_code=500,
            **kwargs,
        )


class TenantValidationError(PortalError):
    """Raised when an admin tenant payload is invalid."""

    def __init__(self, message: str = "Invalid tenant", **kwargs):
        super().__init__(
            message=message,
            code="TENANT_VALIDATION_ERROR",
            status_code=400,
            **kwargs,
        )


class TenantNotFoundError(PortalError):
    """Raised when an admin operation names a tenant that does not exist."""

    def __init__(self, tenant_key: str, **kwargs):
        super().__init__(
            message=f"Tenant not found: {tenant_key}",
            code="TENANT_NOT_FOUND",
            status_code=404,
            **kwargs,
        )
