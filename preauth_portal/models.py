"""
Data Models Module

This module defines Pydantic models for request/response validation
and data serialization throughout the portal.

Models are organized by functional area:
- Tenant models (stored record, masked read projection, admin payload)
- Login models (login request, success response, failure body)
- Audit models (login attempt ledger record, aggregated stats)
- Admin models (connection test request/result)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


DEFAULT_VERIFY_PATH = "/service/soap"
DEFAULT_TOKEN_PATH = "/service/preauth"
WILDCARD_DOMAIN = "*"


def mask_secret(secret: str) -> str:
    """Display-only projection of a tenant secret."""
    if not secret:
        return ""
    if len(secret) <= 6:
        return "******"
    return secret[:2] + "***" + secret[-2:]


def split_domains(value: Union[str, List[str], Tuple[str, ...], None]) -> List[str]:
    """
    Normalize a comma-separated string or list of domains.

    Domains are stripped, lowercased and de-duplicated; first occurrence wins.
    """
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else value
    domains: List[str] = []
    for item in items:
        domain = str(item).strip().lower()
        if domain and domain not in domains:
            domains.append(domain)
    return domains


# ============================================================================
# Tenant Models
# ============================================================================

class TrustMode(str, Enum):
    """Outbound TLS trust mode of a tenant, as shown to operators."""

    INSECURE = "INSECURE"
    CUSTOM_CA = "CUSTOM_CA"
    DEFAULT_CA = "DEFAULT_CA"


class Tenant(BaseModel):
    """
    One configured mail-platform backend.

    The secret is a SecretStr so it never appears in reprs, logs or dumps;
    only the preauth signer calls get_secret_value().
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., pattern=r"^[A-Za-z][A-Za-z0-9]*_\d+$")
    name: str = Field(default="", description="Display label")
    base_url: str = Field(..., description="HTTPS origin without trailing slash")
    domains: Tuple[str, ...] = Field(..., description="Lowercase email domains, '*' for catch-all")
    secret: SecretStr = Field(..., description="Shared preauth signing key")
    verify_path: str = Field(default=DEFAULT_VERIFY_PATH)
    token_path: str = Field(default=DEFAULT_TOKEN_PATH)
    ca_file: Optional[str] = Field(default=None)
    insecure_tls: bool = Field(default=False)

    @model_validator(mode="before")
    @classmethod
    def default_name_to_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and not str(data.get("name") or "").strip():
            data = {**data, "name": data.get("key", "")}
        return data

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.lower().startswith("https://"):
            raise ValueError("Tenant base URL must use https://")
        if len(v) <= len("https://"):
            raise ValueError("Tenant base URL has no host")
        return v

    @field_validator("domains", mode="before")
    @classmethod
    def validate_domains(cls, v: Any) -> Tuple[str, ...]:
        domains = split_domains(v)
        if not domains:
            raise ValueError("At least one domain is required")
        return tuple(domains)

    @field_validator("secret")
    @classmethod
    def validate_secret(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("Tenant secret must not be empty")
        return SecretStr(v.get_secret_value().strip())

    @field_validator("verify_path", "token_path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            v = "/" + v
        return v

    @field_validator("ca_file")
    @classmethod
    def blank_ca_file_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def trust_mode(self) -> TrustMode:
        if self.insecure_tls:
            return TrustMode.INSECURE
        if self.ca_file:
            return TrustMode.CUSTOM_CA
        return TrustMode.DEFAULT_CA

    def to_view(self) -> "TenantView":
        return TenantView(
            key=self.key,
            name=self.name,
            base_url=self.base_url,
            domains=list(self.domains),
            secret_masked=mask_secret(self.secret.get_secret_value()),
            verify_path=self.verify_path,
            token_path=self.token_path,
            ca_file=self.ca_file,
            insecure_tls=self.insecure_tls,
            tls_mode=self.trust_mode,
        )


class TenantView(BaseModel):
    """Read projection of a tenant; the secret is only ever masked."""

    key: str
    name: str
    base_url: str
    domains: List[str]
    secret_masked: str
    verify_path: str
    token_path: str
    ca_file: Optional[str] = None
    insecure_tls: bool = False
    tls_mode: TrustMode


class TenantInput(BaseModel):
    """
    Admin create/update payload.

    No field rules here; the tenant store turns it into a Tenant and
    reports every validation problem as a TenantValidationError.
    """

    key: Optional[str] = Field(None, description="Tenant key; taken from the path on update")
    name: str = ""
    base_url: str = Field(
        "",
        validation_alias=AliasChoices("base_url", "baseUrl", "server"),
    )
    domains: Union[List[str], str] = Field(default_factory=list)
    secret: str = Field(
        "",
        description="Empty on update keeps the stored secret",
        validation_alias=AliasChoices("secret", "preauthkey"),
    )
    verify_path: str = Field(
        DEFAULT_VERIFY_PATH,
        validation_alias=AliasChoices("verify_path", "verifyPath", "soap_path"),
    )
    token_path: str = Field(
        DEFAULT_TOKEN_PATH,
        validation_alias=AliasChoices("token_path", "tokenPath", "preauth_path"),
    )
    ca_file: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("ca_file", "caFile"),
    )
    insecure_tls: bool = Field(
        False,
        validation_alias=AliasChoices("insecure_tls", "insecureTls", "insecureTrust"),
    )


class TenantSnapshot(BaseModel):
    """Immutable view of the tenant configuration for one request."""

    model_config = ConfigDict(frozen=True)

    tenants: Tuple[Tenant, ...] = ()
    default_domain: str = ""

    @model_validator(mode="after")
    def unique_keys(self) -> "TenantSnapshot":
        keys = [tenant.key for tenant in self.tenants]
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            raise ValueError(f"Duplicate tenant keys: {', '.join(duplicates)}")
        return self

    def get(self, key: str) -> Optional[Tenant]:
        for tenant in self.tenants:
            if tenant.key == key:
                return tenant
        return None


# ============================================================================
# Login Models
# ============================================================================

class LoginRequest(BaseModel):
    """Credential submitted by the login page."""

    identifier: str = Field(
        "",
        description="Email address or bare username",
        validation_alias=AliasChoices("identifier", "username", "email"),
    )
    password: str = ""
    tenantKey: Optional[str] = Field(
        None,
        description="Force a specific tenant instead of domain routing",
        validation_alias=AliasChoices("tenantKey", "server_key"),
    )

    @field_validator("tenantKey")
    @classmethod
    def blank_override_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip()
            if not v:
                return None
        return v


class LoginResponse(BaseModel):
    redirectUrl: str
    tenantKey: str


class LoginFailureResponse(BaseModel):
    reason: str
    message: str


# ============================================================================
# Audit Models
# ============================================================================

class CandidateOutcome(str, Enum):
    OK = "ok"
    REJECTED = "rejected"
    REMOTE_ERROR = "remoteError"


class CandidateAttempt(BaseModel):
    """Outcome of one verification call inside a login."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    tenant_key: str
    outcome: CandidateOutcome
    status: Optional[int] = None
    error: str = ""


class LoginAttempt(BaseModel):
    """
    Audit ledger record: one per completed top-level login call.

    Serialized with camelCase keys, one JSON object per line.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    normalized_email: str = ""
    domain: str = ""
    chosen_tenant_key: str = ""
    attempted_tenant_keys: List[str] = Field(default_factory=list)
    result: str = Field(..., pattern=r"^(ok|fail)$")
    failure_reason: Optional[str] = None
    latency_ms: int = 0
    ip: str = ""
    user_agent: str = ""
    error: str = ""
    candidates: List[CandidateAttempt] = Field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AuditStats(BaseModel):
    """Aggregated view over the most recent audit records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int = 0
    ok: int = 0
    fail: int = 0
    last24_total: int = Field(0, alias="last24_total")
    last24_ok: int = Field(0, alias="last24_ok")
    last24_fail: int = Field(0, alias="last24_fail")
    by_tenant: Dict[str, int] = Field(default_factory=dict)
    by_domain: Dict[str, int] = Field(default_factory=dict)


# ============================================================================
# Admin Models
# ============================================================================

class TenantTestRequest(BaseModel):
    """Optional test credential for the tenant connection test."""

    test_email: Optional[str] = Field(None, description="Account name as the tenant knows it")
    test_password: Optional[str] = None


class TenantTestResult(BaseModel):
    ok: bool
    error: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Health Check Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
