"""
Domain resolution: login identifier -> email -> ordered candidate tenants.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..exceptions import DomainUnmappedError, InvalidEmailError, UnknownTenantOverrideError
from ..models import WILDCARD_DOMAIN, Tenant


@dataclass(frozen=True)
class Resolution:
    email: str
    domain: str
    candidates: Tuple[Tenant, ...]


def normalize_email(identifier: str, default_domain: str = "") -> str:
    """
    Turn a login identifier into the account name sent to tenants.

    An identifier with '@' is used verbatim. A bare username gets
    ``@default_domain`` appended when a default domain is configured and is
    otherwise returned unchanged.
    """
    identifier = (identifier or "").strip()
    if not identifier:
        return ""
    if "@" in identifier:
        return identifier
    if default_domain:
        return f"{identifier}@{default_domain}"
    return identifier


def extract_domain(email: str) -> str:
    """Lowercased text after the last '@', or '' when there is none."""
    _, sep, domain = (email or "").rpartition("@")
    if not sep:
        return ""
    return domain.strip().lower()


def find_candidates(tenants: Sequence[Tenant], domain: str) -> List[Tenant]:
    """
    Tenants claiming ``domain`` exactly, then catch-all tenants.

    Registry order is kept inside each group and a tenant claiming both is
    listed once, with the exact matches.
    """
    domain = (domain or "").lower()
    exact = [t for t in tenants if domain in t.domains]
    wildcard = [
        t for t in tenants
        if WILDCARD_DOMAIN in t.domains and t not in exact
    ]
    return exact + wildcard


def resolve(
    identifier: str,
    tenants: Sequence[Tenant],
    default_domain: str = "",
    tenant_key_override: Optional[str] = None,
) -> Resolution:
    """
    Resolve a login identifier to its ordered candidate tenants.

    Raises:
        InvalidEmailError: If the normalized identifier has no domain
        UnknownTenantOverrideError: If the override names no configured tenant
        DomainUnmappedError: If no tenant, exact or catch-all, claims the domain
    """
    email = normalize_email(identifier, default_domain)
    domain = extract_domain(email)
    if not domain:
        raise InvalidEmailError()

    if tenant_key_override:
        for tenant in tenants:
            if tenant.key == tenant_key_override:
                return Resolution(email=email, domain=domain, candidates=(tenant,))
        raise UnknownTenantOverrideError(tenant_key_override)

    candidates = find_candidates(tenants, domain)
    if not candidates:
        raise DomainUnmappedError(domain)
    return Resolution(email=email, domain=domain, candidates=tuple(candidates))
