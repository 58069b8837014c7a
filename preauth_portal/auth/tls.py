"""
Per-tenant outbound TLS trust policy.

Every verification call builds its own policy and hands ``policy.verify`` to
the httpx client created for that single call. Nothing here touches
process-wide TLS state (no ssl default context patching, no environment
variables), so one tenant's insecure or custom-CA setting can never leak into
another tenant's connection.
"""

import ssl
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from ..models import Tenant, TrustMode


@dataclass(frozen=True)
class TrustPolicy:
    """
    Outbound connection trust for one call.

    Attributes:
        mode: INSECURE, CUSTOM_CA or DEFAULT_CA
        ca_path: Resolved CA bundle path (CUSTOM_CA only)
        verify: Value for httpx's ``verify`` argument
    """

    mode: TrustMode
    ca_path: Optional[Path] = None
    verify: Union[bool, ssl.SSLContext] = field(default=True, compare=False)


def resolve_ca_path(ca_file: str, base_dir: Optional[Path] = None) -> Path:
    path = Path(ca_file).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = Path(base_dir) / path
    return path


def build_trust_policy(
    ca_file: Optional[str],
    insecure_tls: bool,
    base_dir: Optional[Path] = None,
) -> TrustPolicy:
    """
    Build the trust policy for one outbound call.

    Insecure mode wins over a CA file. A CA file becomes the only trusted
    root for the connection. Otherwise httpx's default trust store is used.

    Raises:
        OSError / ssl.SSLError: If the CA file is missing or unreadable; the
            verifier reports this as a remote error for that tenant.
    """
    if insecure_tls:
        return TrustPolicy(mode=TrustMode.INSECURE, verify=False)

    if ca_file:
        ca_path = resolve_ca_path(ca_file, base_dir)
        # cafile given -> create_default_context loads only this bundle
        context = ssl.create_default_context(cafile=str(ca_path))
        return TrustPolicy(mode=TrustMode.CUSTOM_CA, ca_path=ca_path, verify=context)

    return TrustPolicy(mode=TrustMode.DEFAULT_CA, verify=True)


def trust_policy_for(tenant: Tenant, base_dir: Optional[Path] = None) -> TrustPolicy:
    return build_trust_policy(tenant.ca_file, tenant.insecure_tls, base_dir)
