"""
Shared fixtures for the portal tests.
"""

from typing import Dict, List, Optional, Tuple, Union

import pytest

from preauth_portal.auth.verifier import VerificationResult
from preauth_portal.config import Settings
from preauth_portal.exceptions import RemoteVerificationError
from preauth_portal.models import Tenant

FIXED_TIMESTAMP = "1700000000000"
ADMIN_TOKEN = "test-admin-token-0123456789"


def make_tenant(
    key: str,
    domains: Union[str, Tuple[str, ...]],
    secret: str = "s3cr3t-key",
    base_url: Optional[str] = None,
    **kwargs,
) -> Tenant:
    if isinstance(domains, str):
        domains = (domains,)
    return Tenant(
        key=key,
        base_url=base_url or f"https://{key.replace('_', '-')}.mail.test",
        domains=domains,
        secret=secret,
        **kwargs,
    )


class FakeVerifier:
    """
    Scripted credential verifier.

    ``outcomes`` maps tenant key -> True (accept), False (reject) or an
    exception instance to raise. Unlisted tenants reject.
    """

    def __init__(self, outcomes: Optional[Dict[str, Union[bool, Exception]]] = None):
        self.outcomes = outcomes or {}
        self.calls: List[Tuple[str, str, str]] = []

    async def verify(self, tenant: Tenant, email: str, password: str) -> VerificationResult:
        self.calls.append((tenant.key, email, password))
        outcome = self.outcomes.get(tenant.key, False)
        if isinstance(outcome, Exception):
            raise outcome
        return VerificationResult(ok=outcome, status_code=200 if outcome else 500)

    @property
    def called_keys(self) -> List[str]:
        return [key for key, _, _ in self.calls]


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_TIMESTAMP


@pytest.fixture
def remote_error():
    return RemoteVerificationError("ConnectError calling https://down.test/service/soap: refused")


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every file at a temp directory."""
    return Settings(
        CONFIG_PATH=str(tmp_path / "config.ini"),
        DATA_DIR=str(tmp_path / "data"),
        ADMIN_API_TOKEN=ADMIN_TOKEN,
        LOG_LEVEL="DEBUG",
        _env_file=None,
    )
