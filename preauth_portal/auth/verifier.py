"""
Credential Verifier - Tenant SOAP Authentication
================================================

Checks a username/password against a tenant's native SOAP endpoint
(``base_url + verify_path``) with an ``AuthRequest`` envelope.

Outcome Rules:
--------------
1. 2xx status AND a non-empty <authToken> element -> verified
2. Any other status, or no <authToken> -> rejected (VerificationResult.ok False)
3. Transport, TLS or timeout failure -> RemoteVerificationError

Every call opens its own httpx client carrying that tenant's trust policy and
timeout, and closes it before returning. Nothing is kept between calls.
"""

import asyncio
import logging
import re
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol
from xml.sax.saxutils import escape

import httpx

from ..config import Settings
from ..exceptions import RemoteVerificationError
from ..models import Tenant
from .tls import trust_policy_for

logger = logging.getLogger(__name__)


AUTH_TOKEN_PATTERN = re.compile(r"<authToken>[^<]+</authToken>", re.IGNORECASE)
SOAP_MARKER_PATTERN = re.compile(r"Envelope|soap", re.IGNORECASE)

SOAP_HEADERS = {
    "Content-Type": 'application/soap+xml; charset="utf-8"',
    "Accept": "application/soap+xml, text/xml",
}


# ============================================================================
# Envelopes
# ============================================================================

def escape_xml(value: str) -> str:
    return escape(str(value), {'"': "&quot;", "'": "&apos;"})


def build_auth_envelope(account: str, password: str) -> str:
    """SOAP 1.2 AuthRequest for ``account`` (by name)."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<soap:Envelope xmlns:soap="http://www.w3.org/2003/05/soap-envelope">'
        '<soap:Header><context xmlns="urn:zimbra"><format type="xml"/></context></soap:Header>'
        '<soap:Body><AuthRequest xmlns="urn:zimbraAccount">'
        f'<account by="name">{escape_xml(account)}</account>'
        f"<password>{escape_xml(password)}</password>"
        "</AuthRequest></soap:Body></soap:Envelope>"
    )


def build_noop_envelope() -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<soap:Envelope xmlns:soap="http://www.w3.org/2003/05/soap-envelope">'
        '<soap:Body><NoOpRequest xmlns="urn:zimbraAccount"/></soap:Body>'
        "</soap:Envelope>"
    )


# ============================================================================
# Results
# ============================================================================

@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    status_code: Optional[int] = None


@dataclass(frozen=True)
class PingResult:
    reachable: bool
    status_code: Optional[int] = None


class CredentialVerifier(Protocol):
    """Anything the failover controller can ask to check a credential."""

    async def verify(self, tenant: Tenant, email: str, password: str) -> VerificationResult: ...


# ============================================================================
# SOAP Verifier
# ============================================================================

class SoapCredentialVerifier:
    """
    Verifies credentials against tenant SOAP endpoints.

    Args:
        timeout: httpx per-operation timeouts (connect, each read, each write)
        total_timeout: Wall-clock bound of one call, body included; defaults
            to the read timeout
        ca_base_dir: Directory that relative tenant CA paths resolve against
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        timeout: httpx.Timeout,
        total_timeout: Optional[float] = None,
        ca_base_dir: Optional[Path] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.total_timeout = total_timeout if total_timeout is not None else timeout.read
        self.ca_base_dir = ca_base_dir
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SoapCredentialVerifier":
        timeout = httpx.Timeout(
            settings.VERIFY_TIMEOUT_SECONDS,
            connect=settings.VERIFY_CONNECT_TIMEOUT_SECONDS,
        )
        return cls(
            timeout=timeout,
            total_timeout=settings.VERIFY_TIMEOUT_SECONDS,
            ca_base_dir=settings.ca_base_dir,
            transport=transport,
        )

    def _client(self, tenant: Tenant) -> httpx.AsyncClient:
        policy = trust_policy_for(tenant, self.ca_base_dir)
        return httpx.AsyncClient(
            verify=policy.verify,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _post(self, tenant: Tenant, envelope: str) -> httpx.Response:
        url = f"{tenant.base_url}{tenant.verify_path}"
        try:
            async with self._client(tenant) as client:
                return await asyncio.wait_for(
                    client.post(
                        url,
                        content=envelope.encode("utf-8"),
                        headers=SOAP_HEADERS,
                    ),
                    timeout=self.total_timeout,
                )

        except asyncio.TimeoutError as e:
            raise RemoteVerificationError(
                f"Timeout calling {url}: no complete response within {self.total_timeout}s"
            ) from e

        except httpx.TimeoutException as e:
            raise RemoteVerificationError(f"Timeout calling {url}: {e}") from e

        except httpx.HTTPError as e:
            raise RemoteVerificationError(f"{type(e).__name__} calling {url}: {e}") from e

        except (ssl.SSLError, OSError) as e:
            # CA bundle missing/unreadable, or a TLS failure outside httpx
            raise RemoteVerificationError(f"TLS setup failed for {tenant.key}: {e}") from e

    async def verify(self, tenant: Tenant, email: str, password: str) -> VerificationResult:
        """
        Send one AuthRequest for ``email`` to ``tenant``.

        Returns:
            VerificationResult with ok=True only for 2xx + <authToken>

        Raises:
            RemoteVerificationError: On transport, TLS or timeout failure
        """
        response = await self._post(tenant, build_auth_envelope(email, password))
        ok = response.is_success and bool(AUTH_TOKEN_PATTERN.search(response.text))

        logger.debug(
            "Tenant AuthRequest completed",
            extra={
                "tenant_key": tenant.key,
                "status_code": response.status_code,
                "verified": ok,
            },
        )
        return VerificationResult(ok=ok, status_code=response.status_code)

    async def ping(self, tenant: Tenant) -> PingResult:
        """
        Reachability check with a NoOpRequest; any SOAP-looking reply counts,
        including a SOAP fault.

        Raises:
            RemoteVerificationError: On transport, TLS or timeout failure
        """
        response = await self._post(tenant, build_noop_envelope())
        reachable = bool(SOAP_MARKER_PATTERN.search(response.text))
        return PingResult(reachable=reachable, status_code=response.status_code)
