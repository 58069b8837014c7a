"""
Failover Controller
===================

Drives one login through the candidate tenants:

    START -> RESOLVE -> VERIFY_CANDIDATE(i) -> SUCCESS
                                            -> NEXT_CANDIDATE -> VERIFY_CANDIDATE(i+1)
                                            -> EXHAUSTED
    (any pre-resolution error)              -> FAILED

Candidates are tried strictly in resolver order, one at a time, each at most
once. The first verified candidate wins and no later candidate is called.
Errors raised by the verifier for one candidate are absorbed and the next
candidate is tried.

The controller never raises for a login failure: it returns a LoginOutcome
whose ``error`` carries the LoginError for the HTTP layer and the audit log.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from ..exceptions import (
    AuthFailedError,
    InternalPortalError,
    InvalidEmailError,
    LoginError,
    MissingCredentialsError,
    PortalError,
)
from ..models import CandidateAttempt, CandidateOutcome, TenantSnapshot
from .preauth import build_redirect, current_timestamp_millis
from .resolver import extract_domain, normalize_email, resolve
from .verifier import CredentialVerifier

logger = logging.getLogger(__name__)

MAX_IDENTIFIER_CHARS = 320
MAX_PASSWORD_CHARS = 1024


class FailoverState(str, Enum):
    START = "start"
    RESOLVE = "resolve"
    VERIFY_CANDIDATE = "verifyCandidate"
    NEXT_CANDIDATE = "nextCandidate"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass
class LoginOutcome:
    """Terminal result of one login call."""

    email: str = ""
    domain: str = ""
    tenant_key: str = ""
    redirect_url: Optional[str] = None
    error: Optional[LoginError] = None
    last_error: str = ""
    attempts: List[CandidateAttempt] = field(default_factory=list)
    transitions: List[FailoverState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.redirect_url is not None

    @property
    def attempted_tenant_keys(self) -> List[str]:
        return [attempt.tenant_key for attempt in self.attempts]

    @property
    def state(self) -> FailoverState:
        return self.transitions[-1] if self.transitions else FailoverState.START


def truncate(text: str, limit: int) -> str:
    text = " ".join(str(text).split())
    return text[:limit]


class FailoverController:
    """
    Args:
        tenant_source: Read-through accessor returning the current tenants;
            called once at the start of every login
        verifier: Credential verifier used for each candidate
        clock: Millisecond timestamp source for token issuance
        diagnostic_max_chars: Length cap of error text kept for operators
    """

    def __init__(
        self,
        tenant_source: Callable[[], TenantSnapshot],
        verifier: CredentialVerifier,
        clock: Callable[[], str] = current_timestamp_millis,
        diagnostic_max_chars: int = 200,
    ):
        self.tenant_source = tenant_source
        self.verifier = verifier
        self.clock = clock
        self.diagnostic_max_chars = diagnostic_max_chars

    async def run(
        self,
        identifier: str,
        password: str,
        tenant_key_override: Optional[str] = None,
    ) -> LoginOutcome:
        outcome = LoginOutcome(transitions=[FailoverState.START])
        try:
            await self._run(outcome, identifier, password, tenant_key_override)

        except LoginError as e:
            outcome.error = e
            if outcome.state is not FailoverState.EXHAUSTED:
                outcome.transitions.append(FailoverState.FAILED)

        except PortalError as e:
            # tenant configuration could not be read
            logger.error(f"Login aborted: {e.message}", extra={"error_code": e.code})
            outcome.last_error = truncate(e.message, self.diagnostic_max_chars)
            outcome.error = InternalPortalError(e.message)
            outcome.transitions.append(FailoverState.FAILED)

        except Exception as e:
            logger.error(
                f"Unexpected error in login: {e}",
                exc_info=True,
                extra={"domain": outcome.domain, "attempted": outcome.attempted_tenant_keys},
            )
            outcome.last_error = truncate(f"{type(e).__name__}: {e}", self.diagnostic_max_chars)
            outcome.error = InternalPortalError()
            outcome.transitions.append(FailoverState.FAILED)

        return outcome

    async def _run(
        self,
        outcome: LoginOutcome,
        identifier: str,
        password: str,
        tenant_key_override: Optional[str],
    ) -> None:
        identifier = (identifier or "").strip()
        if not identifier or not password:
            raise MissingCredentialsError()
        if len(identifier) > MAX_IDENTIFIER_CHARS:
            raise InvalidEmailError("Identifier is too long")

        snapshot = self.tenant_source()
        outcome.email = normalize_email(identifier, snapshot.default_domain)
        outcome.domain = extract_domain(outcome.email)

        if len(password) > MAX_PASSWORD_CHARS:
            outcome.last_error = "password exceeds maximum length"
            raise AuthFailedError([], last_error=outcome.last_error)

        outcome.transitions.append(FailoverState.RESOLVE)
        resolution = resolve(
            identifier,
            snapshot.tenants,
            default_domain=snapshot.default_domain,
            tenant_key_override=tenant_key_override,
        )

        for index, tenant in enumerate(resolution.candidates):
            if index > 0:
                outcome.transitions.append(FailoverState.NEXT_CANDIDATE)
            outcome.transitions.append(FailoverState.VERIFY_CANDIDATE)

            try:
                result = await self.verifier.verify(tenant, outcome.email, password)
            except Exception as e:
                outcome.last_error = truncate(str(e) or type(e).__name__, self.diagnostic_max_chars)
                outcome.attempts.append(
                    CandidateAttempt(
                        tenant_key=tenant.key,
                        outcome=CandidateOutcome.REMOTE_ERROR,
                        error=outcome.last_error,
                    )
                )
                logger.warning(
                    f"Candidate {tenant.key} failed: reason=remoteError",
                    extra={
                        "tenant_key": tenant.key,
                        "domain": outcome.domain,
                        "error": outcome.last_error,
                    },
                )
                continue

            if not result.ok:
                outcome.attempts.append(
                    CandidateAttempt(
                        tenant_key=tenant.key,
                        outcome=CandidateOutcome.REJECTED,
                        status=result.status_code,
                    )
                )
                logger.info(
                    f"Candidate {tenant.key} rejected credential",
                    extra={"tenant_key": tenant.key, "status_code": result.status_code},
                )
                continue

            outcome.attempts.append(
                CandidateAttempt(
                    tenant_key=tenant.key,
                    outcome=CandidateOutcome.OK,
                    status=result.status_code,
                )
            )
            try:
                outcome.redirect_url = build_redirect(tenant, outcome.email, clock=self.clock)
            except Exception as e:
                logger.error(
                    f"Preauth signing failed for {tenant.key}: {e}",
                    exc_info=True,
                    extra={"tenant_key": tenant.key},
                )
                outcome.last_error = truncate(f"signing failed: {e}", self.diagnostic_max_chars)
                raise InternalPortalError("Token signing failed") from e

            outcome.tenant_key = tenant.key
            outcome.transitions.append(FailoverState.SUCCESS)
            return

        outcome.transitions.append(FailoverState.EXHAUSTED)
        raise AuthFailedError(outcome.attempted_tenant_keys, last_error=outcome.last_error)
