"""
Login service: one failover run plus its audit record.
"""

import logging
import time
from datetime import datetime, timezone

from ..audit.log import AuditLog
from ..models import LoginAttempt, LoginRequest
from .failover import FailoverController, LoginOutcome

logger = logging.getLogger(__name__)

USER_AGENT_MAX_CHARS = 500


class LoginService:
    """
    Runs the failover controller and writes exactly one LoginAttempt per
    call, before the caller gets its response.
    """

    def __init__(self, controller: FailoverController, audit_log: AuditLog):
        self.controller = controller
        self.audit_log = audit_log

    async def login(
        self,
        login_request: LoginRequest,
        ip: str = "",
        user_agent: str = "",
    ) -> LoginOutcome:
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()

        outcome = await self.controller.run(
            login_request.identifier,
            login_request.password,
            tenant_key_override=login_request.tenantKey,
        )

        attempt = LoginAttempt(
            timestamp=started_at,
            normalized_email=outcome.email,
            domain=outcome.domain,
            chosen_tenant_key=outcome.tenant_key,
            attempted_tenant_keys=outcome.attempted_tenant_keys,
            result="ok" if outcome.ok else "fail",
            failure_reason=outcome.error.reason.value if outcome.error else None,
            latency_ms=int((time.monotonic() - started) * 1000),
            ip=ip,
            user_agent=user_agent[:USER_AGENT_MAX_CHARS],
            error=outcome.last_error,
            candidates=outcome.attempts,
        )
        await self.audit_log.append(attempt)

        logger.info(
            f"Login {attempt.result}",
            extra={
                "domain": outcome.domain,
                "tenant_key": outcome.tenant_key,
                "attempted": outcome.attempted_tenant_keys,
                "reason": attempt.failure_reason,
                "latency_ms": attempt.latency_ms,
            },
        )
        return outcome
