"""
Application state and FastAPI dependencies.
"""

import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from .audit.log import AuditLog
from .auth.failover import FailoverController
from .auth.service import LoginService
from .auth.verifier import SoapCredentialVerifier
from .config import Settings
from .tenants.source import TenantSource
from .tenants.store import IniTenantStore


class AppState:
    """
    Application state container.

    Holds the per-process collaborators; the tenant registry itself is not
    held here, only the source that is asked for a fresh snapshot per login.
    """

    def __init__(
        self,
        settings: Settings,
        tenant_source: Optional[TenantSource] = None,
        verifier: Optional[SoapCredentialVerifier] = None,
        audit_log: Optional[AuditLog] = None,
    ):
        self.settings = settings
        self.tenant_source: TenantSource = tenant_source or IniTenantStore(
            settings.CONFIG_PATH,
            key_prefix=settings.TENANT_KEY_PREFIX,
        )
        self.verifier = verifier or SoapCredentialVerifier.from_settings(settings)
        self.audit_log = audit_log or AuditLog(settings.audit_log_path)
        self.controller = FailoverController(
            tenant_source=self.tenant_source.load,
            verifier=self.verifier,
            diagnostic_max_chars=settings.DIAGNOSTIC_MAX_CHARS,
        )
        self.login_service = LoginService(self.controller, self.audit_log)


def get_app_state(request: Request) -> AppState:
    """
    Dependency to get the application state.

    Raises:
        HTTPException: 503 if the app was built without state
    """
    state = getattr(request.app.state, "app_state", None)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application state not initialized",
        )
    return state


AppStateDep = Annotated[AppState, Depends(get_app_state)]


def get_tenant_store(state: AppStateDep) -> IniTenantStore:
    """Dependency for admin routes that edit tenants."""
    if not isinstance(state.tenant_source, IniTenantStore):
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Tenant source is read-only",
        )
    return state.tenant_source


def require_admin_token(
    state: AppStateDep,
    x_admin_token: Optional[str] = Header(None),
) -> None:
    """
    Dependency that ensures admin requests carry the configured token.
    """
    expected = state.settings.ADMIN_API_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API disabled: ADMIN_API_TOKEN not set",
        )
    if not x_admin_token or not secrets.compare_digest(
        x_admin_token.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
        )
