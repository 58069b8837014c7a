"""
Preauth Portal Application Factory
==================================

Entry point for the login portal that fronts several independent mail
platform deployments ("tenants") that share one login page.

Architecture:
    Browser → Portal (this service) → Tenant SOAP endpoint (verify)
    Browser ← signed preauth redirect → Tenant webmail

Routers:
    - /api/login        : credential verification and preauth redirect
    - /api/servers      : public tenant listing (opt-in)
    - /api/admin/*      : tenant CRUD, connection tests, audit (X-Admin-Token)
    - /api/health       : health check endpoint

Environment Variables:
    - CONFIG_PATH: Tenant INI file (default: config.ini)
    - CA_BASE_DIR: Base directory for relative tenant CA paths
    - DATA_DIR / AUDIT_LOG_FILE: Login audit ledger location
    - ADMIN_API_TOKEN: Enables the admin API when set
    - ALLOWED_ORIGINS: Comma-separated CORS origins
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn preauth_portal.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn preauth_portal.main:app --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .admin.routes import admin_router
from .audit.log import AuditLog
from .auth.routes import auth_router
from .auth.verifier import SoapCredentialVerifier
from .config import Settings, get_settings, validate_configuration
from .dependencies import AppState
from .exception_handlers import register_exception_handlers
from .models import HealthResponse
from .tenants.source import TenantSource

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Report configuration problems (missing tenant file, admin API off)

    Tenants are not loaded here; every login reads a fresh snapshot.
    """
    state: AppState = app.state.app_state
    settings = state.settings

    setup_logging(settings.LOG_LEVEL)

    report = validate_configuration(settings)
    for error in report["errors"]:
        logger.error(error)
    for warning in report["warnings"]:
        logger.warning(warning)

    logger.info(
        f"Starting {settings.APP_NAME}",
        extra={
            "version": settings.APP_VERSION,
            "config_path": settings.CONFIG_PATH,
            "audit_log": str(settings.audit_log_path),
            "admin_api": bool(settings.ADMIN_API_TOKEN),
        },
    )

    yield

    logger.info(f"{settings.APP_NAME} shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    tenant_source: Optional[TenantSource] = None,
    verifier: Optional[SoapCredentialVerifier] = None,
    audit_log: Optional[AuditLog] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Defaults to get_settings()
        tenant_source: Defaults to an IniTenantStore over CONFIG_PATH
        verifier: Defaults to a SoapCredentialVerifier built from settings
        audit_log: Defaults to the JSONL ledger at settings.audit_log_path

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Multi-tenant login portal issuing preauth redirects",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    app.state.app_state = AppState(
        settings,
        tenant_source=tenant_source,
        verifier=verifier,
        audit_log=audit_log,
    )

    origins = settings.allowed_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=False,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(admin_router)

    @app.get("/api/health", response_model=HealthResponse, tags=["System"])
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", service=settings.APP_NAME)

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    _settings = get_settings()
    uvicorn.run(
        "preauth_portal.main:app",
        host=_settings.HOST,
        port=_settings.PORT,
        log_level=_settings.LOG_LEVEL.lower(),
    )
