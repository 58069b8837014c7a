"""
Admin Routes
============

Operator endpoints for tenant configuration and login auditing. Every route
requires the X-Admin-Token header to match ADMIN_API_TOKEN.

Endpoints:
----------
- GET    /api/admin/tenants            : list tenants (secrets masked)
- POST   /api/admin/tenants            : create a tenant
- PUT    /api/admin/tenants/{key}      : update a tenant (blank secret keeps it)
- DELETE /api/admin/tenants/{key}      : delete a tenant
- POST   /api/admin/tenants/{key}/test : connectivity / credential check
- GET    /api/admin/stats              : aggregated login statistics
- GET    /api/admin/logs               : most recent login attempts

Tenant changes are written to the config file; the next login reads them.
"""

import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from ..audit.stats import compute_stats
from ..auth.failover import truncate
from ..dependencies import AppStateDep, get_tenant_store, require_admin_token
from ..exceptions import RemoteVerificationError, TenantNotFoundError
from ..models import TenantInput, TenantTestRequest, TenantTestResult
from ..tenants.store import IniTenantStore

logger = logging.getLogger(__name__)

admin_router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)

TenantStoreDep = Annotated[IniTenantStore, Depends(get_tenant_store)]


# =============================================================================
# Tenants
# =============================================================================

@admin_router.get("/tenants")
async def list_tenants(state: AppStateDep) -> Dict[str, Any]:
    snapshot = state.tenant_source.load()
    return {
        "tenants": [t.to_view().model_dump(mode="json") for t in snapshot.tenants],
        "defaultDomain": snapshot.default_domain,
    }


@admin_router.post("/tenants", status_code=201)
async def create_tenant(payload: TenantInput, store: TenantStoreDep) -> Dict[str, Any]:
    tenant = store.create(payload)
    return {"ok": True, "tenant": tenant.to_view().model_dump(mode="json")}


@admin_router.put("/tenants/{key}")
async def update_tenant(key: str, payload: TenantInput, store: TenantStoreDep) -> Dict[str, Any]:
    tenant = store.update(key, payload)
    return {"ok": True, "tenant": tenant.to_view().model_dump(mode="json")}


@admin_router.delete("/tenants/{key}")
async def delete_tenant(key: str, store: TenantStoreDep) -> Dict[str, Any]:
    store.delete(key)
    return {"ok": True}


@admin_router.post("/tenants/{key}/test", response_model=TenantTestResult)
async def test_tenant(
    key: str,
    state: AppStateDep,
    body: Optional[TenantTestRequest] = Body(None),
) -> TenantTestResult:
    """
    Check a tenant end to end.

    With a test credential the check runs a real AuthRequest (AUTH_OK /
    AUTH_FAIL); without one it only pings the SOAP endpoint (REACHABLE /
    UNREACHABLE). Transport and TLS errors always report UNREACHABLE.
    """
    snapshot = state.tenant_source.load()
    tenant = snapshot.get(key)
    if tenant is None:
        raise TenantNotFoundError(key)

    body = body or TenantTestRequest()
    details: Dict[str, Any] = {"tls": tenant.trust_mode.value}
    max_chars = state.settings.DIAGNOSTIC_MAX_CHARS

    try:
        if body.test_email and body.test_password:
            result = await state.verifier.verify(tenant, str(body.test_email), body.test_password)
            details["status"] = result.status_code
            if result.ok:
                details["check"] = "AUTH_OK"
                return TenantTestResult(ok=True, details=details)
            details["check"] = "AUTH_FAIL"
            return TenantTestResult(
                ok=False,
                error=f"AuthRequest rejected (HTTP {result.status_code})",
                details=details,
            )

        ping = await state.verifier.ping(tenant)
        details["status"] = ping.status_code
        if ping.reachable:
            details["check"] = "REACHABLE"
            return TenantTestResult(ok=True, details=details)
        details["check"] = "UNREACHABLE"
        return TenantTestResult(
            ok=False,
            error=f"No SOAP response from endpoint (HTTP {ping.status_code})",
            details=details,
        )

    except RemoteVerificationError as e:
        logger.warning(
            f"Tenant test failed: {e.message}",
            extra={"tenant_key": tenant.key},
        )
        details["check"] = "UNREACHABLE"
        return TenantTestResult(ok=False, error=truncate(e.message, max_chars), details=details)


# =============================================================================
# Audit
# =============================================================================

@admin_router.get("/stats")
async def get_stats(state: AppStateDep) -> Dict[str, Any]:
    records = state.audit_log.tail(state.settings.STATS_WINDOW)
    stats = compute_stats(records)
    return {"ok": True, "stats": stats.model_dump(by_alias=True)}


@admin_router.get("/logs")
async def get_logs(
    state: AppStateDep,
    limit: Optional[int] = Query(None, ge=1),
) -> Dict[str, Any]:
    settings = state.settings
    limit = min(limit or settings.LOGS_DEFAULT_LIMIT, settings.LOGS_MAX_LIMIT)
    return {"ok": True, "entries": state.audit_log.tail(limit)}
