"""
Login Routes
============

Public endpoints of the portal.

Endpoints:
----------
- POST /api/login   : verify a credential and return a preauth redirect
- GET  /api/servers : tenant keys/names/domains (only if PUBLIC_TENANT_LISTING)

Failures are raised as LoginError and rendered by the exception handlers;
the response never echoes the credential or transport error text.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, status

from ..dependencies import AppStateDep
from ..models import LoginFailureResponse, LoginRequest, LoginResponse

logger = logging.getLogger(__name__)

auth_router = APIRouter(
    prefix="/api",
    tags=["authentication"],
)


def extract_client_info(request: Request) -> Dict[str, str]:
    return {
        "ip": request.client.host if request.client else "",
        "user_agent": request.headers.get("user-agent", ""),
    }


@auth_router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        400: {"model": LoginFailureResponse},
        401: {"model": LoginFailureResponse},
        500: {"model": LoginFailureResponse},
    },
)
async def login(request: Request, login_request: LoginRequest, state: AppStateDep) -> LoginResponse:
    """
    Verify the credential against the owning tenant(s) and issue a preauth
    redirect for the first tenant that accepts it.
    """
    client = extract_client_info(request)
    outcome = await state.login_service.login(
        login_request,
        ip=client["ip"],
        user_agent=client["user_agent"],
    )

    if outcome.error is not None:
        raise outcome.error

    return LoginResponse(redirectUrl=outcome.redirect_url, tenantKey=outcome.tenant_key)


@auth_router.get("/servers")
async def list_servers(state: AppStateDep) -> Dict[str, Any]:
    if not state.settings.PUBLIC_TENANT_LISTING:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    snapshot = state.tenant_source.load()
    return {
        "servers": [
            {"key": t.key, "name": t.name, "domains": list(t.domains)}
            for t in snapshot.tenants
        ]
    }
