"""
REST API for custom domain management.

Consumed by the storefront admin (tenant endpoints) and the operator
console (listing and diagnostics). Callers authenticate with the shared
service token; end-user sessions are handled upstream.
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..domains.errors import (
    ConflictError,
    DomainError,
    InvalidTransitionError,
    NotFoundError,
    PlanRequiredError,
    ValidationError,
)
from ..domains.models import Tenant

logger = logging.getLogger("waveorder_domains.api.domains")

router = APIRouter(prefix="/api", tags=["domains"])

security = HTTPBearer()

_STATUS_CODES = {
    ValidationError: 400,
    PlanRequiredError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    InvalidTransitionError: 409,
}


def _http_error(e: DomainError) -> HTTPException:
    for exc_type, status_code in _STATUS_CODES.items():
        if isinstance(e, exc_type):
            return HTTPException(status_code=status_code, detail=e.to_dict())
    return HTTPException(status_code=500, detail=e.to_dict())


# ── Auth dependency ──────────────────────────────────────────────────

async def require_service_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> None:
    """Check the Bearer token against the configured service token."""
    expected = request.app.state.settings.api_token
    if not expected or not secrets.compare_digest(
        credentials.credentials.encode(), expected.encode()
    ):
        raise HTTPException(status_code=401, detail="Invalid token")


# ── Request / Response models ────────────────────────────────────────

class DomainRequest(BaseModel):
    domain: str


class TenantSync(BaseModel):
    slug: str
    plan: str = "FREE"
    name: str = ""


# ── Tenant routes ────────────────────────────────────────────────────

@router.put("/tenants/{tenant_id}", dependencies=[Depends(require_service_token)])
async def sync_tenant(tenant_id: str, body: TenantSync, request: Request):
    """Upsert the slug and plan of a tenant (pushed by the business CRUD layer)."""
    tenant = Tenant(
        tenant_id=tenant_id,
        slug=body.slug,
        plan=body.plan.upper(),
        name=body.name,
    )
    await request.app.state.tenant_directory.upsert(tenant)
    return tenant.to_dict()


@router.get("/tenants/{tenant_id}/domain", dependencies=[Depends(require_service_token)])
async def get_domain_config(tenant_id: str, request: Request):
    """Fetch the current domain configuration of a tenant."""
    orchestrator = request.app.state.orchestrator
    try:
        config = await orchestrator.get_domain_config(tenant_id)
    except DomainError as e:
        raise _http_error(e)
    return config.to_dict()


@router.post("/tenants/{tenant_id}/domain", dependencies=[Depends(require_service_token)])
async def request_domain(tenant_id: str, body: DomainRequest, request: Request):
    """Add or change a tenant's custom domain and issue a verification token."""
    orchestrator = request.app.state.orchestrator
    try:
        result = await orchestrator.request_domain(tenant_id, body.domain)
    except DomainError as e:
        raise _http_error(e)
    return {"success": True, **result.to_dict()}


@router.post(
    "/tenants/{tenant_id}/domain/verify",
    dependencies=[Depends(require_service_token)],
)
async def verify_domain(tenant_id: str, request: Request):
    """Check DNS and provision the domain if DNS is in place."""
    orchestrator = request.app.state.orchestrator
    try:
        outcome = await orchestrator.verify_domain(tenant_id)
        config = await orchestrator.get_domain_config(tenant_id)
    except DomainError as e:
        raise _http_error(e)
    return {**outcome.to_dict(), "config": config.to_dict()}


@router.delete("/tenants/{tenant_id}/domain", dependencies=[Depends(require_service_token)])
async def remove_domain(tenant_id: str, request: Request):
    """Remove a tenant's custom domain."""
    orchestrator = request.app.state.orchestrator
    try:
        record = await orchestrator.remove_domain(tenant_id)
    except DomainError as e:
        raise _http_error(e)
    return {
        "success": True,
        "message": "Custom domain removed successfully",
        "domain": record.to_api_response(),
    }


# ── Operator routes ──────────────────────────────────────────────────

@router.get("/domains", dependencies=[Depends(require_service_token)])
async def list_domains(
    request: Request,
    status: Optional[str] = "all",
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
):
    """List configured custom domains with status counts."""
    orchestrator = request.app.state.orchestrator
    return await orchestrator.list_domains(
        status=status, search=search, page=page, limit=limit
    )


@router.get(
    "/domains/{domain}/diagnostics",
    dependencies=[Depends(require_service_token)],
)
async def run_diagnostics(domain: str, request: Request):
    """Run live DNS, TLS and connectivity checks for a domain."""
    reporter = request.app.state.diagnostics
    try:
        report = await reporter.run(domain)
    except DomainError as e:
        raise _http_error(e)
    return report.to_dict()
