"""Tenancy module API router: request context and platform tenant administration."""

import uuid

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import TenantStatus
from src.modules.tenancy.cache import TenantStatusCache, get_tenant_cache
from src.modules.tenancy.dependencies import get_platform_db, require_platform_admin, require_tenant
from src.modules.tenancy.schemas import (
    SuspendTenantRequest,
    TenantContext,
    TenantContextResponse,
    TenantCreate,
    TenantListResponse,
    TenantResponse,
    TenantUpdate,
    TenantUsage,
)
from src.modules.tenancy.tenant_service import TenantService

router = APIRouter(prefix="/tenancy", tags=["tenancy"])
limiter = Limiter(key_func=get_remote_address)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


@router.get("/context", response_model=TenantContextResponse)
async def get_context(tenant: TenantContext = Depends(require_tenant)):
    """Return the tenant the caller's token resolves to."""
    return TenantContextResponse(
        tenant_id=tenant.tenant_id,
        user_id=tenant.user_id,
        permissions=tenant.permissions,
        is_platform_admin=tenant.is_platform_admin,
    )


# ---------------------------------------------------------------------------
# Tenant administration (platform admins, elevated session)
# ---------------------------------------------------------------------------


@router.post("/tenants", response_model=TenantResponse, status_code=201)
@limiter.limit("10/minute")
async def create_tenant(
    request: Request,
    body: TenantCreate,
    admin: TenantContext = Depends(require_platform_admin),
    db: AsyncSession = Depends(get_platform_db),
):
    svc = TenantService(db)
    return await svc.create_tenant(
        name=body.name,
        actor_id=admin.actor_id,
        slug=body.slug,
        settings=body.settings,
    )


@router.get("/tenants", response_model=TenantListResponse)
async def list_tenants(
    status: TenantStatus | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_platform_db),
):
    svc = TenantService(db)
    items, total = await svc.list_tenants(status=status, page=page, limit=limit)
    return TenantListResponse(
        items=[TenantResponse.model_validate(t) for t in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/usage", response_model=list[TenantUsage])
async def tenant_usage(db: AsyncSession = Depends(get_platform_db)):
    """Per-tenant student counts, read across all tenants."""
    svc = TenantService(db)
    return [TenantUsage(**row) for row in await svc.usage()]


@router.get("/tenants/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: uuid.UUID,
    db: AsyncSession = Depends(get_platform_db),
):
    svc = TenantService(db)
    return await svc.get_tenant(tenant_id)


@router.patch("/tenants/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: uuid.UUID,
    body: TenantUpdate,
    admin: TenantContext = Depends(require_platform_admin),
    db: AsyncSession = Depends(get_platform_db),
):
    svc = TenantService(db)
    return await svc.update_tenant(tenant_id, admin.actor_id, **body.model_dump(exclude_unset=True))


@router.post("/tenants/{tenant_id}/suspend", response_model=TenantResponse)
async def suspend_tenant(
    tenant_id: uuid.UUID,
    body: SuspendTenantRequest,
    admin: TenantContext = Depends(require_platform_admin),
    db: AsyncSession = Depends(get_platform_db),
    cache: TenantStatusCache | None = Depends(get_tenant_cache),
):
    svc = TenantService(db, cache)
    return await svc.suspend_tenant(tenant_id, admin.actor_id, body.reason)


@router.post("/tenants/{tenant_id}/activate", response_model=TenantResponse)
async def activate_tenant(
    tenant_id: uuid.UUID,
    admin: TenantContext = Depends(require_platform_admin),
    db: AsyncSession = Depends(get_platform_db),
    cache: TenantStatusCache | None = Depends(get_tenant_cache),
):
    svc = TenantService(db, cache)
    return await svc.activate_tenant(tenant_id, admin.actor_id)
