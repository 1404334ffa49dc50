"""Audit trail API router: read-only access to the caller's tenant audit log."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.audit.schemas import AuditLogListResponse, AuditLogResponse
from src.modules.audit.service import AuditService
from src.modules.tenancy.dependencies import get_tenant_db, require_permission
from src.modules.tenancy.schemas import TenantContext

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    entity_type: str | None = None,
    entity_id: uuid.UUID | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    tenant: TenantContext = Depends(require_permission("audit:read")),
    db: AsyncSession = Depends(get_tenant_db),
):
    svc = AuditService(db)
    items, total = await svc.list_entries(
        tenant.tenant_id,
        entity_type=entity_type,
        entity_id=entity_id,
        page=page,
        limit=limit,
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(e) for e in items],
        total=total,
        page=page,
        limit=limit,
    )
