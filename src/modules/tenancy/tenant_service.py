"""Tenant provisioning and lifecycle service."""

import logging
import re
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import BusinessRuleException, ConflictException, NotFoundException
from src.models.enums import AuditAction, TenantStatus
from src.models.student import Student
from src.models.tenant import Tenant
from src.modules.audit.service import AuditService
from src.modules.tenancy.cache import TenantStatusCache
from src.modules.tenancy.constants import TENANT_ENTITY_TYPE

logger = logging.getLogger(__name__)


class TenantService:
    """Creates tenants and moves them between ACTIVE and SUSPENDED.

    Tenants are never deleted: every scoped row references one. Each change
    is written to the audit trail and drops the tenant's cached status.
    """

    def __init__(self, db: AsyncSession, cache: TenantStatusCache | None = None):
        self.db = db
        self.cache = cache
        self.audit = AuditService(db)

    async def create_tenant(
        self,
        name: str,
        actor_id: str,
        slug: str | None = None,
        settings: dict | None = None,
    ) -> Tenant:
        if slug is None:
            slug = await self.generate_slug(name)
        else:
            existing = await self._get_by_slug(slug)
            if existing:
                raise ConflictException(f"Tenant slug '{slug}' already exists")

        tenant = Tenant(
            name=name,
            slug=slug,
            status=TenantStatus.ACTIVE,
            settings=settings or {},
        )
        self.db.add(tenant)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            if "ix_tenants_slug" in str(exc) or "slug" in str(exc):
                raise ConflictException(f"Tenant slug '{slug}' already exists") from exc
            raise

        await self.audit.record(
            action=AuditAction.TENANT_PROVISIONED,
            entity_type=TENANT_ENTITY_TYPE,
            actor_id=actor_id,
            tenant_id=tenant.id,
            entity_id=tenant.id,
            new_values={"name": name, "slug": slug},
        )
        logger.info("Tenant provisioned id=%s slug=%s by=%s", tenant.id, slug, actor_id)
        return tenant

    async def get_tenant(self, tenant_id: uuid.UUID) -> Tenant:
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        tenant = result.scalar_one_or_none()
        if tenant is None:
            raise NotFoundException(f"Tenant {tenant_id} not found")
        return tenant

    async def list_tenants(
        self,
        status: TenantStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Tenant], int]:
        conditions = []
        if status is not None:
            conditions.append(Tenant.status == status)

        total = (
            await self.db.execute(select(func.count()).select_from(Tenant).where(*conditions))
        ).scalar() or 0
        result = await self.db.execute(
            select(Tenant).where(*conditions).order_by(Tenant.name).offset((page - 1) * limit).limit(limit)
        )
        return list(result.scalars().all()), total

    async def update_tenant(self, tenant_id: uuid.UUID, actor_id: str, **changes) -> Tenant:
        """Update name and/or settings. Slug and status have their own operations."""
        tenant = await self.get_tenant(tenant_id)
        old_values: dict = {}
        new_values: dict = {}
        for key in ("name", "settings"):
            if key in changes and changes[key] is not None and getattr(tenant, key) != changes[key]:
                old_values[key] = getattr(tenant, key)
                new_values[key] = changes[key]
                setattr(tenant, key, changes[key])
        if not new_values:
            return tenant

        await self.db.flush()
        await self.audit.record(
            action=AuditAction.TENANT_UPDATED,
            entity_type=TENANT_ENTITY_TYPE,
            actor_id=actor_id,
            tenant_id=tenant.id,
            entity_id=tenant.id,
            old_values=old_values,
            new_values=new_values,
        )
        return tenant

    async def suspend_tenant(self, tenant_id: uuid.UUID, actor_id: str, reason: str) -> Tenant:
        return await self._set_status(tenant_id, TenantStatus.SUSPENDED, AuditAction.TENANT_SUSPENDED, actor_id, reason)

    async def activate_tenant(self, tenant_id: uuid.UUID, actor_id: str) -> Tenant:
        return await self._set_status(tenant_id, TenantStatus.ACTIVE, AuditAction.TENANT_ACTIVATED, actor_id)

    async def usage(self) -> list[dict]:
        """Scoped-row counts per tenant. Only meaningful inside an elevated session."""
        student_counts = (
            select(Student.tenant_id, func.count(Student.id).label("student_count"))
            .group_by(Student.tenant_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Tenant.id, Tenant.slug, Tenant.status, func.coalesce(student_counts.c.student_count, 0))
            .outerjoin(student_counts, student_counts.c.tenant_id == Tenant.id)
            .order_by(Tenant.slug)
        )
        return [
            {"tenant_id": row[0], "slug": row[1], "status": row[2], "student_count": row[3]}
            for row in result.all()
        ]

    async def generate_slug(self, name: str, max_attempts: int = 100) -> str:
        """Generate a unique URL-friendly slug from the tenant name."""
        base_slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
        if not base_slug:
            base_slug = "tenant"
        slug = base_slug
        counter = 1
        while await self._get_by_slug(slug):
            slug = f"{base_slug}-{counter}"
            counter += 1
            if counter > max_attempts:
                raise ConflictException(f"Could not generate unique slug for '{name}'")
        return slug

    async def _set_status(
        self,
        tenant_id: uuid.UUID,
        status: TenantStatus,
        action: AuditAction,
        actor_id: str,
        reason: str | None = None,
    ) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        if tenant.status == status:
            raise BusinessRuleException(f"Tenant {tenant_id} is already {status.value}")

        previous = tenant.status
        tenant.status = status
        await self.db.flush()
        await self.audit.record(
            action=action,
            entity_type=TENANT_ENTITY_TYPE,
            actor_id=actor_id,
            tenant_id=tenant.id,
            entity_id=tenant.id,
            old_values={"status": previous.value},
            new_values={"status": status.value},
            reason=reason,
        )
        if self.cache is not None:
            await self.cache.invalidate(tenant.id)
        logger.info("Tenant %s status %s -> %s by=%s", tenant.id, previous.value, status.value, actor_id)
        return tenant

    async def _get_by_slug(self, slug: str) -> Tenant | None:
        result = await self.db.execute(select(Tenant).where(Tenant.slug == slug))
        return result.scalar_one_or_none()
