"""AuditService: explicit audit entries and audit trail queries."""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.tenant import get_binding
from src.models.audit import AuditLog
from src.models.enums import AuditAction


class AuditService:
    """Writes audit entries for events the flush hook does not see, and reads the trail.

    Mutations of tenant-scoped rows are audited automatically at flush time;
    this service covers platform events such as tenant provisioning and
    elevated access.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(
        self,
        action: AuditAction,
        entity_type: str,
        actor_id: str,
        tenant_id: uuid.UUID | None,
        entity_id: uuid.UUID | None = None,
        old_values: dict | None = None,
        new_values: dict | None = None,
        reason: str | None = None,
    ) -> AuditLog:
        binding = get_binding(self.session)
        entry = AuditLog(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
            reason=reason,
            ip_address=binding.ip_address if binding else None,
            user_agent=binding.user_agent if binding else None,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_entries(
        self,
        tenant_id: uuid.UUID,
        entity_type: str | None = None,
        entity_id: uuid.UUID | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[AuditLog], int]:
        """Return one page of a tenant's audit trail, newest first, plus the total count."""
        conditions = [AuditLog.tenant_id == tenant_id]
        if entity_type is not None:
            conditions.append(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            conditions.append(AuditLog.entity_id == entity_id)

        total = (
            await self.session.execute(select(func.count()).select_from(AuditLog).where(*conditions))
        ).scalar() or 0

        result = await self.session.execute(
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.created_at.desc(), AuditLog.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total
