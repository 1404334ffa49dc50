"""Elevated (cross-tenant) sessions for platform operations, with audit logging."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.tenant import TenantBinding, bind_tenant, clear_tenant
from src.exceptions import ElevationDeniedException
from src.models.enums import AuditAction
from src.modules.audit.service import AuditService
from src.modules.tenancy.constants import ELEVATION_ENTITY_TYPE, PLATFORM_ADMIN_ACTOR
from src.modules.tenancy.schemas import ElevationContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_elevation_allowed(context: ElevationContext, allowlist: list[str] | None = None) -> bool:
    allowed = settings.elevated_actor_list if allowlist is None else allowlist
    if context.actor_id in allowed:
        return True
    return context.is_platform_admin and PLATFORM_ADMIN_ACTOR in allowed


@asynccontextmanager
async def elevated_scope(session: AsyncSession, context: ElevationContext) -> AsyncIterator[AsyncSession]:
    """Run a unit of work with tenant filtering disabled.

    The audit entry for the elevation is committed in its own transaction
    before any elevated work runs, so the access is on record even if the
    work fails. The elevated binding is cleared on every exit path.
    """
    if not is_elevation_allowed(context):
        logger.warning(
            "Elevation denied actor=%s operation=%s",
            context.actor_id,
            context.operation,
        )
        raise ElevationDeniedException("Elevated access is not permitted for this actor")

    binding = TenantBinding(
        tenant_id=None,
        actor_id=context.actor_id,
        elevated=True,
        justification=context.justification,
    )
    try:
        await bind_tenant(session, binding)
        await AuditService(session).record(
            action=AuditAction.ELEVATED_ACCESS,
            entity_type=ELEVATION_ENTITY_TYPE,
            actor_id=context.actor_id,
            tenant_id=None,
            new_values={"operation": context.operation, "justification": context.justification},
            reason=context.justification,
        )
        await session.commit()
        logger.warning(
            "Elevated session opened actor=%s operation=%s justification=%s",
            context.actor_id,
            context.operation,
            context.justification,
        )

        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
    finally:
        clear_tenant(session)
        logger.info("Elevated session closed actor=%s operation=%s", context.actor_id, context.operation)


async def with_elevated_context(
    session: AsyncSession,
    context: ElevationContext,
    callback: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Execute a callback inside an elevated session.

    Args:
        session: The async database session.
        context: Who is elevating and why; checked against the allowlist.
        callback: An async callable that receives the session and returns a result.

    Returns:
        The result of the callback.
    """
    async with elevated_scope(session, context):
        return await callback(session)
