"""Service layer for executing work within a tenant-scoped transaction."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.tenant import tenant_scope
from src.modules.tenancy.schemas import TenantContext

T = TypeVar("T")


async def with_tenant_context(
    session: AsyncSession,
    tenant_context: TenantContext,
    callback: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Execute a callback within a transaction bound to the context's tenant.

    The binding is installed before the callback runs (RLS session variables on
    PostgreSQL, ORM criteria everywhere) and removed on every exit path. The
    transaction commits when the callback returns and rolls back if it raises.

    Args:
        session: The async database session.
        tenant_context: The tenant context to apply.
        callback: An async callable that receives the session and returns a result.

    Returns:
        The result of the callback.
    """
    async with tenant_scope(session, tenant_context.to_binding()):
        return await callback(session)
