"""FastAPI dependency functions for tenant resolution and scoped sessions."""

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.database.session import get_db, get_session_factory
from src.database.tenant import tenant_scope
from src.exceptions import ForbiddenException, TenantResolutionException, UnauthenticatedException
from src.modules.tenancy.admin import elevated_scope
from src.modules.tenancy.auth import bearer_scheme, user_from_token
from src.modules.tenancy.cache import TenantStatusCache, get_tenant_cache
from src.modules.tenancy.constants import PERMISSION_WILDCARD
from src.modules.tenancy.resolver import TenantResolver, log_rejection
from src.modules.tenancy.schemas import ElevationContext, TenantContext


async def require_tenant(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    cache: TenantStatusCache | None = Depends(get_tenant_cache),
) -> TenantContext:
    """Resolve the request's tenant from its bearer token.

    Every failure (no token, bad token, unknown or suspended tenant, header
    mismatch) is logged with the request metadata and surfaces as the same
    401 response. The token is checked before any database access.
    """
    claimed_tenant_id = None
    try:
        if credentials is None:
            raise UnauthenticatedException("Authorization header is required")
        user = user_from_token(credentials.credentials)
        claimed_tenant_id = user.tenant_id
        request.state.user = user

        resolver = TenantResolver(db, cache)
        tenant = await resolver.resolve(
            user,
            header_tenant_id=request.headers.get(settings.tenant_header_name),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("User-Agent"),
        )
    except TenantResolutionException as exc:
        log_rejection(
            exc,
            request_id=getattr(request.state, "request_id", "unknown"),
            path=request.url.path,
            claimed_tenant_id=claimed_tenant_id,
        )
        raise

    request.state.tenant_context = tenant
    return tenant


def require_permission(permission: str):
    """Factory that returns a dependency checking a permission code from the token.

    Codes follow the "<module>:<action>" convention (e.g. ``students:read``);
    the ``*`` wildcard and platform admins pass every check.
    """

    async def _check(tenant: TenantContext = Depends(require_tenant)) -> TenantContext:
        if tenant.is_platform_admin:
            return tenant
        if PERMISSION_WILDCARD in tenant.permissions or permission in tenant.permissions:
            return tenant
        raise ForbiddenException(f"Permission denied: {permission}")

    return _check


async def require_platform_admin(tenant: TenantContext = Depends(require_tenant)) -> TenantContext:
    if not tenant.is_platform_admin:
        raise ForbiddenException("Platform administrator access required")
    return tenant


async def get_tenant_db(
    tenant: TenantContext = Depends(require_tenant),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session bound to the request's tenant for the whole request.

    Commits when the endpoint succeeds, rolls back when it raises, and clears
    the binding in both cases.
    """
    async with session_factory() as session:
        async with tenant_scope(session, tenant.to_binding()):
            yield session


async def get_platform_db(
    request: Request,
    admin: TenantContext = Depends(require_platform_admin),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an elevated session for platform-administration endpoints.

    Each request opens its own elevated session, so every cross-tenant
    administrative call leaves an ELEVATED_ACCESS entry in the audit trail.
    """
    context = ElevationContext(
        actor_id=admin.actor_id,
        justification=f"{request.method} {request.url.path}",
        operation="tenant_administration",
        is_platform_admin=True,
    )
    async with session_factory() as session:
        async with elevated_scope(session, context):
            yield session
