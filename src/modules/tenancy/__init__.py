"""Tenancy module: tenant resolution, scoped sessions and elevated access."""

from src.modules.tenancy.admin import elevated_scope, with_elevated_context
from src.modules.tenancy.auth import AuthenticatedUser, create_access_token
from src.modules.tenancy.dependencies import (
    get_platform_db,
    get_tenant_db,
    require_permission,
    require_platform_admin,
    require_tenant,
)
from src.modules.tenancy.resolver import TenantResolver
from src.modules.tenancy.schemas import ElevationContext, TenantContext
from src.modules.tenancy.service import with_tenant_context

__all__ = [
    # Schemas
    "TenantContext",
    "ElevationContext",
    # Auth
    "AuthenticatedUser",
    "create_access_token",
    # Resolution
    "TenantResolver",
    # Dependencies
    "require_tenant",
    "require_permission",
    "require_platform_admin",
    "get_tenant_db",
    "get_platform_db",
    # Service
    "with_tenant_context",
    # Elevated access
    "elevated_scope",
    "with_elevated_context",
]
