# Only leaf modules are re-exported here. The engine and session modules pull in
# the ORM policy, which needs the models, and models import src.database.base.
from src.database.base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin
from src.database.tenant import TenantBinding, bind_tenant, clear_tenant, get_binding, tenant_scope

__all__ = [
    "Base",
    "TenantScopedMixin",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "TenantBinding",
    "bind_tenant",
    "clear_tenant",
    "get_binding",
    "tenant_scope",
]
