"""Resolves the tenant of an authenticated request and checks it is active."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import (
    TenantNotFoundException,
    TenantResolutionException,
    TenantSuspendedException,
    UnauthenticatedException,
)
from src.models.enums import TenantStatus
from src.models.tenant import Tenant
from src.modules.tenancy.auth import AuthenticatedUser
from src.modules.tenancy.cache import TenantStatusCache
from src.modules.tenancy.schemas import TenantContext

logger = logging.getLogger(__name__)


class TenantResolver:
    """Turns a token-authenticated user into a validated TenantContext.

    The tenant claim inside the token is authoritative. A client-supplied
    tenant header is only compared against it; a mismatch is rejected the
    same way as a missing token.
    """

    def __init__(self, db: AsyncSession, cache: TenantStatusCache | None = None) -> None:
        self.db = db
        self.cache = cache

    async def resolve(
        self,
        user: AuthenticatedUser | None,
        header_tenant_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TenantContext:
        if user is None:
            raise UnauthenticatedException("No authenticated user")

        if header_tenant_id is not None and not self._header_matches(header_tenant_id, user.tenant_id):
            raise UnauthenticatedException(
                f"Tenant header {header_tenant_id!r} does not match token tenant {user.tenant_id}"
            )

        status = await self.get_status(user.tenant_id)
        if status is None:
            raise TenantNotFoundException(f"Tenant {user.tenant_id} does not exist")
        if status != TenantStatus.ACTIVE:
            raise TenantSuspendedException(f"Tenant {user.tenant_id} is {status.value}")

        return TenantContext(
            tenant_id=user.tenant_id,
            user_id=user.id,
            permissions=user.permissions,
            is_platform_admin=user.is_platform_admin,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def get_status(self, tenant_id: uuid.UUID) -> TenantStatus | None:
        if self.cache is not None:
            cached = await self.cache.get_status(tenant_id)
            if cached is not None:
                return cached

        result = await self.db.execute(select(Tenant.status).where(Tenant.id == tenant_id))
        status = result.scalar_one_or_none()

        if status is not None and self.cache is not None:
            await self.cache.set_status(tenant_id, status)
        return status

    @staticmethod
    def _header_matches(header_tenant_id: str, token_tenant_id: uuid.UUID) -> bool:
        try:
            return uuid.UUID(header_tenant_id.strip()) == token_tenant_id
        except ValueError:
            return False


def log_rejection(exc: TenantResolutionException, request_id: str, path: str, claimed_tenant_id=None) -> None:
    logger.warning(
        "Tenant resolution rejected request_id=%s path=%s reason=%s tenant=%s detail=%s",
        request_id,
        path,
        exc.reason,
        claimed_tenant_id,
        exc.internal_message,
    )
