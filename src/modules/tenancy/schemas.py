"""Pydantic schemas for tenant context, elevated access and tenant provisioning."""

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from src.database.tenant import TenantBinding
from src.models.enums import TenantStatus
from src.modules.tenancy.constants import USER_ACTOR_PREFIX


class TenantContext(BaseModel):
    """The validated tenant an authenticated request acts for."""

    tenant_id: uuid.UUID
    user_id: uuid.UUID
    permissions: list[str] = []
    is_platform_admin: bool = False
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def actor_id(self) -> str:
        return f"{USER_ACTOR_PREFIX}{self.user_id}"

    def to_binding(self) -> TenantBinding:
        return TenantBinding(
            tenant_id=self.tenant_id,
            actor_id=self.actor_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
        )


class ElevationContext(BaseModel):
    """Who opens an elevated (cross-tenant) session, and why."""

    actor_id: str
    justification: str = Field(..., min_length=1)
    operation: str
    is_platform_admin: bool = False
    requested_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ---------------------------------------------------------------------------
# Tenant provisioning
# ---------------------------------------------------------------------------


class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=100, pattern=r"^[a-z0-9][a-z0-9\-]*$")
    settings: dict = {}


class TenantUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    settings: dict | None = None


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str
    status: TenantStatus
    settings: dict
    created_at: datetime | None = None


class TenantContextResponse(BaseModel):
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    permissions: list[str]
    is_platform_admin: bool


class TenantUsage(BaseModel):
    tenant_id: uuid.UUID
    slug: str
    status: TenantStatus
    student_count: int


class SuspendTenantRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class TenantListResponse(BaseModel):
    items: list[TenantResponse]
    total: int
    page: int
    limit: int
