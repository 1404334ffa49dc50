import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.models.enums import AuditAction


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID | None
    actor_id: str
    action: AuditAction
    entity_type: str
    entity_id: uuid.UUID | None
    old_values: dict | None
    new_values: dict | None
    reason: str | None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: list[AuditLogResponse]
    total: int
    page: int
    limit: int
