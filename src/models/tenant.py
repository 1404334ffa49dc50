from __future__ import annotations

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.enums import TenantStatus


class Tenant(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A school group; the isolation boundary. Suspended, never deleted."""

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[TenantStatus] = mapped_column(
        default=TenantStatus.ACTIVE, server_default="ACTIVE", nullable=False
    )
    settings: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    __table_args__ = (
        Index("ix_tenants_slug", "slug", unique=True),
    )
