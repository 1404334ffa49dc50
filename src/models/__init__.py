# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.audit import AuditLog
from src.models.enums import AuditAction, Gender, StudentStatus, TenantStatus
from src.models.student import Student
from src.models.tenant import Tenant

__all__ = [
    "AuditAction",
    "AuditLog",
    "Gender",
    "Student",
    "StudentStatus",
    "Tenant",
    "TenantStatus",
]
