"""Centralized v1 API router. All module routers are included here."""

from fastapi import APIRouter

from src.modules.audit.router import router as audit_router
from src.modules.student.router import router as student_router
from src.modules.tenancy.router import router as tenancy_router
from src.schemas.responses import TENANT_ERROR_RESPONSES

v1_router = APIRouter(prefix="/api/v1", responses=TENANT_ERROR_RESPONSES)
v1_router.include_router(tenancy_router)
v1_router.include_router(student_router)
v1_router.include_router(audit_router)
