"""Student module API router."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import StudentStatus
from src.modules.student.schemas import StudentCreate, StudentListResponse, StudentResponse, StudentUpdate
from src.modules.student.service import StudentService
from src.modules.tenancy.dependencies import get_tenant_db, require_permission
from src.modules.tenancy.schemas import TenantContext

router = APIRouter(prefix="/students", tags=["students"])


@router.post("", response_model=StudentResponse, status_code=201)
async def create_student(
    body: StudentCreate,
    tenant: TenantContext = Depends(require_permission("students:create")),
    session: AsyncSession = Depends(get_tenant_db),
):
    service = StudentService(session)
    return await service.create_student(body)


@router.get("", response_model=StudentListResponse)
async def list_students(
    status: StudentStatus | None = Query(None),
    search: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    tenant: TenantContext = Depends(require_permission("students:read")),
    session: AsyncSession = Depends(get_tenant_db),
):
    service = StudentService(session)
    students, total = await service.list_students(status=status, search=search, limit=limit, offset=offset)
    return StudentListResponse(
        items=[StudentResponse.model_validate(s) for s in students],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{student_id}", response_model=StudentResponse)
async def get_student(
    student_id: uuid.UUID,
    tenant: TenantContext = Depends(require_permission("students:read")),
    session: AsyncSession = Depends(get_tenant_db),
):
    service = StudentService(session)
    return await service.get_student(student_id)


@router.patch("/{student_id}", response_model=StudentResponse)
async def update_student(
    student_id: uuid.UUID,
    body: StudentUpdate,
    tenant: TenantContext = Depends(require_permission("students:update")),
    session: AsyncSession = Depends(get_tenant_db),
):
    service = StudentService(session)
    return await service.update_student(student_id, body)


@router.delete("/{student_id}", status_code=204)
async def delete_student(
    student_id: uuid.UUID,
    tenant: TenantContext = Depends(require_permission("students:delete")),
    session: AsyncSession = Depends(get_tenant_db),
):
    service = StudentService(session)
    await service.delete_student(student_id)
