"""StudentService: CRUD operations for student records.

None of these queries mention ``tenant_id``: the session they run on is
bound to a tenant, and the session policy scopes every statement to it.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import ConflictException, NotFoundException
from src.models.enums import StudentStatus
from src.models.student import Student
from src.modules.student.schemas import StudentCreate, StudentUpdate

logger = logging.getLogger(__name__)


class StudentService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_student(self, data: StudentCreate) -> Student:
        existing = await self.session.execute(
            select(Student.id).where(Student.admission_number == data.admission_number)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictException(f"Admission number {data.admission_number} already exists")

        student = Student(**data.model_dump())
        self.session.add(student)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictException(f"Admission number {data.admission_number} already exists") from exc
        logger.info("Student created id=%s tenant=%s", student.id, student.tenant_id)
        return student

    async def get_student(self, student_id: uuid.UUID) -> Student:
        result = await self.session.execute(
            select(Student).where(Student.id == student_id)
        )
        student = result.scalar_one_or_none()
        if student is None:
            raise NotFoundException(f"Student {student_id} not found")
        return student

    async def list_students(
        self,
        status: StudentStatus | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Student], int]:
        query = select(Student)
        count_query = select(func.count()).select_from(Student)

        if status is not None:
            query = query.where(Student.status == status)
            count_query = count_query.where(Student.status == status)
        if search:
            search_pattern = f"%{search}%"
            search_filter = or_(
                Student.first_name.ilike(search_pattern),
                Student.last_name.ilike(search_pattern),
                Student.admission_number.ilike(search_pattern),
            )
            query = query.where(search_filter)
            count_query = count_query.where(search_filter)

        total_result = await self.session.execute(count_query)
        total = total_result.scalar_one()

        query = query.order_by(Student.last_name, Student.first_name).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def update_student(self, student_id: uuid.UUID, data: StudentUpdate) -> Student:
        student = await self.get_student(student_id)
        for field_name, field_value in data.model_dump(exclude_unset=True).items():
            setattr(student, field_name, field_value)
        await self.session.flush()
        return student

    async def delete_student(self, student_id: uuid.UUID) -> None:
        student = await self.get_student(student_id)
        await self.session.delete(student)
        await self.session.flush()
        logger.info("Student deleted id=%s tenant=%s", student_id, student.tenant_id)
