"""Storage-policy tests: the ORM guard on a real database with pooled connections."""

import asyncio
import uuid
from datetime import date

import pytest
from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from src.database import policy
from src.database.tenant import NIL_TENANT_ID, TenantBinding, bind_tenant, get_binding, tenant_scope
from src.exceptions import (
    AuditImmutableException,
    AuditWriteFailedException,
    BindingFailedException,
    CrossTenantViolationException,
)
from src.models.audit import AuditLog
from src.models.enums import AuditAction, Gender, StudentStatus
from src.models.student import Student
from src.modules.audit import hook
from src.modules.tenancy.schemas import TenantContext
from src.modules.tenancy.service import with_tenant_context


def _student(admission_number: str, tenant_id: uuid.UUID | None = None, **overrides) -> Student:
    data = {
        "admission_number": admission_number,
        "first_name": "Test",
        "last_name": admission_number,
        "date_of_birth": date(2012, 6, 1),
        "gender": Gender.FEMALE,
        "status": StudentStatus.ACTIVE,
    }
    data.update(overrides)
    if tenant_id is not None:
        data["tenant_id"] = tenant_id
    return Student(**data)


async def _add_students(session_factory, binding: TenantBinding, *admission_numbers: str) -> list[Student]:
    students = [_student(n) for n in admission_numbers]
    async with session_factory() as session:
        async with tenant_scope(session, binding):
            session.add_all(students)
    return students


async def _visible_admissions(session_factory, binding: TenantBinding) -> set[str]:
    async with session_factory() as session:
        async with tenant_scope(session, binding):
            result = await session.execute(select(Student.admission_number))
            return set(result.scalars().all())


# ---------------------------------------------------------------------------
# Read isolation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bound_session_sees_only_its_tenant(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), "A-1", "A-2")
    await _add_students(session_factory, binding_for(tenants.b), "B-1")

    assert await _visible_admissions(session_factory, binding_for(tenants.a)) == {"A-1", "A-2"}
    assert await _visible_admissions(session_factory, binding_for(tenants.b)) == {"B-1"}


@pytest.mark.asyncio
async def test_lookup_by_id_of_other_tenant_row_finds_nothing(session_factory, tenants, binding_for):
    (other,) = await _add_students(session_factory, binding_for(tenants.b), "B-1")

    async with session_factory() as session:
        async with tenant_scope(session, binding_for(tenants.a)):
            assert await session.get(Student, other.id) is None
            result = await session.execute(select(Student).where(Student.id == other.id))
            assert result.scalar_one_or_none() is None


@pytest.mark.asyncio
async def test_counts_are_scoped(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")
    await _add_students(session_factory, binding_for(tenants.b), "B-1", "B-2", "B-3")

    async with session_factory() as session:
        async with tenant_scope(session, binding_for(tenants.a)):
            total = (await session.execute(select(func.count()).select_from(Student))).scalar_one()

    assert total == 1


@pytest.mark.asyncio
async def test_unbound_session_sees_no_scoped_rows(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")

    async with session_factory() as session:
        assert get_binding(session) is None
        rows = (await session.execute(select(Student))).scalars().all()

    assert rows == []


@pytest.mark.asyncio
async def test_nil_tenant_binding_sees_nothing(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")

    binding = TenantBinding(tenant_id=NIL_TENANT_ID, actor_id="user:nobody")
    assert await _visible_admissions(session_factory, binding) == set()


@pytest.mark.asyncio
async def test_audit_trail_reads_are_scoped(session_factory, tenants, binding_for, read_audit_trail):
    await _add_students(session_factory, binding_for(tenants.a), "A-SECRET")

    async with session_factory() as session:
        async with tenant_scope(session, binding_for(tenants.b)):
            assert (await session.execute(select(AuditLog))).scalars().all() == []

    async with session_factory() as session:
        assert (await session.execute(select(AuditLog))).scalars().all() == []

    async with session_factory() as session:
        async with tenant_scope(session, binding_for(tenants.a)):
            (own,) = (await session.execute(select(AuditLog))).scalars().all()
    assert own.new_values["admission_number"] == "A-SECRET"

    assert len(await read_audit_trail()) == 1


# ---------------------------------------------------------------------------
# Bulk statements
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_bulk_update_is_rejected(session_factory, tenants, binding_for, read_audit_trail):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")
    await _add_students(session_factory, binding_for(tenants.b), "B-1")

    with pytest.raises(CrossTenantViolationException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                await session.execute(update(Student).values(status=StudentStatus.GRADUATED))

    async with session_factory() as session:
        async with tenant_scope(session, binding_for(tenants.a)):
            status = (await session.execute(select(Student.status))).scalar_one()
    assert status == StudentStatus.ACTIVE
    assert [e.action for e in await read_audit_trail()] == [AuditAction.CREATE, AuditAction.CREATE]


@pytest.mark.asyncio
async def test_bulk_delete_is_rejected(session_factory, tenants, binding_for, read_audit_trail):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")

    with pytest.raises(CrossTenantViolationException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                await session.execute(delete(Student))

    assert await _visible_admissions(session_factory, binding_for(tenants.a)) == {"A-1"}
    assert [e.action for e in await read_audit_trail()] == [AuditAction.CREATE]


@pytest.mark.asyncio
async def test_bulk_tenant_rewrite_cannot_move_rows(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")

    with pytest.raises(CrossTenantViolationException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                await session.execute(update(Student).values(tenant_id=tenants.b.id))

    assert await _visible_admissions(session_factory, binding_for(tenants.b)) == set()
    assert await _visible_admissions(session_factory, binding_for(tenants.a)) == {"A-1"}


@pytest.mark.asyncio
async def test_bulk_statements_cannot_touch_audit_trail(session_factory, tenants, binding_for, read_audit_trail):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")
    elevated = TenantBinding(tenant_id=None, actor_id="job:test-auditor", elevated=True)

    with pytest.raises(AuditImmutableException):
        async with session_factory() as session:
            async with tenant_scope(session, elevated):
                await session.execute(update(AuditLog).values(reason="rewritten"))

    with pytest.raises(AuditImmutableException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                await session.execute(delete(AuditLog))

    (entry,) = await read_audit_trail()
    assert entry.reason is None


# ---------------------------------------------------------------------------
# Binding lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_binding_is_cleared_after_an_exception(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")

    async with session_factory() as session:
        with pytest.raises(RuntimeError):
            async with tenant_scope(session, binding_for(tenants.a)):
                assert get_binding(session) is not None
                raise RuntimeError("handler failed")

        assert get_binding(session) is None
        # The same session now fails closed
        assert (await session.execute(select(Student))).scalars().all() == []


@pytest.mark.asyncio
async def test_binding_is_cleared_when_task_is_cancelled(session_factory, tenants, binding_for):
    entered = asyncio.Event()

    async with session_factory() as session:

        async def _work():
            async with tenant_scope(session, binding_for(tenants.a)):
                entered.set()
                await asyncio.sleep(3600)

        task = asyncio.create_task(_work())
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert get_binding(session) is None


@pytest.mark.asyncio
async def test_new_transaction_in_same_scope_keeps_binding(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")
    await _add_students(session_factory, binding_for(tenants.b), "B-1")

    async with session_factory() as session:
        async with tenant_scope(session, binding_for(tenants.a)):
            await session.commit()
            rows = (await session.execute(select(Student.admission_number))).scalars().all()

    assert rows == ["A-1"]


@pytest.mark.asyncio
async def test_with_tenant_context_commits_and_unbinds(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.b), "B-1")
    ctx = TenantContext(tenant_id=tenants.a.id, user_id=uuid.uuid4(), permissions=["students:create"])

    async def _enrol(session):
        session.add(_student("A-7"))
        await session.flush()
        return (await session.execute(select(Student.admission_number))).scalars().all()

    async with session_factory() as session:
        visible = await with_tenant_context(session, ctx, _enrol)
        assert get_binding(session) is None

    assert visible == ["A-7"]
    assert await _visible_admissions(session_factory, binding_for(tenants.a)) == {"A-7"}


@pytest.mark.asyncio
async def test_with_tenant_context_rolls_back_when_callback_fails(session_factory, tenants, binding_for):
    ctx = TenantContext(tenant_id=tenants.a.id, user_id=uuid.uuid4())

    async def _enrol_then_fail(session):
        session.add(_student("A-8"))
        await session.flush()
        raise RuntimeError("handler failed")

    async with session_factory() as session:
        with pytest.raises(RuntimeError):
            await with_tenant_context(session, ctx, _enrol_then_fail)
        assert get_binding(session) is None

    assert await _visible_admissions(session_factory, binding_for(tenants.a)) == set()


@pytest.mark.asyncio
async def test_binding_failure_leaves_session_unbound(session_factory, tenants, binding_for, monkeypatch):
    def _broken(connection, binding):
        raise OperationalError("SELECT set_config(...)", {}, Exception("connection reset"))

    monkeypatch.setattr(policy, "apply_binding", _broken)

    async with session_factory() as session:
        with pytest.raises(BindingFailedException):
            await bind_tenant(session, binding_for(tenants.a))
        assert get_binding(session) is None


@pytest.mark.asyncio
async def test_concurrent_units_of_work_never_cross(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), *(f"A-{i}" for i in range(5)))
    await _add_students(session_factory, binding_for(tenants.b), *(f"B-{i}" for i in range(3)))

    async def _read(i: int) -> tuple[uuid.UUID, set[uuid.UUID]]:
        tenant = tenants.a if i % 2 == 0 else tenants.b
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenant)):
                await asyncio.sleep(0)
                owners = (await session.execute(select(Student.tenant_id))).scalars().all()
        return tenant.id, set(owners)

    results = await asyncio.gather(*(_read(i) for i in range(100)))

    assert len(results) == 100
    for tenant_id, owners in results:
        assert owners == {tenant_id}


# ---------------------------------------------------------------------------
# Write checks
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_insert_is_stamped_with_bound_tenant(session_factory, tenants, binding_for):
    (student,) = await _add_students(session_factory, binding_for(tenants.a), "A-1")

    assert student.tenant_id == tenants.a.id


@pytest.mark.asyncio
async def test_insert_for_other_tenant_is_rejected(session_factory, tenants, binding_for):
    with pytest.raises(CrossTenantViolationException) as exc_info:
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                session.add(_student("B-9", tenant_id=tenants.b.id))
                await session.flush()

    assert exc_info.value.context["attempted_tenant_id"] == str(tenants.b.id)
    assert exc_info.value.status_code == 403
    assert await _visible_admissions(session_factory, binding_for(tenants.b)) == set()


@pytest.mark.asyncio
async def test_insert_without_binding_is_rejected(session_factory, tenants):
    async with session_factory() as session:
        session.add(_student("X-1", tenant_id=tenants.a.id))
        with pytest.raises(CrossTenantViolationException):
            await session.flush()


@pytest.mark.asyncio
async def test_update_of_other_tenant_row_is_rejected(session_factory, tenants, binding_for):
    (foreign,) = await _add_students(session_factory, binding_for(tenants.b), "B-1")

    with pytest.raises(CrossTenantViolationException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                session.add(foreign)
                foreign.first_name = "Changed"
                await session.flush()

    async with session_factory() as session:
        async with tenant_scope(session, binding_for(tenants.b)):
            name = (await session.execute(select(Student.first_name))).scalar_one()
    assert name == "Test"


@pytest.mark.asyncio
async def test_delete_of_other_tenant_row_is_rejected(session_factory, tenants, binding_for):
    (foreign,) = await _add_students(session_factory, binding_for(tenants.b), "B-1")

    with pytest.raises(CrossTenantViolationException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                session.add(foreign)
                await session.delete(foreign)
                await session.flush()

    assert await _visible_admissions(session_factory, binding_for(tenants.b)) == {"B-1"}


@pytest.mark.asyncio
async def test_tenant_reference_is_immutable(session_factory, tenants, binding_for):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")

    with pytest.raises(CrossTenantViolationException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                student = (await session.execute(select(Student))).scalar_one()
                student.tenant_id = tenants.b.id
                await session.flush()

    assert await _visible_admissions(session_factory, binding_for(tenants.a)) == {"A-1"}


# ---------------------------------------------------------------------------
# Audit capture
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_insert_update_delete_are_audited(session_factory, tenants, binding_for, read_audit_trail):
    binding = binding_for(tenants.a, actor_id="user:registrar-7")
    (student,) = await _add_students(session_factory, binding, "A-1")

    async with session_factory() as session:
        async with tenant_scope(session, binding):
            loaded = await session.get(Student, student.id)
            loaded.status = StudentStatus.TRANSFERRED
    async with session_factory() as session:
        async with tenant_scope(session, binding):
            loaded = await session.get(Student, student.id)
            await session.delete(loaded)

    entries = await read_audit_trail()
    actions = [e.action for e in entries]
    assert sorted(a.value for a in actions) == ["CREATE", "DELETE", "UPDATE"]
    assert all(e.tenant_id == tenants.a.id for e in entries)
    assert all(e.actor_id == "user:registrar-7" for e in entries)
    assert all(e.entity_type == "students" and e.entity_id == student.id for e in entries)

    created = next(e for e in entries if e.action == AuditAction.CREATE)
    assert created.new_values["admission_number"] == "A-1"
    assert "created_at" not in created.new_values
    assert "updated_at" not in created.new_values
    updated = next(e for e in entries if e.action == AuditAction.UPDATE)
    assert updated.old_values == {"status": "ACTIVE"}
    assert updated.new_values == {"status": "TRANSFERRED"}
    deleted = next(e for e in entries if e.action == AuditAction.DELETE)
    assert deleted.old_values["admission_number"] == "A-1"
    assert deleted.old_values["created_at"] is not None


@pytest.mark.asyncio
async def test_audit_capture_failure_rolls_back_mutation(
    session_factory, tenants, binding_for, monkeypatch, read_audit_trail
):
    def _fail(obj, action, binding):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(hook, "build_audit_record", _fail)

    with pytest.raises(AuditWriteFailedException):
        await _add_students(session_factory, binding_for(tenants.a), "A-1")

    monkeypatch.undo()
    assert await _visible_admissions(session_factory, binding_for(tenants.a)) == set()
    assert await read_audit_trail() == []


@pytest.mark.asyncio
async def test_audit_table_failure_rolls_back_mutation(engine, session_factory, tenants, binding_for):
    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE audit_logs"))

    with pytest.raises(SQLAlchemyError):
        await _add_students(session_factory, binding_for(tenants.a), "A-1")

    assert await _visible_admissions(session_factory, binding_for(tenants.a)) == set()


@pytest.mark.asyncio
async def test_audit_entries_cannot_be_modified(session_factory, tenants, binding_for, read_audit_trail):
    await _add_students(session_factory, binding_for(tenants.a), "A-1")

    with pytest.raises(AuditImmutableException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                entry = (await session.execute(select(AuditLog))).scalar_one()
                entry.reason = "rewritten"
                await session.flush()

    with pytest.raises(AuditImmutableException):
        async with session_factory() as session:
            async with tenant_scope(session, binding_for(tenants.a)):
                entry = (await session.execute(select(AuditLog))).scalar_one()
                await session.delete(entry)
                await session.flush()

    (entry,) = await read_audit_trail()
    assert entry.reason is None
