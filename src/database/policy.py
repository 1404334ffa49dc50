"""ORM-level tenant policy enforced on every session.

PostgreSQL RLS is the storage-engine guarantee; these listeners enforce the
same rules inside SQLAlchemy so that a query which forgets its tenant filter
is still scoped, writes outside the bound tenant fail loudly, and every
scoped mutation gets an audit record in the same flush. Audit rows are
scoped like tenant data, and ORM bulk UPDATE/DELETE of scoped or audit
tables is refused because it never reaches the flush.
"""

import logging
import uuid

from sqlalchemy import event, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import ORMExecuteState, Session, with_loader_criteria

from src.database.base import TenantScopedMixin
from src.database.tenant import NIL_TENANT_ID, TenantBinding, apply_binding, get_binding
from src.exceptions import AuditImmutableException, BindingFailedException, CrossTenantViolationException
from src.models.audit import AuditLog
from src.modules.audit.hook import capture_changes

logger = logging.getLogger(__name__)


class TenantSession(Session):
    """Sync session class behind every AsyncSession handed to application code."""


def _as_uuid(value) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _violation(
    message: str,
    binding: TenantBinding | None,
    obj,
    attempted_tenant_id=None,
) -> CrossTenantViolationException:
    context = {
        "actor_id": binding.actor_id if binding else None,
        "bound_tenant_id": str(binding.tenant_id) if binding and binding.tenant_id else None,
        "attempted_tenant_id": str(attempted_tenant_id) if attempted_tenant_id else None,
        "entity_type": getattr(obj, "__tablename__", type(obj).__name__),
        "entity_id": None if isinstance(obj, type) else str(getattr(obj, "id", None)),
    }
    logger.error("Cross-tenant violation: %s context=%s", message, context)
    return CrossTenantViolationException(message, context=context)


@event.listens_for(TenantSession, "after_begin")
def _install_binding(session: Session, transaction, connection) -> None:
    binding = get_binding(session)
    if binding is None:
        return
    try:
        apply_binding(connection, binding)
    except SQLAlchemyError as exc:
        logger.error("Failed to install tenant binding tenant=%s: %s", binding.tenant_id, exc)
        raise BindingFailedException(f"set_config failed for tenant {binding.tenant_id}") from exc


def _reject_bulk_mutation(orm_execute_state: ORMExecuteState, binding: TenantBinding | None) -> None:
    """Refuse ORM-enabled UPDATE/DELETE statements against scoped or audit tables.

    Such statements skip the unit of work, so neither the ownership checks
    nor the audit hook would see the rows they change.
    """
    mapper = orm_execute_state.bind_mapper
    if mapper is None:
        return
    entity = mapper.class_
    operation = "update" if orm_execute_state.is_update else "delete"
    if issubclass(entity, AuditLog):
        logger.error("Attempted bulk %s of audit records", operation)
        raise AuditImmutableException("audit records are append-only", {"entity_type": entity.__tablename__})
    if issubclass(entity, TenantScopedMixin):
        raise _violation(f"bulk {operation} bypasses ownership and audit checks", binding, entity)


@event.listens_for(TenantSession, "do_orm_execute")
def _scope_orm_statements(orm_execute_state: ORMExecuteState) -> None:
    if not orm_execute_state.is_orm_statement:
        return
    if not (orm_execute_state.is_select or orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    # Lazy and column loads inherit the criteria from their parent statement
    if orm_execute_state.is_column_load or orm_execute_state.is_relationship_load:
        return

    binding = get_binding(orm_execute_state.session)
    if orm_execute_state.is_update or orm_execute_state.is_delete:
        _reject_bulk_mutation(orm_execute_state, binding)
    if binding is not None and binding.elevated:
        return

    # Unbound sessions see nothing: tenant_id is never the nil UUID
    tenant_id = binding.tenant_id if binding is not None and binding.tenant_id else NIL_TENANT_ID
    orm_execute_state.statement = orm_execute_state.statement.options(
        with_loader_criteria(
            TenantScopedMixin,
            lambda cls: cls.tenant_id == tenant_id,
            include_aliases=True,
        ),
        # Audit snapshots carry field values of scoped rows
        with_loader_criteria(AuditLog, AuditLog.tenant_id == tenant_id),
    )


def _check_insert(obj: TenantScopedMixin, binding: TenantBinding | None) -> None:
    if binding is None:
        raise _violation("insert without a tenant binding", binding, obj, obj.tenant_id)
    if binding.elevated:
        if obj.tenant_id is None:
            raise _violation("elevated insert must name its tenant explicitly", binding, obj)
        return
    if obj.tenant_id is None:
        obj.tenant_id = binding.tenant_id
    elif _as_uuid(obj.tenant_id) != binding.tenant_id:
        raise _violation("insert for a different tenant", binding, obj, obj.tenant_id)


def _check_existing(obj: TenantScopedMixin, binding: TenantBinding | None, operation: str) -> None:
    if binding is None:
        raise _violation(f"{operation} without a tenant binding", binding, obj, obj.tenant_id)
    history = inspect(obj).attrs.tenant_id.history
    if history.deleted and history.added and history.deleted[0] != history.added[0]:
        raise _violation("tenant reference is immutable", binding, obj, history.added[0])
    if not binding.elevated and _as_uuid(obj.tenant_id) != binding.tenant_id:
        raise _violation(f"{operation} of a row owned by another tenant", binding, obj, obj.tenant_id)


def enforce_tenant_ownership(session: Session, binding: TenantBinding | None) -> None:
    for obj in list(session.new):
        if isinstance(obj, TenantScopedMixin):
            _check_insert(obj, binding)

    for obj in list(session.dirty):
        if not session.is_modified(obj, include_collections=False):
            continue
        if isinstance(obj, AuditLog):
            logger.error("Attempted update of audit record %s", obj.id)
            raise AuditImmutableException("audit records are append-only", {"entity_id": str(obj.id)})
        if isinstance(obj, TenantScopedMixin):
            _check_existing(obj, binding, "update")

    for obj in list(session.deleted):
        if isinstance(obj, AuditLog):
            logger.error("Attempted delete of audit record %s", obj.id)
            raise AuditImmutableException("audit records are append-only", {"entity_id": str(obj.id)})
        if isinstance(obj, TenantScopedMixin):
            _check_existing(obj, binding, "delete")


@event.listens_for(TenantSession, "before_flush")
def _guard_and_audit_flush(session: Session, flush_context, instances) -> None:
    binding = get_binding(session)
    enforce_tenant_ownership(session, binding)
    if binding is not None:
        capture_changes(session, binding)
