"""Flush-time audit capture for tenant-scoped rows.

Runs inside ``before_flush`` so the audit rows are written by the same flush,
in the same transaction, as the mutation they describe.
"""

import enum
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from src.database.base import TenantScopedMixin
from src.database.tenant import TenantBinding
from src.exceptions import AuditWriteFailedException
from src.models.audit import AuditLog
from src.models.enums import AuditAction

logger = logging.getLogger(__name__)


def json_safe(value):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(v) for v in value]
    return str(value)


def snapshot(obj, pending: bool = False) -> dict:
    """Column values of a mapped instance, JSON-safe.

    A pending row has not received its server-generated values yet
    (timestamps), so unset columns with a server default are left out rather
    than recorded as null.
    """
    mapper = inspect(obj).mapper
    values = {}
    for attr in mapper.column_attrs:
        value = getattr(obj, attr.key)
        if pending and value is None and _server_generated(attr):
            continue
        values[attr.key] = json_safe(value)
    return values


def _server_generated(attr) -> bool:
    return any(col.server_default is not None for col in attr.columns)


def changed_fields(obj) -> tuple[dict, dict]:
    """Return (old, new) dicts holding only the columns modified since load."""
    state = inspect(obj)
    old: dict = {}
    new: dict = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if not history.has_changes():
            continue
        old[attr.key] = json_safe(history.deleted[0]) if history.deleted else None
        new[attr.key] = json_safe(history.added[0]) if history.added else None
    return old, new


def build_audit_record(obj, action: AuditAction, binding: TenantBinding) -> AuditLog | None:
    if action == AuditAction.CREATE:
        if obj.id is None:
            obj.id = uuid.uuid4()
        old_values, new_values = None, snapshot(obj, pending=True)
    elif action == AuditAction.UPDATE:
        old_values, new_values = changed_fields(obj)
        if not new_values and not old_values:
            return None
    else:
        old_values, new_values = snapshot(obj), None

    return AuditLog(
        tenant_id=obj.tenant_id,
        actor_id=binding.actor_id,
        action=action,
        entity_type=obj.__tablename__,
        entity_id=obj.id,
        old_values=old_values,
        new_values=new_values,
        reason=binding.justification,
        ip_address=binding.ip_address,
        user_agent=binding.user_agent,
    )


def pending_mutations(session: Session):
    for obj in list(session.new):
        if isinstance(obj, TenantScopedMixin):
            yield obj, AuditAction.CREATE
    for obj in list(session.dirty):
        if isinstance(obj, TenantScopedMixin) and session.is_modified(obj, include_collections=False):
            yield obj, AuditAction.UPDATE
    for obj in list(session.deleted):
        if isinstance(obj, TenantScopedMixin):
            yield obj, AuditAction.DELETE


def capture_changes(session: Session, binding: TenantBinding) -> list[AuditLog]:
    """Add one AuditLog per pending scoped mutation to ``session``.

    Raises AuditWriteFailedException if any record cannot be built; the
    caller's unit of work then rolls back and the mutation is discarded.
    """
    try:
        records = [
            record
            for obj, action in pending_mutations(session)
            if (record := build_audit_record(obj, action, binding)) is not None
        ]
    except Exception as exc:
        logger.error(
            "Audit capture failed for tenant=%s actor=%s: %s",
            binding.tenant_id,
            binding.actor_id,
            exc,
        )
        raise AuditWriteFailedException(f"Audit capture failed: {exc}") from exc

    session.add_all(records)
    return records
