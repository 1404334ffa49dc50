"""Session-scoped tenant binding.

The active tenant lives in the session's ``info`` mapping for exactly one unit
of work. On PostgreSQL it is also pushed into the connection with
transaction-local ``set_config`` calls so RLS policies see it; those settings
vanish when the transaction ends, before the connection goes back to the pool.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.exceptions import BindingFailedException

logger = logging.getLogger(__name__)

# PostgreSQL session variables read by the RLS policies (alembic revision 002)
SESSION_VAR_TENANT_ID = "app.tenant_id"
SESSION_VAR_USER_ID = "app.user_id"
SESSION_VAR_BYPASS_RLS = "app.bypass_rls"

# Key under which the binding is stored in Session.info
BINDING_KEY = "tenant_binding"

# RLS policies compare against this value when no tenant is bound, which matches no row
NIL_TENANT_ID = uuid.UUID(int=0)


@dataclass(frozen=True)
class TenantBinding:
    """The tenant a unit of work is scoped to, plus who is acting.

    An elevated binding has ``elevated=True`` and usually no ``tenant_id``;
    it disables row filtering and is only produced by the elevated-mode path.
    """

    tenant_id: uuid.UUID | None
    actor_id: str
    elevated: bool = False
    justification: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def get_binding(session) -> TenantBinding | None:
    """Return the binding of a sync or async session, or None when unbound."""
    return session.info.get(BINDING_KEY)


def apply_binding(connection: Connection, binding: TenantBinding | None) -> None:
    """Push the binding into PostgreSQL session variables for the current transaction.

    Other dialects have no RLS; the ORM guard alone enforces scoping there.
    """
    if connection.dialect.name != "postgresql":
        return
    if binding is None:
        params = {"tenant_id": "", "user_id": "", "bypass": "false"}
    else:
        params = {
            "tenant_id": str(binding.tenant_id) if binding.tenant_id else "",
            "user_id": binding.actor_id,
            "bypass": "true" if binding.elevated else "false",
        }
    connection.execute(
        text(
            f"SELECT set_config('{SESSION_VAR_TENANT_ID}', :tenant_id, true), "
            f"set_config('{SESSION_VAR_USER_ID}', :user_id, true), "
            f"set_config('{SESSION_VAR_BYPASS_RLS}', :bypass, true)"
        ),
        params,
    )


async def bind_tenant(session: AsyncSession, binding: TenantBinding) -> None:
    """Bind ``binding`` to the session and install it on the connection immediately.

    Opening the transaction here (rather than on first query) makes a broken
    connection fail the unit of work before any business code runs.
    """
    session.info[BINDING_KEY] = binding
    try:
        if session.in_transaction():
            await session.run_sync(lambda sync_session: apply_binding(sync_session.connection(), binding))
        else:
            # after_begin listener on TenantSession installs the binding
            await session.connection()
    except BindingFailedException:
        session.info.pop(BINDING_KEY, None)
        raise
    except (SQLAlchemyError, OSError) as exc:
        session.info.pop(BINDING_KEY, None)
        logger.error(
            "Tenant binding failed for tenant=%s actor=%s: %s",
            binding.tenant_id,
            binding.actor_id,
            exc,
        )
        raise BindingFailedException(f"Could not bind tenant {binding.tenant_id}") from exc


def clear_tenant(session) -> None:
    """Drop the binding from the session. Safe to call when nothing is bound."""
    session.info.pop(BINDING_KEY, None)


@asynccontextmanager
async def tenant_scope(session: AsyncSession, binding: TenantBinding) -> AsyncIterator[AsyncSession]:
    """Run one unit of work bound to ``binding``.

    Commits on normal exit, rolls back on any exception (cancellation
    included) and always clears the binding afterwards.
    """
    try:
        await bind_tenant(session, binding)
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
    finally:
        clear_tenant(session)
