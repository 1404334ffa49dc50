"""Unit tests for elevated (cross-tenant) sessions."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from src.database.tenant import get_binding
from src.exceptions import ElevationDeniedException
from src.models.audit import AuditLog
from src.models.enums import AuditAction
from src.modules.tenancy.admin import elevated_scope, is_elevation_allowed, with_elevated_context
from src.modules.tenancy.constants import PLATFORM_ADMIN_ACTOR, USAGE_REPORT_ACTOR
from src.modules.tenancy.schemas import ElevationContext


def _make_session():
    session = AsyncMock()
    session.info = {}
    session.in_transaction = MagicMock(return_value=False)
    session.add = MagicMock()
    return session


def _context(actor_id: str = USAGE_REPORT_ACTOR, is_platform_admin: bool = False) -> ElevationContext:
    return ElevationContext(
        actor_id=actor_id,
        justification="Nightly usage report",
        operation="tenant_usage_report",
        is_platform_admin=is_platform_admin,
    )


def test_allowlisted_job_may_elevate():
    assert is_elevation_allowed(_context(), [USAGE_REPORT_ACTOR])


def test_unlisted_actor_may_not_elevate():
    assert not is_elevation_allowed(_context("user:someone"), [USAGE_REPORT_ACTOR, PLATFORM_ADMIN_ACTOR])


def test_platform_admin_needs_role_entry():
    admin = _context("user:someone", is_platform_admin=True)
    assert is_elevation_allowed(admin, [PLATFORM_ADMIN_ACTOR])
    assert not is_elevation_allowed(admin, [USAGE_REPORT_ACTOR])


def test_justification_is_required():
    with pytest.raises(ValidationError):
        ElevationContext(actor_id=USAGE_REPORT_ACTOR, justification="", operation="report")


@pytest.mark.asyncio
async def test_denied_elevation_touches_nothing():
    session = _make_session()

    with pytest.raises(ElevationDeniedException):
        async with elevated_scope(session, _context("job:unknown")):
            pytest.fail("body must not run")

    session.connection.assert_not_awaited()
    session.add.assert_not_called()
    assert get_binding(session) is None


@pytest.mark.asyncio
async def test_elevation_is_audited_and_committed_before_work(caplog):
    session = _make_session()
    caplog.set_level(logging.WARNING, logger="src.modules.tenancy.admin")

    async with elevated_scope(session, _context()):
        binding = get_binding(session)
        assert binding.elevated is True
        assert binding.tenant_id is None
        assert binding.actor_id == USAGE_REPORT_ACTOR
        assert session.commit.await_count == 1

    entries = [c.args[0] for c in session.add.call_args_list if isinstance(c.args[0], AuditLog)]
    assert len(entries) == 1
    assert entries[0].action == AuditAction.ELEVATED_ACCESS
    assert entries[0].tenant_id is None
    assert entries[0].reason == "Nightly usage report"
    assert session.commit.await_count == 2
    assert get_binding(session) is None
    assert "Elevated session opened" in caplog.text


@pytest.mark.asyncio
async def test_failed_elevated_work_rolls_back_but_keeps_audit():
    session = _make_session()

    async def _work(s):
        raise RuntimeError("report query failed")

    with pytest.raises(RuntimeError):
        await with_elevated_context(session, _context(), _work)

    # The audit entry was committed before the callback ran
    assert session.commit.await_count == 1
    session.rollback.assert_awaited_once()
    assert get_binding(session) is None


@pytest.mark.asyncio
async def test_with_elevated_context_returns_callback_result():
    session = _make_session()

    async def _work(s):
        return {"tenants": 3}

    assert await with_elevated_context(session, _context(), _work) == {"tenants": 3}
