"""Unit tests for TenantResolver."""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.exceptions import (
    RESOLUTION_FAILED_MESSAGE,
    TenantNotFoundException,
    TenantResolutionException,
    TenantSuspendedException,
    UnauthenticatedException,
)
from src.models.enums import TenantStatus
from src.modules.tenancy.auth import AuthenticatedUser
from src.modules.tenancy.resolver import TenantResolver


def _make_user(tenant_id: uuid.UUID | None = None, permissions: list[str] | None = None):
    return AuthenticatedUser(
        id=uuid.uuid4(),
        email="registrar@greenwood.example",
        tenant_id=tenant_id or uuid.uuid4(),
        permissions=permissions or ["students:read"],
    )


def _db_returning(status: TenantStatus | None):
    db = AsyncMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = status
    db.execute.return_value = result
    return db


@pytest.mark.asyncio
async def test_resolve_active_tenant_returns_context():
    user = _make_user()
    resolver = TenantResolver(_db_returning(TenantStatus.ACTIVE))

    ctx = await resolver.resolve(user, ip_address="10.0.0.7", user_agent="pytest")

    assert ctx.tenant_id == user.tenant_id
    assert ctx.user_id == user.id
    assert ctx.permissions == ["students:read"]
    assert ctx.actor_id == f"user:{user.id}"
    binding = ctx.to_binding()
    assert binding.tenant_id == user.tenant_id
    assert binding.elevated is False
    assert binding.ip_address == "10.0.0.7"


@pytest.mark.asyncio
async def test_resolve_is_idempotent():
    user = _make_user()
    resolver = TenantResolver(_db_returning(TenantStatus.ACTIVE))

    first = await resolver.resolve(user)
    second = await resolver.resolve(user)

    assert first == second


@pytest.mark.asyncio
async def test_resolve_without_user_is_unauthenticated():
    db = _db_returning(TenantStatus.ACTIVE)
    resolver = TenantResolver(db)

    with pytest.raises(UnauthenticatedException):
        await resolver.resolve(None)
    db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolve_unknown_tenant_raises_not_found():
    resolver = TenantResolver(_db_returning(None))

    with pytest.raises(TenantNotFoundException) as exc_info:
        await resolver.resolve(_make_user())

    assert exc_info.value.reason == "tenant_not_found"


@pytest.mark.asyncio
async def test_resolve_suspended_tenant_raises_suspended():
    resolver = TenantResolver(_db_returning(TenantStatus.SUSPENDED))

    with pytest.raises(TenantSuspendedException):
        await resolver.resolve(_make_user())


@pytest.mark.asyncio
async def test_header_mismatch_is_rejected_before_lookup():
    db = _db_returning(TenantStatus.ACTIVE)
    resolver = TenantResolver(db)

    with pytest.raises(UnauthenticatedException):
        await resolver.resolve(_make_user(), header_tenant_id=str(uuid.uuid4()))
    db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_header_is_rejected():
    resolver = TenantResolver(_db_returning(TenantStatus.ACTIVE))

    with pytest.raises(UnauthenticatedException):
        await resolver.resolve(_make_user(), header_tenant_id="not-a-uuid")


@pytest.mark.asyncio
async def test_matching_header_is_accepted():
    user = _make_user()
    resolver = TenantResolver(_db_returning(TenantStatus.ACTIVE))

    ctx = await resolver.resolve(user, header_tenant_id=f" {str(user.tenant_id).upper()} ")

    assert ctx.tenant_id == user.tenant_id


@pytest.mark.asyncio
async def test_all_rejections_render_identically():
    failures = [
        UnauthenticatedException("no token"),
        TenantNotFoundException("tenant gone"),
        TenantSuspendedException("tenant suspended"),
    ]
    rendered = {(e.status_code, e.code, e.message, tuple(e.details)) for e in failures}

    assert len(rendered) == 1
    assert all(isinstance(e, TenantResolutionException) for e in failures)
    assert failures[0].message == RESOLUTION_FAILED_MESSAGE
    assert failures[1].internal_message == "tenant gone"


@pytest.mark.asyncio
async def test_cached_status_skips_database():
    db = _db_returning(TenantStatus.ACTIVE)
    cache = MagicMock()
    cache.get_status = AsyncMock(return_value=TenantStatus.SUSPENDED)
    cache.set_status = AsyncMock()

    resolver = TenantResolver(db, cache)
    with pytest.raises(TenantSuspendedException):
        await resolver.resolve(_make_user())

    db.execute.assert_not_awaited()
    cache.set_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_cache_miss_populates_cache():
    user = _make_user()
    db = _db_returning(TenantStatus.ACTIVE)
    cache = MagicMock()
    cache.get_status = AsyncMock(return_value=None)
    cache.set_status = AsyncMock()

    await TenantResolver(db, cache).resolve(user)

    cache.set_status.assert_awaited_once_with(user.tenant_id, TenantStatus.ACTIVE)
