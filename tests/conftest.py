"""Pytest fixtures for MSLS integration tests.

Each test gets a fresh file-backed SQLite database (via aiosqlite) so that the
session policy runs for real across a pool of connections. PostgreSQL RLS is
exercised separately in test_rls_policies.py.
"""

import uuid
from collections.abc import AsyncGenerator, Callable
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

import src.models  # noqa: F401  registers all models on Base.metadata
from src.app import app
from src.database.base import Base
from src.database.engine import make_session_factory
from src.database.session import get_db, get_session_factory
from src.database.tenant import TenantBinding, tenant_scope
from src.models.audit import AuditLog
from src.models.enums import AuditAction, TenantStatus
from src.models.tenant import Tenant
from src.modules.tenancy.auth import create_access_token

ALL_STUDENT_PERMISSIONS = ["students:read", "students:create", "students:update", "students:delete", "audit:read"]


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """A pooled engine over a throwaway SQLite file with the full schema."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'msls-test.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=10,
        max_overflow=0,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def tenants(session_factory) -> SimpleNamespace:
    """Two active tenants (a, b) and one suspended tenant."""
    a = Tenant(name="Greenwood Public School", slug="greenwood", status=TenantStatus.ACTIVE, settings={})
    b = Tenant(name="Riverside Academy", slug="riverside", status=TenantStatus.ACTIVE, settings={})
    suspended = Tenant(name="Hillview School", slug="hillview", status=TenantStatus.SUSPENDED, settings={})
    async with session_factory() as session:
        session.add_all([a, b, suspended])
        await session.commit()
    return SimpleNamespace(a=a, b=b, suspended=suspended)


@pytest.fixture
def binding_for() -> Callable[..., TenantBinding]:
    def _binding(tenant: Tenant, actor_id: str = "user:test-registrar") -> TenantBinding:
        return TenantBinding(tenant_id=tenant.id, actor_id=actor_id)

    return _binding


@pytest.fixture
def token_for() -> Callable[..., str]:
    def _token(
        tenant_id: uuid.UUID,
        permissions: list[str] | None = None,
        is_platform_admin: bool = False,
    ) -> str:
        return create_access_token(
            user_id=uuid.uuid4(),
            tenant_id=tenant_id,
            email="registrar@school.example",
            permissions=ALL_STUDENT_PERMISSIONS if permissions is None else permissions,
            is_platform_admin=is_platform_admin,
        )

    return _token


@pytest_asyncio.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient wired to the FastAPI app and the test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def read_audit_trail(session_factory) -> Callable[..., object]:
    """Read audit entries across every tenant through an elevated binding."""

    async def _read(action: AuditAction | None = None) -> list[AuditLog]:
        binding = TenantBinding(tenant_id=None, actor_id="job:test-auditor", elevated=True)
        query = select(AuditLog).order_by(AuditLog.created_at)
        if action is not None:
            query = query.where(AuditLog.action == action)
        async with session_factory() as session:
            async with tenant_scope(session, binding):
                return list((await session.execute(query)).scalars().all())

    return _read
