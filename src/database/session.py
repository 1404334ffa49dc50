from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database.engine import async_session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency returning the factory that scoped request sessions come from."""
    return async_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an unbound database session.

    Scoped tables are invisible through this session until a tenant is bound;
    use it for platform tables (tenants) and for tenant resolution.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
