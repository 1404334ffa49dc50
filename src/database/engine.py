from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings
from src.database.policy import TenantSession

engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    pool_pre_ping=True,
    pool_recycle=settings.db_pool_recycle_seconds,
    max_overflow=settings.db_max_overflow,
    echo=settings.environment == "development",
)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose sessions carry the tenant policy listeners."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        sync_session_class=TenantSession,
        expire_on_commit=False,
    )


async_session = make_session_factory(engine)
