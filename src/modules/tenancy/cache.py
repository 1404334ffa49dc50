"""Redis-backed cache of tenant status, consulted by the resolver."""

import logging
import uuid

import redis.asyncio as redis

from src.config import settings
from src.models.enums import TenantStatus
from src.modules.tenancy.constants import CACHE_PREFIX, CACHE_STATUS_KEY

logger = logging.getLogger(__name__)


class TenantStatusCache:
    """Caches ``TenantStatus`` per tenant under "tenant:{id}:status".

    Entries expire after ``settings.tenant_status_cache_ttl`` seconds and are
    dropped explicitly whenever a tenant is suspended or reactivated, so a
    suspension takes effect on the next request.
    """

    def __init__(self, redis_client: redis.Redis | None = None, ttl: int | None = None) -> None:
        self._redis = redis_client
        self._ttl = ttl if ttl is not None else settings.tenant_status_cache_ttl

    async def _get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(settings.redis_url, decode_responses=True)
        return self._redis

    def _make_key(self, tenant_id: uuid.UUID) -> str:
        return f"{CACHE_PREFIX}:{tenant_id}:{CACHE_STATUS_KEY}"

    async def get_status(self, tenant_id: uuid.UUID) -> TenantStatus | None:
        client = await self._get_redis()
        raw = await client.get(self._make_key(tenant_id))
        if raw is None:
            return None
        try:
            return TenantStatus(raw)
        except ValueError:
            logger.warning("Discarding unknown cached status %r for tenant %s", raw, tenant_id)
            await client.delete(self._make_key(tenant_id))
            return None

    async def set_status(self, tenant_id: uuid.UUID, status: TenantStatus) -> None:
        client = await self._get_redis()
        await client.set(self._make_key(tenant_id), status.value, ex=self._ttl)

    async def invalidate(self, tenant_id: uuid.UUID) -> None:
        client = await self._get_redis()
        await client.delete(self._make_key(tenant_id))


def get_tenant_cache() -> TenantStatusCache | None:
    """FastAPI dependency: the shared status cache, or None when caching is disabled."""
    if not settings.tenant_status_cache_enabled:
        return None
    return _shared_cache


_shared_cache = TenantStatusCache()
