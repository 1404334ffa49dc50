"""Celery tasks for platform-wide tenant maintenance."""

from __future__ import annotations

import asyncio
import logging

from celery_app import celery
from src.database.engine import async_session, engine
from src.modules.tenancy.admin import elevated_scope
from src.modules.tenancy.constants import USAGE_REPORT_ACTOR
from src.modules.tenancy.schemas import ElevationContext
from src.modules.tenancy.tenant_service import TenantService

logger = logging.getLogger(__name__)


async def _tenant_usage_report_async() -> list[dict]:
    context = ElevationContext(
        actor_id=USAGE_REPORT_ACTOR,
        justification="Scheduled per-tenant usage report",
        operation="tenant_usage_report",
    )
    try:
        async with async_session() as session:
            async with elevated_scope(session, context):
                rows = await TenantService(session).usage()
    finally:
        # asyncio.run closes the loop; pooled connections must not outlive it
        await engine.dispose()

    for row in rows:
        logger.info(
            "tenant usage tenant=%s slug=%s status=%s students=%d",
            row["tenant_id"],
            row["slug"],
            row["status"].value,
            row["student_count"],
        )
    return [
        {
            "tenant_id": str(row["tenant_id"]),
            "slug": row["slug"],
            "status": row["status"].value,
            "student_count": row["student_count"],
        }
        for row in rows
    ]


@celery.task(
    name="src.modules.tenancy.tasks.tenant_usage_report",
    bind=True,
    max_retries=3,
)
def tenant_usage_report(self) -> list[dict]:
    """Count students per tenant across the whole platform (elevated, audited)."""
    try:
        return asyncio.run(_tenant_usage_report_async())
    except Exception as exc:
        logger.exception("tenant_usage_report failed")
        raise self.retry(exc=exc, countdown=60)
