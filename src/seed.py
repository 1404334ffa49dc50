"""Database seeder for MSLS: demo tenants, students and access tokens.

Run via: python -m src.seed
"""

import asyncio
import uuid
from datetime import date

from sqlalchemy import select

from src.database.engine import async_session, engine
from src.database.tenant import TenantBinding, tenant_scope
from src.models.enums import Gender
from src.models.student import Student
from src.models.tenant import Tenant
from src.modules.tenancy.admin import elevated_scope
from src.modules.tenancy.auth import create_access_token
from src.modules.tenancy.constants import JOB_ACTOR_PREFIX
from src.modules.tenancy.schemas import ElevationContext
from src.modules.tenancy.tenant_service import TenantService

SEED_ACTOR = f"{JOB_ACTOR_PREFIX}seed"

# ---------------------------------------------------------------------------
# Seed data (kept inline as it's small)
# ---------------------------------------------------------------------------

TENANTS: list[dict] = [
    {"name": "Greenwood Public School", "slug": "greenwood"},
    {"name": "Riverside Academy", "slug": "riverside"},
]

STUDENTS: dict[str, list[dict]] = {
    "greenwood": [
        {"admission_number": "GW-0001", "first_name": "Aarav", "last_name": "Sharma",
         "date_of_birth": date(2012, 4, 11), "gender": Gender.MALE},
        {"admission_number": "GW-0002", "first_name": "Diya", "last_name": "Patel",
         "date_of_birth": date(2011, 9, 2), "gender": Gender.FEMALE},
    ],
    "riverside": [
        {"admission_number": "RA-0001", "first_name": "Kabir", "last_name": "Nair",
         "date_of_birth": date(2013, 1, 23), "gender": Gender.MALE},
    ],
}

ADMIN_PERMISSIONS = ["students:read", "students:create", "students:update", "students:delete", "audit:read"]


# ---------------------------------------------------------------------------
# Seed steps
# ---------------------------------------------------------------------------


async def seed_tenants() -> dict[str, uuid.UUID]:
    """Create missing demo tenants in an audited elevated session."""
    context = ElevationContext(
        actor_id=SEED_ACTOR,
        justification="Seeding demo tenants",
        operation="seed",
        is_platform_admin=True,
    )
    tenant_ids: dict[str, uuid.UUID] = {}
    async with async_session() as session:
        async with elevated_scope(session, context):
            svc = TenantService(session)
            for data in TENANTS:
                existing = (
                    await session.execute(select(Tenant).where(Tenant.slug == data["slug"]))
                ).scalar_one_or_none()
                if existing is None:
                    existing = await svc.create_tenant(name=data["name"], actor_id=SEED_ACTOR, slug=data["slug"])
                tenant_ids[data["slug"]] = existing.id
    print(f"  Seeded {len(tenant_ids)} tenants.")
    return tenant_ids


async def seed_students(tenant_ids: dict[str, uuid.UUID]) -> None:
    """Insert each tenant's students through a session bound to that tenant."""
    count = 0
    for slug, tenant_id in tenant_ids.items():
        async with async_session() as session:
            async with tenant_scope(session, TenantBinding(tenant_id=tenant_id, actor_id=SEED_ACTOR)):
                existing = set(
                    (await session.execute(select(Student.admission_number))).scalars().all()
                )
                for data in STUDENTS.get(slug, []):
                    if data["admission_number"] in existing:
                        continue
                    session.add(Student(**data))
                    count += 1
    print(f"  Seeded {count} students.")


def print_tokens(tenant_ids: dict[str, uuid.UUID]) -> None:
    for slug, tenant_id in tenant_ids.items():
        token = create_access_token(
            user_id=uuid.uuid4(),
            tenant_id=tenant_id,
            email=f"admin@{slug}.example",
            permissions=ADMIN_PERMISSIONS,
        )
        print(f"  {slug} ({tenant_id}): {token}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def _main() -> None:
    print("Seeding MSLS database...")
    try:
        tenant_ids = await seed_tenants()
        await seed_students(tenant_ids)
    finally:
        await engine.dispose()
    print("Demo access tokens:")
    print_tokens(tenant_ids)
    print("Seeding complete.")


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
