"""
Create (or promote) the platform SUPER_ADMIN.

    python -m teamhub_api.scripts.create_super_admin --email admin@example.com --password '...'

A new account is placed in a "System" tenant on the enterprise plan. Running
the command for an existing email promotes that account in place, resets its
password and re-activates it.
"""

import argparse
import asyncio

from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.auth import hash_password
from teamhub_api.core.database import get_session_context, init_db
from teamhub_api.models.tenant import Tenant
from teamhub_api.models.user import User
from teamhub_api.services.users import get_user_by_email, normalize_email
from teamhub_shared.schemas.common import Role, TenantStatus

SYSTEM_TENANT_NAME = "System"


async def ensure_super_admin(
    session: AsyncSession,
    email: str,
    password: str,
    first_name: str = "Super",
    last_name: str = "Admin",
) -> tuple[User, bool]:
    """Returns (user, created)."""
    password_hash = await asyncio.to_thread(hash_password, password)
    user = await get_user_by_email(email, session)

    if user is not None:
        # Promotion keeps the account in its current tenant
        user.role = Role.SUPER_ADMIN.value
        user.password_hash = password_hash
        user.is_active = True
        session.add(user)
        await session.flush()
        return user, False

    tenant = Tenant(name=SYSTEM_TENANT_NAME, plan="enterprise", status=TenantStatus.ACTIVE.value)
    session.add(tenant)
    await session.flush()

    user = User(
        tenant_id=tenant.id,
        email=normalize_email(email),
        password_hash=password_hash,
        role=Role.SUPER_ADMIN.value,
        profile={"first_name": first_name, "last_name": last_name},
    )
    session.add(user)
    await session.flush()
    return user, True


async def main(email: str, password: str, create_tables: bool = False) -> None:
    if create_tables:
        await init_db()
    async with get_session_context() as session:
        user, created = await ensure_super_admin(session, email, password)
    action = "Created" if created else "Updated"
    print(f"{action} super admin {user.email} (tenant {user.tenant_id}).")


def cli() -> None:
    parser = argparse.ArgumentParser(description="Create the platform super admin.")
    parser.add_argument("--email", required=True, help="Email address for the super admin")
    parser.add_argument("--password", required=True, help="Password for the super admin")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (local development without migrations)",
    )

    args = parser.parse_args()

    asyncio.run(main(args.email, args.password, args.create_tables))


if __name__ == "__main__":
    cli()
