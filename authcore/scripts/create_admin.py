"""
One-time bootstrap script — creates the first super_admin user.

Usage:
    python -m authcore.rbac.catalog          # schema + roles first
    python -m authcore.scripts.create_admin

You only need this ONCE. After the first super admin exists, all other
users are created via the invitation flow.
"""

import asyncio
import getpass

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import utcnow
from authcore.core.database import engine, session_scope
from authcore.core.exceptions import AuthCoreError, NotFoundError
from authcore.core.security import hash_password
from authcore.models.user import AccountStatus, User
from authcore.rbac.catalog import SUPER_ADMIN
from authcore.services import lifecycle_service, role_service, user_service


async def bootstrap_super_admin(
    email: str,
    password: str,
    db: AsyncSession,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Create an active account holding the super_admin role."""
    lifecycle_service.validate_password(password)
    role = await role_service.get_role_by_name(SUPER_ADMIN, db)
    if role is None:
        raise NotFoundError(
            "super_admin role not found, run `python -m authcore.rbac.catalog` first"
        )
    return await user_service.create_user(
        email=email,
        password_hash=hash_password(password),
        account_status=AccountStatus.ACTIVE,
        db=db,
        role_id=role.id,
        first_name=first_name,
        last_name=last_name,
        activated_at=utcnow(),
    )


async def create_admin() -> None:
    # ── Collect input ────────────────────────────────────────────────
    print("\n🔧  Auth Core — First Super Admin Setup\n")
    email = input("  Admin email: ").strip()
    first_name = input("  First name:  ").strip() or None
    last_name = input("  Last name:   ").strip() or None
    password = getpass.getpass("  Password:    ")
    confirm = getpass.getpass("  Confirm:     ")

    if password != confirm:
        print("\n❌  Passwords do not match.")
        return
    if not email or not password:
        print("\n❌  Email and password are required.")
        return

    try:
        async with session_scope() as session:
            admin_user = await bootstrap_super_admin(
                email, password, session, first_name=first_name, last_name=last_name,
            )
    except AuthCoreError as exc:
        print(f"\n❌  {exc.detail}")
        return
    finally:
        await engine.dispose()

    print("\n✅  Super admin created successfully!")
    print(f"    ID:    {admin_user.id}")
    print(f"    Email: {admin_user.email}")
    print(f"    Role:  {SUPER_ADMIN}")
    print("\n   You can now log in via POST /api/auth/login\n")


if __name__ == "__main__":
    asyncio.run(create_admin())
