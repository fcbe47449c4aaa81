"""
Principal resolution.

A Principal is the request-scoped projection of who is calling: user
id, email, live account status, role name and the flattened permission
set.  It is rebuilt from the users / roles / role_permissions tables on
every authenticated request — token claims are never trusted for an
authorization decision, so role or permission edits apply at once.
"""

import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from authcore.models.user import AccountStatus, User
from authcore.services import role_service


@dataclass(frozen=True)
class Principal:
    user_id: uuid.UUID
    email: str
    account_status: AccountStatus
    role_name: str | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE


async def principal_from_user(user: User, db: AsyncSession) -> Principal:
    """Project a loaded user into a Principal; permissions come from the role registry."""
    codes = await role_service.resolve_permissions(user.role_id, db)
    return Principal(
        user_id=user.id,
        email=user.email,
        account_status=user.account_status,
        role_name=user.role_name,
        permissions=frozenset(codes),
    )


async def load_user(user_id: uuid.UUID, db: AsyncSession) -> User | None:
    """Fetch the user with its role, bypassing any cached identity."""
    stmt = (
        select(User)
        .options(selectinload(User.role))
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_principal(user_id: uuid.UUID, db: AsyncSession) -> Principal | None:
    user = await load_user(user_id, db)
    if user is None:
        return None
    return await principal_from_user(user, db)
