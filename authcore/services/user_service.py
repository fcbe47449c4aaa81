"""
User service — CRUD & query helpers.

Status changes are NOT made here: they belong to the lifecycle service
so every status write passes the transition table.
"""

import uuid

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from authcore.core.exceptions import DuplicateNameError, NotFoundError, ValidationError
from authcore.models.role import Role
from authcore.models.user import AccountStatus, User


def _with_role(stmt):
    return stmt.options(selectinload(User.role).selectinload(Role.permissions))


async def get_user_by_id(user_id: uuid.UUID, db: AsyncSession) -> User:
    result = await db.execute(_with_role(select(User)).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def get_user_by_email(email: str, db: AsyncSession) -> User | None:
    """Exact match — emails are compared as stored, case-sensitively."""
    result = await db.execute(_with_role(select(User)).where(User.email == email))
    return result.scalar_one_or_none()


async def email_exists(email: str, db: AsyncSession, exclude_user_id: uuid.UUID | None = None) -> bool:
    stmt = select(User.id).where(User.email == email)
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return (await db.execute(stmt)).first() is not None


async def list_users(
    db: AsyncSession,
    status: AccountStatus | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> list[User]:
    stmt = _with_role(select(User)).order_by(User.created_at.desc())
    if status is not None:
        stmt = stmt.where(User.account_status == status)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(
            or_(
                User.email.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
            )
        )
    stmt = stmt.offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_user(
    email: str,
    password_hash: str,
    account_status: AccountStatus,
    db: AsyncSession,
    role_id: uuid.UUID | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    phone_number: str | None = None,
    **extra,
) -> User:
    """Insert a user row.  Callers pick the initial status and hash."""
    email = email.strip()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if await email_exists(email, db):
        raise DuplicateNameError("A user with this email already exists")

    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=password_hash,
        account_status=account_status,
        role_id=role_id,
        first_name=first_name,
        last_name=last_name,
        phone_number=phone_number,
        **extra,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateNameError("A user with this email already exists") from exc
    await db.refresh(user, ["role"])
    return user


async def update_profile(
    user_id: uuid.UUID,
    db: AsyncSession,
    email: str | None = None,
    phone_number: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Edit own profile fields.  A changed email must stay unique."""
    if all(v is None for v in (email, phone_number, first_name, last_name)):
        raise ValidationError("At least one field must be provided for update")

    user = await get_user_by_id(user_id, db)
    if email is not None:
        email = email.strip()
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")
        if email != user.email:
            if await email_exists(email, db, exclude_user_id=user.id):
                raise DuplicateNameError("Email already in use by another user")
            user.email = email
    if phone_number is not None:
        user.phone_number = phone_number
    if first_name is not None:
        user.first_name = first_name
    if last_name is not None:
        user.last_name = last_name
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateNameError("Email already in use by another user") from exc
    return user


async def assign_role_to_user(
    user_id: uuid.UUID,
    role_id: uuid.UUID | None,
    db: AsyncSession,
) -> User:
    """Point a user at a role (or at none)."""
    user = await get_user_by_id(user_id, db)
    if role_id is not None:
        role = (await db.execute(select(Role).where(Role.id == role_id))).scalar_one_or_none()
        if role is None:
            raise NotFoundError("Role not found")
    user.role_id = role_id
    await db.flush()
    await db.refresh(user, ["role"])
    return user
