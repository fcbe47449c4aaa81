"""
Role registry — roles, their permission bundles and the catalog view.

Handles:
- Resolving a role's flattened permission set (always through
  `resolve_permissions`, never through ad-hoc joins at call sites)
- Full-replace permission assignment, atomic via a SAVEPOINT
- Role create / rename / delete with system-role protection

Permission checks for *who* may call these live at the controller
layer (`system.manage_roles`).  System-role protection does not depend
on the caller: not even a super admin can delete one.
"""

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.exceptions import (
    DuplicateNameError,
    NotFoundError,
    ProtectedRoleError,
    ValidationError,
)
from authcore.models.permission import Permission
from authcore.models.role import Role, role_permissions
from authcore.models.user import User
from authcore.rbac.catalog import SYSTEM_ROLES

logger = logging.getLogger(__name__)


def is_system_role(name: str) -> bool:
    return name in SYSTEM_ROLES


# ── Queries ──────────────────────────────────────────────────────────

async def get_role(role_id: uuid.UUID, db: AsyncSession) -> Role:
    role = (await db.execute(select(Role).where(Role.id == role_id))).scalar_one_or_none()
    if role is None:
        raise NotFoundError("Role not found")
    return role


async def get_role_by_name(name: str, db: AsyncSession) -> Role | None:
    stmt = select(Role).where(Role.name == name)
    return (await db.execute(stmt)).scalar_one_or_none()


async def list_roles(
    db: AsyncSession,
    search: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> list[Role]:
    stmt = select(Role).order_by(Role.name)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Role.name.ilike(pattern), Role.description.ilike(pattern)))
    stmt = stmt.offset(skip).limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def list_permissions(db: AsyncSession) -> list[Permission]:
    stmt = select(Permission).order_by(Permission.code)
    return list((await db.execute(stmt)).scalars().all())


async def resolve_permissions(role_id: uuid.UUID | None, db: AsyncSession) -> set[str]:
    """Flattened, deduplicated permission codes of a role.

    Unknown roles and roles without assignments both yield an empty set.
    """
    if role_id is None:
        return set()
    stmt = (
        select(Permission.code)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .where(role_permissions.c.role_id == role_id)
    )
    return set((await db.execute(stmt)).scalars().all())


# ── Mutations ────────────────────────────────────────────────────────

async def _ensure_name_free(name: str, db: AsyncSession, exclude_id: uuid.UUID | None = None) -> None:
    stmt = select(Role.id).where(Role.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Role.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise DuplicateNameError("A role with this name already exists")


async def create_role(
    name: str,
    db: AsyncSession,
    description: str | None = None,
    permissions: Iterable[str] = (),
) -> Role:
    name = name.strip()
    if not name:
        raise ValidationError("Role name is required")
    await _ensure_name_free(name, db)

    role = Role(id=uuid.uuid4(), name=name, description=description)
    db.add(role)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateNameError("A role with this name already exists") from exc

    codes = list(permissions)
    if codes:
        await assign_permissions(role.id, codes, db)
    else:
        await db.refresh(role, ["permissions"])
    logger.info("Role '%s' created with %d permissions", name, len(set(codes)))
    return role


async def update_role(
    role_id: uuid.UUID,
    db: AsyncSession,
    name: str | None = None,
    description: str | None = None,
) -> Role:
    """Rename and/or re-describe a role."""
    role = await get_role(role_id, db)
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("Role name is required")
        if name != role.name:
            if is_system_role(role.name):
                raise ProtectedRoleError("System roles cannot be renamed")
            await _ensure_name_free(name, db, exclude_id=role.id)
            role.name = name
    if description is not None:
        role.description = description
    try:
        await db.flush()
    except IntegrityError as exc:
        raise DuplicateNameError("A role with this name already exists") from exc
    return role


async def assign_permissions(
    role_id: uuid.UUID,
    permissions: Iterable[str],
    db: AsyncSession,
) -> set[str]:
    """Replace the role's permission set with `permissions`.

    Existing assignments are cleared and the new set inserted inside one
    SAVEPOINT: either the whole replacement lands or nothing changes.
    Returns the resolved set after the write.
    """
    role = await get_role(role_id, db)
    codes = set(permissions)

    perm_rows = (
        await db.execute(select(Permission.id, Permission.code).where(Permission.code.in_(codes)))
    ).all() if codes else []
    found = {code: perm_id for perm_id, code in perm_rows}
    unknown = codes - set(found)
    if unknown:
        raise ValidationError(f"Unknown permissions: {', '.join(sorted(unknown))}")

    async with db.begin_nested():
        await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role.id))
        if found:
            await db.execute(
                insert(role_permissions),
                [{"role_id": role.id, "permission_id": perm_id} for perm_id in found.values()],
            )

    await db.refresh(role, ["permissions"])
    logger.info("Role '%s' permissions replaced (%d codes)", role.name, len(codes))
    return await resolve_permissions(role.id, db)


async def delete_role(role_id: uuid.UUID, db: AsyncSession) -> None:
    """Delete a non-system role.  Users holding it end up with no role."""
    role = await get_role(role_id, db)
    if is_system_role(role.name):
        raise ProtectedRoleError()

    await db.execute(update(User).where(User.role_id == role.id).values(role_id=None))
    # Assignment rows go with the role (secondary collection).
    await db.delete(role)
    await db.flush()
    logger.info("Role '%s' deleted", role.name)
