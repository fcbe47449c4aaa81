"""
Role controller — role registry and the permission catalog.

Reads need either role management or permission assignment rights;
writes need `system.manage_roles`.  System roles stay protected no
matter who calls.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.database import get_db
from authcore.models.role import Role
from authcore.rbac.catalog import ASSIGN_PERMISSIONS, MANAGE_ROLES
from authcore.rbac.dependencies import require_permission
from authcore.schemas import (
    AssignPermissionsRequest,
    CreateRoleRequest,
    MessageResponse,
    PermissionOut,
    RoleOut,
    UpdateRoleRequest,
)
from authcore.services import role_service

router = APIRouter(prefix="/api", tags=["Roles"])

can_read_roles = require_permission(MANAGE_ROLES, ASSIGN_PERMISSIONS, mode="any")
can_manage_roles = require_permission(MANAGE_ROLES)


def role_out(role: Role) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        description=role.description,
        is_system=role_service.is_system_role(role.name),
        permissions=role.permission_codes,
        created_at=role.created_at,
    )


@router.get("/roles", response_model=list[RoleOut], dependencies=[Depends(can_read_roles)])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    search: str | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    roles = await role_service.list_roles(db, search=search, skip=skip, limit=limit)
    return [role_out(r) for r in roles]


@router.get("/roles/{role_id}", response_model=RoleOut, dependencies=[Depends(can_read_roles)])
async def get_role(role_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return role_out(await role_service.get_role(role_id, db))


@router.get("/permissions", response_model=list[PermissionOut], dependencies=[Depends(can_read_roles)])
async def list_permissions(db: AsyncSession = Depends(get_db)):
    return [PermissionOut.model_validate(p) for p in await role_service.list_permissions(db)]


@router.post("/roles", response_model=RoleOut, status_code=201, dependencies=[Depends(can_manage_roles)])
async def create_role(body: CreateRoleRequest, db: AsyncSession = Depends(get_db)):
    role = await role_service.create_role(
        body.name, db, description=body.description, permissions=body.permissions,
    )
    return role_out(role)


@router.put("/roles/{role_id}", response_model=RoleOut, dependencies=[Depends(can_manage_roles)])
async def update_role(role_id: uuid.UUID, body: UpdateRoleRequest, db: AsyncSession = Depends(get_db)):
    role = await role_service.update_role(role_id, db, name=body.name, description=body.description)
    return role_out(role)


@router.put(
    "/roles/{role_id}/permissions",
    response_model=RoleOut,
    dependencies=[Depends(can_manage_roles)],
)
async def assign_permissions(
    role_id: uuid.UUID,
    body: AssignPermissionsRequest,
    db: AsyncSession = Depends(get_db),
):
    """Full replace of the role's permission set."""
    await role_service.assign_permissions(role_id, body.permissions, db)
    return role_out(await role_service.get_role(role_id, db))


@router.delete("/roles/{role_id}", response_model=MessageResponse, dependencies=[Depends(can_manage_roles)])
async def delete_role(role_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await role_service.delete_role(role_id, db)
    return MessageResponse(detail="Role deleted")
