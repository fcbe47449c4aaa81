"""
User controller — listing users, status changes and role assignment.

Every route needs `system.manage_users`.  Status changes are handed to
the lifecycle service, which checks the actor and the transition table
itself.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.database import get_db
from authcore.models.user import AccountStatus
from authcore.rbac.catalog import MANAGE_USERS
from authcore.rbac.dependencies import require_active_principal, require_permission
from authcore.rbac.principal import Principal
from authcore.schemas import AssignRoleRequest, UpdateStatusRequest, UserOut
from authcore.services import lifecycle_service, user_service

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("", response_model=list[UserOut], dependencies=[Depends(require_permission(MANAGE_USERS))])
async def list_users(
    db: AsyncSession = Depends(get_db),
    status: AccountStatus | None = Query(None),
    search: str | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    users = await user_service.list_users(db, status=status, search=search, skip=skip, limit=limit)
    return [UserOut.model_validate(u) for u in users]


@router.get("/{user_id}", response_model=UserOut, dependencies=[Depends(require_permission(MANAGE_USERS))])
async def get_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return UserOut.model_validate(await user_service.get_user_by_id(user_id, db))


@router.patch("/{user_id}/status", response_model=UserOut)
async def update_status(
    user_id: uuid.UUID,
    body: UpdateStatusRequest,
    principal: Principal = Depends(require_active_principal),
    db: AsyncSession = Depends(get_db),
):
    user = await lifecycle_service.change_account_status(principal, user_id, body.account_status, db)
    return UserOut.model_validate(user)


@router.patch("/{user_id}/role", response_model=UserOut, dependencies=[Depends(require_permission(MANAGE_USERS))])
async def assign_role(user_id: uuid.UUID, body: AssignRoleRequest, db: AsyncSession = Depends(get_db)):
    user = await user_service.assign_role_to_user(user_id, body.role_id, db)
    return UserOut.model_validate(user)
