"""
Invitation controller — invite, activate, resend, verify.

Inviting and resending need `system.invite_users`; an inviter can only
hand out roles whose administrative codes they hold.  Activation and the
token pre-check are public: the invitation token is the credential.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.database import get_db
from authcore.rbac.catalog import INVITE_USERS
from authcore.rbac.dependencies import require_permission
from authcore.rbac.principal import Principal
from authcore.schemas import (
    ActivateRequest,
    InvitationOut,
    InviteRequest,
    InviteResponse,
    MessageResponse,
    ResendInvitationRequest,
    UserOut,
)
from authcore.services import invitation_service, lifecycle_service

router = APIRouter(prefix="/api/invitations", tags=["Invitations"])


@router.post("/invite", response_model=InviteResponse, status_code=201)
async def invite(
    body: InviteRequest,
    principal: Principal = Depends(require_permission(INVITE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    result = await invitation_service.invite(
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        role_id=body.role_id,
        invited_by=principal.user_id,
        db=db,
        inviter_permissions=principal.permissions,
    )
    return InviteResponse(
        user=UserOut.model_validate(result.user),
        email_sent=result.delivery.delivered,
    )


@router.post("/activate", response_model=UserOut)
async def activate(body: ActivateRequest, db: AsyncSession = Depends(get_db)):
    """Set a new password with the invitation token → account becomes active."""
    user = await lifecycle_service.activate(body.token, body.new_password, db)
    return UserOut.model_validate(user)


@router.post("/resend", response_model=MessageResponse)
async def resend(
    body: ResendInvitationRequest,
    _: Principal = Depends(require_permission(INVITE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    delivery = await invitation_service.resend_invitation(body.user_id, db)
    if delivery.delivered:
        return MessageResponse(detail="Invitation re-sent")
    return MessageResponse(detail="Invitation re-issued but the email could not be delivered")


@router.get("/verify/{token}", response_model=InvitationOut)
async def verify(token: str, db: AsyncSession = Depends(get_db)):
    """Used by the frontend to validate a token before showing the form."""
    summary = await invitation_service.verify_invitation(token, db)
    return InvitationOut.model_validate(summary)
