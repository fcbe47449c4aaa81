"""
Invitation & password-reset flows.

Issues the one-time credentials that move an account through the
lifecycle and hands them to the email service:

- `invite`              new `pending` account + temporary password + token
- `resend_invitation`   fresh password + token, old token dead at once
- `request_password_reset`  reset token for an `active` account
- `verify_invitation`   read-only token pre-check for the activation form

Who may invite is decided at the controller layer
(`system.invite_users`); which role they may hand out is checked
here.  Token consumption (`activate`, `reset_password`) lives in the
lifecycle service.

Secrets are returned to the caller inside `DeliveryPayload` for the
delivery channel only.  Nothing here logs them.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import is_expired, utcnow
from authcore.core.exceptions import (
    DuplicateNameError,
    ExpiredTokenError,
    InsufficientPermissionError,
    InvalidTokenError,
    ValidationError,
)
from authcore.core.security import generate_temporary_password, generate_token, hash_password
from authcore.models.user import AccountStatus, User
from authcore.rbac.authorization import can_grant_role
from authcore.services import email_service, lifecycle_service, role_service, user_service

logger = logging.getLogger(__name__)


@dataclass
class DeliveryPayload:
    destination: str
    template_kind: str
    payload: dict = field(repr=False)
    delivered: bool = False


@dataclass
class InvitationResult:
    user: User
    delivery: DeliveryPayload


@dataclass
class InvitationSummary:
    user_id: uuid.UUID
    email: str
    first_name: str | None
    last_name: str | None
    role_name: str | None
    expires_at: datetime


async def _send(delivery: DeliveryPayload) -> DeliveryPayload:
    delivery.delivered = await email_service.deliver(
        delivery.destination, delivery.template_kind, delivery.payload,
    )
    if not delivery.delivered:
        logger.warning(
            "%s for %s was issued but not delivered", delivery.template_kind, delivery.destination,
        )
    return delivery


def _invitation_payload(user: User, token: str, temporary_password: str, expires: datetime) -> dict:
    return {
        "token": token,
        "temporary_password": temporary_password,
        "first_name": user.first_name,
        "role_name": user.role_name,
        "expires_at": expires.isoformat(),
    }


async def invite(
    email: str,
    first_name: str | None,
    last_name: str | None,
    role_id: uuid.UUID | None,
    invited_by: uuid.UUID | None,
    db: AsyncSession,
    inviter_permissions: Iterable[str] | None = None,
) -> InvitationResult:
    """
    Create a `pending` account and send its invitation.

    Business rules enforced:
    - The email must not belong to any existing account.
    - `role_id`, when given, must name an existing role.
    - With `inviter_permissions`, the role may not carry administrative
      codes the inviter lacks.
    """
    if await user_service.email_exists(email.strip(), db):
        raise DuplicateNameError("A user with this email already exists")
    if role_id is not None:
        role = await role_service.get_role(role_id, db)
        if inviter_permissions is not None:
            granted = await role_service.resolve_permissions(role.id, db)
            if not can_grant_role(inviter_permissions, granted):
                logger.warning("Invitation by %s into role '%s' refused", invited_by, role.name)
                raise InsufficientPermissionError()

    temporary_password = generate_temporary_password()
    token = generate_token()
    user = await user_service.create_user(
        email=email,
        password_hash=hash_password(temporary_password),
        account_status=AccountStatus.PENDING,
        db=db,
        role_id=role_id,
        first_name=first_name,
        last_name=last_name,
        invited_by=invited_by,
    )
    expires = await lifecycle_service.store_invitation(
        user.id, token, user.password_hash, db,
    )
    user = await lifecycle_service.reload_user(user.id, db)
    logger.info("User %s invited by %s", user.id, invited_by)

    delivery = DeliveryPayload(
        destination=user.email,
        template_kind=email_service.INVITATION,
        payload=_invitation_payload(user, token, temporary_password, expires),
    )
    return InvitationResult(user=user, delivery=await _send(delivery))


async def resend_invitation(user_id: uuid.UUID, db: AsyncSession) -> DeliveryPayload:
    """Issue a new token and temporary password for a `pending` account.

    Both are written in one UPDATE, so the previous token stops working
    the moment the new one exists.
    """
    user = await user_service.get_user_by_id(user_id, db)
    if user.account_status != AccountStatus.PENDING:
        raise ValidationError("Only pending accounts can be re-invited")

    temporary_password = generate_temporary_password()
    token = generate_token()
    expires = await lifecycle_service.store_invitation(
        user.id, token, hash_password(temporary_password), db,
    )
    user = await lifecycle_service.reload_user(user.id, db)
    logger.info("Invitation re-issued for user %s", user.id)

    delivery = DeliveryPayload(
        destination=user.email,
        template_kind=email_service.INVITATION,
        payload=_invitation_payload(user, token, temporary_password, expires),
    )
    return await _send(delivery)


async def request_password_reset(email: str, db: AsyncSession) -> DeliveryPayload | None:
    """Issue a reset token for an active account; None otherwise.

    The route answers identically in both cases.
    """
    user = await user_service.get_user_by_email(email, db)
    if user is None:
        logger.info("Password reset requested for an unknown email")
        return None

    token = generate_token()
    expires = await lifecycle_service.store_reset_token(user.id, token, db)
    if expires is None:
        logger.info("Password reset refused for user %s (status %s)", user.id, user.account_status.value)
        return None

    logger.info("Password reset token issued for user %s", user.id)
    delivery = DeliveryPayload(
        destination=user.email,
        template_kind=email_service.PASSWORD_RESET,
        payload={"token": token, "expires_at": expires.isoformat()},
    )
    return await _send(delivery)


async def verify_invitation(token: str, db: AsyncSession) -> InvitationSummary:
    """Check an invitation token without consuming it."""
    if not token:
        raise InvalidTokenError()
    user = (
        await db.execute(
            select(User)
            .where(User.invitation_token == token)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if user is None or user.account_status != AccountStatus.PENDING:
        raise InvalidTokenError()
    if is_expired(user.invitation_expires, utcnow()):
        raise ExpiredTokenError("Invitation has expired, request a new invitation")
    return InvitationSummary(
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role_name=user.role_name,
        expires_at=user.invitation_expires,
    )
