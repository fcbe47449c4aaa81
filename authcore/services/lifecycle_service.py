"""
Account lifecycle — the state machine behind `users.account_status`.

States:
    pending    invited (or self-registered awaiting approval)
    inactive   registered but must change password before use
    active     usable
    suspended  administratively disabled

Every status write is checked against `TRANSITIONS`.  Token
consumption (invitation activation, password reset) is a single
conditional UPDATE keyed on the token itself: if two callers race with
the same token, exactly one UPDATE matches a row and the other sees
zero rows affected and gets `InvalidTokenError`.

Expiry rule (one rule, everywhere): a token is expired when
`now > expires_at`.  The instant `now == expires_at` is still valid.
"""

import enum
import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import is_expired, utcnow
from authcore.core.config import settings
from authcore.core.exceptions import (
    AccountNotActiveError,
    ExpiredTokenError,
    InvalidCredentialsError,
    InvalidTokenError,
    ValidationError,
)
from authcore.core.security import burn_password_check, hash_password, verify_password
from authcore.models.user import AccountStatus, User
from authcore.rbac.authorization import ensure_authorized
from authcore.rbac.catalog import MANAGE_USERS
from authcore.rbac.principal import Principal
from authcore.services import user_service

logger = logging.getLogger(__name__)

PENDING = AccountStatus.PENDING
INACTIVE = AccountStatus.INACTIVE
ACTIVE = AccountStatus.ACTIVE
SUSPENDED = AccountStatus.SUSPENDED


class LifecycleEvent(str, enum.Enum):
    ACTIVATE = "activate"
    RESEND_INVITATION = "resend_invitation"
    REQUEST_PASSWORD_RESET = "request_password_reset"
    CHANGE_OWN_PASSWORD = "change_own_password"
    ADMIN_STATUS_CHANGE = "admin_status_change"


# Statuses an operator may set directly.
ADMIN_TARGETS = frozenset({ACTIVE, INACTIVE, SUSPENDED})

# event → {current status → allowed next statuses}
TRANSITIONS: dict[LifecycleEvent, dict[AccountStatus, frozenset[AccountStatus]]] = {
    LifecycleEvent.ACTIVATE: {PENDING: frozenset({ACTIVE})},
    LifecycleEvent.RESEND_INVITATION: {PENDING: frozenset({PENDING})},
    LifecycleEvent.REQUEST_PASSWORD_RESET: {ACTIVE: frozenset({ACTIVE})},
    # A password change clears "awaiting password change" and nothing else:
    # a suspended account stays suspended.
    LifecycleEvent.CHANGE_OWN_PASSWORD: {
        ACTIVE: frozenset({ACTIVE}),
        INACTIVE: frozenset({ACTIVE}),
        SUSPENDED: frozenset({SUSPENDED}),
    },
    LifecycleEvent.ADMIN_STATUS_CHANGE: {status: ADMIN_TARGETS for status in AccountStatus},
}


def allowed_sources(event: LifecycleEvent) -> frozenset[AccountStatus]:
    return frozenset(TRANSITIONS[event])


def can_transition(event: LifecycleEvent, current: AccountStatus, target: AccountStatus) -> bool:
    return target in TRANSITIONS[event].get(current, frozenset())


def _transition(user: User, event: LifecycleEvent, target: AccountStatus) -> None:
    current = user.account_status
    if not can_transition(event, current, target):
        raise ValidationError(f"Cannot move account from {current.value} to {target.value}")
    if current != target:
        logger.info(
            "Account %s: %s → %s (%s)", user.id, current.value, target.value, event.value,
        )
    user.account_status = target


def validate_password(password: str) -> None:
    if not password or len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long"
        )


# ── Token storage (used by the invitation / reset flow) ──────────────

async def store_invitation(
    user_id: uuid.UUID,
    token: str,
    password_hash: str,
    db: AsyncSession,
    now: datetime | None = None,
) -> datetime:
    """Overwrite a pending invitation in one statement.

    The previous token stops matching the moment this UPDATE lands, so
    there is no window where both tokens are valid.
    """
    now = now or utcnow()
    expires = now + timedelta(hours=settings.INVITATION_EXPIRE_HOURS)
    result = await db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.account_status.in_(allowed_sources(LifecycleEvent.RESEND_INVITATION)),
        )
        .values(
            invitation_token=token,
            invitation_expires=expires,
            invited_at=now,
            password_hash=password_hash,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError("User account is not awaiting activation")
    return expires


async def store_reset_token(
    user_id: uuid.UUID,
    token: str,
    db: AsyncSession,
    now: datetime | None = None,
) -> datetime | None:
    """Bind a fresh reset token to an active account.  Returns its expiry,
    or None when the account cannot receive one."""
    now = now or utcnow()
    expires = now + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
    result = await db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.account_status.in_(allowed_sources(LifecycleEvent.REQUEST_PASSWORD_RESET)),
        )
        .values(password_reset_token=token, password_reset_expires=expires)
        .execution_options(synchronize_session=False)
    )
    return expires if result.rowcount == 1 else None


# ── Transitions ──────────────────────────────────────────────────────

async def reload_user(user_id: uuid.UUID, db: AsyncSession) -> User:
    stmt = select(User).where(User.id == user_id).execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one()


async def activate(token: str, new_password: str, db: AsyncSession) -> User:
    """pending → active by presenting the invitation token.

    Unknown, mismatched and already-consumed tokens all produce the same
    `InvalidTokenError`.  Only a real token past its deadline yields
    `ExpiredTokenError` so the user knows to ask for a new invitation.
    """
    validate_password(new_password)
    if not token:
        raise InvalidTokenError()

    now = utcnow()
    user = (
        await db.execute(
            select(User)
            .where(User.invitation_token == token)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if user is None or user.account_status not in allowed_sources(LifecycleEvent.ACTIVATE):
        raise InvalidTokenError()
    if is_expired(user.invitation_expires, now):
        raise ExpiredTokenError("Invitation has expired, request a new invitation")

    user_id = user.id
    result = await db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.invitation_token == token,
            User.account_status.in_(allowed_sources(LifecycleEvent.ACTIVATE)),
            User.invitation_expires >= now,
        )
        .values(
            password_hash=hash_password(new_password),
            account_status=ACTIVE,
            invitation_token=None,
            invitation_expires=None,
            activated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Another request consumed the token between our read and write.
        raise InvalidTokenError()

    logger.info("Account %s: pending → active (activate)", user_id)
    return await reload_user(user_id, db)


async def reset_password(token: str, new_password: str, db: AsyncSession) -> User:
    """One-time consumption of a password-reset token.  Status unchanged."""
    validate_password(new_password)
    if not token:
        raise InvalidTokenError()

    now = utcnow()
    user = (
        await db.execute(
            select(User)
            .where(User.password_reset_token == token)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if user is None:
        raise InvalidTokenError()
    if is_expired(user.password_reset_expires, now):
        raise ExpiredTokenError("Reset link has expired, request a new one")

    user_id = user.id
    result = await db.execute(
        update(User)
        .where(
            User.id == user_id,
            User.password_reset_token == token,
            User.password_reset_expires >= now,
        )
        .values(
            password_hash=hash_password(new_password),
            password_reset_token=None,
            password_reset_expires=None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTokenError()

    logger.info("Account %s: password reset", user_id)
    return await reload_user(user_id, db)


async def _change_password(
    user: User,
    current_password: str,
    new_password: str,
    db: AsyncSession,
) -> User:
    validate_password(new_password)
    if not verify_password(current_password, user.password_hash):
        raise InvalidCredentialsError()
    if user.account_status not in allowed_sources(LifecycleEvent.CHANGE_OWN_PASSWORD):
        raise AccountNotActiveError(
            user.account_status.value,
            "Use your invitation link to activate this account",
        )

    target = next(iter(TRANSITIONS[LifecycleEvent.CHANGE_OWN_PASSWORD][user.account_status]))
    user.password_hash = hash_password(new_password)
    _transition(user, LifecycleEvent.CHANGE_OWN_PASSWORD, target)
    if target == ACTIVE and user.activated_at is None:
        user.activated_at = utcnow()
    await db.flush()
    return user


async def change_own_password(
    user_id: uuid.UUID,
    current_password: str,
    new_password: str,
    db: AsyncSession,
) -> User:
    """Authenticated self-service password change (bearer-token route)."""
    user = await user_service.get_user_by_id(user_id, db)
    return await _change_password(user, current_password, new_password, db)


async def change_password_with_credentials(
    email: str,
    current_password: str,
    new_password: str,
    db: AsyncSession,
) -> User:
    """Same transition, authenticated by email + current password.

    Lets an `inactive` account — which cannot log in — set a new
    password and become active.  Unknown emails look exactly like a
    wrong password.
    """
    validate_password(new_password)
    user = await user_service.get_user_by_email(email, db)
    if user is None:
        burn_password_check(current_password)
        raise InvalidCredentialsError()
    return await _change_password(user, current_password, new_password, db)


async def change_account_status(
    actor: Principal | None,
    user_id: uuid.UUID,
    new_status: AccountStatus,
    db: AsyncSession,
) -> User:
    """Operator-driven move to active / inactive / suspended."""
    ensure_authorized(actor, MANAGE_USERS)
    if new_status not in ADMIN_TARGETS:
        raise ValidationError(f"Status must be one of: {', '.join(sorted(s.value for s in ADMIN_TARGETS))}")

    user = await user_service.get_user_by_id(user_id, db)
    _transition(user, LifecycleEvent.ADMIN_STATUS_CHANGE, new_status)
    if new_status == ACTIVE:
        # An approved account no longer needs its invitation.
        user.invitation_token = None
        user.invitation_expires = None
        if user.activated_at is None:
            user.activated_at = utcnow()
    await db.flush()
    logger.info("Account %s status set to %s by %s", user.id, new_status.value, actor.user_id)
    return user
