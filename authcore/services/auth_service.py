"""
Authentication service.

Handles:
- Login: credential check, account-status check, access-token issue
- Bearer-token verification with live principal re-resolution
- Self-registration under the configured default status and role

Failure rules:
- Unknown email and wrong password are the same `InvalidCredentialsError`
  (an unknown email still costs one bcrypt check).
- Account status is looked at only after the password matched, so a
  probe with a wrong password never learns that an account is suspended.

Tokens are stateless JWTs.  Nothing is stored server-side, so logout
only ends the session on the client and a token stays valid until it
expires.  Authorization data is never taken from the claims:
`verify_token` rebuilds the principal from the database every time.

All business logic lives here — controllers call service methods
and return the result.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.clock import utcnow
from authcore.core.config import settings
from authcore.core.exceptions import (
    AccountNotActiveError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from authcore.core.security import (
    burn_password_check,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from authcore.models.user import AccountStatus, User
from authcore.rbac.principal import Principal, principal_from_user, resolve_principal
from authcore.services import lifecycle_service, role_service, user_service

logger = logging.getLogger(__name__)

_NOT_ACTIVE_DETAIL = {
    AccountStatus.PENDING: "Account is pending activation, use your invitation link",
    AccountStatus.INACTIVE: "Password change required before this account can be used",
    AccountStatus.SUSPENDED: "Account is suspended",
}


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str


@dataclass
class LoginResult:
    principal: Principal
    access_token: str
    expires_at: datetime
    token_type: str = "bearer"


@dataclass
class RegistrationResult:
    user: User
    login: LoginResult | None = None


# ── Helpers ──────────────────────────────────────────────────────────

def _token_claims(user: User) -> dict:
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role_name,
    }


async def _issue(user: User, db: AsyncSession) -> LoginResult:
    user.last_login = utcnow()
    await db.flush()
    access_token, expires_at = create_access_token(_token_claims(user))
    return LoginResult(
        principal=await principal_from_user(user, db),
        access_token=access_token,
        expires_at=expires_at,
    )


# ── Login ────────────────────────────────────────────────────────────

async def login(email: str, password: str, db: AsyncSession) -> LoginResult:
    """Validate credentials and issue an access token."""
    user = await user_service.get_user_by_email(email, db)
    if user is None:
        burn_password_check(password)
        raise InvalidCredentialsError()
    if not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()

    if user.account_status != AccountStatus.ACTIVE:
        logger.info("Login refused for user %s: account %s", user.id, user.account_status.value)
        raise AccountNotActiveError(
            user.account_status.value,
            _NOT_ACTIVE_DETAIL.get(user.account_status),
        )

    result = await _issue(user, db)
    logger.info("User %s logged in", user.id)
    return result


# ── Token verification ───────────────────────────────────────────────

async def verify_token(token: str, db: AsyncSession) -> Principal:
    """Check signature, expiry and type, then rebuild the principal.

    A non-active account still resolves: the authorization gate decides
    what it may reach.
    """
    payload = decode_access_token(token)
    try:
        user_id = uuid.UUID(payload["sub"])
    except (TypeError, ValueError) as exc:
        raise InvalidTokenError() from exc

    principal = await resolve_principal(user_id, db)
    if principal is None:
        raise InvalidTokenError()
    return principal


async def authenticate(credentials_or_token: Credentials | str, db: AsyncSession) -> Principal:
    """Single entry for both a password login and a bearer token."""
    if isinstance(credentials_or_token, Credentials):
        result = await login(credentials_or_token.email, credentials_or_token.password, db)
        return result.principal
    return await verify_token(credentials_or_token, db)


def logout(principal: Principal) -> None:
    # Stateless tokens: nothing to revoke server-side.
    logger.info("User %s logged out", principal.user_id)


# ── Registration ─────────────────────────────────────────────────────

async def register(
    email: str,
    password: str,
    db: AsyncSession,
    first_name: str | None = None,
    last_name: str | None = None,
    phone_number: str | None = None,
) -> RegistrationResult:
    """
    Self-registration.

    The new account gets `DEFAULT_ACCOUNT_STATUS` and the
    `DEFAULT_ROLE_NAME` role.  An `active` account is logged in
    straight away; a `pending` one waits for an operator.
    """
    lifecycle_service.validate_password(password)
    status = AccountStatus(settings.DEFAULT_ACCOUNT_STATUS)

    role = await role_service.get_role_by_name(settings.DEFAULT_ROLE_NAME, db)
    if role is None:
        logger.warning("Default role '%s' does not exist; registering without a role", settings.DEFAULT_ROLE_NAME)

    user = await user_service.create_user(
        email=email,
        password_hash=hash_password(password),
        account_status=status,
        db=db,
        role_id=role.id if role else None,
        first_name=first_name,
        last_name=last_name,
        phone_number=phone_number,
        activated_at=utcnow() if status == AccountStatus.ACTIVE else None,
    )
    logger.info("User %s registered (%s)", user.id, status.value)

    if status != AccountStatus.ACTIVE:
        return RegistrationResult(user=user)
    return RegistrationResult(user=user, login=await _issue(user, db))
