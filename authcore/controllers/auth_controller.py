"""
Auth controller — login, registration, logout, profile, password management.

Login, registration and the password-reset pair are PUBLIC.  Logout
and the password change are self-service routes: they stay reachable
for accounts that are not active.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.database import get_db
from authcore.core.exceptions import AuthenticationRequiredError
from authcore.core.security import oauth2_scheme
from authcore.rbac.authorization import CHANGE_OWN_PASSWORD, LOGOUT, ensure_authorized
from authcore.rbac.dependencies import get_current_principal, require_active_principal, require_permission
from authcore.rbac.principal import Principal
from authcore.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    PrincipalOut,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UpdateProfileRequest,
    UserOut,
)
from authcore.services import auth_service, invitation_service, lifecycle_service, user_service

router = APIRouter(prefix="/api/auth", tags=["Auth"])

RESET_ACKNOWLEDGEMENT = "If an account exists for this email, a reset link has been sent"


def principal_out(principal: Principal) -> PrincipalOut:
    return PrincipalOut(
        user_id=principal.user_id,
        email=principal.email,
        account_status=principal.account_status,
        role=principal.role_name,
        permissions=sorted(principal.permissions),
    )


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate with email + password → receive an access token."""
    result = await auth_service.login(body.email, body.password, db)
    return TokenResponse(
        access_token=result.access_token,
        token_type=result.token_type,
        expires_at=result.expires_at,
        user=principal_out(result.principal),
    )


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    result = await auth_service.register(
        email=body.email,
        password=body.password,
        db=db,
        first_name=body.first_name,
        last_name=body.last_name,
        phone_number=body.phone_number,
    )
    response = RegisterResponse(user=UserOut.model_validate(result.user))
    if result.login is not None:
        response.access_token = result.login.access_token
        response.expires_at = result.login.expires_at
    return response


@router.post("/logout", response_model=MessageResponse)
async def logout(principal: Principal = Depends(require_permission(operation=LOGOUT))):
    """Client-side logout; the token stays valid until it expires."""
    auth_service.logout(principal)
    return MessageResponse(detail="Logged out successfully")


@router.get("/me", response_model=PrincipalOut)
async def me(principal: Principal = Depends(require_active_principal)):
    return principal_out(principal)


@router.put("/me", response_model=UserOut)
async def update_profile(
    body: UpdateProfileRequest,
    principal: Principal = Depends(require_active_principal),
    db: AsyncSession = Depends(get_db),
):
    """Edit own email, phone number or name (active accounts only)."""
    user = await user_service.update_profile(
        principal.user_id,
        db,
        email=body.email,
        phone_number=body.phone_number,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return UserOut.model_validate(user)


@router.put("/password", response_model=UserOut)
async def change_password(
    body: ChangePasswordRequest,
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
):
    """
    Change one's own password.

    With a bearer token the caller is the token's user.  Without one,
    `email` + `current_password` identify the caller, which is how an
    `inactive` account (unable to log in) becomes active.
    """
    if token:
        principal = await get_current_principal(token, db)
        ensure_authorized(principal, operation=CHANGE_OWN_PASSWORD)
        user = await lifecycle_service.change_own_password(
            principal.user_id, body.current_password, body.new_password, db,
        )
    elif body.email:
        user = await lifecycle_service.change_password_with_credentials(
            body.email, body.current_password, body.new_password, db,
        )
    else:
        raise AuthenticationRequiredError()
    return UserOut.model_validate(user)


@router.post("/password-reset-request", response_model=MessageResponse)
async def password_reset_request(body: PasswordResetRequest, db: AsyncSession = Depends(get_db)):
    """Same answer whether or not the email is registered."""
    await invitation_service.request_password_reset(body.email, db)
    return MessageResponse(detail=RESET_ACKNOWLEDGEMENT)


@router.post("/password-reset", response_model=UserOut)
async def password_reset(body: PasswordResetConfirm, db: AsyncSession = Depends(get_db)):
    user = await lifecycle_service.reset_password(body.token, body.new_password, db)
    return UserOut.model_validate(user)
