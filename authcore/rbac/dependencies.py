"""
RBAC dependencies — permission enforcement for routes.

`require_permission` is a *dependency factory*: call it with one or
more permission codes and it returns a FastAPI dependency that will:

1. Read the bearer token (via `oauth2_scheme`).
2. Verify it and rebuild the Principal from the database.
3. Apply the account-status gate (self-service operations excepted).
4. Check the required code(s) in "all" or "any" mode.
5. Return 403 on failure — with NO details about which permissions
   are missing (prevents enumeration attacks).

Usage in a route:
    @router.get("/roles", dependencies=[Depends(require_permission("system.manage_roles"))])
    async def list_roles(...): ...

Or inject the principal:
    @router.get("/users")
    async def users(principal: Principal = Depends(require_permission("system.manage_users"))): ...
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.database import get_db
from authcore.core.exceptions import AuthenticationRequiredError, InvalidTokenError
from authcore.core.security import oauth2_scheme
from authcore.rbac.authorization import Mode, ensure_authorized
from authcore.rbac.principal import Principal
from authcore.services import auth_service


async def get_current_principal(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Authenticated principal, whatever its account status."""
    if not token:
        raise AuthenticationRequiredError()
    try:
        return await auth_service.verify_token(token, db)
    except InvalidTokenError as exc:
        raise AuthenticationRequiredError("Invalid or expired token") from exc


class require_permission:
    """
    Dependency factory.

    Can be used as:
        Depends(require_permission("project.view"))
        Depends(require_permission("reports.view", "reports.export", mode="any"))
        Depends(require_permission(operation="auth.change_own_password"))
    """

    def __init__(self, *permission_codes: str, mode: Mode = "all", operation: str | None = None):
        self.required_codes = frozenset(permission_codes)
        self.mode = mode
        self.operation = operation

    async def __call__(self, principal: Principal = Depends(get_current_principal)) -> Principal:
        return ensure_authorized(principal, self.required_codes, self.mode, self.operation)


async def require_active_principal(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Authenticated and active, no permission required."""
    return ensure_authorized(principal)
