"""
Authorization decision function.

`authorize` is the single place where allow/deny is decided.  It works
on plain permission code strings, so it does not care which catalog
generation is loaded.

Order of checks:
  1. No principal → deny.
  2. Account not active → deny, unless the operation is one of the
     self-service escape routes a non-active account needs to become
     active again.
  3. Permission check: one code is membership, "any" is a non-empty
     intersection, "all" is a superset.

`is_admin` / `is_super_admin` are shortcuts over the same permission
set: a role name alone never grants anything.
"""

import logging
from collections.abc import Iterable
from typing import Literal

from authcore.core.exceptions import (
    AccountNotActiveError,
    AuthenticationRequiredError,
    InsufficientPermissionError,
)
from authcore.rbac.catalog import ADMIN, ASSIGN_PERMISSIONS, MANAGE_USERS, SUPER_ADMIN, is_privileged
from authcore.rbac.principal import Principal

logger = logging.getLogger("rbac")

Mode = Literal["any", "all"]

# Operations a pending / inactive / suspended account may still reach.
CHANGE_OWN_PASSWORD = "auth.change_own_password"
LOGOUT = "auth.logout"
ACTIVATE = "auth.activate"
SELF_SERVICE_OPERATIONS: frozenset[str] = frozenset({CHANGE_OWN_PASSWORD, LOGOUT, ACTIVATE})


def _as_set(required: str | Iterable[str]) -> frozenset[str]:
    if isinstance(required, str):
        return frozenset({required})
    return frozenset(required)


def require_active_account(principal: Principal | None, operation: str | None = None) -> bool:
    """Account-status gate.  Self-service operations pass for any status."""
    if principal is None:
        return False
    if operation in SELF_SERVICE_OPERATIONS:
        return True
    return principal.is_active


def has_permissions(principal: Principal, required: str | Iterable[str], mode: Mode = "all") -> bool:
    codes = _as_set(required)
    if mode == "any":
        return bool(codes & principal.permissions)
    if mode == "all":
        return codes <= principal.permissions
    raise ValueError(f"unknown mode: {mode!r}")


def authorize(
    principal: Principal | None,
    required: str | Iterable[str] = (),
    mode: Mode = "all",
    operation: str | None = None,
) -> bool:
    """Return True when `principal` may perform an action needing `required`."""
    if principal is None:
        return False
    if not require_active_account(principal, operation):
        return False
    return has_permissions(principal, required, mode)


def ensure_authorized(
    principal: Principal | None,
    required: str | Iterable[str] = (),
    mode: Mode = "all",
    operation: str | None = None,
) -> Principal:
    """Raising variant of `authorize`, used by services and routes."""
    if principal is None:
        raise AuthenticationRequiredError()
    if not require_active_account(principal, operation):
        raise AccountNotActiveError(principal.account_status.value)
    if not has_permissions(principal, required, mode):
        # Intentionally vague — do NOT reveal which codes are missing
        logger.warning(
            "Permission denied for user %s — required (%s): %s",
            principal.user_id,
            mode,
            sorted(_as_set(required)),
        )
        raise InsufficientPermissionError()
    return principal


def can_grant_role(granter_permissions: Iterable[str], role_permissions: Iterable[str]) -> bool:
    """
    Whether someone holding `granter_permissions` may hand out a role.

    Every administrative code the role carries must also be held by the
    granter, so nobody gives away more authority than they have.
    """
    held = frozenset(granter_permissions)
    return all(code in held for code in role_permissions if is_privileged(code))


def is_super_admin(principal: Principal | None) -> bool:
    if principal is None:
        return False
    return principal.role_name == SUPER_ADMIN and MANAGE_USERS in principal.permissions


def is_admin(principal: Principal | None) -> bool:
    if principal is None:
        return False
    return principal.role_name in (SUPER_ADMIN, ADMIN) and ASSIGN_PERMISSIONS in principal.permissions
