import uuid

import pytest

from authcore.core.exceptions import (
    AccountNotActiveError,
    AuthenticationRequiredError,
    InsufficientPermissionError,
)
from authcore.models.user import AccountStatus
from authcore.rbac.authorization import (
    ACTIVATE,
    CHANGE_OWN_PASSWORD,
    LOGOUT,
    authorize,
    can_grant_role,
    ensure_authorized,
    has_permissions,
    is_admin,
    is_super_admin,
    require_active_account,
)
from authcore.rbac.catalog import ASSIGN_PERMISSIONS, MANAGE_USERS, PERMISSIONS, ROLE_PERMISSIONS
from authcore.rbac.principal import Principal, resolve_principal
from authcore.services import role_service


def make_principal(permissions=(), status=AccountStatus.ACTIVE, role=None) -> Principal:
    return Principal(
        user_id=uuid.uuid4(),
        email="someone@example.com",
        account_status=status,
        role_name=role,
        permissions=frozenset(permissions),
    )


class TestAuthorize:
    def test_no_principal_is_denied(self):
        assert authorize(None, "project.read") is False
        assert require_active_account(None) is False

    def test_single_code_is_membership(self):
        principal = make_principal({"project.read"})
        assert authorize(principal, "project.read") is True
        assert authorize(principal, "project.create") is False

    def test_any_mode_needs_non_empty_intersection(self):
        principal = make_principal({"project.read"})
        assert authorize(principal, {"project.read", "project.create"}, mode="any") is True
        assert authorize(principal, {"project.archive", "project.create"}, mode="any") is False

    def test_all_mode_needs_superset(self):
        principal = make_principal({"project.read", "project.create"})
        assert authorize(principal, ["project.read", "project.create"], mode="all") is True
        assert authorize(principal, ["project.read", "project.archive"], mode="all") is False

    def test_empty_requirement_only_needs_an_active_account(self):
        assert authorize(make_principal()) is True
        assert authorize(make_principal(status=AccountStatus.SUSPENDED)) is False

    def test_unknown_mode_is_rejected(self):
        with pytest.raises(ValueError):
            has_permissions(make_principal({"project.read"}), "project.read", mode="some")

    @pytest.mark.parametrize(
        "status", [AccountStatus.PENDING, AccountStatus.INACTIVE, AccountStatus.SUSPENDED]
    )
    def test_non_active_account_is_denied_even_with_the_permission(self, status):
        principal = make_principal({"project.read"}, status=status)
        assert authorize(principal, "project.read") is False

    @pytest.mark.parametrize("operation", [CHANGE_OWN_PASSWORD, LOGOUT, ACTIVATE])
    @pytest.mark.parametrize(
        "status", [AccountStatus.PENDING, AccountStatus.INACTIVE, AccountStatus.SUSPENDED]
    )
    def test_self_service_operations_pass_the_status_gate(self, operation, status):
        principal = make_principal(status=status)
        assert require_active_account(principal, operation) is True
        assert authorize(principal, operation=operation) is True

    def test_self_service_operation_does_not_skip_the_permission_check(self):
        principal = make_principal(status=AccountStatus.INACTIVE)
        assert authorize(principal, "project.read", operation=LOGOUT) is False


class TestEnsureAuthorized:
    def test_missing_principal(self):
        with pytest.raises(AuthenticationRequiredError):
            ensure_authorized(None, "project.read")

    def test_inactive_account_reports_its_status(self):
        principal = make_principal({"project.read"}, status=AccountStatus.INACTIVE)
        with pytest.raises(AccountNotActiveError) as exc_info:
            ensure_authorized(principal, "project.read")
        assert exc_info.value.account_status == "inactive"

    def test_missing_permission_message_is_generic(self):
        principal = make_principal({"project.read"})
        with pytest.raises(InsufficientPermissionError) as exc_info:
            ensure_authorized(principal, {"project.read", "system.manage_users"})
        assert "system.manage_users" not in exc_info.value.detail

    def test_returns_the_principal_when_allowed(self):
        principal = make_principal({"project.read"})
        assert ensure_authorized(principal, "project.read") is principal


class TestAdminShortcuts:
    def test_super_admin_needs_role_and_grant(self):
        assert is_super_admin(make_principal({MANAGE_USERS}, role="super_admin")) is True
        # Role name alone grants nothing.
        assert is_super_admin(make_principal(role="super_admin")) is False
        assert is_super_admin(make_principal({MANAGE_USERS}, role="admin")) is False
        assert is_super_admin(None) is False

    def test_admin_covers_both_top_tiers(self):
        assert is_admin(make_principal({ASSIGN_PERMISSIONS}, role="admin")) is True
        assert is_admin(make_principal({ASSIGN_PERMISSIONS}, role="super_admin")) is True
        assert is_admin(make_principal({ASSIGN_PERMISSIONS}, role="manager")) is False
        assert is_admin(make_principal(role="admin")) is False

    async def test_seeded_roles_agree_with_their_grants(self, db, make_user):
        super_admin = await make_user(role="super_admin")
        admin = await make_user(role="admin")
        viewer = await make_user(role="viewer")

        assert is_super_admin(await resolve_principal(super_admin.id, db)) is True
        assert is_admin(await resolve_principal(super_admin.id, db)) is True
        assert is_super_admin(await resolve_principal(admin.id, db)) is False
        assert is_admin(await resolve_principal(admin.id, db)) is True
        assert is_admin(await resolve_principal(viewer.id, db)) is False


class TestDecisionMatchesResolvedPermissions:
    async def test_every_role_and_every_catalog_code(self, db, make_user):
        roles = await role_service.list_roles(db, limit=200)
        assert roles

        for role in roles:
            user = await make_user(role=role.name)
            principal = await resolve_principal(user.id, db)
            granted = await role_service.resolve_permissions(role.id, db)
            for code in PERMISSIONS:
                assert authorize(principal, code) is (code in granted), (role.name, code)


class TestCanGrantRole:
    def test_non_administrative_codes_are_always_grantable(self):
        assert can_grant_role({"system.invite_users"}, {"drilling.input_logs", "project.read"}) is True

    def test_administrative_code_needs_a_holder(self):
        assert can_grant_role({"system.invite_users"}, {MANAGE_USERS}) is False
        assert can_grant_role({"system.invite_users"}, {ASSIGN_PERMISSIONS}) is False
        assert can_grant_role({MANAGE_USERS, ASSIGN_PERMISSIONS}, {MANAGE_USERS, ASSIGN_PERMISSIONS}) is True

    def test_seeded_tiers(self):
        admin = ROLE_PERMISSIONS["admin"]
        for role in ("admin", "manager", "editor", "contributor", "viewer"):
            assert can_grant_role(admin, ROLE_PERMISSIONS[role]) is True, role
        assert can_grant_role(admin, ROLE_PERMISSIONS["super_admin"]) is False
        assert can_grant_role(ROLE_PERMISSIONS["super_admin"], ROLE_PERMISSIONS["super_admin"]) is True


class TestResolvePrincipal:
    async def test_permissions_come_from_the_role_registry(self, db, make_user, monkeypatch):
        user = await make_user(role="editor")
        calls = []
        original = role_service.resolve_permissions

        async def spy(role_id, session):
            calls.append(role_id)
            return await original(role_id, session)

        monkeypatch.setattr(role_service, "resolve_permissions", spy)
        principal = await resolve_principal(user.id, db)

        assert calls == [user.role_id]
        assert principal.permissions == await original(user.role_id, db)

    async def test_user_without_role_has_no_permissions(self, db, make_user):
        user = await make_user(role=None)
        principal = await resolve_principal(user.id, db)
        assert principal.role_name is None
        assert principal.permissions == frozenset()

    async def test_unknown_user(self, db):
        assert await resolve_principal(uuid.uuid4(), db) is None
