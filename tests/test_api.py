import pytest
from httpx import ASGITransport, AsyncClient

from authcore.core.database import get_db, session_scope
from authcore.main import create_app
from authcore.models.user import AccountStatus
from authcore.services import email_service, role_service
from tests.conftest import PASSWORD

NEW_PASSWORD = "NewPass123!"


@pytest.fixture
async def client(session_factory, mailer):
    app = create_app(seed_on_startup=False)

    async def override_get_db():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def login(client, email, password=PASSWORD) -> dict:
    response = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def error_of(response) -> dict:
    body = response.json()["error"]
    assert response.headers["X-Error-ID"] == body["id"]
    return body


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAuthRoutes:
    async def test_login_and_me(self, client, make_user):
        user = await make_user(email="ana@example.com", role="editor")
        headers = await login(client, "ana@example.com")

        response = await client.get("/api/auth/me", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == str(user.id)
        assert body["role"] == "editor"
        assert "drilling.input_logs" in body["permissions"]

    async def test_login_failures_share_one_signal(self, client, make_user):
        await make_user(email="ana@example.com")
        await make_user(email="sam@example.com", status=AccountStatus.SUSPENDED)

        responses = [
            await client.post("/api/auth/login", json={"email": e, "password": p})
            for e, p in [
                ("nobody@example.com", PASSWORD),
                ("ana@example.com", "wrong-password"),
                ("sam@example.com", "wrong-password"),
            ]
        ]
        signals = {(r.status_code, error_of(r)["code"], error_of(r)["message"]) for r in responses}
        assert signals == {(401, "INVALID_CREDENTIALS", "Invalid email or password")}

    async def test_not_active_after_correct_password(self, client, make_user):
        await make_user(email="sam@example.com", status=AccountStatus.SUSPENDED)
        response = await client.post(
            "/api/auth/login", json={"email": "sam@example.com", "password": PASSWORD},
        )
        assert response.status_code == 403
        assert error_of(response)["code"] == "ACCOUNT_NOT_ACTIVE"
        assert response.json()["account_status"] == "suspended"

    async def test_missing_and_bad_tokens(self, client):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

        response = await client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    async def test_register(self, client):
        response = await client.post(
            "/api/auth/register",
            json={"email": "new@example.com", "password": "LongEnough1!", "first_name": "New"},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["user"]["account_status"] == "active"
        assert body["user"]["role_name"] == "viewer"
        assert body["access_token"]

        again = await client.post(
            "/api/auth/register", json={"email": "new@example.com", "password": "LongEnough1!"},
        )
        assert again.status_code == 409

    async def test_inactive_account_activates_through_password_change(self, client, make_user):
        await make_user(email="ina@example.com", status=AccountStatus.INACTIVE)

        response = await client.put(
            "/api/auth/password",
            json={"email": "ina@example.com", "current_password": PASSWORD, "new_password": NEW_PASSWORD},
        )
        assert response.status_code == 200
        assert response.json()["account_status"] == "active"
        await login(client, "ina@example.com", NEW_PASSWORD)

    async def test_password_change_with_token(self, client, make_user):
        await make_user(email="ana@example.com")
        headers = await login(client, "ana@example.com")

        response = await client.put(
            "/api/auth/password",
            headers=headers,
            json={"current_password": PASSWORD, "new_password": NEW_PASSWORD},
        )
        assert response.status_code == 200
        await login(client, "ana@example.com", NEW_PASSWORD)

    async def test_suspended_token_holder_keeps_only_self_service(self, client, make_user):
        owner = await make_user(email="owner@example.com", role="super_admin")
        await make_user(email="ana@example.com")
        ana_headers = await login(client, "ana@example.com")
        owner_headers = await login(client, owner.email)

        users = (await client.get("/api/users", headers=owner_headers, params={"search": "ana"})).json()
        response = await client.patch(
            f"/api/users/{users[0]['id']}/status",
            headers=owner_headers,
            json={"account_status": "suspended"},
        )
        assert response.status_code == 200

        me = await client.get("/api/auth/me", headers=ana_headers)
        assert me.status_code == 403
        assert me.json()["account_status"] == "suspended"

        logout = await client.post("/api/auth/logout", headers=ana_headers)
        assert logout.status_code == 200

    async def test_password_reset_acknowledgement_is_generic(self, client, make_user, mailer):
        await make_user(email="ana@example.com")

        known = await client.post("/api/auth/password-reset-request", json={"email": "ana@example.com"})
        unknown = await client.post("/api/auth/password-reset-request", json={"email": "no@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert len(mailer.sent) == 1

        token = mailer.last(email_service.PASSWORD_RESET)[2]["token"]
        reset = await client.post(
            "/api/auth/password-reset", json={"token": token, "new_password": NEW_PASSWORD},
        )
        assert reset.status_code == 200
        await login(client, "ana@example.com", NEW_PASSWORD)


class TestProfileRoutes:
    async def test_update_own_profile(self, client, make_user):
        await make_user(email="ana@example.com")
        headers = await login(client, "ana@example.com")

        response = await client.put(
            "/api/auth/me",
            headers=headers,
            json={"email": "ana.lima@example.com", "phone_number": "+55 11 5555-0000"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["email"] == "ana.lima@example.com"
        assert body["phone_number"] == "+55 11 5555-0000"

        me = await client.get("/api/auth/me", headers=headers)
        assert me.json()["email"] == "ana.lima@example.com"
        await login(client, "ana.lima@example.com")

    async def test_email_taken_by_another_user(self, client, make_user):
        await make_user(email="ana@example.com")
        await make_user(email="sam@example.com")
        headers = await login(client, "ana@example.com")

        response = await client.put("/api/auth/me", headers=headers, json={"email": "sam@example.com"})
        assert response.status_code == 409
        assert error_of(response)["code"] == "DUPLICATE_NAME"

    async def test_keeping_own_email_is_not_a_collision(self, client, make_user):
        await make_user(email="ana@example.com")
        headers = await login(client, "ana@example.com")

        response = await client.put("/api/auth/me", headers=headers, json={"email": "ana@example.com"})
        assert response.status_code == 200

    async def test_empty_body_is_rejected(self, client, make_user):
        await make_user(email="ana@example.com")
        headers = await login(client, "ana@example.com")

        response = await client.put("/api/auth/me", headers=headers, json={})
        assert response.status_code == 400
        assert error_of(response)["code"] == "VALIDATION_ERROR"

    async def test_requires_an_active_account(self, client, make_user):
        await make_user(email="sam@example.com")
        headers = await login(client, "sam@example.com")
        await make_user(email="owner@example.com", role="super_admin")
        owner_headers = await login(client, "owner@example.com")
        sam = (await client.get("/api/users", headers=owner_headers, params={"search": "sam"})).json()[0]
        await client.patch(
            f"/api/users/{sam['id']}/status", headers=owner_headers, json={"account_status": "suspended"},
        )

        response = await client.put("/api/auth/me", headers=headers, json={"phone_number": "1"})
        assert response.status_code == 403
        assert error_of(response)["code"] == "ACCOUNT_NOT_ACTIVE"


class TestInvitationRoutes:
    async def test_invite_activate_login_scenario(self, client, make_user, mailer, db):
        await make_user(email="boss@example.com", role="admin")
        headers = await login(client, "boss@example.com")
        editor = await role_service.get_role_by_name("editor", db)

        response = await client.post(
            "/api/invitations/invite",
            headers=headers,
            json={"email": "a@x.com", "first_name": "Ana", "role_id": str(editor.id)},
        )
        assert response.status_code == 201
        assert response.json()["user"]["account_status"] == "pending"
        assert response.json()["email_sent"] is True
        assert "token" not in response.text

        token = mailer.last(email_service.INVITATION)[2]["token"]
        verify = await client.get(f"/api/invitations/verify/{token}")
        assert verify.status_code == 200
        assert verify.json()["email"] == "a@x.com"

        activate = await client.post(
            "/api/invitations/activate", json={"token": token, "new_password": NEW_PASSWORD},
        )
        assert activate.status_code == 200
        assert activate.json()["account_status"] == "active"

        again = await client.post(
            "/api/invitations/activate", json={"token": token, "new_password": NEW_PASSWORD},
        )
        assert again.status_code == 400
        assert error_of(again)["code"] == "INVALID_TOKEN"

        me = await client.get("/api/auth/me", headers=await login(client, "a@x.com", NEW_PASSWORD))
        assert set(me.json()["permissions"]) == await role_service.resolve_permissions(editor.id, db)

    async def test_invite_requires_permission(self, client, make_user):
        await make_user(email="viewer@example.com", role="viewer")
        headers = await login(client, "viewer@example.com")

        response = await client.post("/api/invitations/invite", headers=headers, json={"email": "a@x.com"})
        assert response.status_code == 403
        assert error_of(response)["message"] == "Insufficient permissions"

    async def test_admin_cannot_invite_into_super_admin(self, client, make_user, mailer, db):
        await make_user(email="boss@example.com", role="admin")
        headers = await login(client, "boss@example.com")
        super_admin = await role_service.get_role_by_name("super_admin", db)

        response = await client.post(
            "/api/invitations/invite",
            headers=headers,
            json={"email": "mine@x.com", "role_id": str(super_admin.id)},
        )
        assert response.status_code == 403
        assert error_of(response)["code"] == "INSUFFICIENT_PERMISSIONS"
        assert mailer.sent == []

    async def test_super_admin_can_invite_into_super_admin(self, client, make_user, mailer, db):
        await make_user(email="owner@example.com", role="super_admin")
        headers = await login(client, "owner@example.com")
        super_admin = await role_service.get_role_by_name("super_admin", db)

        response = await client.post(
            "/api/invitations/invite",
            headers=headers,
            json={"email": "co-owner@x.com", "role_id": str(super_admin.id)},
        )
        assert response.status_code == 201
        assert response.json()["user"]["role_name"] == "super_admin"

    async def test_resend_invalidates_the_old_link(self, client, make_user, mailer):
        await make_user(email="boss@example.com", role="admin")
        headers = await login(client, "boss@example.com")
        invited = await client.post("/api/invitations/invite", headers=headers, json={"email": "a@x.com"})
        old_token = mailer.last()[2]["token"]

        resend = await client.post(
            "/api/invitations/resend", headers=headers, json={"user_id": invited.json()["user"]["id"]},
        )
        assert resend.status_code == 200
        assert (await client.get(f"/api/invitations/verify/{old_token}")).status_code == 400
        assert (await client.get(f"/api/invitations/verify/{mailer.last()[2]['token']}")).status_code == 200


class TestRoleRoutes:
    async def test_system_role_cannot_be_deleted_even_by_super_admin(self, client, make_user, db):
        await make_user(email="owner@example.com", role="super_admin")
        headers = await login(client, "owner@example.com")
        super_admin = await role_service.get_role_by_name("super_admin", db)

        response = await client.delete(f"/api/roles/{super_admin.id}", headers=headers)
        assert response.status_code == 400
        assert error_of(response)["code"] == "PROTECTED_ROLE"

    async def test_custom_role_lifecycle(self, client, make_user):
        await make_user(email="owner@example.com", role="super_admin")
        headers = await login(client, "owner@example.com")

        created = await client.post(
            "/api/roles", headers=headers, json={"name": "qa", "permissions": ["project.read"]},
        )
        assert created.status_code == 201
        role_id = created.json()["id"]
        assert created.json()["is_system"] is False

        duplicate = await client.post("/api/roles", headers=headers, json={"name": "qa"})
        assert duplicate.status_code == 409

        replaced = await client.put(
            f"/api/roles/{role_id}/permissions",
            headers=headers,
            json={"permissions": ["drilling.read", "project.read"]},
        )
        assert replaced.status_code == 200
        assert replaced.json()["permissions"] == ["drilling.read", "project.read"]

        deleted = await client.delete(f"/api/roles/{role_id}", headers=headers)
        assert deleted.status_code == 200
        assert (await client.get(f"/api/roles/{role_id}", headers=headers)).status_code == 404

    async def test_permission_change_applies_to_existing_tokens(self, client, make_user, db):
        await make_user(email="owner@example.com", role="super_admin")
        await make_user(email="ana@example.com", role="viewer")
        owner_headers = await login(client, "owner@example.com")
        ana_headers = await login(client, "ana@example.com")
        viewer = await role_service.get_role_by_name("viewer", db)

        response = await client.put(
            f"/api/roles/{viewer.id}/permissions",
            headers=owner_headers,
            json={"permissions": ["reports.view_dashboards", "system.invite_users"]},
        )
        assert response.status_code == 200

        me = await client.get("/api/auth/me", headers=ana_headers)
        assert set(me.json()["permissions"]) == {"reports.view_dashboards", "system.invite_users"}

    async def test_viewer_cannot_manage_roles(self, client, make_user):
        await make_user(email="ana@example.com", role="viewer")
        headers = await login(client, "ana@example.com")
        assert (await client.get("/api/roles", headers=headers)).status_code == 403
        assert (await client.post("/api/roles", headers=headers, json={"name": "x"})).status_code == 403


class TestUserRoutes:
    async def test_admin_without_user_management_cannot_change_status(self, client, make_user):
        await make_user(email="boss@example.com", role="admin")
        target = await make_user(email="ana@example.com")
        headers = await login(client, "boss@example.com")

        response = await client.patch(
            f"/api/users/{target.id}/status", headers=headers, json={"account_status": "suspended"},
        )
        assert response.status_code == 403

    async def test_assign_role(self, client, make_user, db):
        await make_user(email="owner@example.com", role="super_admin")
        target = await make_user(email="ana@example.com", role="viewer")
        headers = await login(client, "owner@example.com")
        manager = await role_service.get_role_by_name("manager", db)

        response = await client.patch(
            f"/api/users/{target.id}/role", headers=headers, json={"role_id": str(manager.id)},
        )
        assert response.status_code == 200
        assert response.json()["role_name"] == "manager"

        cleared = await client.patch(f"/api/users/{target.id}/role", headers=headers, json={"role_id": None})
        assert cleared.json()["role_name"] is None
