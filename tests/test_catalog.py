import json

import pytest
from pydantic import ValidationError as SchemaError
from sqlalchemy import func, select

from authcore.models.permission import Permission
from authcore.models.role import Role
from authcore.rbac.catalog import (
    CATALOG_VERSION,
    DEFAULT_CATALOG,
    PERMISSIONS,
    SYSTEM_ROLES,
    load_catalog,
    seed,
)
from authcore.services import role_service


class TestLoadCatalog:
    def test_builtin_catalog_is_consistent(self):
        catalog = load_catalog()
        assert catalog.version == CATALOG_VERSION
        assert set(catalog.permissions) == set(PERMISSIONS)
        assert set(SYSTEM_ROLES) <= set(catalog.roles)
        for code in catalog.permissions:
            assert "." in code

    def test_file_override(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(
            json.dumps(
                {
                    "version": 3,
                    "permissions": {"project.read": "View projects", "project.create": "Create"},
                    "roles": {"viewer": {"permissions": ["project.read"]}},
                }
            ),
            encoding="utf-8",
        )
        catalog = load_catalog(str(path))
        assert catalog.version == 3
        assert catalog.roles["viewer"].permissions == ["project.read"]

    def test_role_referencing_unknown_code_is_rejected(self, tmp_path):
        path = tmp_path / "catalog.json"
        data = json.loads(json.dumps(DEFAULT_CATALOG))
        data["roles"]["viewer"]["permissions"].append("nope.nope")
        path.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(SchemaError):
            load_catalog(str(path))


class TestSeed:
    async def test_seed_is_idempotent(self, db):
        count_perms = select(func.count()).select_from(Permission)
        count_roles = select(func.count()).select_from(Role)
        before = ((await db.execute(count_perms)).scalar(), (await db.execute(count_roles)).scalar())

        await seed(db)
        await seed(db)
        await db.commit()

        after = ((await db.execute(count_perms)).scalar(), (await db.execute(count_roles)).scalar())
        assert before == after == (len(PERMISSIONS), len(DEFAULT_CATALOG["roles"]))

    async def test_reseeding_keeps_administrator_changes(self, db):
        viewer = await role_service.get_role_by_name("viewer", db)
        await role_service.assign_permissions(viewer.id, ["project.read"], db)
        await db.commit()

        await seed(db)
        await db.commit()

        assert await role_service.resolve_permissions(viewer.id, db) == {"project.read"}

    async def test_seeded_bundles_match_the_catalog(self, db):
        for name, spec in DEFAULT_CATALOG["roles"].items():
            role = await role_service.get_role_by_name(name, db)
            assert await role_service.resolve_permissions(role.id, db) == set(spec["permissions"])
