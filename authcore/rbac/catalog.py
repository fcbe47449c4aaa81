"""
Permission catalog & role seeding.

The catalog is a versioned mapping of permission code → description
plus the default role → permission bundles.  The decision function
only ever sees plain code strings, so the catalog can be replaced
without touching authorization logic: point PERMISSION_CATALOG_PATH at
a JSON file with the same shape as `DEFAULT_CATALOG` to override it.

Seeding is IDEMPOTENT — missing permissions and roles are created,
existing roles keep whatever permissions an administrator gave them.

Usage:
    python -m authcore.rbac.catalog
"""

import asyncio
import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.core.config import settings
from authcore.models.permission import Permission
from authcore.models.role import Role

logger = logging.getLogger(__name__)

# ────────────────────────────────────────────────────────────────────
# 1.  ROLE TIERS
# ────────────────────────────────────────────────────────────────────
SUPER_ADMIN = "super_admin"
ADMIN = "admin"

# Roles that can never be deleted, whoever asks.
SYSTEM_ROLES: frozenset[str] = frozenset(
    {SUPER_ADMIN, ADMIN, "manager", "editor", "contributor", "viewer"}
)

# Held by the top tier only; required for operator-driven status changes.
MANAGE_USERS = "system.manage_users"
# Held by both admin tiers; backs the `is_admin` shortcut.
ASSIGN_PERMISSIONS = "project.assign_permissions"
# Route-level guards for the role registry and the invitation flow.
MANAGE_ROLES = "system.manage_roles"
INVITE_USERS = "system.invite_users"


def is_privileged(code: str) -> bool:
    """Administrative codes: a role carrying one is handed out only by a holder."""
    return code.startswith("system.") or code == ASSIGN_PERMISSIONS

# ────────────────────────────────────────────────────────────────────
# 2.  CANONICAL PERMISSION LIST
# ────────────────────────────────────────────────────────────────────
PERMISSIONS: dict[str, str] = {
    # System management (super admin only)
    "system.manage_users": "Full user management and role assignment",
    "system.manage_roles": "Create, edit and delete roles",
    "system.invite_users": "Invite new users and resend invitations",
    "system.schema_changes": "Database schema modifications",
    "system.integrations": "Manage system integrations",
    "system.audit_logs": "Access all logs and audit trails",
    "system.override_changes": "Override or roll back any changes",
    # Projects
    "project.create": "Create new drilling projects",
    "project.archive": "Archive drilling projects",
    "project.read": "View drilling projects",
    "project.assign_permissions": "Assign project-level permissions",
    # Drilling operations & logs
    "drilling.approve_logs": "Approve and publish final drillhole logs",
    "drilling.approve_models": "Approve and publish resource models",
    "drilling.review_progress": "Review daily drilling progress reports",
    "drilling.approve_adjustments": "Approve/disapprove drilling adjustments",
    "drilling.validate_data": "Validate or flag drill data",
    "drilling.input_logs": "Input drill logs and core data",
    "drilling.upload_photos": "Upload core photos and images",
    "drilling.enter_assays": "Enter assay results",
    "drilling.update_geology": "Update lithology, alteration, structural data",
    "drilling.input_progress": "Input daily drilling progress",
    "drilling.track_samples": "Tag and track samples",
    "drilling.upload_notes": "Upload shift notes and photos",
    "drilling.read": "View drilling data",
    # Reporting & analytics
    "reports.run_export": "Run and export reports (production, ESG, cost)",
    "reports.configure_dashboards": "Configure dashboards and KPIs",
    "reports.run_visualizations": "Run local visualizations and models",
    "reports.view_dashboards": "View dashboards and progress reports",
    "reports.view_esg_metrics": "View ESG compliance metrics",
    # Data integrity
    "data.delete_historical": "Delete historical records",
    "data.lock_validated": "Lock validated data as read-only",
    "data.require_approval": "Require two-layer approvals for critical actions",
    # Site access
    "access.all_projects": "Access to all projects and sites",
    "access.assigned_projects": "Access limited to assigned projects/sites",
}

# ────────────────────────────────────────────────────────────────────
# 3.  ROLE → PERMISSION MAPPING
# ────────────────────────────────────────────────────────────────────
ROLE_PERMISSIONS: dict[str, list[str]] = {
    SUPER_ADMIN: [code for code in PERMISSIONS if code != "access.assigned_projects"],
    ADMIN: [
        "system.invite_users",
        "project.create", "project.archive", "project.read", "project.assign_permissions",
        "drilling.approve_logs", "drilling.approve_models", "drilling.review_progress",
        "drilling.validate_data", "drilling.read",
        "reports.run_export", "reports.configure_dashboards", "reports.run_visualizations",
        "reports.view_dashboards", "reports.view_esg_metrics",
        "data.lock_validated", "data.require_approval",
        "access.all_projects",
    ],
    "manager": [
        "project.read",
        "drilling.review_progress", "drilling.approve_adjustments",
        "drilling.validate_data", "drilling.read",
        "reports.run_export", "reports.view_dashboards", "reports.view_esg_metrics",
        "access.all_projects",
    ],
    "editor": [
        "project.read",
        "drilling.input_logs", "drilling.upload_photos", "drilling.enter_assays",
        "drilling.update_geology", "drilling.read",
        "reports.run_visualizations", "reports.view_dashboards",
        "access.assigned_projects",
    ],
    "contributor": [
        "project.read",
        "drilling.input_progress", "drilling.track_samples", "drilling.upload_notes",
        "drilling.read",
        "reports.view_dashboards",
        "access.assigned_projects",
    ],
    "viewer": [
        "reports.view_dashboards", "reports.view_esg_metrics",
        "access.assigned_projects",
    ],
}

ROLE_DESCRIPTIONS: dict[str, str] = {
    SUPER_ADMIN: "System owner - full platform control",
    ADMIN: "Operations / IT lead - controls workflows",
    "manager": "Mid-level leadership and decision-makers",
    "editor": "Data input specialists with QA/QC duties",
    "contributor": "Field operations staff",
    "viewer": "Dashboard access only",
}

CATALOG_VERSION = 2

DEFAULT_CATALOG = {
    "version": CATALOG_VERSION,
    "permissions": PERMISSIONS,
    "roles": {
        name: {"description": ROLE_DESCRIPTIONS.get(name), "permissions": codes}
        for name, codes in ROLE_PERMISSIONS.items()
    },
}


class RoleSpec(BaseModel):
    description: str | None = None
    permissions: list[str]


class Catalog(BaseModel):
    version: int
    permissions: dict[str, str]
    roles: dict[str, RoleSpec]

    @model_validator(mode="after")
    def _roles_reference_known_codes(self) -> "Catalog":
        for name, spec in self.roles.items():
            unknown = set(spec.permissions) - set(self.permissions)
            if unknown:
                raise ValueError(f"role '{name}' references unknown permissions: {sorted(unknown)}")
        return self


def load_catalog(path: str | None = None) -> Catalog:
    """Return the active catalog (file override or the built-in one)."""
    if path:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        catalog = Catalog.model_validate(data)
        logger.info("Loaded permission catalog v%s from %s", catalog.version, path)
        return catalog
    return Catalog.model_validate(DEFAULT_CATALOG)


@lru_cache
def active_catalog() -> Catalog:
    return load_catalog(settings.PERMISSION_CATALOG_PATH)


# ────────────────────────────────────────────────────────────────────
# 4.  SEED FUNCTION (idempotent)
# ────────────────────────────────────────────────────────────────────
async def seed(session: AsyncSession, catalog: Catalog | None = None) -> None:
    """Create permissions & roles if they don't already exist."""
    catalog = catalog or active_catalog()

    # ── Permissions ──────────────────────────────────────────────────
    existing_perms = (await session.execute(select(Permission))).scalars().all()
    code_to_perm: dict[str, Permission] = {p.code: p for p in existing_perms}

    for code, description in catalog.permissions.items():
        if code not in code_to_perm:
            perm = Permission(code=code, description=description)
            session.add(perm)
            code_to_perm[code] = perm

    await session.flush()

    # ── Roles ────────────────────────────────────────────────────────
    existing_roles = (await session.execute(select(Role))).scalars().all()
    existing_role_names = {r.name for r in existing_roles}

    for role_name, spec in catalog.roles.items():
        if role_name in existing_role_names:
            continue
        role = Role(
            name=role_name,
            description=spec.description or f"Default {role_name} role",
            permissions=[code_to_perm[code] for code in dict.fromkeys(spec.permissions)],
        )
        session.add(role)

    await session.flush()
    logger.info("Permission catalog v%s seeded.", catalog.version)


# ────────────────────────────────────────────────────────────────────
# 5.  CLI entrypoint:  python -m authcore.rbac.catalog
# ────────────────────────────────────────────────────────────────────
async def main() -> None:
    from authcore.core.database import engine, session_scope
    from authcore.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with session_scope() as session:
        await seed(session)
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
