"""
Role model & the role ↔ permission association table.

A role is a named bundle of permissions.  `role_permissions` has a
composite primary key, so a (role, permission) pair exists at most
once, and both foreign keys cascade on delete.  Users point at a
single role; deleting the role nulls that pointer instead of removing
the user.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Column, ForeignKey, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authcore.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from authcore.models.permission import Permission

# ── Association table ────────────────────────────────────────────────
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # ── Relationships ────────────────────────────────────────────────
    permissions: Mapped[list["Permission"]] = relationship(  # noqa: F821
        secondary=role_permissions,
        back_populates="roles",
        lazy="selectin",
        order_by="Permission.code",
    )

    @property
    def permission_codes(self) -> list[str]:
        return [p.code for p in self.permissions]

    def __repr__(self) -> str:
        return f"<Role {self.name}>"
