"""
User model.

Design decisions:
- `account_status` is an ENUM (pending / inactive / active /
  suspended).  Writes go through the lifecycle service's transition
  table, never straight from a controller.
- A user holds at most one role.  Deleting the role nulls `role_id`.
- The invitation and password-reset tokens live on the row itself so
  that consuming one is a single conditional UPDATE.
- Email is stored exactly as given; uniqueness is case-sensitive.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authcore.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from authcore.models.role import Role


class AccountStatus(str, enum.Enum):
    PENDING = "pending"
    INACTIVE = "inactive"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(256), unique=True, index=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False)
    account_status: Mapped[AccountStatus] = mapped_column(
        Enum(
            AccountStatus,
            name="account_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=AccountStatus.PENDING,
        nullable=False,
    )
    role_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # ── Two-factor (secret generation lives outside this service) ────
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    two_factor_secret: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # ── Invitation ───────────────────────────────────────────────────
    invitation_token: Mapped[str | None] = mapped_column(
        String(128), unique=True, index=True, nullable=True,
    )
    invitation_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    invited_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    invited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Password reset ───────────────────────────────────────────────
    password_reset_token: Mapped[str | None] = mapped_column(
        String(128), unique=True, index=True, nullable=True,
    )
    password_reset_expires: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Relationships ────────────────────────────────────────────────
    role: Mapped[Role | None] = relationship(lazy="selectin")
    inviter: Mapped["User | None"] = relationship(  # noqa: F821
        remote_side="User.id",
        foreign_keys=[invited_by],
        lazy="raise",
    )

    @property
    def role_name(self) -> str | None:
        return self.role.name if self.role else None

    def __repr__(self) -> str:
        return f"<User {self.email} [{self.account_status.value}]>"
