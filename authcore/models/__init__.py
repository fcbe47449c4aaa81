"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for `create_all`).
"""

from authcore.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from authcore.models.permission import Permission
from authcore.models.role import Role, role_permissions
from authcore.models.user import AccountStatus, User

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "AccountStatus",
    "User",
    "Role",
    "role_permissions",
    "Permission",
]
