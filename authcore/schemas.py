"""
Pydantic schemas for request / response serialization.

Kept in a single file for now — split per-domain when it grows.
Schemas are deliberately decoupled from SQLAlchemy models so the
API surface can evolve independently of the DB layer.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from authcore.models.user import AccountStatus


# ── Auth ─────────────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=256)
    password: str
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None


class PrincipalOut(BaseModel):
    user_id: uuid.UUID
    email: str
    account_status: AccountStatus
    role: str | None = None
    permissions: list[str] = []


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: PrincipalOut


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    # Only needed when no bearer token is sent (an `inactive` account
    # cannot log in to get one).
    email: str | None = None


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str


# ── Invitation ───────────────────────────────────────────────────────
class InviteRequest(BaseModel):
    email: str = Field(min_length=3, max_length=256)
    first_name: str | None = None
    last_name: str | None = None
    role_id: uuid.UUID | None = None


class ActivateRequest(BaseModel):
    token: str
    new_password: str


class ResendInvitationRequest(BaseModel):
    user_id: uuid.UUID


class InvitationOut(BaseModel):
    user_id: uuid.UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role_name: str | None = None
    expires_at: datetime

    model_config = {"from_attributes": True}


class InviteResponse(BaseModel):
    user: "UserOut"
    email_sent: bool


# ── User ─────────────────────────────────────────────────────────────
class UserOut(BaseModel):
    id: uuid.UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone_number: str | None = None
    account_status: AccountStatus
    role_id: uuid.UUID | None = None
    role_name: str | None = None
    two_factor_enabled: bool = False
    invited_at: datetime | None = None
    activated_at: datetime | None = None
    last_login: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RegisterResponse(BaseModel):
    user: UserOut
    access_token: str | None = None
    token_type: str = "bearer"
    expires_at: datetime | None = None


class UpdateProfileRequest(BaseModel):
    email: str | None = Field(default=None, min_length=3, max_length=256)
    phone_number: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class UpdateStatusRequest(BaseModel):
    account_status: AccountStatus


class AssignRoleRequest(BaseModel):
    role_id: uuid.UUID | None = None


# ── Roles & permissions ──────────────────────────────────────────────
class PermissionOut(BaseModel):
    id: uuid.UUID
    code: str
    description: str | None = None

    model_config = {"from_attributes": True}


class RoleOut(BaseModel):
    id: uuid.UUID
    name: str
    description: str | None = None
    is_system: bool = False
    permissions: list[str] = []
    created_at: datetime


class CreateRoleRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    description: str | None = None
    permissions: list[str] = []


class UpdateRoleRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = None


class AssignPermissionsRequest(BaseModel):
    permissions: list[str]


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str


InviteResponse.model_rebuild()
