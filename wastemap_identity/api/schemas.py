"""Request and response models for the HTTP surface."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr

from ..domain.account import Account
from ..domain.service import TokenBundle


class AccountResponse(BaseModel):
    """Serialised representation of an `Account`; the password hash is never included."""

    account_id: str
    name: str
    email: str
    role: str
    phone: str
    team_id: str | None
    password_reset_requested: bool
    must_change_password: bool
    password_reset_by: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            account_id=account.account_id,
            name=account.display_name,
            email=account.email,
            role=account.role,
            phone=account.phone,
            team_id=account.team_id,
            password_reset_requested=account.password_reset_requested,
            must_change_password=account.must_change_password,
            password_reset_by=account.password_reset_by,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class AuthResponse(BaseModel):
    """Token issuance response for register and login."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    must_change_password: bool
    account: AccountResponse

    @classmethod
    def from_bundle(cls, bundle: TokenBundle) -> "AuthResponse":
        return cls(
            access_token=bundle.access_token,
            expires_in=bundle.expires_in,
            must_change_password=bundle.must_change_password,
            account=AccountResponse.from_domain(bundle.account),
        )


# Required fields are optional here so the service reports them with a
# single "please provide ..." message instead of per-field schema errors.
class RegisterRequest(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    password: str | None = None
    phone: str = ""
    role: str | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class PasswordResetRequest(BaseModel):
    email: str | None = None


class ChangePasswordRequest(BaseModel):
    old_password: str | None = None
    new_password: str | None = None


class OperatorResetRequest(BaseModel):
    new_password: str | None = None


class CreateUserRequest(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    password: str | None = None
    phone: str = ""
    role: str | None = None


class UpdateUserRequest(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    role: str | None = None
    team_id: str | None = None


class MessageResponse(BaseModel):
    message: str


class OperatorResetResponse(BaseModel):
    message: str
    account: AccountResponse


class PermissionsResponse(BaseModel):
    role: str
    actions: list[str]
    visible_roles: list[str]
    report_scope: dict[str, str | None]


class AuditLogEntry(BaseModel):
    """Audit log response entry."""

    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict[str, Any]
    created_at: datetime


class AuditLogResponse(BaseModel):
    """Envelope for paginated audit log data."""

    items: list[AuditLogEntry]
    next_cursor: str | None = None
