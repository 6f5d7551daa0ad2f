"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from .account import Account, CredentialState


@dataclass(slots=True, frozen=True)
class Actor:
    """Authenticated identity performing the current request."""

    account_id: str
    role: str
    credential_state: CredentialState = CredentialState.active

    @classmethod
    def from_account(cls, account: Account) -> "Actor":
        return cls(
            account_id=account.account_id,
            role=account.role,
            credential_state=account.credential_state,
        )

    @property
    def must_change_password(self) -> bool:
        return self.credential_state is CredentialState.forced_reset


@dataclass(slots=True)
class RegisterInput:
    """Self-service registration fields as submitted by the client."""

    display_name: str | None
    email: str | None
    password: str | None
    phone: str = ""
    role: str | None = None


@dataclass(slots=True)
class CreateAccountInput:
    """Validated inputs required to persist a new account."""

    display_name: str
    email: str
    password_hash: str
    role: str
    phone: str = ""
    team_id: str | None = None


@dataclass(slots=True)
class NewAccountInput:
    """Operator-supplied fields for creating an account on someone's behalf."""

    display_name: str | None
    email: str | None
    password: str | None
    phone: str = ""
    role: str | None = None


@dataclass(slots=True)
class UpdateAccountInput:
    """Partial profile update; ``None`` leaves a field untouched.

    ``team_id`` uses an empty string to clear the team reference.
    """

    display_name: str | None = None
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    team_id: str | None = None


class CredentialStore(Protocol):
    """Persistence contract consumed by the account lifecycle service."""

    def find_by_email(self, email: str) -> Account | None: ...

    def get_account(self, account_id: str) -> Account | None: ...

    def create_account(self, payload: CreateAccountInput) -> Account: ...

    def save_account(self, account: Account) -> Account: ...

    def delete_account(self, account_id: str) -> None: ...

    def list_accounts(
        self,
        *,
        roles: tuple[str, ...] | None = None,
        credential_state: CredentialState | None = None,
    ) -> list[Account]: ...

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: tuple[datetime, int] | None = None,
    ) -> tuple[list[Any], tuple[datetime, int] | None]: ...
