from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum


class CredentialState(str, Enum):
    """Password lifecycle of an account.

    ``pending_reset``: the owner asked an operator for a new password.
    ``forced_reset``: an operator set a password the owner must replace.
    """

    active = "active"
    pending_reset = "pending_reset"
    forced_reset = "forced_reset"


@dataclass(slots=True, frozen=True)
class Account:
    """Aggregate root for an application user identity."""

    account_id: str
    display_name: str
    email: str
    password_hash: str
    role: str
    created_at: datetime
    updated_at: datetime
    phone: str = ""
    team_id: str | None = None
    credential_state: CredentialState = CredentialState.active
    password_reset_by: str | None = None

    @property
    def password_reset_requested(self) -> bool:
        return self.credential_state is CredentialState.pending_reset

    @property
    def must_change_password(self) -> bool:
        return self.credential_state is CredentialState.forced_reset

    def request_reset(self) -> Account:
        """Move an active account to ``pending_reset``.

        Pending and forced accounts are returned unchanged: a pending request
        is already queued, and a forced reset still needs the owner's change.
        """
        if self.credential_state is not CredentialState.active:
            return self
        return replace(self, credential_state=CredentialState.pending_reset)

    def force_reset(self, password_hash: str, operator_id: str) -> Account:
        """Apply an operator-chosen password; any pending request is fulfilled."""
        return replace(
            self,
            password_hash=password_hash,
            credential_state=CredentialState.forced_reset,
            password_reset_by=operator_id,
        )

    def change_password(self, password_hash: str) -> Account:
        """Apply an owner-chosen password and return to ``active``."""
        return replace(
            self,
            password_hash=password_hash,
            credential_state=CredentialState.active,
            password_reset_by=None,
        )
