"""Account service orchestrating credentials, token issuance, and auditing."""

from __future__ import annotations

import json
import logging
from base64 import urlsafe_b64decode, urlsafe_b64encode
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Tuple

from ..errors import Conflict, InvalidCredentials, NotFound, ValidationError, Forbidden
from ..events import AccountEvent, EventPublisher, NullEventPublisher
from ..metrics import LOGIN_ATTEMPTS, PASSWORD_EVENTS
from ..security.passwords import MAX_PASSWORD_BYTES, MIN_PASSWORD_LENGTH, PasswordHasher
from ..security.tokens import issue_access_token
from . import policy
from .account import Account, CredentialState
from .contracts import (
    Actor,
    CreateAccountInput,
    CredentialStore,
    NewAccountInput,
    RegisterInput,
    UpdateAccountInput,
)
from .roles import Action, RoleProfile

logger = logging.getLogger(__name__)

RESET_REQUEST_MESSAGE = (
    "If an account with that email exists, a password reset request "
    "has been submitted to the administrator."
)


@dataclass(slots=True)
class TokenBundle:
    """Bearer token plus the account state the client needs for routing."""

    access_token: str
    expires_in: int
    account: Account

    @property
    def must_change_password(self) -> bool:
        return self.account.must_change_password


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _require_text(*values: str | None) -> bool:
    return all(value is not None and value.strip() for value in values)


def _check_new_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes long")


class AccountService:
    """Registration, login and password lifecycle plus operator account management."""

    def __init__(
        self,
        repository: CredentialStore,
        hasher: PasswordHasher,
        profile: RoleProfile,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._repository = repository
        self._hasher = hasher
        self._profile = profile
        self._publisher = publisher or NullEventPublisher()

    @property
    def profile(self) -> RoleProfile:
        return self._profile

    # -- self-service -------------------------------------------------------

    def register(self, payload: RegisterInput) -> TokenBundle:
        """Create an account at the lowest tier and sign it in."""
        if not _require_text(payload.display_name, payload.email) or not payload.password:
            raise ValidationError("please provide name, email and password")
        role = payload.role or self._profile.default_role
        if not self._profile.is_valid(role):
            raise ValidationError(f"unknown role {role!r}")
        if role != self._profile.default_role:
            raise Forbidden("cannot register with this role, please contact an administrator")
        _check_new_password(payload.password)

        email = _normalize_email(payload.email)
        if self._repository.find_by_email(email) is not None:
            raise Conflict()

        account = self._repository.create_account(
            CreateAccountInput(
                display_name=payload.display_name.strip(),
                email=email,
                password_hash=self._hasher.hash(payload.password),
                role=role,
                phone=payload.phone or "",
            )
        )
        logger.info("registered account %s with role %s", account.account_id, account.role)
        self._record("account.registered", account, actor_id=account.account_id)
        return self._issue(account)

    def login(self, email: str | None, password: str | None) -> TokenBundle:
        """Exchange credentials for a token.

        Unknown emails and wrong passwords raise the same ``InvalidCredentials``
        after the same amount of hashing work.
        """
        if not _require_text(email) or not password:
            raise ValidationError("please provide email and password")

        account = self._repository.find_by_email(_normalize_email(email))
        if account is None:
            self._hasher.burn(password)
            LOGIN_ATTEMPTS.labels(outcome="failure").inc()
            logger.info("login rejected")
            raise InvalidCredentials()
        if not self._hasher.verify(password, account.password_hash):
            LOGIN_ATTEMPTS.labels(outcome="failure").inc()
            logger.info("login rejected")
            raise InvalidCredentials()

        LOGIN_ATTEMPTS.labels(outcome="success").inc()
        self._repository.write_audit_event(
            account_id=account.account_id,
            event_type="token.issued",
            actor=account.account_id,
            metadata={"must_change_password": account.must_change_password},
        )
        return self._issue(account)

    def get_account(self, account_id: str) -> Account:
        account = self._repository.get_account(account_id)
        if account is None:
            raise NotFound()
        return account

    def request_password_reset(self, email: str | None) -> str:
        """Queue a reset request for an operator; the reply never reveals whether the email exists."""
        if not _require_text(email):
            raise ValidationError("please provide an email address")

        account = self._repository.find_by_email(_normalize_email(email))
        if account is not None:
            updated = account.request_reset()
            if updated is not account:
                updated = self._repository.save_account(updated)
                PASSWORD_EVENTS.labels(event="reset_requested").inc()
                logger.info("password reset requested for %s", account.account_id)
                self._record("password.reset_requested", updated, actor_id=updated.account_id)
        return RESET_REQUEST_MESSAGE

    def change_password(
        self, account_id: str, old_password: str | None, new_password: str | None
    ) -> Account:
        """Replace the caller's own password, leaving any forced or pending reset."""
        if not old_password or not new_password:
            raise ValidationError("please provide both old and new password")
        _check_new_password(new_password)

        account = self.get_account(account_id)
        if not self._hasher.verify(old_password, account.password_hash):
            raise InvalidCredentials("current password is incorrect")

        updated = self._repository.save_account(
            account.change_password(self._hasher.hash(new_password))
        )
        PASSWORD_EVENTS.labels(event="changed").inc()
        logger.info("password changed for %s", account_id)
        self._record(
            "password.changed",
            updated,
            actor_id=account_id,
            metadata={"previous_state": account.credential_state.value},
        )
        return updated

    # -- operator actions ---------------------------------------------------

    def list_accounts(self, actor: Actor) -> list[Account]:
        return self._repository.list_accounts(roles=policy.account_scope(self._profile, actor))

    def create_account(self, actor: Actor, payload: NewAccountInput) -> Account:
        """Create an account on someone's behalf, honouring tier limits."""
        policy.ensure_allowed(self._profile, actor, Action.manage_users)
        if not _require_text(payload.display_name, payload.email) or not payload.password:
            raise ValidationError("please provide name, email and password")
        role = payload.role or self._profile.default_role
        policy.check_role_assignment(self._profile, actor, role)
        _check_new_password(payload.password)

        email = _normalize_email(payload.email)
        if self._repository.find_by_email(email) is not None:
            raise Conflict()

        account = self._repository.create_account(
            CreateAccountInput(
                display_name=payload.display_name.strip(),
                email=email,
                password_hash=self._hasher.hash(payload.password),
                role=role,
                phone=payload.phone or "",
            )
        )
        logger.info("account %s created by %s with role %s", account.account_id, actor.account_id, role)
        self._record("account.created", account, actor_id=actor.account_id)
        return account

    def update_account(self, actor: Actor, target_id: str, payload: UpdateAccountInput) -> Account:
        policy.ensure_allowed(self._profile, actor, Action.manage_users)
        target = self.get_account(target_id)
        requested_role = payload.role or None
        policy.check_account_change(self._profile, actor, target, requested_role)

        changes: dict[str, Any] = {}
        if payload.display_name and payload.display_name.strip():
            changes["display_name"] = payload.display_name.strip()
        if payload.email and payload.email.strip():
            email = _normalize_email(payload.email)
            existing = self._repository.find_by_email(email)
            if existing is not None and existing.account_id != target.account_id:
                raise Conflict()
            changes["email"] = email
        if payload.phone is not None:
            changes["phone"] = payload.phone
        if requested_role:
            changes["role"] = requested_role
        if payload.team_id is not None:
            changes["team_id"] = payload.team_id or None

        updated = self._repository.save_account(replace(target, **changes))
        logger.info("account %s updated by %s (%s)", target_id, actor.account_id, sorted(changes))
        metadata: dict[str, Any] = {"fields": sorted(changes)}
        if "role" in changes and changes["role"] != target.role:
            metadata["role_change"] = [target.role, changes["role"]]
        self._record("account.updated", updated, actor_id=actor.account_id, metadata=metadata)
        return updated

    def delete_account(self, actor: Actor, target_id: str) -> None:
        if target_id == actor.account_id:
            raise Forbidden("you cannot delete your own account")
        policy.ensure_allowed(self._profile, actor, Action.manage_users)
        target = self.get_account(target_id)
        policy.check_account_delete(self._profile, actor, target)

        self._repository.delete_account(target_id)
        logger.info("account %s deleted by %s", target_id, actor.account_id)
        self._record("account.deleted", target, actor_id=actor.account_id)

    def list_password_reset_requests(self, actor: Actor) -> list[Account]:
        policy.ensure_allowed(self._profile, actor, Action.manage_password_resets)
        return self._repository.list_accounts(credential_state=CredentialState.pending_reset)

    def operator_reset_password(
        self, actor: Actor, target_id: str, new_password: str | None
    ) -> Account:
        """Set a temporary password the owner must replace at next sign-in."""
        policy.ensure_allowed(self._profile, actor, Action.manage_password_resets)
        if not new_password:
            raise ValidationError("please provide a new password")
        _check_new_password(new_password)

        target = self.get_account(target_id)
        updated = self._repository.save_account(
            target.force_reset(self._hasher.hash(new_password), actor.account_id)
        )
        PASSWORD_EVENTS.labels(event="reset_by_operator").inc()
        logger.info("password for %s reset by operator %s", target_id, actor.account_id)
        self._record(
            "password.reset_by_operator",
            updated,
            actor_id=actor.account_id,
            metadata={"previous_state": target.credential_state.value},
        )
        return updated

    def bootstrap_superadmin(
        self,
        *,
        display_name: str,
        email: str,
        password: str,
        phone: str = "",
        promote: bool = False,
    ) -> Account:
        """Create the top-tier account, or promote an existing one when ``promote`` is set."""
        if not _require_text(display_name, email) or not password:
            raise ValidationError("please provide name, email and password")
        _check_new_password(password)
        email = _normalize_email(email)
        top_role = self._profile.top_role

        existing = self._repository.find_by_email(email)
        if existing is not None:
            if not promote:
                raise Conflict()
            account = self._repository.save_account(
                replace(
                    existing.change_password(self._hasher.hash(password)),
                    display_name=display_name.strip(),
                    role=top_role,
                    phone=phone or existing.phone,
                )
            )
            event_type = "account.promoted"
        else:
            account = self._repository.create_account(
                CreateAccountInput(
                    display_name=display_name.strip(),
                    email=email,
                    password_hash=self._hasher.hash(password),
                    role=top_role,
                    phone=phone,
                )
            )
            event_type = "account.created"
        logger.info("bootstrapped %s account %s", top_role, account.account_id)
        self._record(event_type, account, actor_id=None, metadata={"source": "cli"})
        return account

    def describe_permissions(self, actor: Actor) -> dict[str, Any]:
        """Summarise what ``actor`` may do, for clients that gate their UI."""
        actions = policy.allowed_actions(self._profile, actor.role)
        visible_roles: list[str] | None = []
        if Action.manage_users in actions:
            scope = policy.account_scope(self._profile, actor)
            visible_roles = list(self._profile.roles if scope is None else scope)
        return {
            "role": actor.role,
            "actions": [action.value for action in actions],
            "visible_roles": visible_roles,
            "report_scope": {"reporter_id": policy.report_scope(self._profile, actor).reporter_id},
        }

    # -- audit --------------------------------------------------------------

    def list_audit_events(
        self,
        actor: Actor,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: str | None = None,
    ) -> tuple[list[Any], str | None]:
        """Return audit log records with optional filters and cursor pagination."""
        policy.ensure_allowed(self._profile, actor, Action.read_audit_log)
        decoded_cursor: Optional[Tuple[datetime, int]] = None
        if cursor:
            decoded_cursor = self._decode_cursor(cursor)
        records, next_cursor_tuple = self._repository.list_audit_events(
            account_id=account_id,
            event_type=event_type,
            created_after=created_after,
            created_before=created_before,
            limit=limit,
            cursor=decoded_cursor,
        )
        return records, self._encode_cursor(next_cursor_tuple)

    def _encode_cursor(self, cursor: Tuple[datetime, int] | None) -> str | None:
        if cursor is None:
            return None
        created_at, audit_id = cursor
        payload = json.dumps({"created_at": created_at.isoformat(), "audit_id": audit_id})
        return urlsafe_b64encode(payload.encode("utf-8")).decode("utf-8")

    def _decode_cursor(self, cursor: str) -> Tuple[datetime, int]:
        try:
            data = json.loads(urlsafe_b64decode(cursor.encode("utf-8")).decode("utf-8"))
            return datetime.fromisoformat(data["created_at"]), int(data["audit_id"])
        except (ValueError, KeyError, TypeError) as exc:
            raise ValidationError("invalid cursor") from exc

    # -- helpers ------------------------------------------------------------

    def _issue(self, account: Account) -> TokenBundle:
        token, expires_in = issue_access_token(subject=account.account_id, role=account.role)
        return TokenBundle(access_token=token, expires_in=expires_in, account=account)

    def _record(
        self,
        event_type: str,
        account: Account,
        *,
        actor_id: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._repository.write_audit_event(
            account_id=account.account_id,
            event_type=event_type,
            actor=actor_id,
            metadata=metadata,
        )
        self._publisher.publish(
            AccountEvent(
                event_type=event_type,
                account_id=account.account_id,
                actor_id=actor_id,
                role=account.role,
                data=metadata or {},
            )
        )
