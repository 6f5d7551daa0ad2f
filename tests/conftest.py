from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from wastemap_identity.api import auth_routes
from wastemap_identity.api.admin_routes import router as admin_router
from wastemap_identity.api.auth_routes import router as auth_router
from wastemap_identity.api.errors import install_error_handlers
from wastemap_identity.domain.account import Account
from wastemap_identity.domain.contracts import CreateAccountInput
from wastemap_identity.domain.roles import WASTEMAP
from wastemap_identity.domain.service import AccountService
from wastemap_identity.errors import Conflict, NotFound
from wastemap_identity.security.passwords import PasswordHasher
from wastemap_identity.security.rate_limiter import SlidingWindowRateLimiter
from wastemap_identity.security.tokens import issue_access_token


@dataclass
class FakeAuditLogRecord:
    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict
    created_at: datetime


class FakeRepository:
    """In-memory credential store mimicking the Postgres repository."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.audit_log: list[FakeAuditLogRecord] = []
        self._audit_seq = 0

    def _email_taken(self, email: str, exclude: str | None = None) -> bool:
        return any(
            account.email.lower() == email.lower() and account.account_id != exclude
            for account in self.accounts.values()
        )

    def find_by_email(self, email: str):
        for account in self.accounts.values():
            if account.email.lower() == email.strip().lower():
                return account
        return None

    def get_account(self, account_id: str):
        return self.accounts.get(account_id)

    def create_account(self, payload: CreateAccountInput) -> Account:
        if self._email_taken(payload.email):
            raise Conflict()
        now = datetime.now(timezone.utc)
        account = Account(
            account_id=str(uuid.uuid4()),
            display_name=payload.display_name,
            email=payload.email.strip().lower(),
            password_hash=payload.password_hash,
            role=payload.role,
            created_at=now,
            updated_at=now,
            phone=payload.phone,
            team_id=payload.team_id,
        )
        self.accounts[account.account_id] = account
        return account

    def save_account(self, account: Account) -> Account:
        if account.account_id not in self.accounts:
            raise NotFound()
        if self._email_taken(account.email, exclude=account.account_id):
            raise Conflict()
        stored = replace(account, updated_at=datetime.now(timezone.utc))
        self.accounts[account.account_id] = stored
        return stored

    def delete_account(self, account_id: str) -> None:
        self.accounts.pop(account_id, None)

    def list_accounts(self, *, roles=None, credential_state=None):
        results = list(self.accounts.values())
        if roles is not None:
            results = [account for account in results if account.role in roles]
        if credential_state is not None:
            results = [account for account in results if account.credential_state is credential_state]
        return sorted(results, key=lambda account: account.created_at, reverse=True)

    def write_audit_event(self, *, account_id, event_type, actor, metadata=None) -> None:
        self._audit_seq += 1
        self.audit_log.append(
            FakeAuditLogRecord(
                audit_id=self._audit_seq,
                account_id=account_id,
                event_type=event_type,
                actor=actor,
                metadata=metadata or {},
                created_at=datetime.now(timezone.utc),
            )
        )

    def list_audit_events(
        self,
        *,
        account_id=None,
        event_type=None,
        created_after=None,
        created_before=None,
        limit=50,
        cursor=None,
    ):
        results = list(self.audit_log)
        if account_id:
            results = [record for record in results if record.account_id == account_id]
        if event_type:
            results = [record for record in results if record.event_type == event_type]
        if created_after:
            results = [record for record in results if record.created_at >= created_after]
        if created_before:
            results = [record for record in results if record.created_at <= created_before]
        results.sort(key=lambda r: (r.created_at, r.audit_id), reverse=True)
        if cursor:
            results = [record for record in results if (record.created_at, record.audit_id) < cursor]
        slice_ = results[:limit]
        next_cursor = None
        if len(results) > limit:
            last = slice_[-1]
            next_cursor = (last.created_at, last.audit_id)
        return slice_, next_cursor


class RecordingPublisher:
    def __init__(self) -> None:
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def service(repository, hasher, publisher) -> AccountService:
    return AccountService(repository, hasher, WASTEMAP, publisher)


@pytest.fixture
def make_account(repository, hasher):
    """Insert an account directly into the store, bypassing registration rules."""

    def _make(role: str, email: str | None = None, password: str = "secret1", **changes) -> Account:
        account = repository.create_account(
            CreateAccountInput(
                display_name=f"{role.title()} User",
                email=email or f"{role}-{uuid.uuid4().hex[:8]}@example.org",
                password_hash=hasher.hash(password),
                role=role,
            )
        )
        if changes:
            account = repository.save_account(replace(account, **changes))
        return account

    return _make


@pytest.fixture
def auth_headers():
    """Build a bearer header for an account."""

    def _headers(account: Account) -> dict[str, str]:
        token, _ = issue_access_token(subject=account.account_id, role=account.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def app(service) -> FastAPI:
    app = FastAPI()
    app.include_router(auth_router)
    app.include_router(admin_router)
    install_error_handlers(app)
    app.state.account_service = service
    app.state.enforce_password_change = True
    return app


@pytest.fixture
def api_client(app):
    """Provide a FastAPI test client with isolated state."""
    original_limiter = auth_routes.rate_limiter
    auth_routes.rate_limiter = SlidingWindowRateLimiter(max_requests=100, window_seconds=60)

    with TestClient(app) as client:
        yield client

    auth_routes.rate_limiter = original_limiter
