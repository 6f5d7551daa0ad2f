"""Postgres repository for account credentials and the identity audit log."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from psycopg.errors import UniqueViolation
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account, CredentialState
from .domain.contracts import CreateAccountInput
from .errors import Conflict, NotFound

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    email TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL,
    phone TEXT NOT NULL DEFAULT '',
    team_id TEXT NULL,
    credential_state TEXT NOT NULL DEFAULT 'active'
        CHECK (credential_state IN ('active', 'pending_reset', 'forced_reset')),
    password_reset_by TEXT NULL REFERENCES accounts (account_id) ON DELETE SET NULL,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS accounts_email_lower_key ON accounts (lower(email));
CREATE INDEX IF NOT EXISTS accounts_role_idx ON accounts (role);
CREATE INDEX IF NOT EXISTS accounts_credential_state_idx ON accounts (credential_state)
    WHERE credential_state <> 'active';

CREATE TABLE IF NOT EXISTS identity_audit_log (
    audit_id BIGSERIAL PRIMARY KEY,
    account_id TEXT NULL,
    event_type TEXT NOT NULL,
    actor TEXT NULL,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS identity_audit_log_created_idx
    ON identity_audit_log (created_at DESC, audit_id DESC);
"""

_ACCOUNT_COLUMNS = (
    "account_id, display_name, email, password_hash, role, created_at, updated_at, "
    "phone, team_id, credential_state, password_reset_by"
)


@dataclass(slots=True)
class AuditLogRecord:
    """Row projection for items in identity_audit_log."""

    audit_id: int
    account_id: str | None
    event_type: str
    actor: str | None
    metadata: dict[str, Any]
    created_at: datetime


class AccountRepository:
    """Postgres-backed credential store."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist yet."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE lower(email) = lower(%s)",
            (email.strip(),),
        )

    def get_account(self, account_id: str) -> Account | None:
        return self._fetch_one(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s",
            (account_id,),
        )

    def create_account(self, payload: CreateAccountInput) -> Account:
        """Insert a new active account; a taken email raises ``Conflict``."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO accounts (
                            account_id, display_name, email, password_hash, role,
                            created_at, updated_at, phone, team_id, credential_state
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (
                            account_id,
                            payload.display_name,
                            payload.email.strip().lower(),
                            payload.password_hash,
                            payload.role,
                            now,
                            now,
                            payload.phone,
                            payload.team_id,
                            CredentialState.active.value,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except UniqueViolation as exc:
            raise Conflict() from exc
        return self._map_record(row)

    def save_account(self, account: Account) -> Account:
        """Overwrite the mutable columns of an existing account (last write wins)."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        UPDATE accounts
                        SET display_name = %s,
                            email = %s,
                            password_hash = %s,
                            role = %s,
                            phone = %s,
                            team_id = %s,
                            credential_state = %s,
                            password_reset_by = %s,
                            updated_at = %s
                        WHERE account_id = %s
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (
                            account.display_name,
                            account.email.strip().lower(),
                            account.password_hash,
                            account.role,
                            account.phone,
                            account.team_id,
                            account.credential_state.value,
                            account.password_reset_by,
                            datetime.now(timezone.utc),
                            account.account_id,
                        ),
                    )
                    row = cur.fetchone()
                conn.commit()
        except UniqueViolation as exc:
            raise Conflict() from exc
        if row is None:
            raise NotFound()
        return self._map_record(row)

    def delete_account(self, account_id: str) -> None:
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM accounts WHERE account_id = %s", (account_id,))
            conn.commit()

    def list_accounts(
        self,
        *,
        roles: tuple[str, ...] | None = None,
        credential_state: CredentialState | None = None,
    ) -> list[Account]:
        """Return accounts newest first, optionally restricted by role and state."""
        clauses: list[str] = []
        params: list[Any] = []
        if roles is not None:
            clauses.append("role = ANY(%s)")
            params.append(list(roles))
        if credential_state is not None:
            clauses.append("credential_state = %s")
            params.append(credential_state.value)
        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_ACCOUNT_COLUMNS} FROM accounts {where_sql} ORDER BY created_at DESC",
                    params,
                )
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _fetch_one(self, query: str, params: tuple) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account``."""
        return Account(
            account_id=row[0],
            display_name=row[1],
            email=row[2],
            password_hash=row[3],
            role=row[4],
            created_at=row[5],
            updated_at=row[6],
            phone=row[7] or "",
            team_id=row[8],
            credential_state=CredentialState(row[9]),
            password_reset_by=row[10],
        )

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit trail entry capturing identity workflow activity."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO identity_audit_log (account_id, event_type, actor, metadata)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (account_id, event_type, actor, Json(metadata or {})),
                )
            conn.commit()

    def list_audit_events(
        self,
        *,
        account_id: str | None = None,
        event_type: str | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        limit: int = 50,
        cursor: Tuple[datetime, int] | None = None,
    ) -> tuple[list[AuditLogRecord], Optional[Tuple[datetime, int]]]:
        """Return audit entries newest first with optional filters and keyset pagination."""
        limit = max(1, min(limit, 100))
        clauses = ["TRUE"]
        params: list[Any] = []

        if account_id:
            clauses.append("account_id = %s")
            params.append(account_id)
        if event_type:
            clauses.append("event_type = %s")
            params.append(event_type)
        if created_after:
            clauses.append("created_at >= %s")
            params.append(created_after)
        if created_before:
            clauses.append("created_at <= %s")
            params.append(created_before)
        if cursor:
            clauses.append("(created_at, audit_id) < (%s, %s)")
            params.extend(cursor)

        where_sql = " AND ".join(clauses)
        query = f"""
            SELECT audit_id, account_id, event_type, actor, metadata, created_at
            FROM identity_audit_log
            WHERE {where_sql}
            ORDER BY created_at DESC, audit_id DESC
            LIMIT %s
        """
        params.append(limit)

        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                records = [
                    AuditLogRecord(
                        audit_id=row[0],
                        account_id=row[1],
                        event_type=row[2],
                        actor=row[3],
                        metadata=row[4] or {},
                        created_at=row[5],
                    )
                    for row in cur.fetchall()
                ]

        next_cursor: Tuple[datetime, int] | None = None
        if len(records) == limit:
            last = records[-1]
            next_cursor = (last.created_at, last.audit_id)
        return records, next_cursor
