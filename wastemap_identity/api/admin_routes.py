"""Operator routes: account management, password resets and the audit log."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from ..domain.contracts import Actor, NewAccountInput, UpdateAccountInput
from ..domain.roles import Action
from ..domain.service import AccountService
from .dependencies import get_service, require
from .schemas import (
    AccountResponse,
    AuditLogEntry,
    AuditLogResponse,
    CreateUserRequest,
    MessageResponse,
    OperatorResetRequest,
    OperatorResetResponse,
    UpdateUserRequest,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=list[AccountResponse])
def list_users(
    actor: Actor = Depends(require(Action.manage_users)),
    service: AccountService = Depends(get_service),
) -> list[AccountResponse]:
    """List the accounts visible to the caller's tier, newest first."""
    return [AccountResponse.from_domain(account) for account in service.list_accounts(actor)]


@router.post("/users", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: CreateUserRequest,
    actor: Actor = Depends(require(Action.manage_users)),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    account = service.create_account(
        actor,
        NewAccountInput(
            display_name=payload.name,
            email=payload.email,
            password=payload.password,
            phone=payload.phone,
            role=payload.role,
        ),
    )
    return AccountResponse.from_domain(account)


@router.put("/users/{account_id}", response_model=AccountResponse)
def update_user(
    account_id: str,
    payload: UpdateUserRequest,
    actor: Actor = Depends(require(Action.manage_users)),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    account = service.update_account(
        actor,
        account_id,
        UpdateAccountInput(
            display_name=payload.name,
            email=payload.email,
            phone=payload.phone,
            role=payload.role,
            team_id=payload.team_id,
        ),
    )
    return AccountResponse.from_domain(account)


@router.delete("/users/{account_id}", response_model=MessageResponse)
def delete_user(
    account_id: str,
    actor: Actor = Depends(require(Action.manage_users)),
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    service.delete_account(actor, account_id)
    return MessageResponse(message="account deleted successfully")


@router.get("/password-reset-requests", response_model=list[AccountResponse])
def list_password_reset_requests(
    actor: Actor = Depends(require(Action.manage_password_resets)),
    service: AccountService = Depends(get_service),
) -> list[AccountResponse]:
    return [
        AccountResponse.from_domain(account)
        for account in service.list_password_reset_requests(actor)
    ]


@router.post("/reset-password/{account_id}", response_model=OperatorResetResponse)
def reset_password(
    account_id: str,
    payload: OperatorResetRequest,
    actor: Actor = Depends(require(Action.manage_password_resets)),
    service: AccountService = Depends(get_service),
) -> OperatorResetResponse:
    """Set a temporary password the account owner must change at next sign-in."""
    account = service.operator_reset_password(actor, account_id, payload.new_password)
    return OperatorResetResponse(
        message="password reset successfully, the user must change it on next login",
        account=AccountResponse.from_domain(account),
    )


@router.get("/audit/logs", response_model=AuditLogResponse)
def list_audit_logs(
    account_id: str | None = Query(default=None),
    event_type: str | None = Query(default=None),
    created_after: datetime | None = Query(default=None),
    created_before: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    cursor: str | None = Query(default=None),
    actor: Actor = Depends(require(Action.read_audit_log)),
    service: AccountService = Depends(get_service),
) -> AuditLogResponse:
    """Return paginated audit events with optional filtering."""
    records, next_cursor = service.list_audit_events(
        actor,
        account_id=account_id,
        event_type=event_type,
        created_after=created_after,
        created_before=created_before,
        limit=limit,
        cursor=cursor,
    )
    items = [
        AuditLogEntry(
            audit_id=record.audit_id,
            account_id=record.account_id,
            event_type=record.event_type,
            actor=record.actor,
            metadata=record.metadata,
            created_at=record.created_at,
        )
        for record in records
    ]
    return AuditLogResponse(items=items, next_cursor=next_cursor)
