"""Access gate: bearer token → actor → policy check, as FastAPI dependencies."""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..domain import policy
from ..domain.contracts import Actor
from ..domain.roles import Action
from ..domain.service import AccountService
from ..errors import Forbidden, IdentityError, Unauthenticated
from ..metrics import ACCESS_DENIED
from ..security.tokens import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: AccountService = Depends(get_service),
) -> Actor:
    """Authenticate the request and return the actor built from the stored account."""
    if credentials is None:
        ACCESS_DENIED.labels(reason="no_token").inc()
        raise Unauthenticated()
    try:
        claims = decode_access_token(credentials.credentials)
    except IdentityError:
        ACCESS_DENIED.labels(reason="invalid_token").inc()
        raise
    try:
        account = service.get_account(claims.account_id)
    except IdentityError as exc:
        ACCESS_DENIED.labels(reason="unknown_account").inc()
        raise Unauthenticated("account not found") from exc
    return Actor.from_account(account)


def require(action: Action | None = None) -> Callable[..., Actor]:
    """Build a dependency that authenticates and then applies the policy for ``action``.

    Actors with a forced password reset are turned away from every gated
    endpoint while ``enforce_password_change`` is on; ``/auth/me`` and
    ``/auth/change-password`` use :func:`get_actor` directly and stay open.
    """

    def dependency(request: Request, actor: Actor = Depends(get_actor)) -> Actor:
        if actor.must_change_password and getattr(request.app.state, "enforce_password_change", True):
            ACCESS_DENIED.labels(reason="password_change_required").inc()
            raise Forbidden("password change required")
        service = get_service(request)
        if action is not None and not policy.authorize(service.profile, actor.role, action):
            ACCESS_DENIED.labels(reason="policy").inc()
            raise Forbidden()
        return actor

    return dependency
