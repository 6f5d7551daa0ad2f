"""Self-service authentication routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from redis.exceptions import RedisError

from ..config import get_settings
from ..domain.contracts import Actor, RegisterInput
from ..domain.service import AccountService
from ..errors import RateLimited
from ..security.rate_limiter import RateLimiter, SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter
from .dependencies import get_actor, get_service
from .schemas import (
    AccountResponse,
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetRequest,
    PermissionsResponse,
    RegisterRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

settings = get_settings()


def _build_rate_limiter() -> RateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        import redis

        try:
            client = redis.from_url(settings.redis_url)
            client.ping()
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        except RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


rate_limiter: RateLimiter = _build_rate_limiter()


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _throttle(key: str) -> None:
    if not rate_limiter.allow(key):
        raise RateLimited()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: RegisterRequest,
    service: AccountService = Depends(get_service),
) -> AuthResponse:
    """Create a lowest-tier account and return a bearer token for it."""
    _throttle(f"register:{_client_key(request)}")
    bundle = service.register(
        RegisterInput(
            display_name=payload.name,
            email=payload.email,
            password=payload.password,
            phone=payload.phone,
            role=payload.role,
        )
    )
    return AuthResponse.from_bundle(bundle)


@router.post("/login", response_model=AuthResponse)
def login(
    request: Request,
    payload: LoginRequest,
    service: AccountService = Depends(get_service),
) -> AuthResponse:
    """Exchange email and password for a bearer token.

    Attempts count against the caller's host and against the host/email
    pair; only the pair is cleared by a successful login.
    """
    host = _client_key(request)
    _throttle(f"login-host:{host}")
    rate_key = f"login:{host}:{(payload.email or '').strip().lower()}"
    _throttle(rate_key)
    bundle = service.login(payload.email, payload.password)
    rate_limiter.reset(rate_key)
    return AuthResponse.from_bundle(bundle)


@router.get("/me", response_model=AccountResponse)
def me(
    actor: Actor = Depends(get_actor),
    service: AccountService = Depends(get_service),
) -> AccountResponse:
    return AccountResponse.from_domain(service.get_account(actor.account_id))


@router.get("/permissions", response_model=PermissionsResponse)
def permissions(
    actor: Actor = Depends(get_actor),
    service: AccountService = Depends(get_service),
) -> PermissionsResponse:
    """List the actions and data scopes granted to the caller's role."""
    return PermissionsResponse(**service.describe_permissions(actor))


@router.post("/request-password-reset", response_model=MessageResponse)
def request_password_reset(
    request: Request,
    payload: PasswordResetRequest,
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    """Ask an operator for a new password; the reply is identical for unknown emails."""
    _throttle(f"reset:{_client_key(request)}")
    return MessageResponse(message=service.request_password_reset(payload.email))


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    actor: Actor = Depends(get_actor),
    service: AccountService = Depends(get_service),
) -> MessageResponse:
    service.change_password(actor.account_id, payload.old_password, payload.new_password)
    return MessageResponse(message="password changed successfully")
