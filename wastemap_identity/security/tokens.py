"""Utilities for issuing and validating application JWTs."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import jwt

from ..config import get_settings
from ..errors import InvalidToken

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


@dataclass(slots=True, frozen=True)
class AccessClaims:
    """Verified claims carried by a bearer token."""

    account_id: str
    role: str | None
    issued_at: int
    expires_at: int


def issue_access_token(*, subject: str, role: str) -> tuple[str, int]:
    """Create a signed JWT representing an authenticated account.

    Parameters
    ----------
    subject:
        Account identifier to embed in the token `sub` claim.
    role:
        Role of the account at issue time. Informational only: the access
        gate always re-reads the stored role.

    Returns
    -------
    tuple[str, int]
        A tuple containing the encoded JWT string and its TTL (in seconds).
    """

    settings = get_settings()
    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + expires_in,
    }

    token = jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)
    return token, expires_in


def decode_access_token(token: str) -> AccessClaims:
    """Decode and verify a JWT returning its claims.

    Raises
    ------
    InvalidToken
        For every failure (malformed, expired, bad signature, foreign issuer,
        missing subject); the cause is only logged at debug level.
    """

    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[ALGORITHM],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.PyJWTError as exc:
        logger.debug("rejected bearer token: %s", type(exc).__name__)
        raise InvalidToken() from exc

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise InvalidToken()
    return AccessClaims(
        account_id=subject,
        role=payload.get("role"),
        issued_at=int(payload["iat"]),
        expires_at=int(payload["exp"]),
    )
