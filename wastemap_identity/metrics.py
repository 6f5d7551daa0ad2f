"""Prometheus counters for authentication outcomes."""

from __future__ import annotations

from prometheus_client import Counter

LOGIN_ATTEMPTS = Counter(
    "identity_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)

PASSWORD_EVENTS = Counter(
    "identity_password_events_total",
    "Password lifecycle transitions",
    ["event"],
)

ACCESS_DENIED = Counter(
    "identity_access_denied_total",
    "Requests rejected by the access gate",
    ["reason"],
)
