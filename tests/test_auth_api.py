from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from wastemap_identity.api import auth_routes
from wastemap_identity.domain.account import CredentialState
from wastemap_identity.domain.service import RESET_REQUEST_MESSAGE
from wastemap_identity.security.rate_limiter import SlidingWindowRateLimiter
from wastemap_identity.security.tokens import decode_access_token


def _register(client, email="a@x.com", password="secret1", **extra):
    return client.post(
        "/auth/register",
        json={"name": "Alice", "email": email, "password": password, **extra},
    )


def test_register_then_login_as_citizen(api_client):
    registered = _register(api_client)
    assert registered.status_code == 201
    body = registered.json()
    assert body["access_token"]
    assert body["token_type"] == "bearer"
    assert body["account"]["role"] == "citizen"
    assert "password_hash" not in body["account"]

    claims = decode_access_token(body["access_token"])
    assert claims.account_id == body["account"]["account_id"]

    logged_in = api_client.post("/auth/login", json={"email": "a@x.com", "password": "secret1"})
    assert logged_in.status_code == 200
    data = logged_in.json()
    assert data["account"]["role"] == "citizen"
    assert data["must_change_password"] is False


def test_register_duplicate_email_conflicts_case_insensitively(api_client):
    assert _register(api_client).status_code == 201

    again = _register(api_client, email="A@X.com")
    assert again.status_code == 409
    assert again.json()["code"] == "conflict"


def test_register_rejects_missing_fields(api_client):
    resp = api_client.post("/auth/register", json={"email": "b@x.com"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


def test_register_rejects_short_password(api_client):
    resp = _register(api_client, password="12345")
    assert resp.status_code == 400
    assert "at least 6" in resp.json()["detail"]


def test_register_rejects_malformed_email(api_client):
    resp = _register(api_client, email="not-an-email")
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


@pytest.mark.parametrize("role", ["worker", "admin", "superadmin"])
def test_register_with_elevated_role_is_forbidden(api_client, repository, role):
    resp = _register(api_client, role=role)
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"
    assert repository.accounts == {}


def test_register_with_lowest_role_is_allowed(api_client):
    resp = _register(api_client, role="citizen")
    assert resp.status_code == 201


def test_login_failures_are_indistinguishable(api_client, make_account):
    make_account("citizen", email="known@x.com")

    wrong_password = api_client.post("/auth/login", json={"email": "known@x.com", "password": "nope-nope"})
    unknown_email = api_client.post("/auth/login", json={"email": "ghost@x.com", "password": "nope-nope"})

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


def test_login_requires_email_and_password(api_client):
    resp = api_client.post("/auth/login", json={"email": "a@x.com"})
    assert resp.status_code == 400


def test_me_returns_account_without_hash(api_client, make_account, auth_headers):
    account = make_account("worker")
    resp = api_client.get("/auth/me", headers=auth_headers(account))
    assert resp.status_code == 200
    body = resp.json()
    assert body["account_id"] == account.account_id
    assert body["role"] == "worker"
    assert "password_hash" not in body


def test_permissions_for_citizen_are_scoped_to_own_reports(api_client, make_account, auth_headers):
    citizen = make_account("citizen")
    resp = api_client.get("/auth/permissions", headers=auth_headers(citizen))
    assert resp.status_code == 200
    body = resp.json()
    assert body["actions"] == ["reports:read-own"]
    assert body["visible_roles"] == []
    assert body["report_scope"] == {"reporter_id": citizen.account_id}


def test_permissions_for_admin_list_unprivileged_roles(api_client, make_account, auth_headers):
    admin = make_account("admin")
    body = api_client.get("/auth/permissions", headers=auth_headers(admin)).json()
    assert "users:manage" in body["actions"]
    assert "password-resets:manage" not in body["actions"]
    assert body["visible_roles"] == ["citizen", "worker"]
    assert body["report_scope"] == {"reporter_id": None}


def test_request_password_reset_does_not_reveal_accounts(api_client, repository, make_account):
    account = make_account("citizen", email="real@x.com")

    real = api_client.post("/auth/request-password-reset", json={"email": "real@x.com"})
    fake = api_client.post("/auth/request-password-reset", json={"email": "fake@x.com"})

    assert real.status_code == fake.status_code == 200
    assert real.json() == fake.json() == {"message": RESET_REQUEST_MESSAGE}
    assert repository.accounts[account.account_id].credential_state is CredentialState.pending_reset


def test_request_password_reset_requires_email(api_client):
    resp = api_client.post("/auth/request-password-reset", json={})
    assert resp.status_code == 400


def test_change_password_with_wrong_old_password(api_client, make_account, auth_headers):
    account = make_account("citizen")
    resp = api_client.post(
        "/auth/change-password",
        json={"old_password": "wrong-one", "new_password": "newpass1"},
        headers=auth_headers(account),
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "current password is incorrect"


def test_change_password_rejects_short_new_password(api_client, make_account, auth_headers):
    account = make_account("citizen")
    resp = api_client.post(
        "/auth/change-password",
        json={"old_password": "secret1", "new_password": "short"},
        headers=auth_headers(account),
    )
    assert resp.status_code == 400


def test_change_password_clears_pending_request(api_client, repository, make_account, auth_headers):
    account = make_account("citizen", credential_state=CredentialState.pending_reset)
    resp = api_client.post(
        "/auth/change-password",
        json={"old_password": "secret1", "new_password": "newpass1"},
        headers=auth_headers(account),
    )
    assert resp.status_code == 200
    assert repository.accounts[account.account_id].credential_state is CredentialState.active

    login = api_client.post("/auth/login", json={"email": account.email, "password": "newpass1"})
    assert login.status_code == 200


def test_login_is_rate_limited_per_email(api_client, make_account):
    make_account("citizen", email="limit@x.com")
    auth_routes.rate_limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)

    payload = {"email": "limit@x.com", "password": "bad-guess"}
    first = api_client.post("/auth/login", json=payload)
    second = api_client.post("/auth/login", json=payload)
    third = api_client.post("/auth/login", json=payload)

    assert first.status_code == 401
    assert second.status_code == 401
    assert third.status_code == 429
    assert third.json()["code"] == "rate_limited"


def test_successful_login_resets_the_limit(api_client, make_account):
    make_account("citizen", email="reset@x.com")
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
    auth_routes.rate_limiter = limiter

    api_client.post("/auth/login", json={"email": "reset@x.com", "password": "bad-guess"})
    ok = api_client.post("/auth/login", json={"email": "reset@x.com", "password": "secret1"})
    assert ok.status_code == 200

    pair_key = "login:testclient:reset@x.com"
    assert limiter.allow(pair_key)
    assert limiter.allow(pair_key)
    assert not limiter.allow(pair_key)


def test_login_spray_across_emails_is_throttled_per_host(api_client):
    auth_routes.rate_limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60)

    statuses = [
        api_client.post("/auth/login", json={"email": f"user{idx}@x.com", "password": "bad-guess"}).status_code
        for idx in range(4)
    ]
    assert statuses == [401, 401, 401, 429]


def test_overlong_password_is_rejected_on_register(api_client, repository):
    resp = _register(api_client, password="x" * 80)
    assert resp.status_code == 400
    assert "72 bytes" in resp.json()["detail"]
    assert repository.accounts == {}


def test_register_accepts_password_of_spaces(api_client):
    resp = _register(api_client, password="      ")
    assert resp.status_code == 201

    login = api_client.post("/auth/login", json={"email": "a@x.com", "password": "      "})
    assert login.status_code == 200


def test_change_password_rejects_overlong_password(api_client, repository, make_account, auth_headers):
    account = make_account("citizen")
    resp = api_client.post(
        "/auth/change-password",
        json={"old_password": "secret1", "new_password": "x" * 80},
        headers=auth_headers(account),
    )
    assert resp.status_code == 400
    assert repository.accounts[account.account_id] == account


def test_login_with_overlong_password_is_plain_failure(api_client, make_account):
    make_account("citizen", email="long@x.com")
    resp = api_client.post("/auth/login", json={"email": "long@x.com", "password": "x" * 80})
    assert resp.status_code == 401
    assert resp.json()["code"] == "invalid_credentials"


def test_unexpected_errors_become_generic_500(app, make_account, auth_headers, monkeypatch):
    account = make_account("citizen")
    service = app.state.account_service

    def explode(account_id):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(service, "get_account", explode)
    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/auth/me", headers=auth_headers(account))

    assert resp.status_code == 500
    assert resp.json() == {"detail": "internal server error", "code": "internal_error"}
