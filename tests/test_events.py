from __future__ import annotations

import json
import logging

import fakeredis
from redis.exceptions import ConnectionError as RedisConnectionError

from wastemap_identity.domain.contracts import Actor, RegisterInput
from wastemap_identity.events import AccountEvent, RedisEventPublisher


def _next_message(pubsub, attempts=10):
    for _ in range(attempts):
        message = pubsub.get_message(timeout=0.1)
        if message is not None:
            return message
    return None


class BrokenRedis:
    def publish(self, channel, message):
        raise RedisConnectionError("redis is down")


def test_redis_publisher_broadcasts_json():
    client = fakeredis.FakeStrictRedis()
    pubsub = client.pubsub(ignore_subscribe_messages=True)
    pubsub.subscribe("identity.events")

    RedisEventPublisher(client, "identity.events").publish(
        AccountEvent(event_type="account.updated", account_id="acc-1", actor_id="op-1", role="worker")
    )

    message = _next_message(pubsub)
    assert message is not None
    payload = json.loads(message["data"])
    assert payload["event_type"] == "account.updated"
    assert payload["account_id"] == "acc-1"
    assert payload["version"] == "v1"


def test_publish_failure_is_logged_not_raised(caplog):
    publisher = RedisEventPublisher(BrokenRedis(), "identity.events")
    with caplog.at_level(logging.WARNING, logger="wastemap_identity.events"):
        publisher.publish(AccountEvent(event_type="account.deleted", account_id="acc-1"))
    assert "failed to publish account.deleted" in caplog.text


def test_service_records_lifecycle_events(service, repository, publisher, make_account):
    superadmin = make_account("superadmin")
    bundle = service.register(RegisterInput(display_name="Ann", email="ann@example.org", password="secret1"))
    service.request_password_reset("ann@example.org")
    service.operator_reset_password(Actor.from_account(superadmin), bundle.account.account_id, "abc123")
    service.change_password(bundle.account.account_id, "abc123", "newpass1")

    assert [event.event_type for event in publisher.events] == [
        "account.registered",
        "password.reset_requested",
        "password.reset_by_operator",
        "password.changed",
    ]
    assert publisher.events[2].actor_id == superadmin.account_id
    assert [record.event_type for record in repository.audit_log] == [
        event.event_type for event in publisher.events
    ]


def test_login_writes_token_audit_without_broadcast(service, repository, publisher, make_account):
    account = make_account("citizen", email="log@example.org")
    service.login("log@example.org", "secret1")
    assert publisher.events == []
    assert repository.audit_log[-1].event_type == "token.issued"
    assert repository.audit_log[-1].account_id == account.account_id


def test_audit_metadata_never_holds_secrets(service, repository, make_account):
    superadmin = make_account("superadmin")
    target = make_account("citizen")
    service.operator_reset_password(Actor.from_account(superadmin), target.account_id, "abc123")
    serialized = json.dumps([record.metadata for record in repository.audit_log])
    assert "abc123" not in serialized
    assert "$2b$" not in serialized
