"""Fire-and-forget account change notifications.

Subscribers use these events as UI refresh hints only. Delivery is
at-most-once: a failed publish is logged and dropped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import BaseModel, Field
from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class AccountEvent(BaseModel):
    event_type: str
    account_id: str
    actor_id: str | None = None
    role: str | None = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] = Field(default_factory=dict)
    version: str = "v1"


class EventPublisher(Protocol):
    def publish(self, event: AccountEvent) -> None: ...


class NullEventPublisher:
    """Publisher used when no notification channel is configured."""

    def publish(self, event: AccountEvent) -> None:
        logger.debug("dropping %s for %s (no channel)", event.event_type, event.account_id)


class RedisEventPublisher:
    """Broadcast events as JSON on a Redis pub/sub channel."""

    def __init__(self, client: Redis, channel: str) -> None:
        self._client = client
        self._channel = channel

    def publish(self, event: AccountEvent) -> None:
        try:
            self._client.publish(self._channel, event.model_dump_json())
        except RedisError as exc:
            logger.warning("failed to publish %s on %s: %s", event.event_type, self._channel, exc)
