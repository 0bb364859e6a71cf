"""Redis Stream Notifier — publishes events to a Redis stream named after the topic.

Invariants:
    - publish() returns only after XADD is acknowledged (entry id assigned)
    - Delivery is at-least-once from the consumer's view: a retried batch re-adds its events,
      consumers deduplicate on payload event_id
    - Failures map to EventBusUnavailableError (transient)

Design Decisions:
    - Streams over pub/sub: entries persist for consumers that are offline at publish time
    - Approximate MAXLEN trimming keeps the stream bounded on result day
"""

import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from examops.core.errors import EventBusUnavailableError

logger = logging.getLogger(__name__)


class RedisStreamNotifier:
    """EventNotifier over Redis Streams."""

    def __init__(self, client: redis.Redis, max_stream_length: int = 1_000_000):
        self._redis = client
        self._max_stream_length = max_stream_length

    async def publish(self, topic: str, key: str, payload: dict) -> None:
        try:
            await self._redis.xadd(
                topic,
                {"key": key, "payload": json.dumps(payload, ensure_ascii=False)},
                maxlen=self._max_stream_length,
                approximate=True,
            )
        except RedisError as e:
            logger.warning(f"Event publish error on {topic}: {e}")
            raise EventBusUnavailableError(topic)
