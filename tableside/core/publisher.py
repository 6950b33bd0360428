"""
Tableside Orders — Event publisher

publish(topic, event) pushes an order event onto a Redis pub/sub channel
that kitchen displays and customer status pages subscribe to.
Publishing is best effort: a failure is logged and never affects the order
mutation that triggered it.
"""
import asyncio
import json
import logging
from typing import Any, Callable

import redis.asyncio as aioredis

from tableside.core.config import get_settings
from tableside.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)


class Publisher:
    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        raise NotImplementedError


class RedisPublisher(Publisher):
    def __init__(
        self,
        redis_factory: Callable[[], aioredis.Redis] = get_redis,
        timeout: float | None = None,
    ):
        self._redis_factory = redis_factory
        self._timeout = timeout if timeout is not None else settings.PUBLISH_TIMEOUT_SECONDS

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        try:
            redis = self._redis_factory()
            await asyncio.wait_for(
                redis.publish(topic, json.dumps(event, default=str)),
                timeout=self._timeout,
            )
        except Exception as exc:
            # Notification failures MUST NOT affect order processing
            logger.warning("Publish of %s to %s failed: %s", event.get("event"), topic, exc)


def restaurant_channel(restaurant_id: str) -> str:
    return f"{settings.RESTAURANT_CHANNEL_PREFIX}{restaurant_id}"


def order_channel(order_id: str) -> str:
    return f"{settings.ORDER_CHANNEL_PREFIX}{order_id}"
