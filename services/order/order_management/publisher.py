"""
Order Service: イベント発行 (Redis Pub/Sub)

ワークフロー成功時のイベントを order_events チャネルに発行する。

注意: Redis Pub/Sub は fire-and-forget 方式。
発行に失敗してもワークフローの結果 (DB への書き戻し) は取り消さない。
"""

import json
import logging
from typing import Protocol

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    async def publish(self, event: BaseModel) -> None: ...


def serialize_event(event: BaseModel) -> str:
    """{"event_type": <クラス名>, "data": {...}} の JSON 文字列にする。"""
    return json.dumps(
        {
            "event_type": type(event).__name__,
            "data": event.model_dump(mode="json"),
        },
        default=str,
    )


class RedisEventPublisher:
    def __init__(self, redis: aioredis.Redis, channel: str = "order_events") -> None:
        self.redis = redis
        self.channel = channel

    async def publish(self, event: BaseModel) -> None:
        try:
            await self.redis.publish(self.channel, serialize_event(event))
        except RedisError:
            logger.exception("Failed to publish %s to %s", type(event).__name__, self.channel)
            return
        logger.info("Published %s to %s", type(event).__name__, self.channel)
