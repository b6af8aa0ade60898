from __future__ import annotations

from typing import AsyncIterator, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from trigger_engine.config.settings import settings
from trigger_engine.dal.datamodel.market_event import MarketEvent, parse_event
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


class RedisMarketEventStore:
    """Market events published by the ingestion side, one JSON event per message."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None,
                 channel: Optional[str] = None):
        self._redis = client or redis.from_url(redis_url or settings.REDIS_URL, decode_responses=True)
        self._channel = channel or settings.EVENTS_CHANNEL

    @property
    def client(self) -> redis.Redis:
        return self._redis

    # ---------- Pub/Sub ----------

    async def publish(self, event: MarketEvent) -> None:
        await self._redis.publish(self._channel, event.to_json())

    async def subscribe_events(self) -> AsyncIterator[MarketEvent]:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for msg in pubsub.listen():
                if msg.get("type") != "message":
                    continue
                data = msg.get("data")
                if isinstance(data, (bytes, bytearray)):
                    data = data.decode()
                try:
                    yield parse_event(data)
                except ValidationError as e:
                    logger.warning("Skipping malformed market event: %s", e)
                    continue
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.close()
