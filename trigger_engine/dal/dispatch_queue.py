from __future__ import annotations

import json
from typing import AsyncIterator, List, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from trigger_engine.config.settings import settings
from trigger_engine.dal.datamodel.dispatch import DispatchRequest, DispatchResult
from trigger_engine.utils.helper import retryable
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


class RedisDispatchQueue:
    """
    Hands dispatch batches to the execution side and reads its results back.
    Batches go out on the dispatch channel; results come in on the results channel.
    """

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self._redis = client or redis.from_url(redis_url or settings.REDIS_URL, decode_responses=True)

    @property
    def client(self) -> redis.Redis:
        return self._redis

    # ---------- dispatch ----------

    @retryable()
    async def dispatch(self, requests: List[DispatchRequest]) -> None:
        if not requests:
            return
        message = {
            "action": "dispatch",
            "batchId": requests[0].batch_id,
            "requests": [r.to_dict() for r in requests],
        }
        await self._redis.publish(settings.DISPATCH_CHANNEL, json.dumps(message))

    async def publish_result(self, result: DispatchResult) -> None:
        await self._redis.publish(settings.RESULTS_CHANNEL, result.to_json())

    # ---------- Pub/Sub ----------

    async def subscribe_results(self) -> AsyncIterator[DispatchResult]:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(settings.RESULTS_CHANNEL)
        try:
            async for msg in pubsub.listen():
                if msg.get("type") != "message":
                    continue
                data = msg.get("data")
                if isinstance(data, (bytes, bytearray)):
                    data = data.decode()
                try:
                    yield DispatchResult.model_validate_json(data)
                except ValidationError as e:
                    logger.warning("Skipping malformed dispatch result: %s", e)
                    continue
        finally:
            await pubsub.unsubscribe(settings.RESULTS_CHANNEL)
            await pubsub.close()
