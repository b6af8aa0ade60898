from __future__ import annotations

from typing import List, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from trigger_engine.config.settings import settings
from trigger_engine.dal.datamodel.execution_log import ExecutionLog
from trigger_engine.utils.helper import retryable


class RedisExecutionLogStore:
    """Newest-first list of execution logs, trimmed to MAX_EXECUTION_LOGS entries."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None,
                 max_logs: Optional[int] = None):
        self._redis = client or redis.from_url(redis_url or settings.REDIS_URL, decode_responses=True)
        self._max_logs = max_logs or settings.MAX_EXECUTION_LOGS

    @property
    def client(self) -> redis.Redis:
        return self._redis

    # ---------- CRUD ----------

    @retryable()
    async def append(self, log: ExecutionLog) -> None:
        pipe = self._redis.pipeline(transaction=True)
        pipe.lpush(settings.EXECUTION_LOGS_KEY, log.to_json())
        pipe.ltrim(settings.EXECUTION_LOGS_KEY, 0, self._max_logs - 1)
        await pipe.execute()

    async def list_logs(self, profile_id: Optional[str] = None, limit: Optional[int] = None) -> List[ExecutionLog]:
        raws = await self._redis.lrange(settings.EXECUTION_LOGS_KEY, 0, -1)
        out: List[ExecutionLog] = []
        for raw in raws:
            try:
                log = ExecutionLog.model_validate_json(raw)
            except ValidationError:
                # skip malformed entry
                continue
            if profile_id is None or log.profile_id == profile_id:
                out.append(log)
            if limit is not None and len(out) >= limit:
                break
        return out

    async def successful_count(self, profile_id: Optional[str] = None) -> int:
        return sum(1 for log in await self.list_logs(profile_id) if log.success)

    async def clear(self) -> None:
        await self._redis.delete(settings.EXECUTION_LOGS_KEY)
