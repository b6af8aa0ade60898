from __future__ import annotations

import json
from typing import Optional, Protocol

import redis.asyncio as redis

from trigger_engine.config.settings import settings
from trigger_engine.dal.datamodel.profile import Family
from trigger_engine.dal.datamodel.snapshot import ProfileFamilyState
from trigger_engine.utils.helper import retryable


class SnapshotPersistence(Protocol):
    async def load_snapshot(self, family: Family) -> ProfileFamilyState:
        ...

    async def save_snapshot(self, family: Family, state: ProfileFamilyState) -> None:
        ...


class RedisSnapshotStore:
    """One JSON blob per profile family; the blob's content is opaque to Redis."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self._redis = client or redis.from_url(redis_url or settings.REDIS_URL, decode_responses=True)

    @property
    def client(self) -> redis.Redis:
        return self._redis

    # ---------- keys ----------

    @staticmethod
    def _key(family: Family) -> str:
        return f"{settings.SNAPSHOT_KEY_PREFIX}{family}"

    # ---------- CRUD ----------

    @retryable()
    async def load_snapshot(self, family: Family) -> ProfileFamilyState:
        raw = await self._redis.get(self._key(family))
        if not raw:
            return ProfileFamilyState()
        return ProfileFamilyState.model_validate_json(raw)

    @retryable()
    async def save_snapshot(self, family: Family, state: ProfileFamilyState) -> None:
        await self._redis.set(self._key(family), state.to_json())
        await self._publish({"action": "save", "family": str(family), "profiles": len(state.profiles)})

    # ---------- Pub/Sub ----------

    async def _publish(self, message: dict) -> None:
        await self._redis.publish(settings.SNAPSHOT_EVENTS_CHANNEL, json.dumps(message))
