from __future__ import annotations

from typing import Dict, Optional

import redis.asyncio as redis

from trigger_engine.config.settings import settings
from trigger_engine.utils.helper import retryable
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


class RedisBalanceStore:
    """Wallet balances in SOL, one hash field per wallet address, written by the execution side."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self._redis = client or redis.from_url(redis_url or settings.REDIS_URL, decode_responses=True)

    @property
    def client(self) -> redis.Redis:
        return self._redis

    @retryable()
    async def load_balances(self) -> Dict[str, float]:
        raw = await self._redis.hgetall(settings.WALLET_BALANCES_KEY)
        balances: Dict[str, float] = {}
        for wallet, value in raw.items():
            try:
                balances[wallet] = float(value)
            except (TypeError, ValueError):
                logger.warning("Skipping unreadable balance %r for wallet %s", value, wallet)
        return balances

    @retryable()
    async def set_balance(self, wallet: str, balance: float) -> None:
        await self._redis.hset(settings.WALLET_BALANCES_KEY, wallet, balance)
