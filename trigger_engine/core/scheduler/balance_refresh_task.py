from typing import Optional

from trigger_engine.config.settings import settings
from trigger_engine.core.scheduler.tasks import PeriodicTask
from trigger_engine.core.service.balance_cache import WalletBalanceCache
from trigger_engine.dal.balance_store import RedisBalanceStore


class BalanceRefreshTask(PeriodicTask):
    """Reloads wallet balances into the cache; on failure the previous balances stay in place."""

    def __init__(self, balances: RedisBalanceStore, cache: WalletBalanceCache, seconds: Optional[int] = None):
        super().__init__("balance_refresh", seconds or settings.BALANCE_REFRESH_SECONDS)
        self._balances = balances
        self._cache = cache

    async def execute(self) -> None:
        self._cache.replace(await self._balances.load_balances())
