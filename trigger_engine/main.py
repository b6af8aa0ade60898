import asyncio
import signal
from contextlib import asynccontextmanager

from trigger_engine.config.settings import settings
from trigger_engine.core.engine.evaluator import Evaluator
from trigger_engine.core.engine.facts import RollingFactExtractor
from trigger_engine.core.scheduler.balance_refresh_task import BalanceRefreshTask
from trigger_engine.core.scheduler.snapshot_flush_task import SnapshotFlushTask
from trigger_engine.core.service.balance_cache import WalletBalanceCache
from trigger_engine.core.service.profile_store import ProfileStore
from trigger_engine.core.service.scheduler_service import SchedulerService
from trigger_engine.core.subscriber.events_subscriber import EventsSubscriber
from trigger_engine.core.subscriber.results_subscriber import DispatchResultsSubscriber
from trigger_engine.dal.balance_store import RedisBalanceStore
from trigger_engine.dal.dispatch_queue import RedisDispatchQueue
from trigger_engine.dal.execution_log_store import RedisExecutionLogStore
from trigger_engine.dal.market_event_store import RedisMarketEventStore
from trigger_engine.dal.snapshot_store import RedisSnapshotStore
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


class Engine:
    """Host wiring: one store, one evaluator, Redis on both sides."""

    def __init__(self):
        self.store = ProfileStore(RedisSnapshotStore(settings.REDIS_URL))
        self.extractor = RollingFactExtractor()
        self.dispatch_queue = RedisDispatchQueue(settings.REDIS_URL)
        self.balances = WalletBalanceCache()
        self.balance_refresh = BalanceRefreshTask(RedisBalanceStore(settings.REDIS_URL), self.balances)
        self.evaluator = Evaluator(
            self.store,
            self.extractor,
            self.dispatch_queue,
            balance_provider=self.balances,
            log_sink=RedisExecutionLogStore(settings.REDIS_URL),
        )
        self.events_subscriber = EventsSubscriber(RedisMarketEventStore(settings.REDIS_URL), self.extractor,
                                                  self.evaluator)
        self.results_subscriber = DispatchResultsSubscriber(self.dispatch_queue, self.evaluator)
        self.scheduler = SchedulerService(self.store, tasks=[SnapshotFlushTask(self.store), self.balance_refresh])


@asynccontextmanager
async def lifespan(engine: Engine):
    await engine.store.load()
    await engine.balance_refresh.run()
    await asyncio.gather(
        engine.results_subscriber.start(),
        engine.events_subscriber.start(),
    )
    engine.scheduler.start()
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)

    try:
        yield engine
    finally:
        logger.info("Starting shutdown procedures...")
        await asyncio.gather(
            engine.events_subscriber.stop(),
            engine.results_subscriber.stop(),
        )
        engine.scheduler.stop()
        await engine.store.flush()


async def main():
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with lifespan(Engine()):
        await stop.wait()
