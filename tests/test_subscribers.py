import asyncio

import pytest

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
from trigger_engine.dal.datamodel.action import AmountMode, FixedAmountAction
from trigger_engine.dal.datamodel.condition import FactKey, FactType
from trigger_engine.dal.datamodel.dispatch import DispatchResult
from trigger_engine.dal.datamodel.market_event import TickEvent, TradeEvent
from trigger_engine.dal.datamodel.profile import AutomateProfile


class FakeEventStore:
    def __init__(self):
        self.events = asyncio.Queue()

    async def subscribe_events(self):
        while True:
            yield await self.events.get()


class FakeResultQueue:
    def __init__(self):
        self.results = asyncio.Queue()
        self.batches = []

    async def dispatch(self, requests):
        self.batches.append(requests)

    async def subscribe_results(self):
        while True:
            yield await self.results.get()


async def wait_for(predicate, timeout=1.0):
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_events_flow_through_window_and_evaluator(store):
    store.add(AutomateProfile(id="auto1", name="auto", is_active=True, actions=[
        FixedAmountAction(id="a1", amount_mode=AmountMode.FIXED, amount_parameter=1),
    ]))
    queue = FakeResultQueue()
    extractor = RollingFactExtractor()
    evaluator = Evaluator(store, extractor, queue)
    events = FakeEventStore()
    events_sub = EventsSubscriber(events, extractor, evaluator)
    results_sub = DispatchResultsSubscriber(queue, evaluator)

    await events_sub.start()
    await results_sub.start()
    try:
        trade = TradeEvent(timestamp=1_000, mint="mint-1", signer="w1", direction="buy", sol_amount=3.0)
        await events.events.put(trade)
        await wait_for(lambda: len(queue.batches) == 1)

        # the trade went into the window before evaluation
        tick = TickEvent(timestamp=2_000, mint="mint-1")
        assert extractor.extract(tick, FactKey(FactType.LAST_TRADE_AMOUNT)) == 3.0

        request = queue.batches[0][0]
        await queue.results.put(DispatchResult(request_id=request.request_id, success=True))
        await wait_for(lambda: store.get("auto1").execution_count == 1)
    finally:
        await events_sub.stop()
        await results_sub.stop()


@pytest.mark.asyncio
async def test_subscriber_survives_stream_errors(store, dispatcher):
    class FlakyStore(FakeEventStore):
        def __init__(self):
            super().__init__()
            self.attempts = 0

        async def subscribe_events(self):
            self.attempts += 1
            if self.attempts == 1:
                raise ConnectionError("redis down")
            async for event in super().subscribe_events():
                yield event

    flaky = FlakyStore()
    extractor = RollingFactExtractor()
    sub = EventsSubscriber(flaky, extractor, Evaluator(store, extractor, dispatcher))

    await sub.start()
    try:
        await wait_for(lambda: flaky.attempts == 2)
    finally:
        await sub.stop()



@pytest.mark.asyncio
async def test_failing_event_is_skipped_not_fatal():
    class ExplodingEvaluator:
        def __init__(self):
            self.seen = []

        async def evaluate(self, event):
            self.seen.append(event.mint)
            if event.mint == "bad":
                raise RuntimeError("boom")

    events = FakeEventStore()
    evaluator = ExplodingEvaluator()
    sub = EventsSubscriber(events, RollingFactExtractor(), evaluator)

    await sub.start()
    try:
        assert sub.running
        await events.events.put(TickEvent(mint="bad"))
        await events.events.put(TickEvent(mint="good"))
        await wait_for(lambda: evaluator.seen == ["bad", "good"])
        await wait_for(lambda: sub.processed == 1)
        assert sub.failed == 1
    finally:
        await sub.stop()
    assert not sub.running

# ---------- scheduler ----------

class RecordingStore(ProfileStore):
    def __init__(self, fail=False):
        super().__init__()
        self.flushes = 0
        self.fail = fail

    async def flush(self) -> int:
        self.flushes += 1
        if self.fail:
            raise ConnectionError("redis down")
        return 1


@pytest.mark.asyncio
async def test_snapshot_flush_task_logs_and_continues_on_error():
    store = RecordingStore(fail=True)
    task = SnapshotFlushTask(store, seconds=1)

    await task.run()
    await task.run()

    assert store.flushes == 2
    assert (task.runs, task.failures) == (2, 2)
    assert task.id == "snapshot_flush"
    assert task.job_kwargs["max_instances"] == 1


@pytest.mark.asyncio
async def test_snapshot_flush_task_flushes_store():
    store = RecordingStore()
    task = SnapshotFlushTask(store)

    await task.run()

    assert store.flushes == 1
    assert task.failures == 0
    assert task.every_seconds == settings.SNAPSHOT_FLUSH_SECONDS


@pytest.mark.asyncio
async def test_scheduler_service_registers_flush_job():
    service = SchedulerService(RecordingStore())

    service.start()
    try:
        assert service.running
        assert [t.id for t in service.tasks] == ["snapshot_flush"]
        assert service.job_ids() == ["snapshot_flush"]
    finally:
        service.stop()
    assert not service.running


class StubBalanceStore:
    def __init__(self, *results):
        self.results = list(results)

    async def load_balances(self):
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.asyncio
async def test_balance_refresh_replaces_cache_and_keeps_it_on_error():
    cache = WalletBalanceCache({"stale": 9.0})
    task = BalanceRefreshTask(StubBalanceStore({"w1": 2.0, "w2": 1.0}, ConnectionError("redis down")), cache)

    await task.run()
    assert cache.get("stale") is None
    assert cache(["w1", "w2"]) == 1.0

    await task.run()
    assert cache(["w1"]) == 2.0
    assert (task.runs, task.failures) == (2, 1)
    assert task.id == "balance_refresh"
    assert task.every_seconds == settings.BALANCE_REFRESH_SECONDS


def test_balance_cache_lookup():
    cache = WalletBalanceCache()
    assert cache(["w1"]) is None

    cache.set("w1", 3.0)
    assert cache(["w1", "unknown"]) == 3.0
    assert cache([]) is None
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_scheduler_service_with_balance_refresh():
    cache = WalletBalanceCache()
    store = RecordingStore()
    service = SchedulerService(store, tasks=[SnapshotFlushTask(store),
                                             BalanceRefreshTask(StubBalanceStore({}), cache)])

    service.start()
    try:
        assert sorted(service.job_ids()) == ["balance_refresh", "snapshot_flush"]
    finally:
        service.stop()
