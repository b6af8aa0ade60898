from typing import AsyncIterator

from trigger_engine.core.engine.evaluator import Evaluator
from trigger_engine.core.engine.facts import RollingFactExtractor
from trigger_engine.core.subscriber.stream_subscriber import StreamSubscriber
from trigger_engine.dal.datamodel.market_event import MarketEvent
from trigger_engine.dal.market_event_store import RedisMarketEventStore


class EventsSubscriber(StreamSubscriber):
    """Feeds market events, one at a time, through the fact window and the evaluator."""
    stream_name = "market events"

    def __init__(self, store: RedisMarketEventStore, extractor: RollingFactExtractor, evaluator: Evaluator):
        super().__init__()
        self._store = store
        self._extractor = extractor
        self._evaluator = evaluator

    def _subscribe(self) -> AsyncIterator[MarketEvent]:
        return self._store.subscribe_events()

    async def handle(self, event: MarketEvent) -> None:
        # the window must include the event before its facts are read
        self._extractor.observe(event)
        await self._evaluator.evaluate(event)
