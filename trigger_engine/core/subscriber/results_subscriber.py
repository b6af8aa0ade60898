from typing import AsyncIterator

from trigger_engine.core.engine.evaluator import Evaluator
from trigger_engine.core.subscriber.stream_subscriber import StreamSubscriber
from trigger_engine.dal.datamodel.dispatch import DispatchResult
from trigger_engine.dal.dispatch_queue import RedisDispatchQueue


class DispatchResultsSubscriber(StreamSubscriber):
    stream_name = "dispatch results"

    def __init__(self, queue: RedisDispatchQueue, evaluator: Evaluator):
        super().__init__()
        self._queue = queue
        self._evaluator = evaluator

    def _subscribe(self) -> AsyncIterator[DispatchResult]:
        return self._queue.subscribe_results()

    async def handle(self, result: DispatchResult) -> None:
        await self._evaluator.on_result(result)
