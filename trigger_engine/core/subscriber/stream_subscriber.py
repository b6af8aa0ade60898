import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)

INITIAL_BACKOFF = 0.5
MAX_BACKOFF = 10.0


class StreamSubscriber(ABC):
    """
    Background consumer of one Redis stream.
    A dropped subscription is re-opened with exponential backoff; a message that fails
    to process is logged and skipped so the stream keeps flowing.
    """
    stream_name = "stream"

    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self.processed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        if not self.running:
            self._task = asyncio.create_task(self._run(), name=f"{self.stream_name}-subscriber")

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self):
        backoff = INITIAL_BACKOFF
        while True:
            try:
                async for message in self._subscribe():
                    await self._process(message)
                    backoff = INITIAL_BACKOFF
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("%s subscribe error: %s; retrying in %.1fs", self.stream_name, e, backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)

    async def _process(self, message) -> None:
        try:
            await self.handle(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failed += 1
            logger.exception("%s: failed to handle %r", self.stream_name, message)
            return
        self.processed += 1

    @abstractmethod
    def _subscribe(self):
        """Async iterator over the stream's messages."""

    @abstractmethod
    async def handle(self, message) -> None:
        ...
