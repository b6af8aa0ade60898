from typing import Optional

from trigger_engine.config.settings import settings
from trigger_engine.core.scheduler.tasks import PeriodicTask
from trigger_engine.core.service.profile_store import ProfileStore
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


class SnapshotFlushTask(PeriodicTask):
    """Writes dirty profile families out; a failed family stays dirty for the next run."""

    def __init__(self, store: ProfileStore, seconds: Optional[int] = None):
        super().__init__("snapshot_flush", seconds or settings.SNAPSHOT_FLUSH_SECONDS)
        self._store = store

    async def execute(self) -> None:
        saved = await self._store.flush()
        if saved:
            logger.debug("Flushed %d profile family snapshot(s)", saved)
