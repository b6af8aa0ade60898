from __future__ import annotations

from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from trigger_engine.config.settings import settings
from trigger_engine.core.scheduler.snapshot_flush_task import SnapshotFlushTask
from trigger_engine.core.scheduler.tasks import SchedulerTask
from trigger_engine.core.service.profile_store import ProfileStore
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


class SchedulerService:
    def __init__(self, store: ProfileStore, tasks: Optional[List[SchedulerTask]] = None) -> None:
        self._scheduler = AsyncIOScheduler(timezone=settings.TIMEZONE)
        self._tasks: List[SchedulerTask] = list(tasks) if tasks is not None else [SnapshotFlushTask(store)]

    @property
    def running(self) -> bool:
        return self._scheduler.running

    @property
    def tasks(self) -> List[SchedulerTask]:
        return list(self._tasks)

    def job_ids(self) -> List[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    def start(self) -> None:
        if self._scheduler.running:
            return
        for t in self._tasks:
            self._scheduler.add_job(t.run, t.trigger, id=t.id, **t.job_kwargs)
        self._scheduler.start()
        logger.info("Scheduler started with jobs: %s", self.job_ids())

    def stop(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
