from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Protocol

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.interval import IntervalTrigger

from trigger_engine.config.settings import settings
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


class SchedulerTask(Protocol):

    @property
    def id(self) -> str: ...

    @property
    def trigger(self) -> BaseTrigger: ...

    @property
    def job_kwargs(self) -> Dict[str, Any]: ...

    async def run(self) -> None: ...


class PeriodicTask(ABC):
    """
    Fixed-interval job on the engine scheduler.
    A failing run is logged and counted; the job keeps its schedule.
    """

    def __init__(self, task_id: str, every_seconds: int, *, misfire_grace_time: int = 30) -> None:
        self._id = task_id
        self.every_seconds = every_seconds
        self.misfire_grace_time = misfire_grace_time
        self.runs = 0
        self.failures = 0

    @property
    def id(self) -> str:
        return self._id

    @property
    def trigger(self) -> BaseTrigger:
        return IntervalTrigger(seconds=self.every_seconds, timezone=settings.TIMEZONE)

    @property
    def job_kwargs(self) -> Dict[str, Any]:
        # single instance; missed runs collapse into one
        return {
            "coalesce": True,
            "replace_existing": True,
            "max_instances": 1,
            "misfire_grace_time": self.misfire_grace_time,
        }

    async def run(self) -> None:
        self.runs += 1
        try:
            await self.execute()
        except Exception as e:
            self.failures += 1
            logger.error("Task %s failed (%d of %d runs): %s", self.id, self.failures, self.runs, e)

    @abstractmethod
    async def execute(self) -> None:
        raise NotImplementedError
