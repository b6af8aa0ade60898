from typing import Dict, List, Optional

import pytest

from trigger_engine.core.engine.evaluator import Evaluator
from trigger_engine.core.service.profile_store import ProfileStore
from trigger_engine.dal.datamodel.condition import FactKey
from trigger_engine.dal.datamodel.dispatch import DispatchRequest
from trigger_engine.dal.datamodel.execution_log import ExecutionLog
from trigger_engine.dal.datamodel.market_event import MarketEvent


class FakeExtractor:
    def __init__(self, facts: Optional[Dict[FactKey, float]] = None):
        self.facts: Dict[FactKey, float] = dict(facts or {})
        self.calls: List[FactKey] = []

    def extract(self, event: MarketEvent, key: FactKey) -> Optional[float]:
        self.calls.append(key)
        return self.facts.get(key)


class FakeDispatcher:
    def __init__(self):
        self.batches: List[List[DispatchRequest]] = []

    async def dispatch(self, requests: List[DispatchRequest]) -> None:
        self.batches.append(list(requests))


class FakeLogSink:
    def __init__(self):
        self.logs: List[ExecutionLog] = []

    async def append(self, log: ExecutionLog) -> None:
        self.logs.append(log)


@pytest.fixture
def store() -> ProfileStore:
    return ProfileStore()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def log_sink() -> FakeLogSink:
    return FakeLogSink()


@pytest.fixture
def evaluator(store, extractor, dispatcher, log_sink) -> Evaluator:
    return Evaluator(store, extractor, dispatcher, log_sink=log_sink)
