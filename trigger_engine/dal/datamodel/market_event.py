from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from trigger_engine.dal.datamodel.action import Direction
from trigger_engine.dal.datamodel.base import CamelModel
from trigger_engine.utils.helper import now_ms


class EventType(StrEnum):
    DEPLOY = "deploy"
    MIGRATION = "migration"
    TRADE = "trade"
    TICK = "tick"


class BaseEvent(CamelModel):
    timestamp: int = Field(default_factory=now_ms)
    mint: str


class DeployEvent(BaseEvent):
    type: Literal[EventType.DEPLOY] = EventType.DEPLOY
    platform: str
    signer: str
    name: str = ""
    symbol: str = ""
    uri: str = ""
    slot: int = 0
    creator_buy_sol: Optional[float] = None
    creator_buy_tokens: Optional[float] = None
    creator_buy_price: Optional[float] = None
    market_cap: Optional[float] = None
    signer_balance: Optional[float] = None


class MigrationEvent(BaseEvent):
    type: Literal[EventType.MIGRATION] = EventType.MIGRATION
    platform: str
    slot: int = 0


class TradeEvent(BaseEvent):
    type: Literal[EventType.TRADE] = EventType.TRADE
    direction: Direction
    signer: str
    token_amount: float = 0
    sol_amount: float
    price: float = 0
    market_cap: Optional[float] = None
    signature: str = ""
    signer_balance: Optional[float] = None


class TickEvent(BaseEvent):
    type: Literal[EventType.TICK] = EventType.TICK
    market_cap: Optional[float] = None
    price: Optional[float] = None
    buy_volume: Optional[float] = None
    sell_volume: Optional[float] = None
    price_change: Optional[float] = None


MarketEvent = Annotated[
    Union[DeployEvent, MigrationEvent, TradeEvent, TickEvent],
    Field(discriminator="type"),
]

MARKET_EVENT_ADAPTER: TypeAdapter[MarketEvent] = TypeAdapter(MarketEvent)


def parse_event(raw: str | bytes | dict) -> MarketEvent:
    if isinstance(raw, dict):
        return MARKET_EVENT_ADAPTER.validate_python(raw)
    return MARKET_EVENT_ADAPTER.validate_json(raw)
