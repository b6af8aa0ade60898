from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterator, Mapping, Optional, Protocol

from trigger_engine.config.settings import settings
from trigger_engine.dal.datamodel.action import Direction
from trigger_engine.dal.datamodel.condition import BUY_FLAG, SELL_FLAG, FactKey, FactType
from trigger_engine.dal.datamodel.market_event import (DeployEvent, MarketEvent, TickEvent,
                                                       TradeEvent)
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)

MS_PER_MINUTE = 60_000


class FactExtractor(Protocol):
    def extract(self, event: MarketEvent, key: FactKey) -> Optional[float]:
        ...


class EventFacts(Mapping[FactKey, float]):
    """
    Read-only view over the facts of one event.
    Facts are pulled from the extractor on first access and cached for the rest of the pass,
    so profiles sharing a condition do not re-run the extraction.
    """

    def __init__(self, extractor: FactExtractor, event: MarketEvent) -> None:
        self._extractor = extractor
        self._event = event
        self._cache: Dict[FactKey, Optional[float]] = {}

    @property
    def event(self) -> MarketEvent:
        return self._event

    def __getitem__(self, key: FactKey) -> float:
        if key not in self._cache:
            self._cache[key] = self._extractor.extract(self._event, key)
        value = self._cache[key]
        if value is None:
            raise KeyError(key)
        return value

    def __iter__(self) -> Iterator[FactKey]:
        return (k for k, v in self._cache.items() if v is not None)

    def __len__(self) -> int:
        return sum(1 for v in self._cache.values() if v is not None)


def direction_flag(direction: str) -> float:
    return BUY_FLAG if direction == Direction.BUY else SELL_FLAG


@dataclass(frozen=True)
class _TradeSample:
    timestamp: int
    direction: str
    sol_amount: float
    signer: str


class RollingFactExtractor:
    """
    Fact extractor that keeps a rolling per-mint trade window.

    `observe` must be called with every incoming event before it is evaluated; `extract`
    then answers from the event itself and the accumulated window.
    Volumes are SOL sums, token age is in minutes since the mint was first seen.
    """

    def __init__(self, window_minutes: Optional[int] = None, max_trades_per_mint: int = 1000) -> None:
        self._window_ms = (window_minutes or settings.TRADE_WINDOW_MINUTES) * MS_PER_MINUTE
        self._max_trades = max_trades_per_mint
        self._trades: Dict[str, Deque[_TradeSample]] = {}
        self._first_seen: Dict[str, int] = {}
        self._market_caps: Dict[str, float] = {}
        self._deploy_market_caps: Dict[str, float] = {}

    # ---------- ingestion ----------

    def observe(self, event: MarketEvent) -> None:
        mint = event.mint
        self._first_seen.setdefault(mint, event.timestamp)

        if isinstance(event, DeployEvent):
            self._first_seen[mint] = min(self._first_seen[mint], event.timestamp)
            if event.market_cap is not None:
                self._deploy_market_caps[mint] = event.market_cap
        if getattr(event, "market_cap", None) is not None:
            self._market_caps[mint] = event.market_cap

        if isinstance(event, TradeEvent):
            trades = self._trades.setdefault(mint, deque(maxlen=self._max_trades))
            trades.append(_TradeSample(event.timestamp, event.direction, event.sol_amount, event.signer))
            self._prune(trades, event.timestamp)

    def forget(self, mint: str) -> None:
        self._trades.pop(mint, None)
        self._first_seen.pop(mint, None)
        self._market_caps.pop(mint, None)
        self._deploy_market_caps.pop(mint, None)

    def _prune(self, trades: Deque[_TradeSample], now: int) -> None:
        while trades and now - trades[0].timestamp > self._window_ms:
            trades.popleft()

    # ---------- extraction ----------

    def extract(self, event: MarketEvent, key: FactKey) -> Optional[float]:
        match key.fact_type:
            case FactType.TRADE_SIZE:
                if isinstance(event, TradeEvent):
                    return event.sol_amount
                if isinstance(event, DeployEvent):
                    return event.creator_buy_sol
                return None
            case FactType.TRADE_TYPE:
                return direction_flag(event.direction) if isinstance(event, TradeEvent) else None
            case FactType.MARKET_CAP:
                current = getattr(event, "market_cap", None)
                return current if current is not None else self._market_caps.get(event.mint)
            case FactType.MARKET_CAP_AT_DEPLOY:
                if isinstance(event, DeployEvent) and event.market_cap is not None:
                    return event.market_cap
                return self._deploy_market_caps.get(event.mint)
            case FactType.TOKEN_AGE:
                first_seen = self._first_seen.get(event.mint)
                if first_seen is None:
                    return None
                return max(0, event.timestamp - first_seen) / MS_PER_MINUTE
            case FactType.SIGNER_BALANCE:
                return getattr(event, "signer_balance", None)
            case FactType.PRICE_CHANGE:
                return event.price_change if isinstance(event, TickEvent) else None
            case FactType.BUY_VOLUME | FactType.SELL_VOLUME | FactType.NET_VOLUME:
                return self._volume(event, key)
            case FactType.LAST_TRADE_AMOUNT | FactType.LAST_TRADE_TYPE:
                return self._last_trade(event, key)
            case _:
                logger.debug("No extraction for fact %s", key.fact_type)
                return None

    def _window(self, event: MarketEvent, key: FactKey) -> list[_TradeSample]:
        trades = self._trades.get(event.mint)
        if not trades:
            return []
        since = event.timestamp - key.timeframe * MS_PER_MINUTE if key.timeframe else None
        return [
            t for t in trades
            if t.timestamp <= event.timestamp
            and (since is None or t.timestamp >= since)
            and (key.address is None or t.signer == key.address)
        ]

    def _volume(self, event: MarketEvent, key: FactKey) -> Optional[float]:
        if isinstance(event, TickEvent) and key.timeframe == 0 and key.address is None:
            tick = self._tick_volume(event, key.fact_type)
            if tick is not None:
                return tick

        window = self._window(event, key)
        if not window:
            return None
        buys = sum(t.sol_amount for t in window if t.direction == Direction.BUY)
        sells = sum(t.sol_amount for t in window if t.direction == Direction.SELL)
        if key.fact_type == FactType.BUY_VOLUME:
            return buys
        if key.fact_type == FactType.SELL_VOLUME:
            return sells
        return buys - sells

    @staticmethod
    def _tick_volume(event: TickEvent, fact_type: FactType) -> Optional[float]:
        if fact_type == FactType.BUY_VOLUME:
            return event.buy_volume
        if fact_type == FactType.SELL_VOLUME:
            return event.sell_volume
        if event.buy_volume is None or event.sell_volume is None:
            return None
        return event.buy_volume - event.sell_volume

    def _last_trade(self, event: MarketEvent, key: FactKey) -> Optional[float]:
        window = self._window(event, key)
        if not window:
            return None
        last = window[-1]
        if key.fact_type == FactType.LAST_TRADE_AMOUNT:
            return last.sol_amount
        return direction_flag(last.direction)
