from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, model_validator

from trigger_engine.dal.datamodel.base import CamelModel


class FactType(StrEnum):
    TRADE_SIZE = "tradeSize"
    TRADE_TYPE = "tradeType"
    MARKET_CAP = "marketCap"
    MARKET_CAP_AT_DEPLOY = "marketCapAtDeploy"
    TOKEN_AGE = "tokenAge"
    SIGNER_BALANCE = "signerBalance"
    PRICE_CHANGE = "priceChange"
    BUY_VOLUME = "buyVolume"
    SELL_VOLUME = "sellVolume"
    NET_VOLUME = "netVolume"
    LAST_TRADE_AMOUNT = "lastTradeAmount"
    LAST_TRADE_TYPE = "lastTradeType"
    WHITELIST_ACTIVITY = "whitelistActivity"


VOLUME_FACTS = {FactType.BUY_VOLUME, FactType.SELL_VOLUME, FactType.NET_VOLUME}
DIRECTION_FACTS = {FactType.TRADE_TYPE, FactType.LAST_TRADE_TYPE}

# direction facts are emitted as exactly one of these
BUY_FLAG = 1.0
SELL_FLAG = 0.0


class Operator(StrEnum):
    GT = ">"
    LT = "<"
    EQ = "="
    GE = ">="
    LE = "<="


@dataclass(frozen=True)
class FactKey:
    """Selects one fact: its type, aggregation window in minutes and optional address scope."""
    fact_type: FactType
    timeframe: int = 0
    address: Optional[str] = None


class BaseCondition(CamelModel):
    id: str
    operator: Operator
    value: float

    def fact_key(self) -> FactKey:
        raise NotImplementedError


class ThresholdCondition(BaseCondition):
    fact_type: Literal[
        FactType.TRADE_SIZE,
        FactType.MARKET_CAP,
        FactType.MARKET_CAP_AT_DEPLOY,
        FactType.TOKEN_AGE,
        FactType.SIGNER_BALANCE,
        FactType.LAST_TRADE_AMOUNT,
        FactType.PRICE_CHANGE,
    ]

    def fact_key(self) -> FactKey:
        return FactKey(FactType(self.fact_type))


class VolumeCondition(BaseCondition):
    fact_type: Literal[FactType.BUY_VOLUME, FactType.SELL_VOLUME, FactType.NET_VOLUME]
    timeframe: int = Field(default=0, ge=0)

    def fact_key(self) -> FactKey:
        return FactKey(FactType(self.fact_type), self.timeframe)


class DirectionCondition(BaseCondition):
    fact_type: Literal[FactType.TRADE_TYPE, FactType.LAST_TRADE_TYPE]
    operator: Literal[Operator.EQ] = Operator.EQ

    @model_validator(mode="after")
    def _check_flag(self):
        if self.value not in (BUY_FLAG, SELL_FLAG):
            raise ValueError("direction conditions compare against 1 (buy) or 0 (sell)")
        return self

    def fact_key(self) -> FactKey:
        return FactKey(FactType(self.fact_type))


class WhitelistCondition(BaseCondition):
    fact_type: Literal[FactType.WHITELIST_ACTIVITY]
    whitelist_address: str = Field(min_length=1)
    whitelist_fact_type: Literal[
        FactType.BUY_VOLUME,
        FactType.SELL_VOLUME,
        FactType.NET_VOLUME,
        FactType.LAST_TRADE_AMOUNT,
        FactType.LAST_TRADE_TYPE,
    ] = FactType.BUY_VOLUME
    timeframe: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_direction_flag(self):
        if self.whitelist_fact_type == FactType.LAST_TRADE_TYPE:
            if self.operator != Operator.EQ or self.value not in (BUY_FLAG, SELL_FLAG):
                raise ValueError("whitelist trade type compares with '=' against 1 (buy) or 0 (sell)")
        return self

    def fact_key(self) -> FactKey:
        return FactKey(FactType(self.whitelist_fact_type), self.timeframe, self.whitelist_address)


Condition = Annotated[
    Union[ThresholdCondition, VolumeCondition, DirectionCondition, WhitelistCondition],
    Field(discriminator="fact_type"),
]
