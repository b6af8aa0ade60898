from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import Field

from trigger_engine.dal.datamodel.base import CamelModel
from trigger_engine.dal.datamodel.condition import FactType


class Direction(StrEnum):
    BUY = "buy"
    SELL = "sell"


class ActionKind(StrEnum):
    BUY = "buy"
    SELL = "sell"
    MIRROR = "mirror"


class AmountMode(StrEnum):
    FIXED = "fixed"
    PERCENTAGE_OF_BALANCE = "percentageOfBalance"
    MULTIPLIER_OF_SOURCE_TRADE = "multiplierOfSourceTrade"
    LAST_TRADE_MULTIPLIER = "lastTradeMultiplier"
    VOLUME_MULTIPLIER = "volumeMultiplier"
    WHITELIST_VOLUME_MULTIPLIER = "whitelistVolumeMultiplier"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    TURBO = "turbo"


VolumeFactType = Literal[FactType.BUY_VOLUME, FactType.SELL_VOLUME, FactType.NET_VOLUME]


class BaseAction(CamelModel):
    id: str
    kind: ActionKind = ActionKind.BUY
    amount_parameter: float = Field(ge=0)
    # passed through untouched to the execution side
    slippage_bps: int = Field(default=500, ge=0)
    priority: Priority = Priority.MEDIUM


class FixedAmountAction(BaseAction):
    amount_mode: Literal[AmountMode.FIXED]


class BalancePercentageAction(BaseAction):
    amount_mode: Literal[AmountMode.PERCENTAGE_OF_BALANCE]


class SourceTradeMultiplierAction(BaseAction):
    amount_mode: Literal[AmountMode.MULTIPLIER_OF_SOURCE_TRADE]


class LastTradeMultiplierAction(BaseAction):
    amount_mode: Literal[AmountMode.LAST_TRADE_MULTIPLIER]


class VolumeMultiplierAction(BaseAction):
    amount_mode: Literal[AmountMode.VOLUME_MULTIPLIER]
    volume_fact_type: VolumeFactType = FactType.BUY_VOLUME
    timeframe: int = Field(default=0, ge=0)


class WhitelistVolumeMultiplierAction(BaseAction):
    amount_mode: Literal[AmountMode.WHITELIST_VOLUME_MULTIPLIER]
    volume_fact_type: VolumeFactType = FactType.BUY_VOLUME
    whitelist_address: str = Field(min_length=1)
    timeframe: int = Field(default=0, ge=0)


Action = Annotated[
    Union[
        FixedAmountAction,
        BalancePercentageAction,
        SourceTradeMultiplierAction,
        LastTradeMultiplierAction,
        VolumeMultiplierAction,
        WhitelistVolumeMultiplierAction,
    ],
    Field(discriminator="amount_mode"),
]
