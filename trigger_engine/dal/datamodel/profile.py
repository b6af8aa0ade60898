from __future__ import annotations

from enum import StrEnum
from typing import Annotated, ClassVar, List, Literal, Optional, Union

from pydantic import Field, model_validator

from trigger_engine.dal.datamodel.action import (Action, ActionKind, AmountMode, Priority,
                                                 SourceTradeMultiplierAction, WhitelistVolumeMultiplierAction)
from trigger_engine.dal.datamodel.base import CamelModel
from trigger_engine.dal.datamodel.condition import Condition, FactType, WhitelistCondition
from trigger_engine.utils.helper import now_ms


class Family(StrEnum):
    SNIPER = "sniper"
    COPYTRADE = "copytrade"
    AUTOMATE = "automate"


class ConditionLogic(StrEnum):
    AND = "and"
    OR = "or"


class CooldownUnit(StrEnum):
    MILLISECONDS = "milliseconds"
    SECONDS = "seconds"
    MINUTES = "minutes"


class SniperEventType(StrEnum):
    DEPLOY = "deploy"
    MIGRATION = "migration"
    BOTH = "both"


class FilterMatchType(StrEnum):
    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"


class CopyTradeMode(StrEnum):
    SIMPLE = "simple"
    ADVANCED = "advanced"


class TokenFilterMode(StrEnum):
    ALL = "all"
    SPECIFIC = "specific"


class WalletList(CamelModel):
    id: str
    name: str
    addresses: List[str] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    def touch(self) -> None:
        self.updated_at = now_ms()


class SniperFilter(CamelModel):
    id: str
    enabled: bool = True
    platform: Optional[str] = None
    mint: Optional[str] = None
    signer: Optional[str] = None
    name_pattern: Optional[str] = None
    name_match_type: FilterMatchType = FilterMatchType.CONTAINS
    symbol_pattern: Optional[str] = None
    symbol_match_type: FilterMatchType = FilterMatchType.CONTAINS


class SimpleCopyConfig(CamelModel):
    amount_multiplier: float = Field(default=1.0, ge=0)
    slippage_bps: int = Field(default=500, ge=0)
    priority: Priority = Priority.MEDIUM
    mirror_trade_type: bool = True


class BaseProfile(CamelModel):
    id: str
    name: str
    description: str = ""
    is_active: bool = False
    conditions: List[Condition] = Field(default_factory=list)
    condition_logic: ConditionLogic = ConditionLogic.AND
    actions: List[Action] = Field(default_factory=list)
    cooldown: int = Field(default=0, ge=0)
    cooldown_unit: CooldownUnit = CooldownUnit.MILLISECONDS
    max_executions: Optional[int] = Field(default=None, ge=0)
    execution_count: int = Field(default=0, ge=0)
    last_executed_at: Optional[int] = None
    wallet_addresses: List[str] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    # fact types and amount modes this family may reference
    allowed_facts: ClassVar[frozenset] = frozenset()
    allowed_amount_modes: ClassVar[frozenset] = frozenset()
    allows_mirror: ClassVar[bool] = False

    @model_validator(mode="after")
    def _check_family_scope(self):
        for kind, items in (("condition", self.conditions), ("action", self.actions)):
            seen = set()
            for item in items:
                if item.id in seen:
                    raise ValueError(f"duplicate {kind} id '{item.id}'")
                seen.add(item.id)
        for condition in self.conditions:
            if condition.fact_type not in self.allowed_facts:
                raise ValueError(f"{self.family} profiles cannot use condition '{condition.fact_type}'")
        for action in self.actions:
            if action.amount_mode not in self.allowed_amount_modes:
                raise ValueError(f"{self.family} profiles cannot use amount mode '{action.amount_mode}'")
            if action.kind == ActionKind.MIRROR and not self.allows_mirror:
                raise ValueError(f"{self.family} profiles cannot use mirror actions")
        return self

    def effective_actions(self) -> List[Action]:
        return list(self.actions)

    def touch(self) -> None:
        self.updated_at = now_ms()


class SniperProfile(BaseProfile):
    family: Literal[Family.SNIPER] = Family.SNIPER
    event_type: SniperEventType = SniperEventType.DEPLOY
    filters: List[SniperFilter] = Field(default_factory=list)

    allowed_facts: ClassVar[frozenset] = frozenset({
        FactType.MARKET_CAP_AT_DEPLOY,
        FactType.MARKET_CAP,
        FactType.TRADE_SIZE,
        FactType.TOKEN_AGE,
        FactType.SIGNER_BALANCE,
    })
    allowed_amount_modes: ClassVar[frozenset] = frozenset({
        AmountMode.FIXED,
        AmountMode.PERCENTAGE_OF_BALANCE,
    })
    allows_mirror: ClassVar[bool] = False


class CopyTradeProfile(BaseProfile):
    family: Literal[Family.COPYTRADE] = Family.COPYTRADE
    mode: CopyTradeMode = CopyTradeMode.ADVANCED
    simple_config: Optional[SimpleCopyConfig] = None
    monitored_wallets: List[str] = Field(default_factory=list)
    wallet_list_id: Optional[str] = None
    token_filter_mode: TokenFilterMode = TokenFilterMode.ALL
    specific_tokens: List[str] = Field(default_factory=list)
    blacklisted_tokens: List[str] = Field(default_factory=list)

    allowed_facts: ClassVar[frozenset] = frozenset({
        FactType.TRADE_SIZE,
        FactType.TRADE_TYPE,
        FactType.MARKET_CAP,
        FactType.TOKEN_AGE,
        FactType.SIGNER_BALANCE,
    })
    allowed_amount_modes: ClassVar[frozenset] = frozenset({
        AmountMode.FIXED,
        AmountMode.PERCENTAGE_OF_BALANCE,
        AmountMode.MULTIPLIER_OF_SOURCE_TRADE,
    })
    allows_mirror: ClassVar[bool] = True

    def effective_actions(self) -> List[Action]:
        if self.mode != CopyTradeMode.SIMPLE:
            return list(self.actions)
        config = self.simple_config or SimpleCopyConfig()
        return [
            SourceTradeMultiplierAction(
                id=f"{self.id}_simple",
                kind=ActionKind.MIRROR if config.mirror_trade_type else ActionKind.BUY,
                amount_mode=AmountMode.MULTIPLIER_OF_SOURCE_TRADE,
                amount_parameter=config.amount_multiplier,
                slippage_bps=config.slippage_bps,
                priority=config.priority,
            )
        ]


class AutomateProfile(BaseProfile):
    family: Literal[Family.AUTOMATE] = Family.AUTOMATE
    token_addresses: List[str] = Field(default_factory=list)
    whitelisted_addresses: List[str] = Field(default_factory=list)

    allowed_facts: ClassVar[frozenset] = frozenset({
        FactType.MARKET_CAP,
        FactType.TOKEN_AGE,
        FactType.PRICE_CHANGE,
        FactType.BUY_VOLUME,
        FactType.SELL_VOLUME,
        FactType.NET_VOLUME,
        FactType.LAST_TRADE_AMOUNT,
        FactType.LAST_TRADE_TYPE,
        FactType.WHITELIST_ACTIVITY,
    })
    allowed_amount_modes: ClassVar[frozenset] = frozenset({
        AmountMode.FIXED,
        AmountMode.PERCENTAGE_OF_BALANCE,
        AmountMode.LAST_TRADE_MULTIPLIER,
        AmountMode.VOLUME_MULTIPLIER,
        AmountMode.WHITELIST_VOLUME_MULTIPLIER,
    })
    allows_mirror: ClassVar[bool] = False

    @model_validator(mode="after")
    def _check_whitelist(self):
        # whitelist conditions and actions may only watch declared addresses
        allowed = set(self.whitelisted_addresses)
        for item in [*self.conditions, *self.actions]:
            if isinstance(item, (WhitelistCondition, WhitelistVolumeMultiplierAction)) \
                    and item.whitelist_address not in allowed:
                raise ValueError(f"whitelist address '{item.whitelist_address}' of {item.id} "
                                 f"is not in whitelistedAddresses")
        return self


Profile = Annotated[
    Union[SniperProfile, CopyTradeProfile, AutomateProfile],
    Field(discriminator="family"),
]
