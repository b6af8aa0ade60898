"""Default profiles and parts, as the dashboard's builders create them."""
from typing import Iterable, Optional

from trigger_engine.dal.datamodel.action import (ActionKind, AmountMode, BalancePercentageAction, FixedAmountAction,
                                                 Priority, SourceTradeMultiplierAction)
from trigger_engine.dal.datamodel.condition import FactType, Operator, ThresholdCondition
from trigger_engine.dal.datamodel.profile import (AutomateProfile, CooldownUnit, CopyTradeMode, CopyTradeProfile,
                                                  Family, SimpleCopyConfig, SniperEventType, SniperFilter,
                                                  SniperProfile, WalletList)
from trigger_engine.utils.helper import generate_id, generate_profile_id


def new_sniper_profile(name: str = "New Sniper") -> SniperProfile:
    return SniperProfile(
        id=generate_profile_id(Family.SNIPER),
        name=name,
        event_type=SniperEventType.DEPLOY,
        actions=[
            FixedAmountAction(
                id=generate_id("action"),
                kind=ActionKind.BUY,
                amount_mode=AmountMode.FIXED,
                amount_parameter=0.01,
                slippage_bps=1500,
                priority=Priority.HIGH,
            )
        ],
        cooldown=1000,
        cooldown_unit=CooldownUnit.MILLISECONDS,
    )


def new_sniper_filter() -> SniperFilter:
    return SniperFilter(id=generate_id("sniper_filter"))


def new_copytrade_profile(name: str = "New Copy Trade") -> CopyTradeProfile:
    return CopyTradeProfile(
        id=generate_profile_id(Family.COPYTRADE),
        name=name,
        mode=CopyTradeMode.SIMPLE,
        simple_config=SimpleCopyConfig(),
        cooldown=5,
        cooldown_unit=CooldownUnit.SECONDS,
    )


def new_copytrade_condition() -> ThresholdCondition:
    return ThresholdCondition(id=generate_id("cond"), fact_type=FactType.TRADE_SIZE, operator=Operator.GT, value=0.1)


def new_copytrade_action() -> SourceTradeMultiplierAction:
    return SourceTradeMultiplierAction(
        id=generate_id("action"),
        kind=ActionKind.MIRROR,
        amount_mode=AmountMode.MULTIPLIER_OF_SOURCE_TRADE,
        amount_parameter=1.0,
    )


def new_automate_profile(name: str = "New Strategy") -> AutomateProfile:
    return AutomateProfile(
        id=generate_profile_id(Family.AUTOMATE),
        name=name,
        cooldown=5,
        cooldown_unit=CooldownUnit.MINUTES,
    )


def new_automate_condition() -> ThresholdCondition:
    return ThresholdCondition(id=generate_id("cond"), fact_type=FactType.MARKET_CAP, operator=Operator.GT,
                              value=1_000_000)


def new_automate_action() -> BalancePercentageAction:
    return BalancePercentageAction(
        id=generate_id("action"),
        kind=ActionKind.BUY,
        amount_mode=AmountMode.PERCENTAGE_OF_BALANCE,
        amount_parameter=10,
    )


def new_wallet_list(name: str, addresses: Iterable[str], list_id: Optional[str] = None) -> WalletList:
    return WalletList(id=list_id or generate_id("wlist"), name=name.strip(), addresses=list(addresses))
