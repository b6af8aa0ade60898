from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from trigger_engine.dal.datamodel.action import ActionKind, AmountMode, BaseAction, Direction
from trigger_engine.dal.datamodel.condition import FactKey, FactType


@dataclass(frozen=True)
class AmountContext:
    wallet_balance: Optional[float] = None
    source_trade_amount: Optional[float] = None
    last_trade_amount: Optional[float] = None
    facts: Mapping[FactKey, float] = field(default_factory=dict)

    def aggregated_volume(self, fact_type: FactType, timeframe: int = 0, address: Optional[str] = None) -> Optional[float]:
        return self.facts.get(FactKey(FactType(fact_type), timeframe, address))


@dataclass(frozen=True)
class Effect:
    direction: Direction
    amount: float


def _or_zero(value: Optional[float]) -> float:
    return float(value) if value is not None else 0.0


def resolve_amount(action: BaseAction, context: AmountContext) -> float:
    """No clamping against balances; the execution side reports insufficient funds."""
    param = action.amount_parameter
    match action.amount_mode:
        case AmountMode.FIXED:
            return param
        case AmountMode.PERCENTAGE_OF_BALANCE:
            return _or_zero(context.wallet_balance) * param / 100
        case AmountMode.MULTIPLIER_OF_SOURCE_TRADE:
            return _or_zero(context.source_trade_amount) * param
        case AmountMode.LAST_TRADE_MULTIPLIER:
            return _or_zero(context.last_trade_amount) * param
        case AmountMode.VOLUME_MULTIPLIER:
            return _or_zero(context.aggregated_volume(action.volume_fact_type, action.timeframe)) * param
        case AmountMode.WHITELIST_VOLUME_MULTIPLIER:
            volume = context.aggregated_volume(action.volume_fact_type, action.timeframe, action.whitelist_address)
            return _or_zero(volume) * param
        case _:
            raise ValueError(f"Unknown amount mode: {action.amount_mode}")


def resolve_effect(action: BaseAction, trigger_direction: Optional[str], context: AmountContext) -> Optional[Effect]:
    """Mirror follows the triggering trade; without one there is nothing to mirror."""
    if action.kind == ActionKind.MIRROR:
        if trigger_direction is None:
            return None
        direction = Direction(trigger_direction)
    else:
        direction = Direction(action.kind)
    return Effect(direction=direction, amount=resolve_amount(action, context))
