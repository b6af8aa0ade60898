import pytest
from pydantic import ValidationError

from trigger_engine.core.engine.condition import evaluate
from trigger_engine.dal.datamodel.condition import (DirectionCondition, FactKey, FactType, Operator,
                                                    ThresholdCondition, VolumeCondition, WhitelistCondition)


def threshold(op: Operator, value: float, fact: FactType = FactType.MARKET_CAP) -> ThresholdCondition:
    return ThresholdCondition(id="c1", fact_type=fact, operator=op, value=value)


@pytest.mark.parametrize("op,value,expected", [
    (Operator.GT, 50_000, True),
    (Operator.GT, 60_000, False),
    (Operator.GE, 60_000, True),
    (Operator.LT, 60_000, False),
    (Operator.LE, 60_000, True),
    (Operator.EQ, 60_000, True),
    (Operator.EQ, 60_000.5, False),
])
def test_threshold_operators(op, value, expected):
    facts = {FactKey(FactType.MARKET_CAP): 60_000.0}
    assert evaluate(threshold(op, value), facts) is expected


def test_missing_fact_is_false_for_every_operator():
    for op in Operator:
        assert evaluate(threshold(op, 0), {}) is False


def test_direction_condition_matches_flag_exactly():
    sell = DirectionCondition(id="c1", fact_type=FactType.TRADE_TYPE, value=0)
    facts = {FactKey(FactType.TRADE_TYPE): 0.0}
    assert evaluate(sell, facts)
    assert not evaluate(sell, {FactKey(FactType.TRADE_TYPE): 1.0})


def test_direction_condition_rejects_non_flag_value():
    with pytest.raises(ValidationError):
        DirectionCondition(id="c1", fact_type=FactType.TRADE_TYPE, value=0.5)


def test_direction_condition_only_allows_equality():
    with pytest.raises(ValidationError):
        DirectionCondition(id="c1", fact_type=FactType.TRADE_TYPE, operator=Operator.GT, value=1)


def test_volume_condition_reads_its_timeframe():
    cond = VolumeCondition(id="c1", fact_type=FactType.BUY_VOLUME, operator=Operator.GT, value=10, timeframe=5)
    facts = {
        FactKey(FactType.BUY_VOLUME): 1.0,
        FactKey(FactType.BUY_VOLUME, 5): 12.0,
    }
    assert cond.fact_key() == FactKey(FactType.BUY_VOLUME, 5)
    assert evaluate(cond, facts)


def test_whitelist_condition_scopes_by_address():
    cond = WhitelistCondition(
        id="c1",
        fact_type=FactType.WHITELIST_ACTIVITY,
        operator=Operator.GE,
        value=2,
        whitelist_address="wallet-a",
        whitelist_fact_type=FactType.BUY_VOLUME,
        timeframe=10,
    )
    assert evaluate(cond, {FactKey(FactType.BUY_VOLUME, 10, "wallet-a"): 2.0})
    # activity of another wallet does not count
    assert not evaluate(cond, {FactKey(FactType.BUY_VOLUME, 10, "wallet-b"): 5.0})


def test_whitelist_trade_type_needs_equality_and_flag():
    with pytest.raises(ValidationError):
        WhitelistCondition(
            id="c1",
            fact_type=FactType.WHITELIST_ACTIVITY,
            operator=Operator.GT,
            value=1,
            whitelist_address="wallet-a",
            whitelist_fact_type=FactType.LAST_TRADE_TYPE,
        )


def test_whitelist_condition_requires_address():
    with pytest.raises(ValidationError):
        WhitelistCondition(id="c1", fact_type=FactType.WHITELIST_ACTIVITY, operator=Operator.GT, value=1,
                           whitelist_address="")
