import operator
from typing import Callable, Dict, Mapping

from trigger_engine.dal.datamodel.condition import BaseCondition, FactKey, Operator

_COMPARATORS: Dict[Operator, Callable[[float, float], bool]] = {
    Operator.GT: operator.gt,
    Operator.LT: operator.lt,
    Operator.EQ: operator.eq,
    Operator.GE: operator.ge,
    Operator.LE: operator.le,
}


def evaluate(condition: BaseCondition, facts: Mapping[FactKey, float]) -> bool:
    """
    Compare the condition's fact against its threshold.
    A fact the extractor cannot provide makes the condition false.
    Equality is exact; direction facts are always emitted as exactly 1.0 or 0.0.
    """
    value = facts.get(condition.fact_key())
    if value is None:
        return False
    compare = _COMPARATORS[Operator(condition.operator)]
    return compare(float(value), float(condition.value))
