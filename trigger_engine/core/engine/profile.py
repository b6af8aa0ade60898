from typing import Mapping, Optional

from trigger_engine.core.engine.condition import evaluate
from trigger_engine.dal.datamodel.condition import FactKey
from trigger_engine.dal.datamodel.profile import BaseProfile, ConditionLogic, CooldownUnit

_UNIT_MS = {
    CooldownUnit.MILLISECONDS: 1,
    CooldownUnit.SECONDS: 1_000,
    CooldownUnit.MINUTES: 60_000,
}


def cooldown_ms(profile: BaseProfile) -> int:
    return profile.cooldown * _UNIT_MS[CooldownUnit(profile.cooldown_unit)]


def is_eligible(
        profile: BaseProfile,
        now: int,
        *,
        pending_executions: int = 0,
        last_attempt_at: Optional[int] = None,
) -> bool:
    """
    Cheap checks in order: active flag, execution cap, cooldown.
    - pending_executions: in-flight firings not yet reflected in execution_count
    - last_attempt_at: latest in-flight attempt, gates the cooldown like last_executed_at
    """
    if not profile.is_active:
        return False

    if profile.max_executions is not None:
        if profile.execution_count + pending_executions >= profile.max_executions:
            return False

    last = max(
        (ts for ts in (profile.last_executed_at, last_attempt_at) if ts is not None),
        default=None,
    )
    if last is not None and now - last < cooldown_ms(profile):
        return False

    return True


def matches(profile: BaseProfile, facts: Mapping[FactKey, float]) -> bool:
    # AND over nothing holds; OR over nothing does not
    if profile.condition_logic == ConditionLogic.OR:
        return any(evaluate(c, facts) for c in profile.conditions)
    return all(evaluate(c, facts) for c in profile.conditions)
