from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from trigger_engine.dal.datamodel.action import Action, Direction
from trigger_engine.dal.datamodel.base import CamelModel
from trigger_engine.dal.datamodel.market_event import EventType
from trigger_engine.dal.datamodel.profile import Family
from trigger_engine.utils.helper import generate_id, now_ms


class DispatchRequest(CamelModel):
    request_id: str = Field(default_factory=lambda: generate_id("dispatch"))
    batch_id: str
    profile_id: str
    profile_family: Family
    profile_name: str
    action: Action
    resolved_amount: float
    direction: Direction
    target_wallets: List[str] = Field(default_factory=list)
    mint: Optional[str] = None
    event_type: EventType
    created_at: int = Field(default_factory=now_ms)


class DispatchResult(CamelModel):
    request_id: str
    success: bool
    error: Optional[str] = None
    tx_ref: Optional[str] = None
