from __future__ import annotations

from typing import Optional

from pydantic import Field

from trigger_engine.dal.datamodel.action import Direction
from trigger_engine.dal.datamodel.base import CamelModel
from trigger_engine.dal.datamodel.profile import Family
from trigger_engine.utils.helper import generate_id, now_ms


class ExecutionLog(CamelModel):
    id: str = Field(default_factory=lambda: generate_id("log"))
    profile_id: str
    profile_name: str
    family: Family
    request_id: str
    direction: Direction
    amount: float
    mint: Optional[str] = None
    wallet_addresses: list[str] = Field(default_factory=list)
    success: bool
    error: Optional[str] = None
    tx_ref: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)
