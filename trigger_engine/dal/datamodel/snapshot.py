from __future__ import annotations

from typing import List

from pydantic import Field

from trigger_engine.dal.datamodel.base import CamelModel
from trigger_engine.dal.datamodel.profile import Profile, WalletList
from trigger_engine.utils.helper import now_ms


class ProfileFamilyState(CamelModel):
    """Persisted state of one profile family: its ordered profiles and auxiliary address lists."""
    profiles: List[Profile] = Field(default_factory=list)
    wallet_lists: List[WalletList] = Field(default_factory=list)


class ProfilesExport(CamelModel):
    """Portable backup of every family; key names follow the dashboard's export file."""
    sniper_profiles: List[Profile] = Field(default_factory=list)
    copytrade_profiles: List[Profile] = Field(default_factory=list)
    copytrade_wallet_lists: List[WalletList] = Field(default_factory=list)
    strategies: List[Profile] = Field(default_factory=list)
    whitelist_lists: List[WalletList] = Field(default_factory=list)
    exported_at: int = Field(default_factory=now_ms)
