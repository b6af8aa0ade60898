import re
from typing import Mapping, Optional

from trigger_engine.dal.datamodel.market_event import (DeployEvent, EventType, MarketEvent, MigrationEvent,
                                                       TickEvent, TradeEvent)
from trigger_engine.dal.datamodel.profile import (AutomateProfile, BaseProfile, CopyTradeProfile,
                                                  FilterMatchType, SniperEventType, SniperFilter, SniperProfile,
                                                  TokenFilterMode, WalletList)
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


# ---------- sniper ----------

def _text_matches(value: Optional[str], pattern: str, match_type: str) -> bool:
    if value is None:
        return False
    match match_type:
        case FilterMatchType.EXACT:
            return value.lower() == pattern.lower()
        case FilterMatchType.REGEX:
            try:
                return re.search(pattern, value) is not None
            except re.error as e:
                logger.warning("Invalid sniper filter regex %r: %s", pattern, e)
                return False
        case _:
            return pattern.lower() in value.lower()


def filter_matches(flt: SniperFilter, event: DeployEvent | MigrationEvent) -> bool:
    """Every populated field of the filter must match the event."""
    if flt.platform and (event.platform or "").lower() != flt.platform.lower():
        return False
    if flt.mint and event.mint != flt.mint:
        return False

    signer = getattr(event, "signer", None)
    if flt.signer and signer != flt.signer:
        return False
    if flt.name_pattern and not _text_matches(getattr(event, "name", None), flt.name_pattern, flt.name_match_type):
        return False
    if flt.symbol_pattern and not _text_matches(getattr(event, "symbol", None), flt.symbol_pattern,
                                                flt.symbol_match_type):
        return False
    return True


def sniper_in_scope(profile: SniperProfile, event: MarketEvent) -> bool:
    if not isinstance(event, (DeployEvent, MigrationEvent)):
        return False
    if profile.event_type != SniperEventType.BOTH and profile.event_type != event.type:
        return False

    enabled = [f for f in profile.filters if f.enabled]
    if not enabled:
        return True
    return any(filter_matches(f, event) for f in enabled)


# ---------- copy trade ----------

def monitored_wallets(profile: CopyTradeProfile, wallet_lists: Mapping[str, WalletList]) -> set[str]:
    wallets = set(profile.monitored_wallets)
    if profile.wallet_list_id and profile.wallet_list_id in wallet_lists:
        wallets.update(wallet_lists[profile.wallet_list_id].addresses)
    return wallets


def copytrade_in_scope(profile: CopyTradeProfile, event: MarketEvent,
                       wallet_lists: Mapping[str, WalletList]) -> bool:
    if not isinstance(event, TradeEvent):
        return False
    if event.signer not in monitored_wallets(profile, wallet_lists):
        return False
    if event.mint in profile.blacklisted_tokens:
        return False
    if profile.token_filter_mode == TokenFilterMode.SPECIFIC and event.mint not in profile.specific_tokens:
        return False
    return True


# ---------- automate ----------

def automate_in_scope(profile: AutomateProfile, event: MarketEvent) -> bool:
    if not isinstance(event, (TradeEvent, TickEvent)):
        return False
    return not profile.token_addresses or event.mint in profile.token_addresses


def in_scope(profile: BaseProfile, event: MarketEvent, wallet_lists: Mapping[str, WalletList]) -> bool:
    match profile:
        case SniperProfile():
            return sniper_in_scope(profile, event)
        case CopyTradeProfile():
            return copytrade_in_scope(profile, event, wallet_lists)
        case AutomateProfile():
            return automate_in_scope(profile, event)
        case _:
            raise ValueError(f"Unknown profile family: {type(profile).__name__}")


def trigger_direction(event: MarketEvent) -> Optional[str]:
    return event.direction if event.type == EventType.TRADE else None
