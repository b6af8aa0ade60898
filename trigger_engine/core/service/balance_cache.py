from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence

from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)


class WalletBalanceCache:
    """
    In-memory wallet balances used to resolve percentage-of-balance amounts.

    Lookups never touch the network; BalanceRefreshTask replaces the contents periodically.
    For several wallets the smallest known balance is used, so the amount is affordable by each of them.
    """

    def __init__(self, balances: Optional[Mapping[str, float]] = None) -> None:
        self._balances: Dict[str, float] = dict(balances or {})

    def __call__(self, wallets: Sequence[str]) -> Optional[float]:
        known = [self._balances[w] for w in wallets if w in self._balances]
        return min(known) if known else None

    def get(self, wallet: str) -> Optional[float]:
        return self._balances.get(wallet)

    def set(self, wallet: str, balance: float) -> None:
        self._balances[wallet] = balance

    def replace(self, balances: Mapping[str, float]) -> None:
        self._balances = dict(balances)
        logger.debug("Balance cache refreshed with %d wallet(s)", len(self._balances))

    def __len__(self) -> int:
        return len(self._balances)
