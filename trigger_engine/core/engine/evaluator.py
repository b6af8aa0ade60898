from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from trigger_engine.config.settings import settings
from trigger_engine.core.engine.action import AmountContext, resolve_effect
from trigger_engine.core.engine.facts import EventFacts, FactExtractor
from trigger_engine.core.engine.profile import is_eligible, matches
from trigger_engine.core.engine.scope import in_scope, trigger_direction
from trigger_engine.core.observability.metrics import (DISPATCH_REQUESTS, DISPATCH_RESULTS, EVALUATION_LATENCY,
                                                        EVENTS_EVALUATED)
from trigger_engine.core.service.profile_store import ProfileNotFoundError, ProfileStore
from trigger_engine.dal.datamodel.action import AmountMode
from trigger_engine.dal.datamodel.condition import FactKey, FactType
from trigger_engine.dal.datamodel.dispatch import DispatchRequest, DispatchResult
from trigger_engine.dal.datamodel.execution_log import ExecutionLog
from trigger_engine.dal.datamodel.market_event import MarketEvent, TradeEvent
from trigger_engine.dal.datamodel.profile import BaseProfile
from trigger_engine.utils.helper import generate_id
from trigger_engine.utils.logger import setup_logger

logger = setup_logger(__name__)

# answered from memory (see WalletBalanceCache); called under the evaluation lock
BalanceProvider = Callable[[Sequence[str]], Optional[float]]


class Dispatcher(Protocol):
    async def dispatch(self, requests: List[DispatchRequest]) -> None:
        """Hand over one profile's batch; must not wait for execution."""
        ...


class ExecutionLogSink(Protocol):
    async def append(self, log: ExecutionLog) -> None:
        ...


@dataclass
class PendingBatch:
    batch_id: str
    family: str
    profile_id: str
    attempted_at: int
    outstanding: set[str] = field(default_factory=set)
    outcome_recorded: bool = False
    succeeded: bool = False


@dataclass(frozen=True)
class PreviewResult:
    profile_id: str
    family: str
    in_scope: bool
    eligible: bool
    matched: bool
    requests: List[DispatchRequest] = field(default_factory=list)


class Evaluator:
    """
    Evaluates each incoming event against the profile set and emits dispatch batches.

    Cooldown and cap are accounted per firing (one batch per profile per event):
    - last_executed_at takes the batch's attempt time on its first reported outcome, success or not
    - execution_count grows by one on the batch's first success
    - until then the in-flight batch gates the cooldown and counts against max_executions
    - a batch the dispatcher rejects is settled at once as a failed attempt
    - a batch with no result after the pending TTL is dropped and counted as a failed attempt
    """

    def __init__(
            self,
            store: ProfileStore,
            extractor: FactExtractor,
            dispatcher: Dispatcher,
            *,
            balance_provider: Optional[BalanceProvider] = None,
            log_sink: Optional[ExecutionLogSink] = None,
            pending_ttl_ms: Optional[int] = None,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._dispatcher = dispatcher
        self._balance_provider = balance_provider
        self._log_sink = log_sink
        self._pending_ttl_ms = pending_ttl_ms or settings.PENDING_DISPATCH_TTL_SECONDS * 1000
        self._lock = asyncio.Lock()
        self._pending: Dict[tuple[str, str], Dict[str, PendingBatch]] = {}
        self._requests: Dict[str, tuple[PendingBatch, DispatchRequest]] = {}

    # ---------- ledger ----------

    def pending_batches(self, family: str, profile_id: str) -> List[PendingBatch]:
        return list(self._pending.get((str(family), profile_id), {}).values())

    def _stale(self, batch: PendingBatch, now: int) -> bool:
        return now - batch.attempted_at > self._pending_ttl_ms

    def _eligible(self, profile: BaseProfile, now: int) -> bool:
        batches = [b for b in self.pending_batches(profile.family, profile.id) if not self._stale(b, now)]
        return is_eligible(
            profile,
            now,
            pending_executions=sum(1 for b in batches if not b.succeeded),
            last_attempt_at=max((b.attempted_at for b in batches), default=None),
        )

    def _register(self, requests: List[DispatchRequest], now: int) -> None:
        first = requests[0]
        batch = PendingBatch(first.batch_id, str(first.profile_family), first.profile_id, now,
                             {r.request_id for r in requests})
        self._pending.setdefault((batch.family, batch.profile_id), {})[batch.batch_id] = batch
        for request in requests:
            self._requests[request.request_id] = (batch, request)

    def _settle(self, batch: PendingBatch) -> None:
        key = (batch.family, batch.profile_id)
        batches = self._pending.get(key, {})
        batches.pop(batch.batch_id, None)
        if not batches:
            self._pending.pop(key, None)

    def _record(self, batch: PendingBatch, *, attempted_at: Optional[int], succeeded: bool) -> None:
        try:
            self._store.record_firing(batch.profile_id, family=batch.family, attempted_at=attempted_at,
                                      succeeded=succeeded)
        except ProfileNotFoundError:
            logger.info("Profile %s was removed before its dispatch result arrived", batch.profile_id)

    def _expire_stale(self, now: int) -> None:
        for batches in list(self._pending.values()):
            for batch in list(batches.values()):
                if not self._stale(batch, now):
                    continue
                logger.warning("No result for batch %s of profile %s after %d ms; counting it as a failed attempt",
                               batch.batch_id, batch.profile_id, now - batch.attempted_at)
                for request_id in batch.outstanding:
                    self._requests.pop(request_id, None)
                if not batch.outcome_recorded:
                    self._record(batch, attempted_at=batch.attempted_at, succeeded=False)
                self._settle(batch)

    # ---------- planning ----------

    def _amount_context(self, profile: BaseProfile, event: MarketEvent, facts: EventFacts) -> AmountContext:
        balance = self._balance_provider(profile.wallet_addresses) if self._balance_provider else None
        return AmountContext(
            wallet_balance=balance,
            source_trade_amount=event.sol_amount if isinstance(event, TradeEvent) else None,
            last_trade_amount=facts.get(FactKey(FactType.LAST_TRADE_AMOUNT)),
            facts=facts,
        )

    def _build_requests(self, profile: BaseProfile, event: MarketEvent, facts: EventFacts,
                        batch_id: str) -> List[DispatchRequest]:
        context = self._amount_context(profile, event, facts)
        if context.wallet_balance is None and any(
                a.amount_mode == AmountMode.PERCENTAGE_OF_BALANCE for a in profile.effective_actions()):
            logger.warning("Profile %s has a percentage-of-balance action but no wallet balance is known; "
                           "amount resolves to 0", profile.id)
        direction = trigger_direction(event)
        requests = []
        for action in profile.effective_actions():
            effect = resolve_effect(action, direction, context)
            if effect is None:
                logger.debug("Profile %s action %s has no effect for %s event", profile.id, action.id, event.type)
                continue
            requests.append(DispatchRequest(
                batch_id=batch_id,
                profile_id=profile.id,
                profile_family=profile.family,
                profile_name=profile.name,
                action=action,
                resolved_amount=effect.amount,
                direction=effect.direction,
                target_wallets=list(profile.wallet_addresses),
                mint=event.mint,
                event_type=event.type,
            ))
        return requests

    def _plan(self, profiles: List[BaseProfile], event: MarketEvent) -> List[PreviewResult]:
        wallet_lists = self._store.wallet_lists_by_id()
        facts = EventFacts(self._extractor, event)
        now = event.timestamp
        results = []
        for profile in profiles:
            scoped = in_scope(profile, event, wallet_lists)
            eligible = scoped and self._eligible(profile, now)
            matched = eligible and matches(profile, facts)
            requests = self._build_requests(profile, event, facts, generate_id("batch")) if matched else []
            results.append(PreviewResult(profile.id, str(profile.family), scoped, eligible, matched, requests))
        return results

    # ---------- public API ----------

    async def preview(self, event: MarketEvent) -> List[PreviewResult]:
        """Dry run over every profile, inactive ones included; emits nothing and leaves the ledger alone."""
        async with self._lock:
            return self._plan(self._store.list_profiles(), event)

    async def evaluate(self, event: MarketEvent) -> List[DispatchRequest]:
        started = time.perf_counter()
        async with self._lock:
            self._expire_stale(event.timestamp)
            planned = [r for r in self._plan(self._store.active_profiles(), event) if r.requests]
            for result in planned:
                self._register(result.requests, event.timestamp)
        EVENTS_EVALUATED.labels(event_type=str(event.type)).inc()
        EVALUATION_LATENCY.observe(time.perf_counter() - started)

        emitted: List[DispatchRequest] = []
        for result in planned:
            for request in result.requests:
                DISPATCH_REQUESTS.labels(family=result.family, direction=str(request.direction)).inc()
            logger.info("Profile %s matched %s event for %s; dispatching %d request(s)",
                        result.profile_id, event.type, event.mint, len(result.requests))
            try:
                await self._dispatcher.dispatch(result.requests)
            except Exception as e:
                logger.error("Dispatch of batch %s for profile %s failed: %s",
                             result.requests[0].batch_id, result.profile_id, e, exc_info=True)
                for request in result.requests:
                    await self.on_result(DispatchResult(request_id=request.request_id, success=False,
                                                        error=f"dispatch failed: {e}"))
                continue
            emitted.extend(result.requests)
        return emitted

    async def on_result(self, result: DispatchResult) -> None:
        async with self._lock:
            entry = self._requests.pop(result.request_id, None)
            if entry is None:
                logger.warning("Dropping result for unknown dispatch request %s", result.request_id)
                return
            batch, request = entry
            batch.outstanding.discard(result.request_id)

            first_outcome = not batch.outcome_recorded
            first_success = result.success and not batch.succeeded
            batch.outcome_recorded = True
            batch.succeeded = batch.succeeded or result.success

            if first_outcome or first_success:
                self._record(batch, attempted_at=batch.attempted_at if first_outcome else None,
                             succeeded=first_success)
            if not batch.outstanding:
                self._settle(batch)

        outcome = "success" if result.success else "failure"
        DISPATCH_RESULTS.labels(family=str(request.profile_family), outcome=outcome).inc()
        if not result.success:
            logger.warning("Dispatch %s for profile %s failed: %s",
                           request.request_id, request.profile_id, result.error or "unknown error")

        if self._log_sink is not None:
            await self._log_sink.append(ExecutionLog(
                profile_id=request.profile_id,
                profile_name=request.profile_name,
                family=request.profile_family,
                request_id=request.request_id,
                direction=request.direction,
                amount=request.resolved_amount,
                mint=request.mint,
                wallet_addresses=request.target_wallets,
                success=result.success,
                error=result.error,
                tx_ref=result.tx_ref,
            ))
