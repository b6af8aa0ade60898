import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from trigger_engine.config.settings import settings
from trigger_engine.dal.balance_store import RedisBalanceStore
from trigger_engine.dal.datamodel.action import AmountMode, FixedAmountAction
from trigger_engine.dal.datamodel.dispatch import DispatchRequest, DispatchResult
from trigger_engine.dal.datamodel.execution_log import ExecutionLog
from trigger_engine.dal.datamodel.market_event import DeployEvent, TradeEvent
from trigger_engine.dal.datamodel.profile import Family, SniperProfile
from trigger_engine.dal.datamodel.snapshot import ProfileFamilyState
from trigger_engine.dal.dispatch_queue import RedisDispatchQueue
from trigger_engine.dal.execution_log_store import RedisExecutionLogStore
from trigger_engine.dal.market_event_store import RedisMarketEventStore
from trigger_engine.dal.snapshot_store import RedisSnapshotStore


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages
        self.subscribed = []
        self.closed = False

    async def subscribe(self, channel):
        self.subscribed.append(channel)

    async def unsubscribe(self, channel):
        self.subscribed.remove(channel)

    async def listen(self):
        for message in self.messages:
            yield message

    async def close(self):
        self.closed = True


def request(amount=0.5) -> DispatchRequest:
    return DispatchRequest(
        batch_id="batch_1",
        profile_id="s1",
        profile_family=Family.SNIPER,
        profile_name="Launch",
        action=FixedAmountAction(id="a1", amount_mode=AmountMode.FIXED, amount_parameter=amount),
        resolved_amount=amount,
        direction="buy",
        target_wallets=["hot-1"],
        mint="mint-1",
        event_type="deploy",
    )


def log(profile_id="s1", success=True) -> ExecutionLog:
    return ExecutionLog(profile_id=profile_id, profile_name=profile_id, family=Family.SNIPER, request_id="r1",
                        direction="buy", amount=0.5, success=success)


# ---------- snapshots ----------

@pytest.mark.asyncio
async def test_snapshot_missing_key_is_empty_state():
    client = AsyncMock()
    client.get.return_value = None
    store = RedisSnapshotStore(client=client)

    state = await store.load_snapshot(Family.SNIPER)

    assert state.profiles == []
    client.get.assert_awaited_once_with(f"{settings.SNAPSHOT_KEY_PREFIX}sniper")


@pytest.mark.asyncio
async def test_snapshot_save_then_load():
    client = AsyncMock()
    store = RedisSnapshotStore(client=client)
    state = ProfileFamilyState(profiles=[SniperProfile(id="s1", name="Launch", cooldown=3)])

    await store.save_snapshot(Family.SNIPER, state)

    key, raw = client.set.await_args.args
    assert key == f"{settings.SNAPSHOT_KEY_PREFIX}sniper"
    assert json.loads(raw)["profiles"][0]["cooldown"] == 3
    client.publish.assert_awaited_once()
    assert client.publish.await_args.args[0] == settings.SNAPSHOT_EVENTS_CHANNEL

    client.get.return_value = raw
    loaded = await store.load_snapshot(Family.SNIPER)
    assert loaded.profiles[0].id == "s1"
    assert isinstance(loaded.profiles[0], SniperProfile)


@pytest.mark.asyncio
async def test_snapshot_load_retries_connection_errors():
    client = AsyncMock()
    client.get.side_effect = [RedisConnectionError("reset by peer"), None]
    store = RedisSnapshotStore(client=client)

    state = await store.load_snapshot(Family.AUTOMATE)

    assert state.profiles == []
    assert client.get.await_count == 2


# ---------- market events ----------

@pytest.mark.asyncio
async def test_market_events_parsed_and_malformed_skipped():
    deploy = DeployEvent(mint="mint-1", platform="pump", signer="dev", market_cap=1.0)
    trade = TradeEvent(mint="mint-1", signer="whale", direction="sell", sol_amount=2.0)
    pubsub = FakePubSub([
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": deploy.to_json()},
        {"type": "message", "data": "{not json"},
        {"type": "message", "data": json.dumps({"type": "unknown", "mint": "x"})},
        {"type": "message", "data": trade.to_json().encode()},
    ])
    client = MagicMock()
    client.pubsub.return_value = pubsub
    store = RedisMarketEventStore(client=client, channel="events")

    events = [e async for e in store.subscribe_events()]

    assert [type(e) for e in events] == [DeployEvent, TradeEvent]
    assert events[1].direction == "sell"
    assert pubsub.closed
    assert pubsub.subscribed == []


@pytest.mark.asyncio
async def test_market_event_publish():
    client = AsyncMock()
    store = RedisMarketEventStore(client=client, channel="events")
    await store.publish(DeployEvent(mint="mint-1", platform="pump", signer="dev"))

    channel, raw = client.publish.await_args.args
    assert channel == "events"
    assert json.loads(raw)["type"] == "deploy"


# ---------- dispatch queue ----------

@pytest.mark.asyncio
async def test_dispatch_publishes_one_message_per_batch():
    client = AsyncMock()
    queue = RedisDispatchQueue(client=client)

    await queue.dispatch([request(0.5), request(0.25)])

    channel, raw = client.publish.await_args.args
    message = json.loads(raw)
    assert channel == settings.DISPATCH_CHANNEL
    assert message["batchId"] == "batch_1"
    assert [r["resolvedAmount"] for r in message["requests"]] == [0.5, 0.25]
    assert message["requests"][0]["action"]["amountMode"] == "fixed"


@pytest.mark.asyncio
async def test_dispatch_retries_connection_errors():
    client = AsyncMock()
    client.publish.side_effect = [RedisConnectionError("reset by peer"), 1]
    queue = RedisDispatchQueue(client=client)

    await queue.dispatch([request()])

    assert client.publish.await_count == 2
    assert client.publish.await_args.args[0] == settings.DISPATCH_CHANNEL


@pytest.mark.asyncio
async def test_dispatch_of_empty_batch_is_noop():
    client = AsyncMock()
    await RedisDispatchQueue(client=client).dispatch([])
    client.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_results_subscription():
    ok = DispatchResult(request_id="r1", success=True, tx_ref="sig")
    pubsub = FakePubSub([
        {"type": "message", "data": ok.to_json()},
        {"type": "message", "data": json.dumps({"success": True})},
    ])
    client = MagicMock()
    client.pubsub.return_value = pubsub
    queue = RedisDispatchQueue(client=client)

    results = [r async for r in queue.subscribe_results()]

    assert results == [ok]
    assert pubsub.closed


# ---------- execution logs ----------

@pytest.mark.asyncio
async def test_execution_log_append_trims_list():
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, True])
    client = MagicMock()
    client.pipeline.return_value = pipe
    store = RedisExecutionLogStore(client=client, max_logs=10)

    entry = log()
    await store.append(entry)

    pipe.lpush.assert_called_once_with(settings.EXECUTION_LOGS_KEY, entry.to_json())
    pipe.ltrim.assert_called_once_with(settings.EXECUTION_LOGS_KEY, 0, 9)
    pipe.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_execution_log_queries():
    client = MagicMock()
    client.lrange = AsyncMock(return_value=[
        log("s1").to_json(),
        "garbage",
        log("s2", success=False).to_json(),
        log("s1", success=False).to_json(),
    ])
    store = RedisExecutionLogStore(client=client)

    assert len(await store.list_logs()) == 3
    assert [entry.success for entry in await store.list_logs("s1")] == [True, False]
    assert len(await store.list_logs(limit=1)) == 1
    assert await store.successful_count("s1") == 1
    assert await store.successful_count("s2") == 0


# ---------- wallet balances ----------

@pytest.mark.asyncio
async def test_balances_loaded_and_unreadable_skipped():
    client = AsyncMock()
    client.hgetall.return_value = {"w1": "2.5", "w2": "n/a", "w3": "0"}
    store = RedisBalanceStore(client=client)

    balances = await store.load_balances()

    assert balances == {"w1": 2.5, "w3": 0.0}
    client.hgetall.assert_awaited_once_with(settings.WALLET_BALANCES_KEY)


@pytest.mark.asyncio
async def test_balance_load_retries_connection_errors():
    client = AsyncMock()
    client.hgetall.side_effect = [RedisConnectionError("reset by peer"), {"w1": "1"}]

    balances = await RedisBalanceStore(client=client).load_balances()

    assert balances == {"w1": 1.0}
    assert client.hgetall.await_count == 2


@pytest.mark.asyncio
async def test_balance_set():
    client = AsyncMock()
    await RedisBalanceStore(client=client).set_balance("w1", 3.0)
    client.hset.assert_awaited_once_with(settings.WALLET_BALANCES_KEY, "w1", 3.0)
