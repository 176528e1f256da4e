import asyncio

from gateway.models.bridge_config import BridgeConfig
from gateway.opc.tag_group import add_items, create_group
from gateway.services.ingestion import IngestionLoop
from gateway.services.live_cache import LiveValueCache
from tests.mock.mock_opc_client import wait_until


def _loop(config, session, store, settings, cache=None):
    return IngestionLoop(config, session, store, settings, asyncio.Event(), cache if cache is not None else LiveValueCache())


def test_one_cycle_writes_point_and_updates_cache(connected_session, store, settings, bridge_config):
    cache = LiveValueCache()
    loop = _loop(bridge_config, connected_session, store, settings, cache)
    group = create_group(connected_session, "Ingest")
    add_items(group, bridge_config.subscribable_tags())

    assert loop.poll_once(group) == 1
    assert store.fields("kiln1") == [{"T1": 42.5}]
    assert cache.snapshot() == {"T1": 42.5}


def test_read_alias_used_as_field_name(connected_session, opc_client, store, settings):
    opc_client.values.update({"PLC.T1": 10, "PLC.T2": "20.5"})
    config = BridgeConfig(readTags=["PLC.T1", "PLC.T2"], readMapping={"PLC.T1": "temperature"})
    loop = _loop(config, connected_session, store, settings)
    group = create_group(connected_session, "Ingest")
    add_items(group, config.subscribable_tags())

    loop.poll_once(group)
    fields = {}
    for f in store.fields("kiln1"):
        fields.update(f)
    assert fields == {"temperature": 10.0, "PLC.T2": 20.5}


def test_unparseable_and_null_values(connected_session, opc_client, store, settings):
    opc_client.values.update({"State": "RUNNING", "Flag": True, "Empty": None, "T1": 1.5})
    config = BridgeConfig(readTags=["State", "Flag", "Empty", "T1"])
    cache = LiveValueCache()
    loop = _loop(config, connected_session, store, settings, cache)
    group = create_group(connected_session, "Ingest")
    add_items(group, config.subscribable_tags())

    assert loop.poll_once(group) == 1
    assert store.fields("kiln1") == [{"T1": 1.5}]
    # non-numeric values still reach the live cache, nulls do not
    assert cache.snapshot() == {"State": "RUNNING", "Flag": True, "T1": 1.5}


def test_run_polls_until_stopped_and_tears_down(session, opc_client, store, settings, bridge_config):
    cache = LiveValueCache()

    async def scenario():
        stop = asyncio.Event()
        loop = IngestionLoop(bridge_config, session, store, settings, stop, cache)
        task = asyncio.create_task(loop.run())
        assert await wait_until(lambda: len(store.points) >= 3)
        stop.set()
        await asyncio.wait_for(task, timeout=2)
        return loop

    loop = asyncio.run(scenario())
    assert loop.stats["cycles"] >= 3
    assert cache.get("T1") == 42.5
    assert len(opc_client.removed_groups) == 1
    assert opc_client.groups == {}


def test_store_failure_triggers_teardown_and_retry(session, opc_client, store, settings, bridge_config):
    store.fail_writes = True

    async def scenario():
        stop = asyncio.Event()
        loop = IngestionLoop(bridge_config, session, store, settings, stop, LiveValueCache())
        task = asyncio.create_task(loop.run())
        assert await wait_until(lambda: loop.stats["errors"] >= 2)
        store.fail_writes = False
        assert await wait_until(lambda: len(store.points) >= 1)
        stop.set()
        await asyncio.wait_for(task, timeout=2)
        return loop

    loop = asyncio.run(scenario())
    assert "influx unavailable" in loop.stats["last_error"]
    # one group per failed iteration plus the final one
    assert len(opc_client.removed_groups) >= 3


def test_connection_failure_backs_off_without_group(opc_client, session, store, settings, bridge_config):
    opc_client.fail_connect = True

    async def scenario():
        stop = asyncio.Event()
        loop = IngestionLoop(bridge_config, session, store, settings, stop, LiveValueCache())
        task = asyncio.create_task(loop.run())
        assert await wait_until(lambda: opc_client.connect_calls >= 3)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())
    assert opc_client.groups == {}
    assert store.points == []


def test_no_read_tags_returns_immediately(session, opc_client, store, settings):
    config = BridgeConfig(readTags=["", "   "])

    async def scenario():
        loop = IngestionLoop(config, session, store, settings, asyncio.Event(), LiveValueCache())
        await asyncio.wait_for(loop.run(), timeout=1)

    asyncio.run(scenario())
    assert opc_client.connect_calls == 0
