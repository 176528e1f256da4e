import asyncio
from datetime import datetime, timedelta, timezone

from gateway.core.influxdb import CommandRecord
from gateway.opc.tag_group import create_group
from gateway.services.actuation import ActuationLoop, Watermark
from tests.mock.mock_opc_client import FakeStore, wait_until

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


def _loop(config, session, store, settings, watermark):
    return ActuationLoop(config, session, store, settings, asyncio.Event(), watermark)


def test_setpoint_command_applied_with_feedback(connected_session, opc_client, store, settings, bridge_config):
    watermark = Watermark(NOW - timedelta(seconds=1))
    loop = _loop(bridge_config, connected_session, store, settings, watermark)
    group = create_group(connected_session, "Act")

    applied = loop.process_records(group, [CommandRecord("setpoint", 7, NOW)])

    assert applied == 1
    assert opc_client.writes == [("PLC.AI.12", 7)]
    assert watermark.value == NOW
    assert store.tags("kiln2_feedback") == [{"status": "success", "alias": "setpoint"}]
    assert store.fields("kiln2_feedback") == [{"value": 7.0}]


def test_unchanged_commands_are_not_applied_twice(connected_session, opc_client, store, settings, bridge_config):
    watermark = Watermark(NOW - timedelta(seconds=1))
    loop = _loop(bridge_config, connected_session, store, settings, watermark)
    group = create_group(connected_session, "Act")
    records = [CommandRecord("setpoint", 7, NOW), CommandRecord("PLC.DO.1", 1, NOW - timedelta(milliseconds=500))]

    assert loop.process_records(group, records) == 2
    assert loop.process_records(group, records) == 0
    assert loop.process_records(group, list(reversed(records))) == 0
    assert len(opc_client.writes) == 2


def test_records_applied_in_timestamp_order(connected_session, opc_client, store, settings, bridge_config):
    t1, t2, t3 = NOW, NOW + timedelta(seconds=1), NOW + timedelta(seconds=2)
    watermark = Watermark(NOW - timedelta(seconds=1))
    loop = _loop(bridge_config, connected_session, store, settings, watermark)
    group = create_group(connected_session, "Act")

    # query order differs from time order
    records = [CommandRecord("c", 3, t3), CommandRecord("a", 1, t1), CommandRecord("b", 2, t2)]
    assert loop.process_records(group, records) == 3

    assert opc_client.writes == [("a", 1), ("b", 2), ("c", 3)]
    assert watermark.value == max(t1, t2, t3)


def test_watermark_never_decreases(connected_session, store, settings, bridge_config):
    watermark = Watermark(NOW - timedelta(seconds=1))
    loop = _loop(bridge_config, connected_session, store, settings, watermark)
    group = create_group(connected_session, "Act")

    loop.process_records(group, [CommandRecord("a", 1, NOW + timedelta(seconds=5))])
    loop.process_records(group, [CommandRecord("b", 2, NOW)])
    assert watermark.value == NOW + timedelta(seconds=5)

    assert watermark.advance(NOW) is False
    assert watermark.value == NOW + timedelta(seconds=5)


def test_write_alias_identity_fallback(connected_session, opc_client, store, settings, bridge_config):
    loop = _loop(bridge_config, connected_session, store, settings, Watermark(NOW - timedelta(seconds=1)))
    group = create_group(connected_session, "Act")

    loop.process_records(group, [CommandRecord("PLC.DO.7", 0, NOW)])
    assert opc_client.writes == [("PLC.DO.7", 0)]
    assert store.tags("kiln2_feedback") == [{"status": "success", "alias": "PLC.DO.7"}]


def test_unresolvable_tag_keeps_watermark_and_retries(connected_session, opc_client, store, settings, bridge_config):
    opc_client.known_tags = set()
    watermark = Watermark(NOW - timedelta(seconds=1))
    loop = _loop(bridge_config, connected_session, store, settings, watermark)
    group = create_group(connected_session, "Act")
    records = [CommandRecord("setpoint", 7, NOW)]

    assert loop.process_records(group, records) == 0
    assert watermark.value == NOW - timedelta(seconds=1)
    assert loop.stats["commands_pending"] == 1

    opc_client.known_tags = {"PLC.AI.12"}
    assert loop.process_records(group, records) == 1
    assert opc_client.writes == [("PLC.AI.12", 7)]
    assert loop.stats["commands_pending"] == 0


def test_failed_record_retried_after_later_record_moved_watermark(connected_session, opc_client, store, settings,
                                                                  bridge_config):
    opc_client.known_tags = {"late"}
    watermark = Watermark(NOW - timedelta(seconds=1))
    loop = _loop(bridge_config, connected_session, store, settings, watermark)
    group = create_group(connected_session, "Act")
    early = CommandRecord("early", 1, NOW)
    late = CommandRecord("late", 2, NOW + timedelta(seconds=1))

    assert loop.process_records(group, [late, early]) == 1
    assert watermark.value == late.timestamp

    opc_client.known_tags.add("early")
    assert loop.process_records(group, [late, early]) == 1
    assert opc_client.writes == [("late", 2), ("early", 1)]
    assert watermark.value == late.timestamp

    # applied once only
    assert loop.process_records(group, [late, early]) == 0


def test_superseded_retry_is_dropped(connected_session, opc_client, store, settings, bridge_config):
    opc_client.known_tags = set()
    loop = _loop(bridge_config, connected_session, store, settings, Watermark(NOW - timedelta(seconds=1)))
    group = create_group(connected_session, "Act")

    loop.process_records(group, [CommandRecord("x", 1, NOW)])
    opc_client.known_tags = {"x"}
    loop.process_records(group, [CommandRecord("x", 2, NOW + timedelta(seconds=1))])
    assert opc_client.writes == [("x", 2)]
    assert loop.stats["commands_pending"] == 0


def test_non_numeric_command_written_without_feedback(connected_session, opc_client, store, settings, bridge_config):
    loop = _loop(bridge_config, connected_session, store, settings, Watermark(NOW - timedelta(seconds=1)))
    group = create_group(connected_session, "Act")

    assert loop.process_records(group, [CommandRecord("mode", "AUTO", NOW)]) == 1
    assert opc_client.writes == [("mode", "AUTO")]
    assert store.points == []


def test_naive_timestamps_compare_as_utc(connected_session, store, settings, bridge_config):
    watermark = Watermark(NOW)
    loop = _loop(bridge_config, connected_session, store, settings, watermark)
    group = create_group(connected_session, "Act")

    naive_later = (NOW + timedelta(seconds=1)).replace(tzinfo=None)
    assert loop.process_records(group, [CommandRecord("a", 1, naive_later)]) == 1
    assert watermark.value == NOW + timedelta(seconds=1)


def test_watermark_reset_uses_lookback():
    watermark = Watermark(NOW)
    before = datetime.now(timezone.utc)
    watermark.reset(10)
    after = datetime.now(timezone.utc)
    assert before - timedelta(seconds=10) <= watermark.value <= after - timedelta(seconds=10)


def test_run_queries_command_measurement(session, opc_client, settings, bridge_config):
    stamp = datetime.now(timezone.utc)
    store = FakeStore(records=[CommandRecord("setpoint", 7, stamp)])
    watermark = Watermark(stamp - timedelta(seconds=1))

    async def scenario():
        stop = asyncio.Event()
        loop = ActuationLoop(bridge_config, session, store, settings, stop, watermark)
        task = asyncio.create_task(loop.run())
        assert await wait_until(lambda: len(store.queries) >= 3)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())
    assert store.queries[0] == ("kiln2", 900)
    assert opc_client.writes == [("PLC.AI.12", 7)]
    assert watermark.value == stamp
    assert len(opc_client.removed_groups) == 1


def test_stop_during_batch_skips_remaining_commands(connected_session, opc_client, store, settings, bridge_config):
    stop = asyncio.Event()
    watermark = Watermark(NOW - timedelta(seconds=1))
    loop = ActuationLoop(bridge_config, connected_session, store, settings, stop, watermark)
    group = create_group(connected_session, "Act")
    opc_client.on_write = lambda tag, value: stop.set()

    records = [CommandRecord("a", 1, NOW), CommandRecord("b", 2, NOW + timedelta(seconds=1))]
    assert loop.process_records(group, records) == 1

    assert opc_client.writes == [("a", 1)]
    assert watermark.value == NOW
