"""Unit tests for the broadcast listener."""

import pytest

from sheetsync.services.sheets.listener import SheetListener
from sheetsync.services.sheets.values import UpdateSource, ValueStore

from conftest import FailingBroadcast, Recorder, make_csv

KEY = "listener-key"


@pytest.fixture
def values():
    return ValueStore(KEY)


@pytest.mark.asyncio
async def test_newer_message_applied(values, broadcast):
    listener = SheetListener(KEY, values, broadcast)
    assert await listener.start() is True

    await broadcast.publish(KEY, make_csv(("Health", "number", "100")))

    assert values.get("Health") == 100
    assert values.last_source == UpdateSource.BROADCAST
    assert values.last_updated == 1_700_000_000
    assert listener.applied_count == 1


@pytest.mark.asyncio
async def test_sent_time_floored(values):
    listener = SheetListener(KEY, values, broadcast=None)

    await listener.on_message(make_csv(("A", "number", "1")), 500.9)

    assert values.last_updated == 500


@pytest.mark.asyncio
async def test_older_message_discarded_silently(values):
    values.apply_document(make_csv(("Health", "number", "100")), 1000, UpdateSource.REMOTE_API)
    changes = Recorder()
    values.on_change("Health").connect(changes)
    values.on_any_change().connect(changes)

    listener = SheetListener(KEY, values, broadcast=None)
    await listener.on_message(make_csv(("Health", "number", "5")), 999.0)
    await listener.on_message(make_csv(("Health", "number", "5")), 1000.7)

    assert values.get("Health") == 100
    assert values.last_source == UpdateSource.REMOTE_API
    assert changes.calls == []
    assert listener.received_count == 2
    assert listener.applied_count == 0


@pytest.mark.asyncio
async def test_ignored_when_dead(values):
    listener = SheetListener(KEY, values, broadcast=None, is_alive=lambda: False)
    await listener.on_message(make_csv(("A", "number", "1")), 100.0)
    assert values.last_updated == 0


@pytest.mark.asyncio
async def test_subscribe_failure_is_polling_only(values):
    listener = SheetListener(KEY, values, FailingBroadcast())

    assert await listener.start() is False
    assert listener.active is False
    # stop() on an inactive listener is a no-op
    await listener.stop()


@pytest.mark.asyncio
async def test_stop_unsubscribes(values, broadcast):
    listener = SheetListener(KEY, values, broadcast)
    await listener.start()
    assert broadcast.subscriber_count(KEY) == 1

    await listener.stop()

    assert broadcast.subscriber_count(KEY) == 0
    await broadcast.publish(KEY, make_csv(("A", "number", "1")))
    assert values.last_updated == 0
