"""Tests for the sheet manager facade, including multi-process scenarios."""

import asyncio

import pytest

from sheetsync.common.config import SyncSettings
from sheetsync.services.sheets.manager import SheetManager, open_sheet
from sheetsync.services.sheets.sync import RefreshStatus, sheet_key
from sheetsync.services.sheets.values import UpdateSource

from conftest import (
    START_TIME,
    FailingBroadcast,
    FakeFetcher,
    GatedFetcher,
    Recorder,
    SlowFetcher,
    make_csv,
)


def make_manager(fetcher, shared_store, broadcast, clock, sub_document_id=None):
    return SheetManager(
        "SPREAD_ID",
        sub_document_id,
        fetcher=fetcher,
        store=shared_store,
        broadcast=broadcast,
        settings=SyncSettings(refresh_interval_s=30),
        clock=clock,
    )


def test_invalid_document_id():
    with pytest.raises(ValueError):
        SheetManager("")


def test_sub_document_defaults_to_first_sheet(shared_store, broadcast, clock):
    manager = make_manager(FakeFetcher(), shared_store, broadcast, clock)
    assert manager.sub_document_id == "0"
    assert manager.key == sheet_key("SPREAD_ID", "0")


@pytest.mark.asyncio
async def test_start_runs_initial_refresh(shared_store, broadcast, clock, health_csv):
    manager = make_manager(FakeFetcher(health_csv), shared_store, broadcast, clock)

    result = await manager.start()
    try:
        assert result.status == RefreshStatus.REMOTE_APPLIED
        assert manager.get("Health") == 100
        assert manager.get("Missing", 7) == 7
        assert manager.last_updated_at == int(clock())
        assert manager.last_source == UpdateSource.REMOTE_API
        assert manager.listening
        assert manager.get_stats()["scheduler"]["running"] is True
    finally:
        await manager.destroy()


@pytest.mark.asyncio
async def test_open_sheet_factory(shared_store, broadcast, clock, health_csv):
    manager = await open_sheet(
        "SPREAD_ID",
        "123",
        fetcher=FakeFetcher(health_csv),
        store=shared_store,
        broadcast=broadcast,
        clock=clock,
    )
    try:
        assert manager.sub_document_id == "123"
        assert manager.values["Enabled"] is True
    finally:
        await manager.destroy()


@pytest.mark.asyncio
async def test_subscriptions_fire_on_refresh(shared_store, broadcast, clock, health_csv):
    fetcher = FakeFetcher(health_csv)
    manager = make_manager(fetcher, shared_store, broadcast, clock)
    health = Recorder()
    everything = Recorder()
    manager.subscribe("Health").connect(health)
    manager.subscribe_any().connect(everything)

    await manager.start()
    clock.advance(30)
    fetcher.body = make_csv(("Health", "number", "50"), ("Enabled", "boolean", "true"))
    await manager.refresh_now()
    await manager.destroy()

    assert health.calls == [(100, None), (50, 100)]
    assert len(everything.calls) == 2
    assert dict(everything.calls[-1][0]) == {"Health": 50, "Enabled": True}


@pytest.mark.asyncio
async def test_destroy_stops_everything(shared_store, broadcast, clock, health_csv):
    manager = make_manager(FakeFetcher(health_csv), shared_store, broadcast, clock)
    await manager.start()
    signal = manager.subscribe("Health")

    await manager.destroy()

    assert manager.alive is False
    assert signal.destroyed
    assert broadcast.subscriber_count(manager.key) == 0
    assert manager.get_stats()["scheduler"]["running"] is False

    result = await manager.refresh_now()
    assert result.status == RefreshStatus.DESTROYED

    # Destroy is idempotent
    await manager.destroy()


@pytest.mark.asyncio
async def test_destroy_lets_scheduled_refresh_finish(shared_store, broadcast, clock, health_csv):
    fetcher = GatedFetcher(health_csv)
    manager = SheetManager(
        "SPREAD_ID",
        fetcher=fetcher,
        store=shared_store,
        broadcast=broadcast,
        settings=SyncSettings(refresh_interval_s=0.05),
        clock=clock,
    )
    await manager.start()

    # Next tick finds everything expired and blocks in the fetch
    clock.advance(60)
    await asyncio.wait_for(fetcher.entered.wait(), 1)

    destroying = asyncio.create_task(manager.destroy())
    await asyncio.sleep(0.01)
    assert not destroying.done()

    fetcher.release.set()
    await asyncio.wait_for(destroying, 1)

    stats = manager.get_stats()
    assert stats["last_status"] == RefreshStatus.DESTROYED.value
    assert stats["scheduler"]["running"] is False
    assert manager.last_updated_at == START_TIME
    assert (await shared_store.read(manager.key)).timestamp == START_TIME


@pytest.mark.asyncio
async def test_polling_only_when_subscribe_fails(shared_store, clock, health_csv):
    manager = make_manager(FakeFetcher(health_csv), shared_store, FailingBroadcast(), clock)

    result = await manager.start()
    try:
        assert result.status == RefreshStatus.REMOTE_APPLIED
        assert manager.listening is False
        assert manager.get("Health") == 100
    finally:
        await manager.destroy()


@pytest.mark.asyncio
async def test_failed_fetch_does_not_raise(shared_store, broadcast, clock):
    manager = make_manager(FakeFetcher(success=False, status=404), shared_store, broadcast, clock)

    result = await manager.start()
    try:
        assert result.status == RefreshStatus.FAILED
        assert manager.last_updated_at == 0
        assert manager.last_source is None
    finally:
        await manager.destroy()


class TestSeveralProcesses:
    """Managers sharing one store and one broadcast hub stand in for processes"""

    @pytest.mark.asyncio
    async def test_one_fetch_serves_every_process(self, shared_store, broadcast, clock, health_csv):
        fetcher_a = FakeFetcher(health_csv)
        fetcher_b = FakeFetcher(health_csv)
        a = make_manager(fetcher_a, shared_store, broadcast, clock)
        b = make_manager(fetcher_b, shared_store, broadcast, clock)

        try:
            # b subscribes first and only listens
            await b._listener.start()
            await a.start()

            assert b.get("Health") == 100
            assert b.last_source == UpdateSource.BROADCAST

            result = await b.refresh_now()
            assert result.status == RefreshStatus.LOCAL_FRESH
            assert fetcher_a.calls and not fetcher_b.calls
        finally:
            await a.destroy()
            await b.destroy()

    @pytest.mark.asyncio
    async def test_late_process_reads_shared_store(self, shared_store, broadcast, clock, health_csv):
        fetcher_a = FakeFetcher(health_csv)
        fetcher_b = FakeFetcher(health_csv)
        a = make_manager(fetcher_a, shared_store, broadcast, clock)
        await a.start()

        clock.advance(10)
        b = make_manager(fetcher_b, shared_store, broadcast, clock)
        result = await b.start()
        try:
            assert result.status == RefreshStatus.STORE_APPLIED
            assert b.last_source == UpdateSource.SHARED_STORE
            assert b.last_updated_at == a.last_updated_at
            assert fetcher_b.calls == []
        finally:
            await a.destroy()
            await b.destroy()


class TestOverlappingCycles:
    @pytest.mark.asyncio
    async def test_concurrent_refreshes_and_broadcast(self, shared_store, broadcast, clock, health_csv):
        fetcher = SlowFetcher(health_csv)
        manager = make_manager(fetcher, shared_store, broadcast, clock)
        await manager.start()
        started_at = manager.last_updated_at

        seen = []
        everything = Recorder()
        manager.subscribe("Health").connect(
            lambda new, old: seen.append((new, old, manager.last_updated_at))
        )
        manager.subscribe_any().connect(everything)

        clock.advance(30)
        fetcher.body = make_csv(("Health", "number", "200"), ("Enabled", "boolean", "true"))
        pushed = make_csv(("Health", "number", "300"), ("Enabled", "boolean", "true"))

        try:
            first, second, _ = await asyncio.gather(
                manager.refresh_now(),
                manager.refresh_now(),
                broadcast.deliver(manager.key, pushed, clock() + 1),
            )

            assert first.ok and second.ok
            assert manager.get("Health") == 300
            assert manager.last_updated_at == int(clock()) + 1
            assert manager.last_source == UpdateSource.BROADCAST

            timestamps = [ts for _, _, ts in seen]
            assert timestamps == sorted(timestamps)
            assert timestamps[0] > started_at

            # One notification per real change, chained old -> new
            previous = 100
            for new, old, _ in seen:
                assert old == previous
                assert new != old
                previous = new
            assert previous == 300
            assert len(everything.calls) == len(seen)
        finally:
            await manager.destroy()
