"""실시간 동기화 브리지 테스트."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock

import pytest

from app.schemas.trip import NewDestination, TripCreate, TripUpdate
from app.services.change_feed import ChangeFeed
from app.services.realtime_sync import RealtimeSyncBridge, SyncHandlers, destinations_channel, trip_channel
from tests.mocks.mock_trip_store import InMemoryTripStore


def _handlers() -> SyncHandlers:
    return SyncHandlers(on_destinations_change=AsyncMock(), on_trip_change=AsyncMock(), on_error=AsyncMock())


async def _setup() -> tuple[ChangeFeed, InMemoryTripStore, RealtimeSyncBridge, str]:
    feed = ChangeFeed()
    store = InMemoryTripStore(change_feed=feed)
    trip = await store.create_trip(TripCreate(title="ภูเก็ต", start_date=date(2026, 12, 1), end_date=date(2026, 12, 2)))
    return feed, store, RealtimeSyncBridge(store, feed), trip.id


def _rows(trip_id: str, *names: str) -> list[NewDestination]:
    return [
        NewDestination(trip_id=trip_id, name=name, visit_date=1, order_index=index)
        for index, name in enumerate(names, start=1)
    ]


@pytest.mark.asyncio
async def test_burst_of_inserts_is_one_full_reload() -> None:
    feed, store, bridge, trip_id = await _setup()
    handlers = _handlers()
    subscription = await bridge.subscribe(trip_id, handlers)

    await store.insert_destinations(_rows(trip_id, "หาดป่าตอง", "เมืองเก่าภูเก็ต", "แหลมพรหมเทพ"))
    await feed.join()

    handlers.on_destinations_change.assert_awaited_once()
    reloaded = handlers.on_destinations_change.await_args.args[0]
    assert [item.name for item in reloaded] == ["หาดป่าตอง", "เมืองเก่าภูเก็ต", "แหลมพรหมเทพ"]
    assert subscription.reload_count == 1
    handlers.on_trip_change.assert_not_awaited()
    await bridge.unsubscribe_all()


@pytest.mark.asyncio
async def test_trip_updates_reload_the_trip() -> None:
    feed, store, bridge, trip_id = await _setup()
    handlers = _handlers()
    await bridge.subscribe(trip_id, handlers)

    await store.update_trip(trip_id, TripUpdate(end_date=date(2026, 12, 4)))
    await feed.join()

    trip = handlers.on_trip_change.await_args.args[0]
    assert trip.total_days == 4
    await bridge.unsubscribe_all()


@pytest.mark.asyncio
async def test_changes_of_other_trips_are_ignored() -> None:
    feed, store, bridge, trip_id = await _setup()
    other = await store.create_trip(TripCreate(title="อื่น", start_date=date(2026, 12, 1), end_date=date(2026, 12, 1)))
    handlers = _handlers()
    await bridge.subscribe(trip_id, handlers)

    await store.insert_destinations(_rows(other.id, "ที่อื่น"))
    await feed.join()

    handlers.on_destinations_change.assert_not_awaited()
    await bridge.unsubscribe_all()


@pytest.mark.asyncio
async def test_reload_failure_goes_to_on_error() -> None:
    feed, store, bridge, trip_id = await _setup()
    handlers = _handlers()
    await bridge.subscribe(trip_id, handlers)

    await store.insert_destinations(_rows(trip_id, "หาดกะตะ"))
    store.fail_reads = True
    await feed.join()

    handlers.on_error.assert_awaited_once()
    handlers.on_destinations_change.assert_not_awaited()
    await bridge.unsubscribe_all()


@pytest.mark.asyncio
async def test_resubscribe_replaces_previous_subscription() -> None:
    feed, store, bridge, trip_id = await _setup()
    first_handlers = _handlers()
    second_handlers = _handlers()
    first = await bridge.subscribe(trip_id, first_handlers)

    second = await bridge.subscribe(trip_id, second_handlers)
    await store.insert_destinations(_rows(trip_id, "หาดกะรน"))
    await feed.join()

    assert first.closed is True
    assert second.closed is False
    first_handlers.on_destinations_change.assert_not_awaited()
    second_handlers.on_destinations_change.assert_awaited_once()
    assert sorted(feed.channel_names) == sorted([destinations_channel(trip_id), trip_channel(trip_id)])

    await first.close()
    assert bridge.is_subscribed(trip_id) is True
    await bridge.unsubscribe_all()


@pytest.mark.asyncio
async def test_context_manager_releases_subscription() -> None:
    feed, _, bridge, trip_id = await _setup()

    async with await bridge.subscribe(trip_id, _handlers()):
        assert bridge.is_subscribed(trip_id) is True

    assert bridge.is_subscribed(trip_id) is False
    assert feed.channel_names == []
    assert await bridge.unsubscribe(trip_id) is False


@pytest.mark.asyncio
async def test_two_viewers_of_one_trip_both_receive_reloads() -> None:
    feed, store, bridge, trip_id = await _setup()
    viewer_a = _handlers()
    viewer_b = _handlers()
    first = await bridge.subscribe(trip_id, viewer_a, subscriber_id="socket-a")
    second = await bridge.subscribe(trip_id, viewer_b, subscriber_id="socket-b")

    await store.insert_destinations(_rows(trip_id, "หาดกะตะ"))
    await feed.join()

    assert first.closed is False
    assert second.closed is False
    assert bridge.subscriber_count(trip_id) == 2
    viewer_a.on_destinations_change.assert_awaited_once()
    viewer_b.on_destinations_change.assert_awaited_once()

    await first.close()
    await store.insert_destinations(_rows(trip_id, "หาดกะรน"))
    await feed.join()

    assert bridge.is_subscribed(trip_id, "socket-a") is False
    assert bridge.is_subscribed(trip_id, "socket-b") is True
    assert viewer_a.on_destinations_change.await_count == 1
    assert viewer_b.on_destinations_change.await_count == 2
    await bridge.unsubscribe_all()
    assert feed.channel_names == []
