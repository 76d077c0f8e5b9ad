"""변경 피드 테스트."""

from __future__ import annotations

import pytest

from app.schemas.enums import ChangeEventType
from app.services.change_feed import ChangeEvent, ChangeFeed


def _event(trip_id: str, table: str = "destinations", event_type=ChangeEventType.INSERT) -> ChangeEvent:
    return ChangeEvent(table=table, event_type=event_type, new={"id": "d1", "trip_id": trip_id})


@pytest.mark.asyncio
async def test_publish_routes_by_table_and_filter() -> None:
    feed = ChangeFeed()
    received: list[list[ChangeEvent]] = []

    async def _handler(events: list[ChangeEvent]) -> None:
        received.append(events)

    feed.open_channel("trip-a", table="destinations", filter_column="trip_id", filter_value="a", handler=_handler)

    assert feed.publish(_event("a")) == 1
    assert feed.publish(_event("b")) == 0
    assert feed.publish(_event("a", table="trips")) == 0
    await feed.join()

    assert sum(len(batch) for batch in received) == 1
    await feed.close()


@pytest.mark.asyncio
async def test_queued_events_are_delivered_as_one_batch() -> None:
    feed = ChangeFeed()
    received: list[list[ChangeEvent]] = []

    async def _handler(events: list[ChangeEvent]) -> None:
        received.append(events)

    feed.open_channel("trip-a", table="destinations", filter_column="trip_id", filter_value="a", handler=_handler)
    for _ in range(3):
        feed.publish(_event("a"))
    await feed.join()

    assert [len(batch) for batch in received] == [3]
    await feed.close()


@pytest.mark.asyncio
async def test_delete_events_match_on_old_row() -> None:
    feed = ChangeFeed()
    received: list[ChangeEvent] = []

    async def _handler(events: list[ChangeEvent]) -> None:
        received.extend(events)

    feed.open_channel("trip-a", table="destinations", filter_column="trip_id", filter_value="a", handler=_handler)
    feed.publish(ChangeEvent(table="destinations", event_type=ChangeEventType.DELETE, old={"trip_id": "a"}))
    await feed.join()

    assert received[0].event_type == ChangeEventType.DELETE
    await feed.close()


@pytest.mark.asyncio
async def test_handler_errors_keep_channel_alive() -> None:
    feed = ChangeFeed()
    calls = 0

    async def _handler(events: list[ChangeEvent]) -> None:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")

    channel = feed.open_channel(
        "trip-a", table="destinations", filter_column="trip_id", filter_value="a", handler=_handler
    )
    feed.publish(_event("a"))
    await feed.join()
    feed.publish(_event("a"))
    await feed.join()

    assert calls == 2
    assert channel.is_open is True
    await feed.close()


@pytest.mark.asyncio
async def test_duplicate_channel_name_is_rejected_and_close_removes() -> None:
    feed = ChangeFeed()

    async def _handler(events: list[ChangeEvent]) -> None:
        return None

    feed.open_channel("trip-a", table="trips", filter_column="id", filter_value="a", handler=_handler)
    with pytest.raises(ValueError):
        feed.open_channel("trip-a", table="trips", filter_column="id", filter_value="a", handler=_handler)

    assert await feed.close_channel("trip-a") is True
    assert await feed.close_channel("trip-a") is False
    assert feed.channel_names == []
