"""SQLAlchemy 여행 저장소 테스트 (SQLite)."""

from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import PersistenceError, TripNotFoundError
from app.database import build_engine, get_session_local, init_db
from app.schemas.enums import ChangeEventType
from app.schemas.trip import DestinationPosition, NewDestination, TripCreate, TripUpdate
from app.services.change_feed import ChangeFeed
from app.services.trip_store import DESTINATIONS_TABLE, TRIPS_TABLE, SqlAlchemyTripStore


@pytest.fixture
def store(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'trips.db'}")
    init_db(engine)
    feed = ChangeFeed()
    feed.publish = MagicMock(wraps=feed.publish)
    return SqlAlchemyTripStore(get_session_local(engine), change_feed=feed)


def _row(trip_id: str, name: str, day: int, index: int) -> NewDestination:
    return NewDestination(trip_id=trip_id, name=name, visit_date=day, order_index=index, place_id=f"id-{name}")


@pytest.mark.asyncio
async def test_trip_crud_round_trip(store) -> None:
    trip = await store.create_trip(
        TripCreate(title="เชียงใหม่", start_date=date(2026, 12, 1), end_date=date(2026, 12, 3))
    )

    loaded = await store.get_trip(trip.id)
    updated = await store.update_trip(trip.id, TripUpdate(end_date=date(2026, 12, 4), budget_max=15000))

    assert loaded.title == "เชียงใหม่"
    assert loaded.total_days == 3
    assert updated.total_days == 4
    assert updated.budget_max == 15000
    assert await store.get_trip("missing") is None


@pytest.mark.asyncio
async def test_update_missing_trip_raises(store) -> None:
    with pytest.raises(TripNotFoundError):
        await store.update_trip("missing", TripUpdate(title="x"))


@pytest.mark.asyncio
async def test_destinations_are_listed_in_day_then_order(store) -> None:
    trip = await store.create_trip(TripCreate(title="t", start_date=date(2026, 12, 1), end_date=date(2026, 12, 2)))
    await store.insert_destinations(
        [_row(trip.id, "C", 2, 1), _row(trip.id, "B", 1, 2), _row(trip.id, "A", 1, 1)]
    )

    listed = await store.list_destinations(trip.id)

    assert [item.name for item in listed] == ["A", "B", "C"]


@pytest.mark.asyncio
async def test_position_update_and_delete_publish_changes(store) -> None:
    trip = await store.create_trip(TripCreate(title="t", start_date=date(2026, 12, 1), end_date=date(2026, 12, 2)))
    created = await store.insert_destinations([_row(trip.id, "A", 1, 1), _row(trip.id, "B", 1, 2)])

    await store.update_destination_positions(
        trip.id,
        [
            DestinationPosition(id=created[0].id, visit_date=1, order_index=1),
            DestinationPosition(id=created[1].id, visit_date=2, order_index=1),
        ],
    )
    removed = await store.delete_destinations(trip.id, [created[0].id])

    events = [call.args[0] for call in store._change_feed.publish.call_args_list]
    assert [(event.table, event.event_type) for event in events] == [
        (TRIPS_TABLE, ChangeEventType.INSERT),
        (DESTINATIONS_TABLE, ChangeEventType.INSERT),
        (DESTINATIONS_TABLE, ChangeEventType.INSERT),
        (DESTINATIONS_TABLE, ChangeEventType.UPDATE),
        (DESTINATIONS_TABLE, ChangeEventType.DELETE),
    ]
    assert events[3].new["visit_date"] == 2
    assert events[3].old["visit_date"] == 1
    assert events[4].row_value("trip_id") == trip.id
    assert removed == 1
    assert [item.name for item in await store.list_destinations(trip.id)] == ["B"]


@pytest.mark.asyncio
async def test_chat_messages_are_stored_in_order(store) -> None:
    trip = await store.create_trip(TripCreate(title="t", start_date=date(2026, 12, 1), end_date=date(2026, 12, 1)))
    await store.append_chat_message(trip.id, "user", "สวัสดี", "th")
    await store.append_chat_message(trip.id, "assistant", "สวัสดีค่ะ", "th")

    messages = await store.list_chat_messages(trip.id)

    assert [(item.role, item.content) for item in messages] == [("user", "สวัสดี"), ("assistant", "สวัสดีค่ะ")]


@pytest.mark.asyncio
async def test_driver_errors_become_persistence_errors() -> None:
    session = MagicMock()
    session.__enter__.return_value = session
    session.get.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    store = SqlAlchemyTripStore(MagicMock(return_value=session))

    with pytest.raises(PersistenceError):
        await store.get_trip("trip-1")
