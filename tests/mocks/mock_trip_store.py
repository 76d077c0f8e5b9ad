"""메모리 기반 여행 저장소 Fake.

`fail_insert_names`에 든 이름을 포함한 삽입은 `PersistenceError`로 실패한다.
변경 피드가 주어지면 SQLAlchemy 구현과 같은 형태의 변경 알림을 발행한다.
"""

from __future__ import annotations

from datetime import datetime, timezone

from app.core.errors import PersistenceError, TripNotFoundError
from app.schemas.enums import ChangeEventType
from app.schemas.trip import (
    Destination,
    DestinationPosition,
    NewDestination,
    StoredChatMessage,
    Trip,
    TripCreate,
    TripUpdate,
)
from app.services.change_feed import ChangeEvent, ChangeFeed
from app.services.trip_store import DESTINATIONS_TABLE, TRIPS_TABLE, TripStoreProtocol, new_id


class InMemoryTripStore(TripStoreProtocol):
    def __init__(
        self,
        *,
        change_feed: ChangeFeed | None = None,
        fail_insert_names: set[str] | None = None,
    ) -> None:
        self.trips: dict[str, Trip] = {}
        self.destinations: dict[str, Destination] = {}
        self.messages: list[StoredChatMessage] = []
        self.change_feed = change_feed
        self.fail_insert_names = set(fail_insert_names or ())
        self.fail_reads = False
        self.insert_calls: list[int] = []

    def _publish(self, table: str, event_type: ChangeEventType, new: dict | None = None, old: dict | None = None):
        if self.change_feed is not None:
            self.change_feed.publish(ChangeEvent(table=table, event_type=event_type, new=new, old=old))

    async def create_trip(self, data: TripCreate) -> Trip:
        now = datetime.now(timezone.utc)
        trip = Trip(id=new_id(), created_at=now, updated_at=now, **data.model_dump())
        self.trips[trip.id] = trip
        self._publish(TRIPS_TABLE, ChangeEventType.INSERT, new=trip.model_dump())
        return trip

    async def get_trip(self, trip_id: str) -> Trip | None:
        if self.fail_reads:
            raise PersistenceError("get_trip failed: store offline")
        return self.trips.get(trip_id)

    async def update_trip(self, trip_id: str, changes: TripUpdate) -> Trip:
        trip = self.trips.get(trip_id)
        if trip is None:
            raise TripNotFoundError(f"trip not found: {trip_id}")
        updated = trip.model_copy(update=changes.model_dump(exclude_none=True))
        self.trips[trip_id] = updated
        self._publish(TRIPS_TABLE, ChangeEventType.UPDATE, new=updated.model_dump(), old=trip.model_dump())
        return updated

    async def list_destinations(self, trip_id: str) -> list[Destination]:
        if self.fail_reads:
            raise PersistenceError("list_destinations failed: store offline")
        rows = [item for item in self.destinations.values() if item.trip_id == trip_id]
        return sorted(rows, key=lambda item: (item.visit_date, item.order_index))

    async def insert_destinations(self, items: list[NewDestination]) -> list[Destination]:
        self.insert_calls.append(len(items))
        if any(item.name in self.fail_insert_names for item in items):
            raise PersistenceError("insert_destinations failed: constraint violation")
        created = [Destination(id=new_id(), **item.model_dump()) for item in items]
        for destination in created:
            self.destinations[destination.id] = destination
            self._publish(DESTINATIONS_TABLE, ChangeEventType.INSERT, new=destination.model_dump())
        return created

    async def update_destination_positions(self, trip_id: str, positions: list[DestinationPosition]) -> None:
        for position in positions:
            current = self.destinations.get(position.id)
            if current is None or current.trip_id != trip_id:
                continue
            updated = current.model_copy(
                update={"visit_date": position.visit_date, "order_index": position.order_index}
            )
            self.destinations[position.id] = updated
            self._publish(
                DESTINATIONS_TABLE, ChangeEventType.UPDATE, new=updated.model_dump(), old=current.model_dump()
            )

    async def delete_destinations(self, trip_id: str, destination_ids: list[str]) -> int:
        removed = 0
        for destination_id in destination_ids:
            current = self.destinations.get(destination_id)
            if current is None or current.trip_id != trip_id:
                continue
            del self.destinations[destination_id]
            removed += 1
            self._publish(DESTINATIONS_TABLE, ChangeEventType.DELETE, old=current.model_dump())
        return removed

    async def append_chat_message(self, trip_id: str, role: str, content: str, language: str) -> StoredChatMessage:
        message = StoredChatMessage(
            id=new_id(),
            trip_id=trip_id,
            role=role,
            content=content,
            language=language,
            created_at=datetime.now(timezone.utc),
        )
        self.messages.append(message)
        return message

    async def list_chat_messages(self, trip_id: str) -> list[StoredChatMessage]:
        return [message for message in self.messages if message.trip_id == trip_id]
