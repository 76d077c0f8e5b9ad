"""여행/여행지 영속 계층.

`TripStoreProtocol`은 파이프라인이 기대하는 행 단위 CRUD 계약이고,
`SqlAlchemyTripStore`는 동기 SQLAlchemy 세션을 워커 스레드에서 실행하는 구현이다.
커밋이 끝난 변경은 `ChangeFeed`로 발행된다.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import PersistenceError, TripNotFoundError
from app.core.logger import get_logger
from app.models.trip import ChatMessageRecord, DestinationRecord, TripRecord
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

logger = get_logger(__name__)

T = TypeVar("T")

DESTINATIONS_TABLE = "destinations"
TRIPS_TABLE = "trips"


def new_id() -> str:
    return str(uuid.uuid4())


class TripStoreProtocol(ABC):
    """여행 저장소 인터페이스."""

    @abstractmethod
    async def create_trip(self, data: TripCreate) -> Trip:
        raise NotImplementedError

    @abstractmethod
    async def get_trip(self, trip_id: str) -> Trip | None:
        raise NotImplementedError

    @abstractmethod
    async def update_trip(self, trip_id: str, changes: TripUpdate) -> Trip:
        raise NotImplementedError

    @abstractmethod
    async def list_destinations(self, trip_id: str) -> list[Destination]:
        """여행지를 (visit_date, order_index) 오름차순으로 반환합니다."""
        raise NotImplementedError

    @abstractmethod
    async def insert_destinations(self, items: list[NewDestination]) -> list[Destination]:
        """한 트랜잭션으로 여행지를 삽입합니다. 하나라도 실패하면 전체가 롤백됩니다."""
        raise NotImplementedError

    @abstractmethod
    async def update_destination_positions(self, trip_id: str, positions: list[DestinationPosition]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_destinations(self, trip_id: str, destination_ids: list[str]) -> int:
        raise NotImplementedError

    @abstractmethod
    async def append_chat_message(self, trip_id: str, role: str, content: str, language: str) -> StoredChatMessage:
        raise NotImplementedError

    @abstractmethod
    async def list_chat_messages(self, trip_id: str) -> list[StoredChatMessage]:
        raise NotImplementedError


def _trip_row(record: TripRecord) -> dict[str, Any]:
    return Trip.model_validate(record).model_dump(mode="json")


def _destination_row(record: DestinationRecord) -> dict[str, Any]:
    return Destination.model_validate(record).model_dump(mode="json")


class SqlAlchemyTripStore(TripStoreProtocol):
    """SQLAlchemy 기반 여행 저장소."""

    def __init__(self, session_factory: sessionmaker[Session], change_feed: ChangeFeed | None = None) -> None:
        self._session_factory = session_factory
        self._change_feed = change_feed

    async def _run(self, operation: str, func: Callable[[Session], T]) -> T:
        def _execute() -> T:
            with self._session_factory() as session:
                try:
                    return func(session)
                except SQLAlchemyError:
                    session.rollback()
                    raise

        try:
            return await asyncio.to_thread(_execute)
        except SQLAlchemyError as exc:
            logger.error("Trip store %s failed: %s", operation, exc)
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    def _publish(
        self, table: str, event_type: ChangeEventType, new: dict | None = None, old: dict | None = None
    ) -> None:
        if self._change_feed is not None:
            self._change_feed.publish(ChangeEvent(table=table, event_type=event_type, new=new, old=old))

    async def create_trip(self, data: TripCreate) -> Trip:
        def _create(session: Session) -> dict[str, Any]:
            record = TripRecord(id=new_id(), **data.model_dump())
            session.add(record)
            session.commit()
            session.refresh(record)
            return _trip_row(record)

        row = await self._run("create_trip", _create)
        self._publish(TRIPS_TABLE, ChangeEventType.INSERT, new=row)
        return Trip.model_validate(row)

    async def get_trip(self, trip_id: str) -> Trip | None:
        def _get(session: Session) -> dict[str, Any] | None:
            record = session.get(TripRecord, trip_id)
            return _trip_row(record) if record is not None else None

        row = await self._run("get_trip", _get)
        return Trip.model_validate(row) if row is not None else None

    async def update_trip(self, trip_id: str, changes: TripUpdate) -> Trip:
        def _update(session: Session) -> tuple[dict[str, Any], dict[str, Any]] | None:
            record = session.get(TripRecord, trip_id)
            if record is None:
                return None
            old = _trip_row(record)
            for key, value in changes.model_dump(exclude_none=True).items():
                setattr(record, key, value)
            session.commit()
            session.refresh(record)
            return old, _trip_row(record)

        result = await self._run("update_trip", _update)
        if result is None:
            raise TripNotFoundError(f"trip not found: {trip_id}")
        old, new = result
        self._publish(TRIPS_TABLE, ChangeEventType.UPDATE, new=new, old=old)
        return Trip.model_validate(new)

    async def list_destinations(self, trip_id: str) -> list[Destination]:
        def _list(session: Session) -> list[dict[str, Any]]:
            stmt = (
                select(DestinationRecord)
                .where(DestinationRecord.trip_id == trip_id)
                .order_by(DestinationRecord.visit_date, DestinationRecord.order_index, DestinationRecord.created_at)
            )
            return [_destination_row(record) for record in session.scalars(stmt)]

        rows = await self._run("list_destinations", _list)
        return [Destination.model_validate(row) for row in rows]

    async def insert_destinations(self, items: list[NewDestination]) -> list[Destination]:
        if not items:
            return []

        def _insert(session: Session) -> list[dict[str, Any]]:
            records = [DestinationRecord(id=new_id(), **item.model_dump()) for item in items]
            session.add_all(records)
            session.commit()
            for record in records:
                session.refresh(record)
            return [_destination_row(record) for record in records]

        rows = await self._run("insert_destinations", _insert)
        for row in rows:
            self._publish(DESTINATIONS_TABLE, ChangeEventType.INSERT, new=row)
        return [Destination.model_validate(row) for row in rows]

    async def update_destination_positions(self, trip_id: str, positions: list[DestinationPosition]) -> None:
        if not positions:
            return

        def _update(session: Session) -> list[tuple[dict[str, Any], dict[str, Any]]]:
            by_id = {position.id: position for position in positions}
            stmt = select(DestinationRecord).where(
                DestinationRecord.trip_id == trip_id, DestinationRecord.id.in_(list(by_id))
            )
            changed: list[tuple[dict[str, Any], dict[str, Any]]] = []
            for record in session.scalars(stmt):
                position = by_id[record.id]
                if (record.visit_date, record.order_index) == (position.visit_date, position.order_index):
                    continue
                old = _destination_row(record)
                record.visit_date = position.visit_date
                record.order_index = position.order_index
                changed.append((old, record))
            session.commit()
            return [(old, _destination_row(record)) for old, record in changed]

        changes = await self._run("update_destination_positions", _update)
        for old, new in changes:
            self._publish(DESTINATIONS_TABLE, ChangeEventType.UPDATE, new=new, old=old)

    async def delete_destinations(self, trip_id: str, destination_ids: list[str]) -> int:
        if not destination_ids:
            return 0

        def _delete(session: Session) -> list[dict[str, Any]]:
            stmt = select(DestinationRecord).where(
                DestinationRecord.trip_id == trip_id, DestinationRecord.id.in_(destination_ids)
            )
            removed = [_destination_row(record) for record in session.scalars(stmt)]
            session.execute(
                delete(DestinationRecord).where(
                    DestinationRecord.trip_id == trip_id, DestinationRecord.id.in_(destination_ids)
                )
            )
            session.commit()
            return removed

        removed = await self._run("delete_destinations", _delete)
        for old in removed:
            self._publish(DESTINATIONS_TABLE, ChangeEventType.DELETE, old=old)
        return len(removed)

    async def append_chat_message(self, trip_id: str, role: str, content: str, language: str) -> StoredChatMessage:
        def _append(session: Session) -> StoredChatMessage:
            record = ChatMessageRecord(id=new_id(), trip_id=trip_id, role=role, content=content, language=language)
            session.add(record)
            session.commit()
            session.refresh(record)
            return StoredChatMessage.model_validate(record)

        return await self._run("append_chat_message", _append)

    async def list_chat_messages(self, trip_id: str) -> list[StoredChatMessage]:
        def _list(session: Session) -> list[StoredChatMessage]:
            stmt = (
                select(ChatMessageRecord)
                .where(ChatMessageRecord.trip_id == trip_id)
                .order_by(ChatMessageRecord.created_at)
            )
            return [StoredChatMessage.model_validate(record) for record in session.scalars(stmt)]

        return await self._run("list_chat_messages", _list)
