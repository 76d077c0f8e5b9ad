"""장소 해석 캐시.

캐시는 `place_id`를 키로 하는 upsert로만 기록되므로 같은 장소를 동시에 해석해도
행이 하나로 수렴한다. 조회 결과는 `cache_expires_at`이 현재 시각보다 뒤일 때만 사용한다.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import PersistenceError
from app.core.geo import GeoRectangle
from app.core.logger import get_logger
from app.models.place_cache import PlaceCacheRecord
from app.schemas.place import CachedPlace, ResolvedPlace

logger = get_logger(__name__)

DEFAULT_CACHE_TTL = timedelta(days=30)
_FUZZY_CANDIDATE_LIMIT = 20


def normalize_query(name: str, location_hint: str | None = None) -> str:
    """캐시 키로 쓰는 검색어 정규화 (공백 정리 + casefold)."""
    text = f"{name} {location_hint}" if location_hint else name
    return " ".join(text.split()).casefold()


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


def _matches(entry: CachedPlace, name: str, location_hint: str | None, area: GeoRectangle | None) -> bool:
    if name.casefold() not in entry.name.casefold():
        return False
    if location_hint and location_hint.casefold() not in entry.formatted_address.casefold():
        return False
    if area is not None and not area.contains(entry.lat, entry.lng):
        return False
    return True


def _rank_key(entry: CachedPlace) -> tuple[float, int]:
    return (-(entry.rating or 0.0), -(entry.user_ratings_total or 0))


class PlaceCache(ABC):
    """장소 캐시 인터페이스."""

    def __init__(self, ttl: timedelta = DEFAULT_CACHE_TTL) -> None:
        self.ttl = ttl

    def expires_at(self, now: datetime) -> datetime:
        return now + self.ttl

    @abstractmethod
    async def get_by_query(self, query: str, now: datetime) -> CachedPlace | None:
        """정규화된 검색어로 만료되지 않은 항목을 찾습니다."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_name(
        self,
        name: str,
        now: datetime,
        location_hint: str | None = None,
        area: GeoRectangle | None = None,
    ) -> CachedPlace | None:
        """이름 부분 일치(+ 주소 힌트, 영역)로 만료되지 않은 최상위 항목을 찾습니다."""
        raise NotImplementedError

    @abstractmethod
    async def upsert(self, place: ResolvedPlace, now: datetime, search_query: str | None = None) -> CachedPlace:
        raise NotImplementedError


class InMemoryPlaceCache(PlaceCache):
    """프로세스 메모리 캐시."""

    def __init__(self, ttl: timedelta = DEFAULT_CACHE_TTL) -> None:
        super().__init__(ttl)
        self._entries: dict[str, CachedPlace] = {}
        self._lock = asyncio.Lock()
        self.write_count = 0

    def __len__(self) -> int:
        return len(self._entries)

    async def get_by_query(self, query: str, now: datetime) -> CachedPlace | None:
        for entry in self._entries.values():
            if entry.search_query == query and entry.is_fresh(now):
                return entry
        return None

    async def find_by_name(
        self,
        name: str,
        now: datetime,
        location_hint: str | None = None,
        area: GeoRectangle | None = None,
    ) -> CachedPlace | None:
        candidates = [
            entry
            for entry in self._entries.values()
            if entry.is_fresh(now) and _matches(entry, name, location_hint, area)
        ]
        return min(candidates, key=_rank_key) if candidates else None

    async def upsert(self, place: ResolvedPlace, now: datetime, search_query: str | None = None) -> CachedPlace:
        async with self._lock:
            previous = self._entries.get(place.place_id)
            entry = CachedPlace(
                **place.model_dump(),
                search_query=search_query or (previous.search_query if previous else None),
                last_updated=now,
                cache_expires_at=self.expires_at(now),
            )
            self._entries[place.place_id] = entry
            self.write_count += 1
            return entry


class SqlAlchemyPlaceCache(PlaceCache):
    """`places_cache` 테이블 기반 캐시."""

    def __init__(self, session_factory: sessionmaker[Session], ttl: timedelta = DEFAULT_CACHE_TTL) -> None:
        super().__init__(ttl)
        self._session_factory = session_factory

    @staticmethod
    def _to_cached(record: PlaceCacheRecord) -> CachedPlace:
        entry = CachedPlace.model_validate(record)
        return entry.model_copy(
            update={
                "last_updated": _as_utc(entry.last_updated),
                "cache_expires_at": _as_utc(entry.cache_expires_at),
            }
        )

    async def _run(self, operation: str, func):
        def _execute():
            with self._session_factory() as session:
                return func(session)

        try:
            return await asyncio.to_thread(_execute)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"place cache {operation} failed: {exc}") from exc

    async def get_by_query(self, query: str, now: datetime) -> CachedPlace | None:
        def _get(session: Session) -> list[CachedPlace]:
            stmt = select(PlaceCacheRecord).where(PlaceCacheRecord.search_query == query)
            return [self._to_cached(record) for record in session.scalars(stmt)]

        entries = await self._run("get_by_query", _get)
        fresh = [entry for entry in entries if entry.is_fresh(now)]
        return min(fresh, key=_rank_key) if fresh else None

    async def find_by_name(
        self,
        name: str,
        now: datetime,
        location_hint: str | None = None,
        area: GeoRectangle | None = None,
    ) -> CachedPlace | None:
        def _find(session: Session) -> list[CachedPlace]:
            stmt = select(PlaceCacheRecord).where(PlaceCacheRecord.name.ilike(f"%{name}%"))
            if location_hint:
                stmt = stmt.where(PlaceCacheRecord.formatted_address.ilike(f"%{location_hint}%"))
            if area is not None:
                stmt = stmt.where(
                    PlaceCacheRecord.lat.between(area.min_lat, area.max_lat),
                    PlaceCacheRecord.lng.between(area.min_lng, area.max_lng),
                )
            stmt = stmt.limit(_FUZZY_CANDIDATE_LIMIT)
            return [self._to_cached(record) for record in session.scalars(stmt)]

        entries = await self._run("find_by_name", _find)
        fresh = [entry for entry in entries if entry.is_fresh(now)]
        return min(fresh, key=_rank_key) if fresh else None

    async def upsert(self, place: ResolvedPlace, now: datetime, search_query: str | None = None) -> CachedPlace:
        values = {
            **place.model_dump(),
            "search_query": search_query,
            "last_updated": now,
            "cache_expires_at": self.expires_at(now),
        }
        update_columns = {key: value for key, value in values.items() if key != "place_id"}
        if search_query is None:
            update_columns.pop("search_query")

        def _upsert(session: Session) -> CachedPlace:
            dialect = session.get_bind().dialect.name
            if dialect == "postgresql":
                stmt = postgresql.insert(PlaceCacheRecord).values(**values)
                stmt = stmt.on_conflict_do_update(index_elements=["place_id"], set_=update_columns)
                session.execute(stmt)
            elif dialect == "sqlite":
                stmt = sqlite.insert(PlaceCacheRecord).values(**values)
                stmt = stmt.on_conflict_do_update(index_elements=["place_id"], set_=update_columns)
                session.execute(stmt)
            else:
                session.merge(PlaceCacheRecord(**values))
            session.commit()
            record = session.get(PlaceCacheRecord, place.place_id, populate_existing=True)
            return self._to_cached(record)

        entry = await self._run("upsert", _upsert)
        logger.info("Place cache upserted: place_id=%s expires_at=%s", entry.place_id, entry.cache_expires_at)
        return entry
