"""여행지 추가/삭제/재정렬/이동.

모든 변경은 저장소에서 여행지 목록을 다시 읽어 끝난다. 호출자는 쓰기 결과가 아니라
재조회한 권위 있는 상태만 보게 된다.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from app.core.config import Settings, get_settings
from app.core.errors import PersistenceError, TripNotFoundError
from app.core.logger import get_logger
from app.schemas.trip import Destination, DestinationPosition, NewDestination, ResolvedDestinationInput
from app.schemas.trip_action import DestinationOrderEntry, SchemaError, validate_destination_detail
from app.services.trip_store import TripStoreProtocol

logger = get_logger(__name__)


def normalize_name(name: str) -> str:
    return " ".join((name or "").split()).casefold()


def _chunks(items: Sequence[NewDestination], size: int) -> Iterable[Sequence[NewDestination]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _renumber(destinations: Iterable[Destination]) -> dict[str, tuple[int, int]]:
    """일차별로 정렬된 목록에 1부터 연속된 order_index를 다시 매깁니다."""
    by_day: dict[int, list[Destination]] = defaultdict(list)
    for destination in destinations:
        by_day[destination.visit_date].append(destination)
    positions: dict[str, tuple[int, int]] = {}
    for day, items in by_day.items():
        for index, destination in enumerate(items, start=1):
            positions[destination.id] = (day, index)
    return positions


@dataclass(slots=True)
class AddDestinationsOutcome:
    """여행지 추가 결과."""

    created: list[Destination] = field(default_factory=list)
    skipped_duplicates: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    destinations: list[Destination] = field(default_factory=list)


class DestinationMutator:
    """여행지 집합에 검증된 액션을 적용합니다."""

    def __init__(self, store: TripStoreProtocol, *, batch_size: int = 5) -> None:
        self._store = store
        self._batch_size = max(1, int(batch_size))

    @classmethod
    def from_settings(cls, store: TripStoreProtocol, settings: Settings | None = None) -> DestinationMutator:
        resolved_settings = settings or get_settings()
        return cls(store, batch_size=resolved_settings.DESTINATION_BATCH_SIZE)

    async def reload(self, trip_id: str) -> list[Destination]:
        return await self._store.list_destinations(trip_id)

    async def _total_days(self, trip_id: str) -> int:
        trip = await self._store.get_trip(trip_id)
        if trip is None:
            raise TripNotFoundError(f"trip not found: {trip_id}")
        return trip.total_days

    def _plan_rows(
        self,
        trip_id: str,
        items: Sequence[ResolvedDestinationInput],
        existing: Sequence[Destination],
        total_days: int,
        default_day: int | None,
    ) -> tuple[list[NewDestination], list[str], list[str]]:
        """삽입할 행을 만든다. 중복은 건너뛰고, 상세 값 검증에 실패한 장소는 따로 돌려준다."""
        known_names = {normalize_name(item.name) for item in existing}
        known_place_ids = {item.place_id for item in existing if item.place_id}
        next_index: dict[int, int] = defaultdict(lambda: 1)
        for destination in existing:
            next_index[destination.visit_date] = max(next_index[destination.visit_date], destination.order_index + 1)

        rows: list[NewDestination] = []
        skipped: list[str] = []
        invalid: list[str] = []
        for position, item in enumerate(items):
            place = item.place
            key = normalize_name(place.name)
            if key in known_names or place.place_id in known_place_ids:
                skipped.append(place.name)
                continue

            if item.day is not None:
                day = item.day
            elif default_day is not None:
                day = default_day
            else:
                day = position % total_days + 1
            day = min(max(1, day), total_days)

            row = NewDestination(
                trip_id=trip_id,
                name=place.name,
                place_id=place.place_id,
                formatted_address=place.formatted_address or None,
                latitude=place.lat,
                longitude=place.lng,
                visit_date=day,
                order_index=next_index[day],
                place_type=item.place_type,
                place_types=list(place.types),
                rating=place.rating,
                user_ratings_total=place.user_ratings_total,
                price_level=place.price_level,
                visit_duration=item.visit_duration,
                description=item.description,
                recommended_by_ai=item.recommended_by_ai,
            )
            detail = validate_destination_detail(row.model_dump(mode="json"))
            if isinstance(detail, SchemaError):
                invalid.append(place.name)
                logger.warning(
                    "Rejected destination before insert: name=%s path=%s error=%s",
                    place.name,
                    detail.path,
                    detail.message,
                )
                continue

            known_names.add(key)
            known_place_ids.add(place.place_id)
            rows.append(row)
            next_index[day] += 1
        return rows, skipped, invalid

    async def add_destinations(
        self,
        trip_id: str,
        items: Sequence[ResolvedDestinationInput],
        *,
        day: int | None = None,
    ) -> AddDestinationsOutcome:
        """해석된 장소들을 일정에 추가합니다.

        일차는 항목 지정값, 액션 지정값(`day`), 여행 일수 기준 순환 배정 순으로 정한다.
        배치 단위(기본 5개)로 저장하고, 실패한 배치는 항목별로 다시 시도해
        실패 항목만 제외한다. 아무것도 저장하지 못하고 쓰기 오류가 있었을 때만
        `PersistenceError`를 던진다.
        """
        outcome = AddDestinationsOutcome()
        if not items:
            outcome.destinations = await self.reload(trip_id)
            return outcome

        total_days = await self._total_days(trip_id)
        existing = await self.reload(trip_id)
        rows, outcome.skipped_duplicates, invalid = self._plan_rows(trip_id, items, existing, total_days, day)
        if outcome.skipped_duplicates:
            logger.info("Skipped duplicate destinations: %s", outcome.skipped_duplicates)

        inserted_ids: set[str] = set()
        last_error: PersistenceError | None = None
        for batch_number, batch in enumerate(_chunks(rows, self._batch_size), start=1):
            try:
                created = await self._store.insert_destinations(list(batch))
                inserted_ids.update(item.id for item in created)
                logger.info(
                    "Destination batch committed: trip_id=%s batch=%d size=%d", trip_id, batch_number, len(batch)
                )
                continue
            except PersistenceError as exc:
                last_error = exc
                logger.warning(
                    "Destination batch failed, retrying items one by one: trip_id=%s batch=%d error=%s",
                    trip_id,
                    batch_number,
                    exc,
                )

            for row in batch:
                try:
                    created = await self._store.insert_destinations([row])
                    inserted_ids.update(item.id for item in created)
                except PersistenceError as exc:
                    last_error = exc
                    outcome.failed.append(row.name)
                    logger.warning("Dropped destination after insert failure: name=%s error=%s", row.name, exc)

        if rows and not inserted_ids and last_error is not None:
            raise PersistenceError(f"no destinations could be saved: {last_error.message}")

        outcome.destinations = await self.reload(trip_id)
        if outcome.failed:
            await self._apply_positions(trip_id, outcome.destinations, _renumber(outcome.destinations))
            outcome.destinations = await self.reload(trip_id)
        outcome.created = [item for item in outcome.destinations if item.id in inserted_ids]
        outcome.failed.extend(invalid)
        return outcome

    async def remove_destinations_by_names(self, trip_id: str, names: Sequence[str]) -> int:
        """이름이 정확히 일치(공백 정리, 대소문자 무시)하는 여행지를 모두 삭제합니다."""
        targets = {normalize_name(name) for name in names if normalize_name(name)}
        if not targets:
            return 0
        existing = await self.reload(trip_id)
        matched = [item for item in existing if normalize_name(item.name) in targets]
        removed = await self._store.delete_destinations(trip_id, [item.id for item in matched])

        matched_ids = {item.id for item in matched}
        remaining = [item for item in existing if item.id not in matched_ids]
        await self._apply_positions(trip_id, remaining, _renumber(remaining))
        await self.reload(trip_id)
        logger.info("Removed destinations: trip_id=%s requested=%d removed=%d", trip_id, len(targets), removed)
        return removed

    async def reorder(self, trip_id: str, order: Sequence[DestinationOrderEntry]) -> list[Destination]:
        """지정된 (일차, 순서)를 반영한 뒤 일차마다 1..n으로 다시 번호를 매깁니다.

        같은 자리를 요구하는 항목은 원래 order_index 오름차순으로 정렬한다.
        지정되지 않은 여행지는 현재 자리를 유지한다.
        """
        existing = await self.reload(trip_id)
        total_days = await self._total_days(trip_id)
        requested: dict[str, DestinationOrderEntry] = {}
        for entry in order:
            requested.setdefault(normalize_name(entry.name), entry)

        def _sort_key(item: Destination) -> tuple[int, int, int, int]:
            entry = requested.get(normalize_name(item.name))
            if entry is None:
                return (item.visit_date, item.order_index, 1, item.order_index)
            return (min(entry.day, total_days), entry.order_index, 0, item.order_index)

        target_days = {}
        for item in existing:
            entry = requested.get(normalize_name(item.name))
            target_days[item.id] = min(entry.day, total_days) if entry else item.visit_date

        ordered = sorted(existing, key=_sort_key)
        placed = [item.model_copy(update={"visit_date": target_days[item.id]}) for item in ordered]
        unmatched = set(requested) - {normalize_name(item.name) for item in existing}
        if unmatched:
            logger.warning("Reorder entries without a matching destination: %s", sorted(unmatched))

        await self._apply_positions(trip_id, existing, _renumber(placed))
        return await self.reload(trip_id)

    async def move(
        self,
        trip_id: str,
        name: str,
        target_day: int,
        target_position: int | None = None,
    ) -> list[Destination]:
        """이름이 일치하는 첫 여행지를 대상 일차의 지정 위치(없으면 맨 뒤)로 옮깁니다."""
        existing = await self.reload(trip_id)
        total_days = await self._total_days(trip_id)
        key = normalize_name(name)
        subject = next((item for item in existing if normalize_name(item.name) == key), None)
        if subject is None:
            logger.warning("Move target not found: trip_id=%s name=%s", trip_id, name)
            return existing

        day = min(max(1, target_day), total_days)
        others = [item for item in existing if item.id != subject.id]
        target_list = [item for item in others if item.visit_date == day]
        if target_position is None:
            insert_at = len(target_list)
        else:
            insert_at = min(max(1, target_position), len(target_list) + 1) - 1
        target_list.insert(insert_at, subject.model_copy(update={"visit_date": day}))

        placed = [item for item in others if item.visit_date != day] + target_list
        await self._apply_positions(trip_id, existing, _renumber(placed))
        return await self.reload(trip_id)

    async def _apply_positions(
        self,
        trip_id: str,
        current: Sequence[Destination],
        positions: dict[str, tuple[int, int]],
    ) -> None:
        before = {item.id: (item.visit_date, item.order_index) for item in current}
        updates = [
            DestinationPosition(id=destination_id, visit_date=day, order_index=index)
            for destination_id, (day, index) in positions.items()
            if destination_id in before and before[destination_id] != (day, index)
        ]
        if updates:
            await self._store.update_destination_positions(trip_id, updates)

    async def clamp_to_days(self, trip_id: str, total_days: int) -> list[Destination]:
        """여행 일수가 줄었을 때 범위를 벗어난 여행지를 마지막 날 뒤쪽으로 옮깁니다."""
        existing = await self.reload(trip_id)
        last_day = max(1, total_days)
        overflow = [item.model_copy(update={"visit_date": last_day}) for item in existing if item.visit_date > last_day]
        if not overflow:
            return existing
        kept = [item for item in existing if item.visit_date <= last_day]
        await self._apply_positions(trip_id, existing, _renumber(kept + overflow))
        return await self.reload(trip_id)
