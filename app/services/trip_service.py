"""여행 생성과 여행 정보 변경."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from datetime import date, timedelta

from app.core.config import Settings, get_settings
from app.core.errors import TripNotFoundError
from app.core.logger import get_logger
from app.core.messages import default_trip_title
from app.schemas.chat import Message
from app.schemas.enums import ChatRole
from app.schemas.trip import Trip, TripCreate, TripUpdate
from app.schemas.trip_action import ModifyTripAction, UpdateTripInfoAction
from app.services.destination_mutator import DestinationMutator
from app.services.trip_store import TripStoreProtocol

logger = get_logger(__name__)

_DURATION_PATTERN = re.compile(r"(\d{1,2})\s*(?:วัน|days?\b)", re.IGNORECASE)
_MAX_TRIP_DAYS = 30


def extract_trip_days(message: str, history: Sequence[Message] = (), default: int = 2) -> int:
    """`3 วัน`, `3 days` 같은 표현에서 여행 일수를 찾습니다. 최신 사용자 발화가 우선입니다."""
    texts = [message] + [item.content for item in reversed(history) if item.role == ChatRole.USER]
    for text in texts:
        match = _DURATION_PATTERN.search(text or "")
        if match:
            days = int(match.group(1))
            if 1 <= days <= _MAX_TRIP_DAYS:
                return days
    return default


def _end_date(start: date, days: int) -> date:
    return start + timedelta(days=max(1, days) - 1)


class TripService:
    """대화에서 발생하는 여행 단위 변경을 담당합니다."""

    def __init__(
        self,
        store: TripStoreProtocol,
        mutator: DestinationMutator,
        *,
        default_days: int = 2,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._mutator = mutator
        self._default_days = default_days
        self._today = today

    @classmethod
    def from_settings(
        cls,
        store: TripStoreProtocol,
        mutator: DestinationMutator,
        settings: Settings | None = None,
    ) -> TripService:
        resolved_settings = settings or get_settings()
        return cls(store, mutator, default_days=resolved_settings.DEFAULT_TRIP_DAYS)

    async def _require(self, trip_id: str) -> Trip:
        trip = await self._store.get_trip(trip_id)
        if trip is None:
            raise TripNotFoundError(f"trip not found: {trip_id}")
        return trip

    async def create_for_turn(
        self,
        message: str,
        history: Sequence[Message] = (),
        *,
        language: str = "th",
        title: str | None = None,
    ) -> Trip:
        """대화 내용에서 일수를 추정해 새 여행을 만듭니다."""
        days = extract_trip_days(message, history, default=self._default_days)
        start = self._today()
        trip = await self._store.create_trip(
            TripCreate(
                title=title or default_trip_title(language),
                start_date=start,
                end_date=_end_date(start, days),
                language=language,
            )
        )
        logger.info("Trip created from chat: trip_id=%s days=%d", trip.id, days)
        return trip

    async def update_info(self, trip_id: str, action: UpdateTripInfoAction) -> Trip:
        """UPDATE_TRIP_INFO: 시작일, 일수, 예산을 갱신합니다."""
        trip = await self._require(trip_id)
        start = trip.start_date
        if action.start_date:
            try:
                start = date.fromisoformat(action.start_date[:10])
            except ValueError:
                logger.warning("Ignoring unparseable start_date: %s", action.start_date)
        days = action.days or trip.total_days

        changes = TripUpdate(
            start_date=start,
            end_date=_end_date(start, days),
            budget_min=action.budget_min,
            budget_max=action.budget_max,
        )
        updated = await self._store.update_trip(trip_id, changes)
        if updated.total_days < trip.total_days:
            await self._mutator.clamp_to_days(trip_id, updated.total_days)
        return updated

    async def resize(self, trip_id: str, action: ModifyTripAction) -> Trip:
        """MODIFY_TRIP: 총 일수를 바꾸고 범위를 벗어난 여행지를 마지막 날로 옮깁니다."""
        trip = await self._require(trip_id)
        modification = action.trip_modification
        updated = await self._store.update_trip(
            trip_id,
            TripUpdate(end_date=_end_date(trip.start_date, modification.new_total_days)),
        )
        if updated.total_days < trip.total_days:
            await self._mutator.clamp_to_days(trip_id, updated.total_days)
        if modification.extend_to_province:
            logger.info(
                "Trip extended toward province: trip_id=%s province=%s", trip_id, modification.extend_to_province
            )
        return updated
