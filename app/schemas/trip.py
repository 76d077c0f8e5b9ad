"""여행과 여행지 도메인 모델."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.enums import PlaceType, TripStatus
from app.schemas.place import ResolvedPlace


class Trip(BaseModel):
    """저장된 여행."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str | None = None
    start_date: date
    end_date: date
    budget_min: float | None = None
    budget_max: float | None = None
    status: TripStatus = TripStatus.PLANNING
    language: str = "th"
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total_days(self) -> int:
        return max(1, (self.end_date - self.start_date).days + 1)


class Destination(BaseModel):
    """저장된 여행지. `visit_date`는 1부터 시작하는 일차, `order_index`는 일차 내 순서다."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    trip_id: str
    name: str
    name_en: str | None = None
    description: str | None = None
    place_id: str | None = None
    formatted_address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    visit_date: int = Field(..., ge=1)
    order_index: int = Field(..., ge=1)
    place_type: PlaceType = PlaceType.TOURIST_ATTRACTION
    place_types: list[str] = Field(default_factory=list)
    rating: float | None = None
    user_ratings_total: int | None = None
    price_level: int | None = None
    visit_duration: int | None = None
    estimated_cost: float | None = None
    recommended_by_ai: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ResolvedDestinationInput(BaseModel):
    """해석된 장소에 요청 정보를 더한 추가 입력."""

    place: ResolvedPlace
    requested_name: str
    place_type: PlaceType = PlaceType.TOURIST_ATTRACTION
    day: int | None = Field(default=None, ge=1)
    visit_duration: int | None = Field(default=None, ge=15, le=480)
    description: str | None = None
    recommended_by_ai: bool = True


class NewDestination(BaseModel):
    """저장소에 삽입할 여행지 행. 일차와 순서가 이미 배정되어 있다."""

    trip_id: str
    name: str
    place_id: str | None = None
    formatted_address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    visit_date: int
    order_index: int
    place_type: PlaceType = PlaceType.TOURIST_ATTRACTION
    place_types: list[str] = Field(default_factory=list)
    rating: float | None = None
    user_ratings_total: int | None = None
    price_level: int | None = None
    visit_duration: int | None = None
    description: str | None = None
    recommended_by_ai: bool = True


class DestinationPosition(BaseModel):
    """여행지 위치 갱신."""

    id: str
    visit_date: int = Field(..., ge=1)
    order_index: int = Field(..., ge=1)


class TripCreate(BaseModel):
    """여행 생성 입력."""

    title: str
    start_date: date
    end_date: date
    description: str | None = None
    language: str = "th"


class TripUpdate(BaseModel):
    """여행 정보 부분 갱신."""

    title: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    budget_min: float | None = None
    budget_max: float | None = None
    status: TripStatus | None = None


class StoredChatMessage(BaseModel):
    """저장된 대화 메시지."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    trip_id: str
    role: str
    content: str
    language: str = "th"
    created_at: datetime | None = None
