"""자연어 계획 → 장소 추출 결과 스키마."""

from pydantic import BaseModel, Field

from app.schemas.enums import PlaceType


class ExtractedPlace(BaseModel):
    """자연어 계획에서 추출한 장소 후보."""

    name: str = Field(..., min_length=1, description="장소 이름")
    hint_address: str | None = Field(default=None, description="주소 힌트 (없으면 location_context)")
    min_hours: float | None = Field(default=None, description="최소 체류 시간(시간)")
    place_type: PlaceType = Field(default=PlaceType.TOURIST_ATTRACTION, description="장소 유형")
    day: int | None = Field(default=None, ge=1, description="배정 일차")


class NarrativeMeta(BaseModel):
    """추출 메타데이터."""

    total_places: int = 0
    extraction_time_ms: float = 0.0
    model: str | None = None
