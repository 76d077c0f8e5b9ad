"""장소 검색 결과와 해석된 장소 모델."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.enums import ResolutionErrorKind


class PlaceLocation(BaseModel):
    """장소 좌표."""

    lat: float = Field(..., description="위도")
    lng: float = Field(..., description="경도")


class PlaceGeometry(BaseModel):
    """Google Places `geometry` 필드."""

    location: PlaceLocation


class PlaceResult(BaseModel):
    """장소 검색 제공자가 반환하는 장소 레코드."""

    model_config = ConfigDict(extra="ignore")

    place_id: str = Field(..., description="제공자 고유 ID")
    name: str = Field(..., description="장소 이름")
    formatted_address: str | None = Field(default=None, description="전체 주소")
    geometry: PlaceGeometry | None = Field(default=None, description="좌표 정보")
    rating: float | None = None
    user_ratings_total: int | None = None
    price_level: int | None = None
    types: list[str] = Field(default_factory=list)


class PlaceSearchResponse(BaseModel):
    """장소 검색 제공자 응답 봉투."""

    model_config = ConfigDict(extra="ignore")

    status: str
    results: list[PlaceResult] = Field(default_factory=list)
    result: PlaceResult | None = None
    error_message: str | None = None


class ResolvedPlace(BaseModel):
    """이름 해석이 끝난 정규 장소 레코드. `place_id`가 캐시 키다."""

    model_config = ConfigDict(from_attributes=True)

    place_id: str
    name: str
    formatted_address: str = ""
    lat: float
    lng: float
    rating: float | None = None
    user_ratings_total: int | None = None
    price_level: int | None = None
    types: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: PlaceResult) -> ResolvedPlace:
        """좌표가 있는 검색 결과를 변환합니다."""
        if result.geometry is None:
            raise ValueError(f"place {result.place_id} has no geometry")
        return cls(
            place_id=result.place_id,
            name=result.name,
            formatted_address=result.formatted_address or "",
            lat=result.geometry.location.lat,
            lng=result.geometry.location.lng,
            rating=result.rating,
            user_ratings_total=result.user_ratings_total,
            price_level=result.price_level,
            types=list(result.types),
        )


class CachedPlace(ResolvedPlace):
    """캐시 행. 만료 시각 이전에만 사용된다."""

    search_query: str | None = None
    last_updated: datetime
    cache_expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now < self.cache_expires_at

    def to_resolved(self) -> ResolvedPlace:
        data = self.model_dump(exclude={"search_query", "last_updated", "cache_expires_at"})
        return ResolvedPlace.model_validate(data)


class ResolutionError(BaseModel):
    """복구 가능한 장소 해석 실패."""

    kind: ResolutionErrorKind
    name: str
    message: str = ""


class ResolveRequest(BaseModel):
    """일괄 해석 입력 항목."""

    name: str
    location_hint: str | None = None
