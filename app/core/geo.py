"""캐시 반경 조회와 장소 검색 위치 편향을 위한 지리 유틸리티."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

_MIN_LAT = -90.0
_MAX_LAT = 90.0
_MIN_LNG = -180.0
_MAX_LNG = 180.0
_KM_PER_LAT_DEGREE = 110.574
_KM_PER_LNG_DEGREE_EQUATOR = 111.320
_EARTH_RADIUS_KM = 6371.0088
_EPSILON = 1e-6


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def _span(a: float, b: float, minimum: float, maximum: float) -> tuple[float, float]:
    """정렬하고 범위 안으로 자른 구간. 폭이 0이면 아주 조금 넓힌다."""
    low, high = sorted((_clamp(float(a), minimum, maximum), _clamp(float(b), minimum, maximum)))
    if math.isclose(low, high):
        low, high = _clamp(low - _EPSILON, minimum, maximum), _clamp(high + _EPSILON, minimum, maximum)
    return low, high


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """두 좌표 사이의 대원 거리(km)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * _EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def centroid(points: Iterable[tuple[float | None, float | None]]) -> tuple[float, float] | None:
    """좌표들의 평균점. 좌표가 빠진 항목은 건너뛰고, 남는 좌표가 없으면 None."""
    coords = [(float(lat), float(lng)) for lat, lng in points if lat is not None and lng is not None]
    if not coords:
        return None
    return sum(lat for lat, _ in coords) / len(coords), sum(lng for _, lng in coords) / len(coords)


@dataclass(frozen=True, slots=True)
class GeoRectangle:
    """위경도 사각형. DB 인덱스로 걸러낼 수 있는 반경 조회의 근사 영역이다."""

    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def __post_init__(self) -> None:
        min_lat, max_lat = _span(self.min_lat, self.max_lat, _MIN_LAT, _MAX_LAT)
        min_lng, max_lng = _span(self.min_lng, self.max_lng, _MIN_LNG, _MAX_LNG)
        for name, value in (("min_lat", min_lat), ("min_lng", min_lng), ("max_lat", max_lat), ("max_lng", max_lng)):
            object.__setattr__(self, name, value)

    def contains(self, latitude: float, longitude: float) -> bool:
        """점이 사각형 내부(경계 포함)에 있는지 반환합니다."""
        lat = float(latitude)
        lng = float(longitude)
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    @classmethod
    def around(cls, latitude: float, longitude: float, radius_km: float) -> GeoRectangle:
        """중심점과 반경(km)을 감싸는 사각형을 만듭니다."""
        radius = max(0.0, float(radius_km))
        center_lat = _clamp(float(latitude), -89.999999, 89.999999)
        lat_delta = radius / _KM_PER_LAT_DEGREE
        cos_lat = max(abs(math.cos(math.radians(center_lat))), _EPSILON)
        lng_delta = radius / (_KM_PER_LNG_DEGREE_EQUATOR * cos_lat)
        return cls(
            min_lat=center_lat - lat_delta,
            min_lng=float(longitude) - lng_delta,
            max_lat=center_lat + lat_delta,
            max_lng=float(longitude) + lng_delta,
        )
