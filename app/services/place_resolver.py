"""장소 이름 해석 서비스.

자유 텍스트 장소 이름(+ 지역 힌트)을 정규 장소 레코드로 바꾼다. 캐시를 먼저 보고,
없으면 장소 검색 제공자를 호출한 뒤 결과를 `place_id` 기준으로 캐시에 upsert한다.
개별 이름의 실패는 `ResolutionError` 값으로 돌려주며 예외로 전파하지 않는다.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from app.core.config import Settings, get_settings
from app.core.errors import PersistenceError, PlacesProviderError
from app.core.geo import GeoRectangle, haversine_km
from app.core.logger import get_logger
from app.schemas.enums import ResolutionErrorKind
from app.schemas.place import CachedPlace, PlaceResult, ResolutionError, ResolvedPlace, ResolveRequest
from app.services.place_cache import PlaceCache, normalize_query
from app.services.places_service import PlacesServiceProtocol

logger = get_logger(__name__)

Clock = Callable[[], datetime]
ResolutionOutcome = ResolvedPlace | ResolutionError

_HINT_SPLIT_PATTERN = re.compile(r"[\s,/]+")
_HINT_STOPWORDS = frozenset(
    {"จังหวัด", "อำเภอ", "เขต", "เมือง", "province", "city", "district", "thailand", "ประเทศไทย"}
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _hint_keywords(location_hint: str) -> list[str]:
    keywords = []
    for token in _HINT_SPLIT_PATTERN.split(location_hint.casefold()):
        for stopword in ("จังหวัด", "อำเภอ"):
            if token.startswith(stopword) and len(token) > len(stopword):
                token = token[len(stopword) :]
        if len(token) >= 2 and token not in _HINT_STOPWORDS:
            keywords.append(token)
    return keywords


def matches_location_context(result: PlaceResult, name: str, location_hint: str) -> bool:
    """검색 결과가 요청한 지역에 있는지 주소 키워드 또는 이름 일치로 판단합니다."""
    address = (result.formatted_address or "").casefold()
    keywords = _hint_keywords(location_hint)
    if not keywords or any(keyword in address for keyword in keywords):
        return True
    searched = name.casefold().strip()
    found = result.name.casefold().strip()
    return bool(searched) and (searched in found or found in searched)


def rank_results(results: Sequence[PlaceResult]) -> list[PlaceResult]:
    """좌표가 없는 결과를 버리고 평점, 리뷰 수 내림차순으로 정렬합니다."""
    usable = [result for result in results if result.geometry is not None]
    return sorted(usable, key=lambda item: (-(item.rating or 0.0), -(item.user_ratings_total or 0)))


class PlaceResolver:
    """캐시 우선 장소 해석기."""

    def __init__(
        self,
        places_service: PlacesServiceProtocol,
        cache: PlaceCache,
        *,
        concurrency: int = 4,
        context_check: bool = True,
        cache_radius_km: float = 5.0,
        clock: Clock = utc_now,
    ) -> None:
        self._places_service = places_service
        self._cache = cache
        self._concurrency = max(1, int(concurrency))
        self._context_check = context_check
        self._cache_radius_km = cache_radius_km
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        places_service: PlacesServiceProtocol,
        cache: PlaceCache,
        settings: Settings | None = None,
    ) -> PlaceResolver:
        resolved_settings = settings or get_settings()
        return cls(
            places_service,
            cache,
            concurrency=resolved_settings.PLACE_RESOLVE_CONCURRENCY,
            context_check=resolved_settings.PLACES_CONTEXT_CHECK_ENABLED,
            cache_radius_km=resolved_settings.PLACES_CACHE_RADIUS_KM,
        )

    async def _lookup_cache(
        self,
        name: str,
        location_hint: str | None,
        query_key: str,
        now: datetime,
        near: tuple[float, float] | None,
    ) -> CachedPlace | None:
        area = GeoRectangle.around(near[0], near[1], self._cache_radius_km) if near else None
        try:
            entry = await self._cache.get_by_query(query_key, now)
            if entry is None:
                entry = await self._cache.find_by_name(name, now, location_hint=location_hint, area=area)
        except PersistenceError as exc:
            logger.warning("Place cache lookup failed, falling back to provider: %s", exc)
            return None

        if entry is not None and near is not None:
            if haversine_km(near[0], near[1], entry.lat, entry.lng) > self._cache_radius_km:
                return None
        return entry

    async def resolve(
        self,
        name: str,
        location_hint: str | None = None,
        *,
        near: tuple[float, float] | None = None,
    ) -> ResolutionOutcome:
        """장소 이름 하나를 해석합니다."""
        clean_name = " ".join((name or "").split())
        clean_hint = " ".join(location_hint.split()) if location_hint else None
        if not clean_name:
            return ResolutionError(kind=ResolutionErrorKind.INVALID_QUERY, name=name or "", message="empty name")

        now = self._clock()
        query_key = normalize_query(clean_name, clean_hint)

        cached = await self._lookup_cache(clean_name, clean_hint, query_key, now, near)
        if cached is not None:
            logger.info("Place cache hit: name=%s place_id=%s", clean_name, cached.place_id)
            return cached.to_resolved()

        query = f"{clean_name} {clean_hint}" if clean_hint else clean_name
        try:
            results = await self._places_service.text_search(query, location=near)
        except PlacesProviderError as exc:
            logger.warning("Place search failed: name=%s error=%s", clean_name, exc)
            return ResolutionError(kind=ResolutionErrorKind.PROVIDER_ERROR, name=clean_name, message=str(exc))

        ranked = rank_results(results)
        if self._context_check and clean_hint:
            ranked = [result for result in ranked if matches_location_context(result, clean_name, clean_hint)]
        if not ranked:
            logger.warning("Place not found: name=%s hint=%s candidates=%d", clean_name, clean_hint, len(results))
            return ResolutionError(kind=ResolutionErrorKind.NOT_FOUND, name=clean_name, message="no usable result")

        place = ResolvedPlace.from_result(ranked[0])
        try:
            await self._cache.upsert(place, now, search_query=query_key)
        except PersistenceError as exc:
            logger.warning("Place cache write failed: place_id=%s error=%s", place.place_id, exc)

        logger.info("Place resolved via provider: name=%s place_id=%s", clean_name, place.place_id)
        return place

    async def resolve_many(
        self,
        requests: Sequence[ResolveRequest],
        *,
        near: tuple[float, float] | None = None,
    ) -> list[ResolutionOutcome]:
        """여러 이름을 동시에(상한 있음) 해석합니다. 결과는 입력 순서를 따릅니다."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(request: ResolveRequest) -> ResolutionOutcome:
            async with semaphore:
                return await self.resolve(request.name, request.location_hint, near=near)

        return list(await asyncio.gather(*(_bounded(request) for request in requests)))
