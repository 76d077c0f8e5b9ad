"""Google Places Web Service 구현."""

from __future__ import annotations

import asyncio
from typing import Any

import requests
from pydantic import ValidationError

from app.core.config import get_settings
from app.core.errors import PlacesProviderError
from app.core.logger import get_logger
from app.core.timeout_policy import get_timeout_policy, to_requests_timeout
from app.schemas.place import PlaceResult, PlaceSearchResponse
from app.services.places_service import PlacesServiceProtocol

logger = get_logger(__name__)

_OK_STATUSES = frozenset({"OK", "ZERO_RESULTS"})


class GooglePlacesError(RuntimeError):
    """Google Places 호출 설정 실패 시 발생하는 예외."""


class GooglePlacesService(PlacesServiceProtocol):
    """Google Places (textsearch / details / nearbysearch) 기반 장소 검색 서비스."""

    _BASE_URL = "https://maps.googleapis.com/maps/api/place"
    _DETAILS_FIELDS = "place_id,name,formatted_address,geometry,rating,user_ratings_total,price_level,types"

    def __init__(
        self,
        api_key: str,
        timeout_seconds: int = 10,
        language_code: str = "th",
        region_code: str = "th",
    ) -> None:
        if not api_key:
            raise GooglePlacesError("GOOGLE_PLACES_API_KEY is not configured.")
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._language_code = language_code.strip() if language_code else ""
        self._region_code = region_code.strip() if region_code else ""

    @classmethod
    def from_settings(cls) -> GooglePlacesService:
        """애플리케이션 설정으로 서비스 인스턴스를 생성합니다."""
        settings = get_settings()
        timeout_policy = get_timeout_policy(settings)
        if not settings.GOOGLE_PLACES_API_KEY:
            logger.error("GOOGLE_PLACES_API_KEY is not configured.")
        return cls(
            api_key=settings.GOOGLE_PLACES_API_KEY or "",
            timeout_seconds=timeout_policy.google_places_timeout_seconds,
            language_code=settings.GOOGLE_PLACES_LANGUAGE_CODE,
            region_code=settings.GOOGLE_PLACES_REGION_CODE,
        )

    def _base_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"key": self._api_key}
        if self._language_code:
            params["language"] = self._language_code
        if self._region_code:
            params["region"] = self._region_code
        return params

    async def text_search(
        self,
        query: str,
        location: tuple[float, float] | None = None,
        radius_m: int | None = None,
    ) -> list[PlaceResult]:
        """텍스트 쿼리로 장소를 검색합니다."""
        if not query.strip():
            return []

        params = self._base_params()
        params["query"] = query.strip()
        if location is not None:
            params["location"] = f"{location[0]},{location[1]}"
            if radius_m:
                params["radius"] = int(radius_m)

        response = await self._request("textsearch", params)
        logger.info(
            "Google Places textsearch completed: status=%s candidate_count=%d location_bias=%s",
            response.status,
            len(response.results),
            location is not None,
        )
        return response.results

    async def details(self, place_id: str) -> PlaceResult | None:
        """장소 상세 정보를 조회합니다."""
        if not place_id:
            return None

        params = self._base_params()
        params["place_id"] = place_id
        params["fields"] = self._DETAILS_FIELDS
        response = await self._request("details", params)
        return response.result

    async def nearby(
        self,
        location: tuple[float, float],
        radius_m: int,
        place_type: str | None = None,
    ) -> list[PlaceResult]:
        """좌표 주변 장소를 검색합니다."""
        params = self._base_params()
        params["location"] = f"{location[0]},{location[1]}"
        params["radius"] = max(1, int(radius_m))
        if place_type:
            params["type"] = place_type
        response = await self._request("nearbysearch", params)
        return response.results

    async def _request(self, endpoint: str, params: dict[str, Any]) -> PlaceSearchResponse:
        url = f"{self._BASE_URL}/{endpoint}/json"
        request_timeout = to_requests_timeout(self._timeout_seconds)

        def _send() -> requests.Response:
            with requests.Session() as session:
                return session.get(url, params=params, timeout=request_timeout)

        try:
            response = await asyncio.to_thread(_send)
            response.raise_for_status()
            payload = PlaceSearchResponse.model_validate(response.json())
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            logger.error("Google Places API error: endpoint=%s status=%s", endpoint, status_code)
            raise PlacesProviderError(f"Google Places {endpoint} HTTP {status_code}") from exc
        except requests.RequestException as exc:
            logger.error("Google Places API request failed: endpoint=%s error=%s", endpoint, exc)
            raise PlacesProviderError(f"Google Places {endpoint} request failed: {exc}") from exc
        except (ValueError, ValidationError) as exc:
            logger.error("Google Places API response parse failed: endpoint=%s error=%s", endpoint, exc)
            raise PlacesProviderError(f"Google Places {endpoint} returned an invalid payload") from exc

        if payload.status not in _OK_STATUSES:
            logger.error(
                "Google Places API returned status=%s message=%s", payload.status, payload.error_message or ""
            )
            raise PlacesProviderError(f"Google Places {endpoint} status {payload.status}")
        return payload
