"""장소 검색 제공자 추상 프로토콜 정의."""

from abc import ABC, abstractmethod

from app.schemas.place import PlaceResult


class PlacesServiceProtocol(ABC):
    """장소 검색 제공자 호출 인터페이스.

    구현체는 전송/상태 오류 시 `PlacesProviderError`를 던지고,
    결과가 없으면 빈 목록(또는 None)을 반환한다.
    """

    @abstractmethod
    async def text_search(
        self,
        query: str,
        location: tuple[float, float] | None = None,
        radius_m: int | None = None,
    ) -> list[PlaceResult]:
        """텍스트 쿼리로 장소를 검색합니다.

        Args:
            query: 검색어 (`"<이름> <지역 힌트>"` 형태)
            location: 위치 편향 중심 좌표 (lat, lng)
            radius_m: 위치 편향 반경(미터)

        Returns:
            제공자 순서 그대로의 장소 목록
        """
        raise NotImplementedError

    @abstractmethod
    async def details(self, place_id: str) -> PlaceResult | None:
        """장소 상세 정보를 조회합니다."""
        raise NotImplementedError

    @abstractmethod
    async def nearby(
        self,
        location: tuple[float, float],
        radius_m: int,
        place_type: str | None = None,
    ) -> list[PlaceResult]:
        """좌표 주변 장소를 검색합니다."""
        raise NotImplementedError
