"""장소 검색 Fake 서비스.

실제 API 호출 없이 이름별로 미리 등록한 장소를 반환한다.
`fail_names`에 든 이름은 제공자 오류를 흉내 낸다.
"""

from __future__ import annotations

from app.core.errors import PlacesProviderError
from app.schemas.place import PlaceGeometry, PlaceLocation, PlaceResult
from app.services.places_service import PlacesServiceProtocol


def make_place(
    place_id: str,
    name: str,
    lat: float,
    lng: float,
    *,
    address: str = "",
    rating: float | None = 4.5,
    user_ratings_total: int | None = 1000,
    types: list[str] | None = None,
) -> PlaceResult:
    return PlaceResult(
        place_id=place_id,
        name=name,
        formatted_address=address,
        geometry=PlaceGeometry(location=PlaceLocation(lat=lat, lng=lng)),
        rating=rating,
        user_ratings_total=user_ratings_total,
        types=types or ["tourist_attraction"],
    )


# 방콕/치앙마이 샘플 장소
SAMPLE_PLACES: dict[str, PlaceResult] = {
    "วัดพระแก้ว": make_place(
        "place-wat-phra-kaew", "วัดพระแก้ว", 13.7516, 100.4927, address="Na Phra Lan Rd, Bangkok 10200"
    ),
    "วัดอรุณ": make_place("place-wat-arun", "วัดอรุณ", 13.7437, 100.4888, address="Wat Arun, Bangkok Yai, Bangkok"),
    "วัดโพธิ์": make_place("place-wat-pho", "วัดโพธิ์", 13.7465, 100.4930, address="Sanam Chai Rd, Bangkok 10200"),
    "ตลาดนัดจตุจักร": make_place(
        "place-chatuchak", "ตลาดนัดจตุจักร", 13.7999, 100.5500, address="Chatuchak, Bangkok 10900"
    ),
    "ไอคอนสยาม": make_place("place-iconsiam", "ไอคอนสยาม", 13.7266, 100.5105, address="Khlong San, Bangkok"),
    "เยาวราช": make_place("place-yaowarat", "เยาวราช", 13.7398, 100.5099, address="Samphanthawong, Bangkok"),
    "ดอยสุเทพ": make_place(
        "place-doi-suthep", "วัดพระธาตุดอยสุเทพ", 18.8048, 98.9216, address="Suthep, Mueang Chiang Mai"
    ),
    "ถนนคนเดินท่าแพ": make_place(
        "place-tha-phae", "ถนนคนเดินท่าแพ", 18.7877, 98.9931, address="Tha Phae Rd, Chiang Mai"
    ),
}


class FakePlacesService(PlacesServiceProtocol):
    """질의가 등록된 이름으로 시작하면 그 장소를 돌려주는 Fake."""

    def __init__(
        self,
        places: dict[str, PlaceResult] | None = None,
        *,
        fail_names: set[str] | None = None,
    ) -> None:
        self.places = dict(SAMPLE_PLACES if places is None else places)
        self.fail_names = set(fail_names or ())
        self.queries: list[str] = []
        self.locations: list[tuple[float, float] | None] = []

    async def text_search(
        self,
        query: str,
        location: tuple[float, float] | None = None,
        radius_m: int | None = None,
    ) -> list[PlaceResult]:
        self.queries.append(query)
        self.locations.append(location)
        if any(name in query for name in self.fail_names):
            raise PlacesProviderError(f"provider unavailable for {query}")
        return [place for name, place in self.places.items() if query.startswith(name)]

    async def details(self, place_id: str) -> PlaceResult | None:
        return next((place for place in self.places.values() if place.place_id == place_id), None)

    async def nearby(
        self,
        location: tuple[float, float],
        radius_m: int,
        place_type: str | None = None,
    ) -> list[PlaceResult]:
        return list(self.places.values())
