"""장소 해석기 테스트."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import PersistenceError
from app.core.geo import centroid
from app.schemas.enums import ResolutionErrorKind
from app.schemas.place import ResolutionError, ResolvedPlace, ResolveRequest
from app.services.place_cache import InMemoryPlaceCache, normalize_query
from app.services.place_resolver import PlaceResolver, matches_location_context, rank_results
from tests.mocks.mock_places_service import FakePlacesService, make_place

NOW = datetime(2026, 11, 1, 9, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class _BrokenCache(InMemoryPlaceCache):
    async def get_by_query(self, query, now):
        raise PersistenceError("cache offline")

    async def upsert(self, place, now, search_query=None):
        raise PersistenceError("cache offline")


def _resolver(places: FakePlacesService, cache=None, clock=None, **kwargs) -> PlaceResolver:
    return PlaceResolver(places, cache if cache is not None else InMemoryPlaceCache(), clock=clock or _Clock(NOW), **kwargs)


@pytest.mark.asyncio
async def test_cache_miss_queries_provider_and_caches() -> None:
    places = FakePlacesService()
    cache = InMemoryPlaceCache()

    result = await _resolver(places, cache).resolve("วัดพระแก้ว", "Bangkok")

    assert isinstance(result, ResolvedPlace)
    assert result.place_id == "place-wat-phra-kaew"
    assert places.queries == ["วัดพระแก้ว Bangkok"]
    assert cache.write_count == 1
    cached = await cache.get_by_query(normalize_query("วัดพระแก้ว", "Bangkok"), NOW)
    assert cached.cache_expires_at == NOW + timedelta(days=30)


@pytest.mark.asyncio
async def test_second_lookup_within_ttl_skips_provider() -> None:
    places = FakePlacesService()
    resolver = _resolver(places)

    first = await resolver.resolve("วัดอรุณ", "Bangkok")
    second = await resolver.resolve("  วัดอรุณ ", "bangkok")

    assert first == second
    assert places.queries == ["วัดอรุณ Bangkok"]


@pytest.mark.asyncio
async def test_expired_entry_is_refetched() -> None:
    places = FakePlacesService()
    clock = _Clock(NOW)
    resolver = _resolver(places, clock=clock)

    await resolver.resolve("วัดอรุณ", "Bangkok")
    clock.now = NOW + timedelta(days=31)
    await resolver.resolve("วัดอรุณ", "Bangkok")

    assert len(places.queries) == 2


@pytest.mark.asyncio
async def test_not_found_and_provider_error_are_values() -> None:
    resolver = _resolver(FakePlacesService(fail_names={"ตลาดน้ำ"}))

    missing = await resolver.resolve("สถานที่ที่ไม่มีอยู่จริง12345")
    failed = await resolver.resolve("ตลาดน้ำ", "Bangkok")
    blank = await resolver.resolve("   ")

    assert isinstance(missing, ResolutionError)
    assert missing.kind == ResolutionErrorKind.NOT_FOUND
    assert isinstance(failed, ResolutionError)
    assert failed.kind == ResolutionErrorKind.PROVIDER_ERROR
    assert isinstance(blank, ResolutionError)
    assert blank.kind == ResolutionErrorKind.INVALID_QUERY


@pytest.mark.asyncio
async def test_context_check_drops_results_from_other_regions() -> None:
    places = FakePlacesService(
        {"ตลาดเก่า": make_place("place-old-market", "Old Market", 7.88, 98.39, address="Phuket Town, Phuket")}
    )

    strict = await _resolver(places).resolve("ตลาดเก่า", "Chiang Mai")
    relaxed = await _resolver(places, context_check=False).resolve("ตลาดเก่า", "Chiang Mai")

    assert isinstance(strict, ResolutionError)
    assert strict.kind == ResolutionErrorKind.NOT_FOUND
    assert isinstance(relaxed, ResolvedPlace)


@pytest.mark.asyncio
async def test_cache_failures_fall_back_to_provider() -> None:
    places = FakePlacesService()

    result = await _resolver(places, _BrokenCache()).resolve("วัดโพธิ์", "Bangkok")

    assert isinstance(result, ResolvedPlace)
    assert places.queries == ["วัดโพธิ์ Bangkok"]


@pytest.mark.asyncio
async def test_resolve_many_keeps_input_order() -> None:
    resolver = _resolver(FakePlacesService(), concurrency=2)
    requests = [
        ResolveRequest(name="ไอคอนสยาม", location_hint="Bangkok"),
        ResolveRequest(name="ร้านลับ", location_hint="Bangkok"),
        ResolveRequest(name="วัดพระแก้ว", location_hint="Bangkok"),
        ResolveRequest(name="เยาวราช", location_hint="Bangkok"),
    ]

    results = await resolver.resolve_many(requests)

    assert [getattr(item, "place_id", None) for item in results] == [
        "place-iconsiam",
        None,
        "place-wat-phra-kaew",
        "place-yaowarat",
    ]


@pytest.mark.asyncio
async def test_cached_place_outside_radius_is_refetched_with_location_bias() -> None:
    places = FakePlacesService()
    resolver = _resolver(places, cache_radius_km=5.0)
    bangkok = (13.745, 100.49)
    chiang_mai = (18.79, 98.98)

    await resolver.resolve("วัดอรุณ", "Bangkok")
    nearby = await resolver.resolve("วัดอรุณ", "Bangkok", near=bangkok)
    far = await resolver.resolve("วัดอรุณ", "Bangkok", near=chiang_mai)

    assert isinstance(nearby, ResolvedPlace)
    assert isinstance(far, ResolvedPlace)
    assert places.queries == ["วัดอรุณ Bangkok", "วัดอรุณ Bangkok"]
    assert places.locations == [None, chiang_mai]


def test_centroid_skips_missing_coordinates() -> None:
    assert centroid([(13.0, 100.0), (None, 101.0), (15.0, 102.0)]) == (14.0, 101.0)
    assert centroid([(None, None)]) is None
    assert centroid([]) is None

def test_rank_results_prefers_rating_then_reviews_and_drops_missing_geometry() -> None:
    low = make_place("a", "A", 13.0, 100.0, rating=4.1, user_ratings_total=10)
    popular = make_place("b", "B", 13.0, 100.0, rating=4.6, user_ratings_total=5000)
    niche = make_place("c", "C", 13.0, 100.0, rating=4.6, user_ratings_total=40)
    no_geometry = make_place("d", "D", 13.0, 100.0, rating=5.0).model_copy(update={"geometry": None})

    ranked = rank_results([low, niche, no_geometry, popular])

    assert [item.place_id for item in ranked] == ["b", "c", "a"]


def test_location_context_accepts_address_or_name_match() -> None:
    in_region = make_place("x", "Wat Chedi Luang", 18.78, 98.98, address="Phra Pok Klao Rd, Chiang Mai")
    elsewhere = make_place("y", "Wat Chedi Luang", 13.75, 100.5, address="Bangkok")

    assert matches_location_context(in_region, "วัดเจดีย์หลวง", "จังหวัด Chiang Mai") is True
    assert matches_location_context(elsewhere, "Wat Chedi Luang", "Chiang Mai") is True
    assert matches_location_context(elsewhere, "วัดเจดีย์หลวง", "Chiang Mai") is False
