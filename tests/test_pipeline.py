"""세션 레지스트리 테스트."""

from __future__ import annotations

from app.core.config import Settings
from app.services.change_feed import ChangeFeed
from app.services.pipeline import Pipeline
from app.services.place_cache import InMemoryPlaceCache
from app.services.realtime_sync import RealtimeSyncBridge
from tests.mocks.mock_assistant import FakeTripAssistant
from tests.mocks.mock_places_service import FakePlacesService
from tests.mocks.mock_trip_store import InMemoryTripStore


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _pipeline(clock: _Clock, **overrides) -> Pipeline:
    settings = Settings(OPENAI_API_KEY="test-key", SERVICE_SECRET="test-service-secret", **overrides)
    feed = ChangeFeed()
    store = InMemoryTripStore(change_feed=feed)
    return Pipeline(
        settings=settings,
        store=store,
        cache=InMemoryPlaceCache(),
        places_service=FakePlacesService(),
        assistant=FakeTripAssistant([]),
        change_feed=feed,
        sync_bridge=RealtimeSyncBridge(store, feed),
        clock=clock,
    )


def test_same_session_reuses_orchestrator() -> None:
    pipeline = _pipeline(_Clock())

    assert pipeline.orchestrator_for("a") is pipeline.orchestrator_for("a")
    assert list(pipeline.sessions) == ["a"]


def test_least_recently_used_session_is_evicted_at_capacity() -> None:
    clock = _Clock()
    pipeline = _pipeline(clock, CHAT_SESSION_MAX=2)

    pipeline.orchestrator_for("a")
    pipeline.orchestrator_for("b")
    pipeline.orchestrator_for("a")
    pipeline.orchestrator_for("c")

    assert list(pipeline.sessions) == ["a", "c"]


def test_busy_session_survives_capacity_eviction() -> None:
    pipeline = _pipeline(_Clock(), CHAT_SESSION_MAX=1)
    busy = pipeline.orchestrator_for("a")
    busy.state_machine.begin_turn()

    pipeline.orchestrator_for("b")

    assert pipeline.sessions["a"] is busy
    assert list(pipeline.sessions) == ["a", "b"]

    pipeline.orchestrator_for("c")

    assert list(pipeline.sessions) == ["a", "c"]


def test_idle_sessions_expire_unless_processing() -> None:
    clock = _Clock()
    pipeline = _pipeline(clock, CHAT_SESSION_IDLE_SECONDS=60)
    pipeline.orchestrator_for("idle")
    busy = pipeline.orchestrator_for("busy")
    busy.state_machine.begin_turn()

    clock.now = 30.0
    pipeline.orchestrator_for("fresh")
    clock.now = 61.0
    pipeline.orchestrator_for("fresh")

    assert list(pipeline.sessions) == ["busy", "fresh"]


def test_zero_limits_disable_eviction() -> None:
    clock = _Clock()
    pipeline = _pipeline(clock, CHAT_SESSION_MAX=0, CHAT_SESSION_IDLE_SECONDS=0)

    for session_id in ("a", "b", "c"):
        pipeline.orchestrator_for(session_id)
        clock.now += 10_000

    assert list(pipeline.sessions) == ["a", "b", "c"]
