"""프로세스 단위 협력자 조립.

저장소, 장소 캐시, 장소 검색, LLM 도우미, 변경 피드는 프로세스에서 하나씩만 만들고
클라이언트 세션마다 `ConversationOrchestrator`를 새로 만든다. 세션 레지스트리는 오래 쓰이지 않은 세션부터
내보내며, 턴을 처리 중인 세션은 내보내지 않는다.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta

from app.core.config import Settings, get_settings
from app.core.logger import get_logger
from app.database import get_engine, get_session_local, init_db
from app.services.assistant_service import OpenAITripAssistant, TripAssistantProtocol
from app.services.change_feed import ChangeFeed
from app.services.chat_service import ConversationOrchestrator
from app.services.google_places_service import GooglePlacesService
from app.services.place_cache import PlaceCache, SqlAlchemyPlaceCache
from app.services.place_resolver import PlaceResolver
from app.services.places_service import PlacesServiceProtocol
from app.services.realtime_sync import RealtimeSyncBridge
from app.services.trip_store import SqlAlchemyTripStore, TripStoreProtocol

logger = get_logger(__name__)


@dataclass
class Pipeline:
    """공유 협력자와 세션별 오케스트레이터 레지스트리."""

    settings: Settings
    store: TripStoreProtocol
    cache: PlaceCache
    places_service: PlacesServiceProtocol
    assistant: TripAssistantProtocol
    change_feed: ChangeFeed
    sync_bridge: RealtimeSyncBridge
    sessions: OrderedDict[str, ConversationOrchestrator] = field(default_factory=OrderedDict)
    clock: Callable[[], float] = time.monotonic
    _last_seen: dict[str, float] = field(default_factory=dict, init=False, repr=False)

    def resolver(self) -> PlaceResolver:
        return PlaceResolver.from_settings(self.places_service, self.cache, self.settings)

    def new_orchestrator(self) -> ConversationOrchestrator:
        return ConversationOrchestrator.from_settings(
            assistant=self.assistant,
            resolver=self.resolver(),
            store=self.store,
            settings=self.settings,
        )

    def orchestrator_for(self, session_id: str) -> ConversationOrchestrator:
        """세션 ID별 오케스트레이터를 반환합니다. 없으면 새로 만듭니다."""
        now = self.clock()
        self._evict_idle(now)
        orchestrator = self.sessions.get(session_id)
        if orchestrator is None:
            orchestrator = self.new_orchestrator()
            self.sessions[session_id] = orchestrator
            logger.info("New chat session: session_id=%s", session_id)
        self.sessions.move_to_end(session_id)
        self._last_seen[session_id] = now
        self._evict_over_capacity(keep=session_id)
        return orchestrator

    def _evict_idle(self, now: float) -> None:
        idle_seconds = self.settings.CHAT_SESSION_IDLE_SECONDS
        if idle_seconds <= 0:
            return
        for session_id, orchestrator in list(self.sessions.items()):
            if orchestrator.is_processing:
                continue
            if now - self._last_seen.get(session_id, now) >= idle_seconds:
                self._drop(session_id, "idle")

    def _evict_over_capacity(self, keep: str) -> None:
        limit = self.settings.CHAT_SESSION_MAX
        if limit <= 0:
            return
        # 가장 오래 쓰이지 않은 세션부터
        for session_id in list(self.sessions):
            if len(self.sessions) <= limit:
                break
            if session_id == keep or self.sessions[session_id].is_processing:
                continue
            self._drop(session_id, "capacity")

    def _drop(self, session_id: str, reason: str) -> None:
        self.sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        logger.info("Chat session evicted: session_id=%s reason=%s", session_id, reason)

    async def close(self) -> None:
        await self.sync_bridge.unsubscribe_all()
        await self.change_feed.close()


def build_pipeline(settings: Settings | None = None) -> Pipeline:
    """설정값으로 SQLAlchemy 저장소, 캐시, Google Places, OpenAI 도우미를 조립합니다."""
    resolved_settings = settings or get_settings()
    engine = get_engine()
    init_db(engine)
    session_factory = get_session_local(engine)

    change_feed = ChangeFeed()
    store = SqlAlchemyTripStore(session_factory, change_feed=change_feed)
    return Pipeline(
        settings=resolved_settings,
        store=store,
        cache=SqlAlchemyPlaceCache(session_factory, ttl=timedelta(days=resolved_settings.PLACES_CACHE_TTL_DAYS)),
        places_service=GooglePlacesService.from_settings(),
        assistant=OpenAITripAssistant(resolved_settings),
        change_feed=change_feed,
        sync_bridge=RealtimeSyncBridge(store, change_feed),
    )
