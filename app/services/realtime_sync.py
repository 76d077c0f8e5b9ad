"""여행 단위 실시간 동기화 브리지.

다른 클라이언트나 서버 측 트리거가 만든 변경을 받아 여행 상태를 다시 읽어 전달한다.
변경 내용(diff)을 적용하지 않고 항상 전체를 다시 읽으며, 큐에 쌓인 알림은 한 번의
재조회로 합쳐진다.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType

from app.core.errors import PersistenceError
from app.core.logger import get_logger
from app.schemas.trip import Destination, Trip
from app.services.change_feed import ChangeEvent, ChangeFeed
from app.services.trip_store import DESTINATIONS_TABLE, TRIPS_TABLE, TripStoreProtocol

logger = get_logger(__name__)

DestinationsHandler = Callable[[list[Destination]], Awaitable[None]]
TripHandler = Callable[[Trip | None], Awaitable[None]]
ErrorHandler = Callable[[Exception], Awaitable[None]]


@dataclass(slots=True)
class SyncHandlers:
    """구독자 콜백 묶음."""

    on_destinations_change: DestinationsHandler
    on_trip_change: TripHandler
    on_error: ErrorHandler | None = None


DEFAULT_SUBSCRIBER = "default"


def destinations_channel(trip_id: str, subscriber_id: str = DEFAULT_SUBSCRIBER) -> str:
    return f"trip-{trip_id}-{subscriber_id}-destinations"


def trip_channel(trip_id: str, subscriber_id: str = DEFAULT_SUBSCRIBER) -> str:
    return f"trip-{trip_id}-{subscriber_id}-trip"


class Subscription:
    """구독자 하나가 여행 하나에 건 구독. `async with`로 쓰면 블록 종료 시 해제된다."""

    def __init__(self, bridge: RealtimeSyncBridge, trip_id: str, subscriber_id: str = DEFAULT_SUBSCRIBER) -> None:
        self._bridge = bridge
        self.trip_id = trip_id
        self.subscriber_id = subscriber_id
        self.reload_count = 0
        self._generation = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    async def close(self) -> None:
        if self._closed:
            return
        await self._bridge.unsubscribe(self.trip_id, subscriber_id=self.subscriber_id, subscription=self)

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


class RealtimeSyncBridge:
    """`ChangeFeed` 채널을 (여행, 구독자) 단위 구독으로 묶습니다.

    같은 여행을 여러 구독자가 동시에 볼 수 있고, 같은 구독자가 다시 구독하면 이전 구독만 교체된다.
    """

    def __init__(self, store: TripStoreProtocol, change_feed: ChangeFeed) -> None:
        self._store = store
        self._change_feed = change_feed
        self._subscriptions: dict[tuple[str, str], Subscription] = {}

    def is_subscribed(self, trip_id: str, subscriber_id: str | None = None) -> bool:
        if subscriber_id is not None:
            return (trip_id, subscriber_id) in self._subscriptions
        return any(key[0] == trip_id for key in self._subscriptions)

    def subscriber_count(self, trip_id: str) -> int:
        return sum(1 for key in self._subscriptions if key[0] == trip_id)

    async def subscribe(
        self,
        trip_id: str,
        handlers: SyncHandlers,
        *,
        subscriber_id: str = DEFAULT_SUBSCRIBER,
    ) -> Subscription:
        """여행 변경 구독을 시작합니다. 같은 구독자가 이미 구독 중이면 이전 구독을 먼저 해제합니다."""
        key = (trip_id, subscriber_id)
        if key in self._subscriptions:
            await self.unsubscribe(trip_id, subscriber_id=subscriber_id)

        subscription = Subscription(self, trip_id, subscriber_id)
        self._subscriptions[key] = subscription

        async def _on_destinations(events: list[ChangeEvent]) -> None:
            await self._reload_destinations(subscription, handlers, events)

        async def _on_trip(events: list[ChangeEvent]) -> None:
            await self._reload_trip(subscription, handlers, events)

        self._change_feed.open_channel(
            destinations_channel(trip_id, subscriber_id),
            table=DESTINATIONS_TABLE,
            filter_column="trip_id",
            filter_value=trip_id,
            handler=_on_destinations,
        )
        self._change_feed.open_channel(
            trip_channel(trip_id, subscriber_id),
            table=TRIPS_TABLE,
            filter_column="id",
            filter_value=trip_id,
            handler=_on_trip,
        )
        logger.info("Realtime subscription opened: trip_id=%s subscriber=%s", trip_id, subscriber_id)
        return subscription

    async def unsubscribe(
        self,
        trip_id: str,
        *,
        subscriber_id: str = DEFAULT_SUBSCRIBER,
        subscription: Subscription | None = None,
    ) -> bool:
        """구독을 해제합니다. `subscription`이 주어지면 그 구독이 현재 구독일 때만 해제합니다."""
        key = (trip_id, subscriber_id)
        current = self._subscriptions.get(key)
        if current is None or (subscription is not None and current is not subscription):
            if subscription is not None:
                subscription._closed = True
            return False

        del self._subscriptions[key]
        current._closed = True
        await self._change_feed.close_channel(destinations_channel(trip_id, subscriber_id))
        await self._change_feed.close_channel(trip_channel(trip_id, subscriber_id))
        logger.info("Realtime subscription closed: trip_id=%s subscriber=%s", trip_id, subscriber_id)
        return True

    async def unsubscribe_all(self) -> None:
        for trip_id, subscriber_id in list(self._subscriptions):
            await self.unsubscribe(trip_id, subscriber_id=subscriber_id)

    async def _report(self, handlers: SyncHandlers, trip_id: str, exc: Exception) -> None:
        logger.warning("Realtime reload failed: trip_id=%s error=%s", trip_id, exc)
        if handlers.on_error is not None:
            await handlers.on_error(exc)

    async def _reload_destinations(
        self, subscription: Subscription, handlers: SyncHandlers, events: list[ChangeEvent]
    ) -> None:
        generation = subscription._next_generation()
        logger.debug("Destinations changed: trip_id=%s events=%d", subscription.trip_id, len(events))
        try:
            destinations = await self._store.list_destinations(subscription.trip_id)
        except PersistenceError as exc:
            await self._report(handlers, subscription.trip_id, exc)
            return
        if not subscription._is_current(generation):
            return
        subscription.reload_count += 1
        await handlers.on_destinations_change(destinations)

    async def _reload_trip(self, subscription: Subscription, handlers: SyncHandlers, events: list[ChangeEvent]) -> None:
        logger.debug("Trip changed: trip_id=%s events=%d", subscription.trip_id, len(events))
        try:
            trip = await self._store.get_trip(subscription.trip_id)
        except PersistenceError as exc:
            await self._report(handlers, subscription.trip_id, exc)
            return
        if subscription.closed:
            return
        await handlers.on_trip_change(trip)
