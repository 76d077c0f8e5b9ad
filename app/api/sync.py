"""여행 실시간 동기화 WebSocket."""

from uuid import uuid4

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.api.dependencies import get_pipeline
from app.core.config import get_settings
from app.core.logger import get_logger
from app.schemas.trip import Destination, Trip
from app.services.pipeline import Pipeline
from app.services.realtime_sync import SyncHandlers

router = APIRouter(prefix="/api/v1", tags=["sync"])
logger = get_logger(__name__)


@router.websocket("/trips/{trip_id}/sync")
async def trip_sync(
    websocket: WebSocket,
    trip_id: str,
    pipeline: Pipeline = Depends(get_pipeline),  # noqa: B008
) -> None:
    """여행 변경을 `{type, data}` 메시지로 전달한다. 소켓이 닫히면 구독도 해제된다."""
    if websocket.headers.get("x-service-secret") != get_settings().SERVICE_SECRET:
        await websocket.close(code=1008)
        return

    await websocket.accept()

    async def _on_destinations(destinations: list[Destination]) -> None:
        await websocket.send_json(
            {"type": "destinations", "data": [item.model_dump(mode="json") for item in destinations]}
        )

    async def _on_trip(trip: Trip | None) -> None:
        await websocket.send_json({"type": "trip", "data": trip.model_dump(mode="json") if trip else None})

    async def _on_error(exc: Exception) -> None:
        await websocket.send_json({"type": "error", "data": {"message": str(exc)}})

    subscriber_id = uuid4().hex
    handlers = SyncHandlers(on_destinations_change=_on_destinations, on_trip_change=_on_trip, on_error=_on_error)
    async with await pipeline.sync_bridge.subscribe(trip_id, handlers, subscriber_id=subscriber_id):
        logger.info("Sync socket connected: trip_id=%s subscriber=%s", trip_id, subscriber_id)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("Sync socket disconnected: trip_id=%s subscriber=%s", trip_id, subscriber_id)
