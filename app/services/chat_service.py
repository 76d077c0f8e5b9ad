"""대화 턴 오케스트레이터.

`ConversationOrchestrator.handle_turn`은 사용자 메시지 하나를 받아 LLM 호출, 액션 검증,
장소 해석, 여행지 저장, 상태 전이를 순서대로 수행하고 `TurnResult`를 반환한다.
외부 협력자 호출(LLM, 장소 검색, 저장소)만이 대기 지점이며, 세션당 동시에 한 턴만 처리한다.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.core.config import Settings, get_settings
from app.core.errors import (
    AssistantCallError,
    AssistantTimeoutError,
    PersistenceError,
    PipelineError,
    TripNotFoundError,
    TurnInProgressError,
    TurnValidationError,
)
from app.core.geo import centroid
from app.core.logger import get_logger
from app.core.messages import busy_reply, error_reply, qualify_reply
from app.core.timeout_policy import get_timeout_policy
from app.graph.narrative import compiled_narrative_graph
from app.schemas.chat import AssistantRequest, Message, TurnError, TurnResult
from app.schemas.enums import AssistantMode, ChatRole, ErrorCategory, PlaceType, ProcessingState
from app.schemas.narrative import ExtractedPlace, NarrativeMeta
from app.schemas.place import ResolutionError, ResolvedPlace, ResolveRequest
from app.schemas.trip import Destination, ResolvedDestinationInput, Trip
from app.schemas.trip_action import (
    AddDestinationsAction,
    AiTurnResult,
    AskPersonalInfoAction,
    DestinationRequest,
    ModifyTripAction,
    MoveDestinationAction,
    NoAction,
    RecommendPlacesAction,
    RemoveDestinationsAction,
    ReorderDestinationsAction,
    SchemaError,
    TripAction,
    UpdateTripInfoAction,
    validate_turn_result,
)
from app.services.assistant_service import TripAssistantProtocol
from app.services.destination_mutator import DestinationMutator
from app.services.place_resolver import PlaceResolver
from app.services.processing_state import ProcessingStateMachine
from app.services.trip_service import TripService
from app.services.trip_store import TripStoreProtocol

logger = get_logger(__name__)

_MIN_VISIT_MINUTES = 15
_MAX_VISIT_MINUTES = 480
_TRIP_CREATING_ACTIONS = (AddDestinationsAction, UpdateTripInfoAction, ModifyTripAction)


def _visit_minutes(min_hours: float | None) -> int | None:
    if min_hours is None:
        return None
    return min(_MAX_VISIT_MINUTES, max(_MIN_VISIT_MINUTES, round(min_hours * 60)))


def _narrative_actions(places: Sequence[ExtractedPlace], location_context: str | None) -> list[TripAction]:
    """추출된 장소를 일차별 ADD_DESTINATIONS 액션으로 묶습니다."""
    by_day: dict[int | None, list[DestinationRequest]] = defaultdict(list)
    for place in places:
        by_day[place.day].append(
            DestinationRequest(
                name=place.name,
                hint_address=place.hint_address,
                min_hours=place.min_hours,
                place_type=place.place_type,
            )
        )
    return [
        AddDestinationsAction(
            action="ADD_DESTINATIONS",
            location_context=location_context,
            day=day,
            destinations=destinations,
        )
        for day, destinations in by_day.items()
    ]


@dataclass(slots=True)
class _TurnProgress:
    trip_id: str | None
    new_trip_id: str | None = None
    added_count: int = 0
    failed_names: list[str] = field(default_factory=list)
    suggested_places: list[ResolvedPlace] = field(default_factory=list)
    near: tuple[float, float] | None = None


class ConversationOrchestrator:
    """클라이언트 세션 하나의 대화 턴을 처리합니다."""

    def __init__(
        self,
        *,
        assistant: TripAssistantProtocol,
        resolver: PlaceResolver,
        mutator: DestinationMutator,
        trip_service: TripService,
        store: TripStoreProtocol,
        state_machine: ProcessingStateMachine | None = None,
        llm_timeout_seconds: float = 25,
        narrative_step_timeout_seconds: float | None = None,
        language: str = "th",
        llm_temperature: float = 0.7,
        narrative_graph=compiled_narrative_graph,
    ) -> None:
        self._assistant = assistant
        self._resolver = resolver
        self._mutator = mutator
        self._trip_service = trip_service
        self._store = store
        self._llm_timeout_seconds = llm_timeout_seconds
        self._narrative_step_timeout_seconds = narrative_step_timeout_seconds or llm_timeout_seconds
        self._language = language
        self._llm_temperature = llm_temperature
        self._narrative_graph = narrative_graph
        self.state_machine = state_machine or ProcessingStateMachine()
        self.transcript: list[Message] = []

    @classmethod
    def from_settings(
        cls,
        *,
        assistant: TripAssistantProtocol,
        resolver: PlaceResolver,
        store: TripStoreProtocol,
        settings: Settings | None = None,
    ) -> ConversationOrchestrator:
        resolved_settings = settings or get_settings()
        timeouts = get_timeout_policy(resolved_settings)
        mutator = DestinationMutator.from_settings(store, resolved_settings)
        return cls(
            assistant=assistant,
            resolver=resolver,
            mutator=mutator,
            trip_service=TripService.from_settings(store, mutator, resolved_settings),
            store=store,
            llm_timeout_seconds=timeouts.llm_timeout_seconds,
            narrative_step_timeout_seconds=timeouts.narrative_step_timeout_seconds,
            language=resolved_settings.DEFAULT_LANGUAGE,
            llm_temperature=resolved_settings.LLM_TEMPERATURE,
        )

    @property
    def is_processing(self) -> bool:
        return self.state_machine.is_processing

    async def handle_turn(
        self,
        trip_id: str | None,
        message: str,
        history: Sequence[Message] = (),
        *,
        mode: AssistantMode = AssistantMode.STRUCTURED,
        language: str | None = None,
    ) -> TurnResult:
        """사용자 메시지 한 건을 처리합니다.

        처리 중 재전송은 `TurnInProgressError`, 빈 메시지는 `TurnValidationError`로 거절한다.
        그 외 실패는 예외 대신 `state=error`인 `TurnResult`로 돌려주며, 어떤 경우에도
        대화 기록에는 응답이 추가된다.
        """
        language = language or self._language
        text = (message or "").strip()
        if self.state_machine.is_processing:
            raise TurnInProgressError(busy_reply(language))
        if not text:
            raise TurnValidationError("message must not be empty")

        turn_id = uuid.uuid4().hex[:8]
        self.transcript.append(Message(role=ChatRole.USER, content=text))
        self.state_machine.begin_turn()
        progress = _TurnProgress(trip_id=trip_id)
        logger.info("Turn started: turn_id=%s trip_id=%s mode=%s", turn_id, trip_id, mode)

        try:
            result = await self._run_turn(progress, text, list(history), mode, language)
        except PipelineError as exc:
            logger.warning("Turn failed: turn_id=%s category=%s error=%s", turn_id, exc.category, exc.message)
            result = self._fail(progress, exc.category, exc.message, text, language)
        except Exception as exc:
            logger.exception("Turn failed unexpectedly: turn_id=%s", turn_id)
            result = self._fail(progress, ErrorCategory.AI, str(exc) or type(exc).__name__, text, language)

        self.transcript.append(Message(role=ChatRole.ASSISTANT, content=result.reply))
        await self._persist_transcript(result.trip_id, text, result.reply, language)
        logger.info(
            "Turn finished: turn_id=%s state=%s added=%d failed=%d",
            turn_id,
            result.state,
            result.added_count,
            len(result.failed_names),
        )
        return result

    async def _run_turn(
        self,
        progress: _TurnProgress,
        text: str,
        history: list[Message],
        mode: AssistantMode,
        language: str,
    ) -> TurnResult:
        trip = await self._load_trip(progress.trip_id)
        destinations = await self._store.list_destinations(trip.id) if trip else []
        progress.near = centroid((item.latitude, item.longitude) for item in destinations)
        request = self._build_request(text, history, mode, language, trip, destinations)

        meta: NarrativeMeta | None = None
        if mode == AssistantMode.NARRATIVE:
            turn, meta = await self._narrative_turn(request)
        else:
            raw = await self._call_llm(self._assistant.generate_turn(request))
            turn = validate_turn_result(raw)
            if isinstance(turn, SchemaError):
                raise TurnValidationError(f"invalid assistant output at {turn.path}: {turn.message}")

        if trip is None and any(isinstance(action, _TRIP_CREATING_ACTIONS) for action in turn.actions):
            self.state_machine.transition(ProcessingState.PLANNING)
            trip = await self._trip_service.create_for_turn(text, history, language=language)
            progress.trip_id = progress.new_trip_id = trip.id

        for action in turn.actions:
            await self._execute(action, trip, progress)

        destinations = await self._store.list_destinations(trip.id) if trip else []
        self.state_machine.transition(ProcessingState.COMPLETED)
        return TurnResult(
            reply=qualify_reply(turn.reply, progress.failed_names, language),
            trip_id=progress.trip_id,
            new_trip_id=progress.new_trip_id,
            state=self.state_machine.state,
            added_count=progress.added_count,
            failed_names=progress.failed_names,
            suggested_places=progress.suggested_places,
            suggest_login=bool(turn.suggest_login),
            trip_ready=bool(destinations),
            destinations=destinations,
            narrative_meta=meta,
        )

    async def _load_trip(self, trip_id: str | None) -> Trip | None:
        if not trip_id:
            return None
        trip = await self._store.get_trip(trip_id)
        if trip is None:
            raise TripNotFoundError(f"trip not found: {trip_id}")
        return trip

    def _build_request(
        self,
        text: str,
        history: list[Message],
        mode: AssistantMode,
        language: str,
        trip: Trip | None,
        destinations: list[Destination],
    ) -> AssistantRequest:
        return AssistantRequest(
            message=text,
            trip_id=trip.id if trip else None,
            language=language,
            history=history,
            mode=mode,
            temperature=self._llm_temperature,
            total_days=trip.total_days if trip else None,
            start_date=trip.start_date.isoformat() if trip else None,
            end_date=trip.end_date.isoformat() if trip else None,
            destinations_count=len(destinations) if trip else None,
            destination_names=[item.name for item in destinations],
        )

    async def _call_llm(self, call):
        try:
            return await asyncio.wait_for(call, timeout=self._llm_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise AssistantTimeoutError(f"assistant did not respond within {self._llm_timeout_seconds}s") from exc

    async def _narrative_turn(self, request: AssistantRequest) -> tuple[AiTurnResult, NarrativeMeta | None]:
        state = await self._narrative_graph.ainvoke(
            {"request": request},
            config={
                "configurable": {
                    "assistant": self._assistant,
                    "llm_timeout_seconds": self._narrative_step_timeout_seconds,
                }
            },
        )
        if state.get("error"):
            raise AssistantCallError(state["error"])
        places = state.get("extracted_places") or []
        meta = state.get("meta")
        if meta is not None:
            logger.info(
                "Narrative extraction: places=%d elapsed_ms=%.1f model=%s",
                meta.total_places,
                meta.extraction_time_ms,
                meta.model,
            )
        turn = AiTurnResult(
            reply=state.get("narrative", ""),
            actions=_narrative_actions(places, state.get("location_context")),
        )
        return turn, meta

    async def _execute(self, action: TripAction, trip: Trip | None, progress: _TurnProgress) -> None:
        if trip is None and not isinstance(action, (RecommendPlacesAction, AskPersonalInfoAction, NoAction)):
            logger.warning("Skipping %s: no trip in this session", action.action)
            return

        match action:
            case AddDestinationsAction():
                await self._add_destinations(action, trip, progress)
            case RemoveDestinationsAction(destination_names=names):
                if names:
                    await self._mutator.remove_destinations_by_names(trip.id, names)
            case ReorderDestinationsAction(destination_order=order):
                await self._mutator.reorder(trip.id, order)
            case MoveDestinationAction():
                await self._mutator.move(trip.id, action.destination_name, action.target_day, action.target_position)
            case UpdateTripInfoAction():
                await self._trip_service.update_info(trip.id, action)
            case ModifyTripAction():
                await self._trip_service.resize(trip.id, action)
            case RecommendPlacesAction():
                await self._recommend_places(action, progress)
            case AskPersonalInfoAction() | NoAction():
                pass
            case _:
                logger.warning("Skipping unsupported action: %s", type(action).__name__)

    async def _add_destinations(self, action: AddDestinationsAction, trip: Trip, progress: _TurnProgress) -> None:
        if self.state_machine.state != ProcessingState.ADDING_DESTINATIONS:
            self.state_machine.transition(ProcessingState.ADDING_DESTINATIONS)

        requests = [
            ResolveRequest(name=item.name, location_hint=item.hint_address or action.location_context)
            for item in action.destinations
        ]
        outcomes = await self._resolver.resolve_many(requests, near=progress.near)

        inputs: list[ResolvedDestinationInput] = []
        for item, outcome in zip(action.destinations, outcomes, strict=True):
            if isinstance(outcome, ResolutionError):
                progress.failed_names.append(item.name)
                continue
            inputs.append(
                ResolvedDestinationInput(
                    place=outcome,
                    requested_name=item.name,
                    place_type=item.place_type or PlaceType.TOURIST_ATTRACTION,
                    visit_duration=_visit_minutes(item.min_hours),
                )
            )

        outcome = await self._mutator.add_destinations(trip.id, inputs, day=action.day)
        progress.added_count += len(outcome.created)
        progress.failed_names.extend(outcome.failed)

    async def _recommend_places(self, action: RecommendPlacesAction, progress: _TurnProgress) -> None:
        recommendations = action.recommendations or []
        if not recommendations:
            return
        requests = [ResolveRequest(name=item.name, location_hint=action.location_context) for item in recommendations]
        for outcome in await self._resolver.resolve_many(requests, near=progress.near):
            if isinstance(outcome, ResolvedPlace):
                progress.suggested_places.append(outcome)

    def _fail(
        self,
        progress: _TurnProgress,
        category: ErrorCategory,
        message: str,
        text: str,
        language: str,
    ) -> TurnResult:
        self.state_machine.fail(category, message)
        return TurnResult(
            reply=error_reply(category, language),
            trip_id=progress.trip_id,
            new_trip_id=progress.new_trip_id,
            state=ProcessingState.ERROR,
            error=TurnError(category=category, message=message),
            retry_message=text,
            added_count=progress.added_count,
            failed_names=progress.failed_names,
        )

    async def _persist_transcript(self, trip_id: str | None, text: str, reply: str, language: str) -> None:
        if not trip_id:
            return
        try:
            await self._store.append_chat_message(trip_id, ChatRole.USER.value, text, language)
            await self._store.append_chat_message(trip_id, ChatRole.ASSISTANT.value, reply, language)
        except PersistenceError as exc:
            logger.warning("Chat transcript not saved: trip_id=%s error=%s", trip_id, exc)
