"""자연어 계획 생성 및 장소 추출 노드.

협력자(LLM 도우미, 타임아웃)는 `config["configurable"]`로 주입된다.
"""

from __future__ import annotations

import asyncio
from time import perf_counter

from langchain_core.runnables import RunnableConfig

from app.core.errors import AssistantTimeoutError
from app.core.logger import get_logger
from app.graph.narrative.state import NarrativeState
from app.schemas.enums import PlaceType
from app.schemas.narrative import ExtractedPlace, NarrativeMeta
from app.schemas.trip_action import AddDestinationsAction, SchemaError, validate_turn_result
from app.services.assistant_service import TripAssistantProtocol

logger = get_logger(__name__)

_DEFAULT_LLM_TIMEOUT_SECONDS = 25.0


def _collaborators(config: RunnableConfig) -> tuple[TripAssistantProtocol, float]:
    configurable = (config or {}).get("configurable", {})
    assistant = configurable.get("assistant")
    if assistant is None:
        raise ValueError("narrative graph requires configurable.assistant")
    timeout = float(configurable.get("llm_timeout_seconds", _DEFAULT_LLM_TIMEOUT_SECONDS))
    return assistant, timeout


def collect_extracted_places(actions: list) -> tuple[list[ExtractedPlace], str | None]:
    """ADD_DESTINATIONS 항목만 모아 이름 기준으로 중복을 제거합니다."""
    places: list[ExtractedPlace] = []
    seen: set[str] = set()
    location_context: str | None = None
    for action in actions:
        if not isinstance(action, AddDestinationsAction):
            continue
        location_context = location_context or action.location_context
        for item in action.destinations:
            name = " ".join(item.name.split())
            key = name.casefold()
            if not name or key in seen:
                continue
            seen.add(key)
            places.append(
                ExtractedPlace(
                    name=name,
                    hint_address=item.hint_address or action.location_context,
                    min_hours=item.min_hours,
                    place_type=item.place_type or PlaceType.TOURIST_ATTRACTION,
                    day=action.day,
                )
            )
    return places, location_context


async def generate_narrative(state: NarrativeState, config: RunnableConfig) -> NarrativeState:
    """1단계: 자연어 여행 계획을 생성합니다."""
    assistant, timeout = _collaborators(config)
    try:
        narrative = await asyncio.wait_for(assistant.generate_narrative(state["request"]), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise AssistantTimeoutError("narrative generation timed out") from exc

    narrative = (narrative or "").strip()
    if not narrative:
        return {"narrative": "", "error": "empty narrative"}
    return {"narrative": narrative}


async def extract_places(state: NarrativeState, config: RunnableConfig) -> NarrativeState:
    """2단계: 자연어 계획에서 장소 목록을 추출합니다."""
    assistant, timeout = _collaborators(config)
    request = state["request"]
    started = perf_counter()
    try:
        raw = await asyncio.wait_for(assistant.extract_places(state["narrative"], request), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise AssistantTimeoutError("place extraction timed out") from exc

    result = validate_turn_result(raw)
    if isinstance(result, SchemaError):
        logger.warning("장소 추출 응답 검증 실패: path=%s message=%s", result.path, result.message)
        return {"error": f"extraction output invalid at {result.path}: {result.message}"}

    places, location_context = collect_extracted_places(result.actions)
    meta = NarrativeMeta(
        total_places=len(places),
        extraction_time_ms=(perf_counter() - started) * 1000,
        model=request.model,
    )
    logger.info("Extracted %d places from narrative", len(places))
    return {"extracted_places": places, "location_context": location_context, "meta": meta}
