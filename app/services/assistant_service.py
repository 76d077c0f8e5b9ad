"""여행 도우미 LLM 협력자.

`TripAssistantProtocol`은 오케스트레이터가 기대하는 호출 계약이다. 구현체는 검증 전의
원시 응답(텍스트 또는 dict)을 돌려주며, 응답 검증은 호출 측 스키마 검증기가 맡는다.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import openai
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from app.core import llm_router
from app.core.config import Settings, get_settings
from app.core.errors import AssistantCallError, AssistantTransportError
from app.core.llm_router import Stage
from app.core.logger import get_logger
from app.schemas.chat import AssistantRequest, Message
from app.schemas.enums import ChatRole

logger = get_logger(__name__)

STRUCTURED_SYSTEM_PROMPT = """\
You are a Thai travel-planning assistant. Reply in the user's language ({language}).
Respond with ONE JSON object only, no prose outside it:
{{"reply": string, "actions": [TripAction, ...], "suggest_login": boolean (optional)}}

Each TripAction has an "action" field with exactly one of:
- ADD_DESTINATIONS: {{"location_context"?: string, "day"?: int>=1,
  "destinations": [{{"name": string, "hintAddress"?: string, "minHours"?: number,
  "place_type"?: "tourist_attraction"|"lodging"|"restaurant"}}]}}
- REMOVE_DESTINATIONS: {{"destination_names": [string]}}
- REORDER_DESTINATIONS: {{"destination_order": [{{"name": string, "day": int>=1, "order_index": int>=1}}]}}
- MOVE_DESTINATION: {{"destination_name": string, "target_day": int>=1, "target_position"?: int>=1}}
- UPDATE_TRIP_INFO: {{"days"?: int>=1, "start_date"?: "YYYY-MM-DD", "budget_min"?: number, "budget_max"?: number}}
- MODIFY_TRIP: {{"trip_modification": {{"new_total_days": int>=1, "extend_to_province"?: string,
  "modification_type"?: "ADD_DAYS"|"REMOVE_DAYS"|"CHANGE_DATES"}}}}
- RECOMMEND_PLACES: {{"location_context": string, "place_types": [...],
  "recommendations"?: [{{"name", "type", "description"?}}]}}
- ASK_PERSONAL_INFO: {{"personal_info"?: {{"travel_companions"?, "budget_range"?, "travel_style"?}}}}
- NO_ACTION: {{}}

Rules:
- Use real, specific place names that can be found on Google Maps.
- Put the province or city in "location_context" and "hintAddress".
- "day" is a 1-based day index within the trip, not a calendar date.
- Use an empty "actions" list when nothing should change.

Current trip: {trip_context}
"""

NARRATIVE_SYSTEM_PROMPT = """\
You are a friendly Thai travel planner. Write a natural day-by-day travel plan in {language}
for the user's request. Mention specific, real place names with their province.
Current trip: {trip_context}
"""

EXTRACTION_SYSTEM_PROMPT = """\
Extract every concrete place mentioned in the travel plan below.
Respond with ONE JSON object only:
{{"reply": "", "actions": [{{"action": "ADD_DESTINATIONS", "location_context": string,
  "destinations": [{{"name": string, "hintAddress"?: string, "minHours"?: number,
  "place_type"?: "tourist_attraction"|"lodging"|"restaurant"}}]}}]}}
Skip generic phrases (for example "local market" without a name).
"""

EXTRACTION_USER_PROMPT = """\
Travel plan:
{narrative}
"""


def _trip_context(request: AssistantRequest) -> str:
    if not request.trip_id:
        return "none yet"
    parts = [f"id={request.trip_id}"]
    if request.total_days:
        parts.append(f"total_days={request.total_days}")
    if request.start_date:
        parts.append(f"start_date={request.start_date}")
    if request.end_date:
        parts.append(f"end_date={request.end_date}")
    if request.destinations_count is not None:
        parts.append(f"destinations_count={request.destinations_count}")
    if request.destination_names:
        parts.append("destinations=" + ", ".join(request.destination_names))
    return "; ".join(parts)


def _history_messages(history: list[Message]) -> list[tuple[str, str]]:
    role_map = {ChatRole.USER: "human", ChatRole.ASSISTANT: "ai", ChatRole.SYSTEM: "system"}
    return [(role_map[item.role], item.content) for item in history]


def _content_of(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        return "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
    return str(content or "")


class TripAssistantProtocol(ABC):
    """LLM 협력자 인터페이스."""

    @abstractmethod
    async def generate_turn(self, request: AssistantRequest) -> str | dict:
        """structured 모드: `{reply, actions, suggest_login?}` 형태의 원시 응답."""
        raise NotImplementedError

    @abstractmethod
    async def generate_narrative(self, request: AssistantRequest) -> str:
        """narrative 모드: 자연어 여행 계획."""
        raise NotImplementedError

    @abstractmethod
    async def extract_places(self, narrative: str, request: AssistantRequest) -> str | dict:
        """extraction 모드: 자연어 계획에서 ADD_DESTINATIONS 액션을 추출한 원시 응답."""
        raise NotImplementedError


class OpenAITripAssistant(TripAssistantProtocol):
    """LangChain `ChatOpenAI` 기반 구현."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._structured_prompt = ChatPromptTemplate.from_messages(
            [("system", STRUCTURED_SYSTEM_PROMPT), MessagesPlaceholder("history"), ("human", "{message}")]
        )
        self._narrative_prompt = ChatPromptTemplate.from_messages(
            [("system", NARRATIVE_SYSTEM_PROMPT), MessagesPlaceholder("history"), ("human", "{message}")]
        )
        self._extraction_prompt = ChatPromptTemplate.from_messages(
            [("system", EXTRACTION_SYSTEM_PROMPT), ("human", EXTRACTION_USER_PROMPT)]
        )

    async def _call(self, stage: Stage, messages: Any, request: AssistantRequest, temperature: float) -> str:
        logger.debug("Assistant call: stage=%s trip_id=%s", stage.value, request.trip_id)
        try:
            response = await llm_router.ainvoke(
                stage,
                messages,
                settings=self._settings,
                temperature=temperature,
                model=request.model,
            )
        except (openai.APIConnectionError, openai.APITimeoutError) as exc:
            raise AssistantTransportError(f"LLM transport failure: {exc}") from exc
        except openai.OpenAIError as exc:
            raise AssistantCallError(f"LLM provider error: {exc}") from exc
        return _content_of(response)

    async def generate_turn(self, request: AssistantRequest) -> str:
        messages = self._structured_prompt.format_messages(
            language=request.language,
            trip_context=_trip_context(request),
            history=_history_messages(request.history),
            message=request.message,
        )
        return await self._call(Stage.TURN_STRUCTURED, messages, request, request.temperature)

    async def generate_narrative(self, request: AssistantRequest) -> str:
        messages = self._narrative_prompt.format_messages(
            language=request.language,
            trip_context=_trip_context(request),
            history=_history_messages(request.history),
            message=request.message,
        )
        return await self._call(Stage.TURN_NARRATIVE, messages, request, request.temperature)

    async def extract_places(self, narrative: str, request: AssistantRequest) -> str:
        messages = self._extraction_prompt.format_messages(narrative=narrative)
        return await self._call(
            Stage.PLACE_EXTRACTION,
            messages,
            request,
            self._settings.LLM_EXTRACTION_TEMPERATURE,
        )
