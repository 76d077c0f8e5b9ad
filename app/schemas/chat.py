"""대화(Chat) 요청/응답 스키마."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.enums import AssistantMode, ChatRole, ErrorCategory, ProcessingState
from app.schemas.narrative import NarrativeMeta
from app.schemas.place import ResolvedPlace
from app.schemas.trip import Destination


class Message(BaseModel):
    """대화 메시지 모델."""

    role: ChatRole = Field(..., description="메시지 역할 (user / assistant)")
    content: str = Field(..., description="메시지 내용")


class AssistantRequest(BaseModel):
    """LLM 협력자 호출 입력."""

    message: str
    trip_id: str | None = None
    language: str = "th"
    history: list[Message] = Field(default_factory=list)
    provider: str = "openai"
    model: str | None = None
    mode: AssistantMode = AssistantMode.STRUCTURED
    temperature: float = 0.7
    total_days: int | None = None
    start_date: str | None = None
    end_date: str | None = None
    destinations_count: int | None = None
    destination_names: list[str] = Field(default_factory=list)


class TurnError(BaseModel):
    """턴 실패 정보."""

    category: ErrorCategory
    message: str


class TurnResult(BaseModel):
    """대화 턴 한 번의 결과."""

    reply: str = Field(..., description="사용자에게 표시되는 응답")
    trip_id: str | None = Field(default=None, description="턴 종료 시점의 여행 ID")
    new_trip_id: str | None = Field(default=None, description="이번 턴에서 새로 만든 여행 ID")
    state: ProcessingState = Field(..., description="턴 종료 상태 (completed / error)")
    error: TurnError | None = None
    retry_message: str | None = Field(default=None, description="다시 보낼 수 있도록 보존한 사용자 메시지")
    added_count: int = 0
    failed_names: list[str] = Field(default_factory=list)
    suggested_places: list[ResolvedPlace] = Field(default_factory=list)
    suggest_login: bool = False
    trip_ready: bool = False
    destinations: list[Destination] = Field(default_factory=list)
    narrative_meta: NarrativeMeta | None = Field(default=None, description="자연어 계획 모드의 장소 추출 메타데이터")


class ChatRequest(BaseModel):
    """`POST /api/v1/chat` 요청."""

    model_config = ConfigDict(extra="ignore")

    session_id: str = Field(..., min_length=1, description="클라이언트 세션 ID (턴 직렬화 단위)")
    trip_id: str | None = Field(default=None, description="기존 여행 ID")
    message: str = Field(..., min_length=1, description="사용자 메시지")
    history: list[Message] = Field(default_factory=list, description="최근 대화 맥락")
    language: str = Field(default="th", description="응답 언어 (th / en)")
    mode: AssistantMode = Field(default=AssistantMode.STRUCTURED, description="structured / narrative")


class ProcessingStatusResponse(BaseModel):
    """`GET /api/v1/chat/{session_id}/state` 응답."""

    state: ProcessingState
    is_processing: bool
    error: TurnError | None = None
    transcript: list[Message] = Field(default_factory=list)
