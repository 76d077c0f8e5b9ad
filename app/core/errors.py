"""파이프라인 오류 계층.

대화 턴 경계에서 잡히는 예외는 모두 `PipelineError`를 상속하며
`network|ai|database|validation` 중 하나의 분류를 가진다.
"""

from __future__ import annotations

from app.schemas.enums import ErrorCategory


class PipelineError(RuntimeError):
    """분류가 붙은 파이프라인 예외의 기반 클래스."""

    category: ErrorCategory = ErrorCategory.AI

    def __init__(self, message: str, *, category: ErrorCategory | None = None) -> None:
        super().__init__(message)
        self.message = message
        if category is not None:
            self.category = category


class AssistantTimeoutError(PipelineError):
    """LLM 응답이 제한 시간을 넘긴 경우."""

    category = ErrorCategory.AI


class AssistantCallError(PipelineError):
    """LLM 제공자가 오류를 반환했거나 응답을 해석할 수 없는 경우."""

    category = ErrorCategory.AI


class AssistantTransportError(PipelineError):
    """LLM 호출 중 전송 계층 오류가 발생한 경우."""

    category = ErrorCategory.NETWORK


class PlacesProviderError(PipelineError):
    """장소 검색 제공자 호출 실패."""

    category = ErrorCategory.NETWORK


class PersistenceError(PipelineError):
    """저장소 읽기/쓰기 실패."""

    category = ErrorCategory.DATABASE


class TripNotFoundError(PersistenceError):
    """요청한 여행이 저장소에 없는 경우."""


class TurnInProgressError(PipelineError):
    """이전 턴이 끝나기 전에 새 메시지가 들어온 경우."""

    category = ErrorCategory.VALIDATION


class InvalidTransitionError(RuntimeError):
    """허용되지 않은 처리 상태 전이. 호출 측 프로그래밍 오류다."""


class TurnValidationError(PipelineError):
    """LLM 응답이 액션 스키마를 통과하지 못했거나 호출 입력이 잘못된 경우."""

    category = ErrorCategory.VALIDATION
